"""Structural validator for diagrams.

`validate_diagram` is a pure function of (registry, nodes, edges, diagram type).
It recomputes the full issue list on every call and never raises; callers treat
any ERROR-severity issue as blocking for save/export.

Checks run independently and accumulate:
  - registry readiness and diagram-type presence
  - per-node typing and pinned-version discipline, attribute schemas
  - group containment declared by both parent and child types
  - diagram-type placement rules and cardinality limits
  - technology-layer swimlanes
  - per-edge typing, guided-connection round-trip, legacy allow-lists
  - completeness warnings for portfolio and traceability diagrams
"""
from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ea_studio.modeling import diagram_types as dt
from ea_studio.modeling.entities import Edge, Node
from ea_studio.modeling.model import validate_attributes
from ea_studio.modeling.registry import RegistryState, get_component_type, get_edge_type, get_group_type

CAP_CATEGORY_MAX_CAPABILITIES = 5
CAPABILITY_MAX_SUBCAPABILITIES = 3
SUBCAPABILITY_MAX_PROCESSES = 2
PROGRAMME_MAX_PROJECTS = 3
TECH_LANE_MAX_ELEMENTS = 3
TECH_LANE_MAX_GROUPS = 3


class ValidationSeverity(str, Enum):
    ERROR = "ERROR"
    WARNING = "WARNING"
    INFO = "INFO"


SEVERITY_RANK = {ValidationSeverity.ERROR: 0, ValidationSeverity.WARNING: 1, ValidationSeverity.INFO: 2}


@dataclass(frozen=True)
class IssueTarget:
    kind: str  # "diagram" | "node" | "edge"
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"kind": self.kind}
        if self.id is not None:
            out["id"] = self.id
        return out


DIAGRAM_TARGET = IssueTarget("diagram")


@dataclass(frozen=True)
class ValidationIssue:
    severity: ValidationSeverity
    code: str
    message: str
    target: IssueTarget

    def sort_key(self) -> str:
        rank = SEVERITY_RANK.get(self.severity, 9)
        return f"{self.target.kind or 'z'}:{self.target.id or ''}:{rank}:{self.code}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "severity": self.severity.value,
            "code": self.code,
            "message": self.message,
            "target": self.target.to_dict(),
        }


@dataclass(frozen=True)
class ValidationSummary:
    errors: int
    warnings: int
    infos: int

    @property
    def blocking(self) -> bool:
        return self.errors > 0

    def to_dict(self) -> Dict[str, Any]:
        return {"errors": self.errors, "warnings": self.warnings, "infos": self.infos, "blocking": self.blocking}


def summarize_issues(issues: Iterable[ValidationIssue]) -> ValidationSummary:
    counts = {severity: 0 for severity in ValidationSeverity}
    for issue in issues:
        counts[issue.severity] += 1
    return ValidationSummary(
        errors=counts[ValidationSeverity.ERROR],
        warnings=counts[ValidationSeverity.WARNING],
        infos=counts[ValidationSeverity.INFO],
    )


def is_blocking(issues: Iterable[ValidationIssue]) -> bool:
    return any(issue.severity == ValidationSeverity.ERROR for issue in issues)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _node_target(node_id: str) -> IssueTarget:
    return IssueTarget("node", node_id)


def _edge_target(edge_id: str) -> IssueTarget:
    return IssueTarget("edge", edge_id)


def _children_by_parent(nodes: Sequence[Node]) -> Dict[str, List[Node]]:
    children: Dict[str, List[Node]] = {}
    for node in nodes:
        if node.parent_node:
            children.setdefault(node.parent_node, []).append(node)
    return children


def _top_level_groups(nodes: Sequence[Node], group_type_id: str) -> List[Node]:
    return [n for n in nodes if n.is_group and n.type_id == group_type_id and not n.parent_node]


def _count(children: Sequence[Node], kind: str, type_id: str) -> int:
    return sum(1 for child in children if child.kind == kind and child.type_id == type_id)


class _IssueCollector:
    def __init__(self) -> None:
        self.issues: List[ValidationIssue] = []

    def error(self, code: str, message: str, target: IssueTarget) -> None:
        self.issues.append(ValidationIssue(ValidationSeverity.ERROR, code, message, target))

    def warning(self, code: str, message: str, target: IssueTarget) -> None:
        self.issues.append(ValidationIssue(ValidationSeverity.WARNING, code, message, target))


def _check_pinned_version(
    out: _IssueCollector,
    prefix: str,
    label: str,
    type_id: str,
    display_name: str,
    instance_version: Any,
    registry_version: Any,
    target: IssueTarget,
) -> None:
    """Shared version-pin rule for groups, components and edges."""
    field_name = f"{label.lower()}TypeVersion"
    if instance_version is None:
        out.error(
            f"{prefix}_TYPE_VERSION_MISSING",
            f"{label.capitalize()} is missing {field_name} for {display_name} ({type_id}).",
            target,
        )
    elif not _is_number(instance_version):
        out.error(
            f"{prefix}_TYPE_VERSION_INVALID",
            f"{label.capitalize()} {field_name} must be a number for {type_id}.",
            target,
        )
    elif not _is_number(registry_version):
        out.error(
            f"{prefix}_TYPE_REGISTRY_VERSION_INVALID",
            f"Registry {label.lower()} type {type_id} is missing a valid version number.",
            DIAGRAM_TARGET,
        )
    elif instance_version != registry_version:
        out.warning(
            f"{prefix}_TYPE_VERSION_MISMATCH",
            f"{label.capitalize()} type version mismatch for {display_name} ({type_id}): "
            f"instance v{instance_version} is locked; registry is v{registry_version}.",
            target,
        )


def _check_diagram(out: _IssueCollector, registry: Optional[RegistryState], diagram_type_id: Optional[str]) -> None:
    if registry is None or not registry.ready:
        out.error(
            "REGISTRY_MISSING",
            "Component Type Registry is not loaded. Component creation is disabled.",
            DIAGRAM_TARGET,
        )
    if not diagram_type_id:
        out.error(
            "DIAGRAM_TYPE_MISSING",
            "Diagram type is not set. Select a diagram type to enable modeling.",
            DIAGRAM_TARGET,
        )
    elif not dt.is_known_diagram_type(diagram_type_id):
        out.error("DIAGRAM_TYPE_UNKNOWN", f"Unknown diagram type: {diagram_type_id}.", DIAGRAM_TARGET)


def _check_node_types(out: _IssueCollector, registry: Optional[RegistryState], nodes: Sequence[Node]) -> None:
    for node in nodes:
        target = _node_target(node.id)
        if node.is_group:
            group_type = get_group_type(registry, node.type_id)
            if group_type is None:
                message = f"Unknown groupTypeId: {node.type_id}" if node.type_id else "Group is missing groupTypeId."
                out.error("GROUP_UNKNOWN_TYPE", message, target)
                continue
            _check_pinned_version(
                out, "GROUP", "group", node.type_id, group_type.display_name,
                node.type_version, group_type.version, target,
            )
            continue

        if not node.is_component:
            out.error("NODE_UNTYPED", "Node is not a typed component (missing kind/componentTypeId).", target)
            continue

        component_type = get_component_type(registry, node.type_id)
        if component_type is None:
            message = (
                f"Unknown componentTypeId: {node.type_id}" if node.type_id else "Component is missing componentTypeId."
            )
            out.error("COMPONENT_UNKNOWN_TYPE", message, target)
            continue

        _check_pinned_version(
            out, "COMPONENT", "component", node.type_id, component_type.display_name,
            node.type_version, component_type.version, target,
        )
        problems = validate_attributes(component_type, node.attributes)
        if problems:
            out.error(
                "COMPONENT_ATTRIBUTES_INVALID",
                f"Invalid attributes for {component_type.display_name}: {'; '.join(problems)}",
                target,
            )


def _check_nesting(
    out: _IssueCollector,
    registry: Optional[RegistryState],
    nodes: Sequence[Node],
    node_by_id: Dict[str, Node],
) -> None:
    for node in nodes:
        if not node.parent_node:
            continue
        target = _node_target(node.id)
        parent = node_by_id.get(node.parent_node)
        if parent is None:
            out.error("GROUP_MISSING_PARENT", f"Node references missing parent group: {node.parent_node}", target)
            continue
        if not parent.is_group:
            out.error("GROUP_INVALID_PARENT", "Nodes can only be nested within groups.", target)
            continue

        parent_type = get_group_type(registry, parent.type_id)
        if parent_type is None:
            continue

        if node.is_group:
            child_type = get_group_type(registry, node.type_id)
            allowed_by_parent = node.type_id in parent_type.allowed_child_group_types
            allowed_by_child = child_type is not None and parent.type_id in child_type.allowed_parent_group_types
            if not (allowed_by_parent and allowed_by_child):
                child_name = child_type.display_name if child_type else node.type_id
                out.error(
                    "GROUP_NESTING_INVALID",
                    f"Invalid group nesting: {parent_type.display_name} cannot contain {child_name}.",
                    target,
                )
            continue

        if node.type_id and node.type_id not in parent_type.allowed_child_component_types:
            out.error(
                "GROUP_CHILD_TYPE_INVALID",
                f"Invalid nesting: {parent_type.display_name} cannot contain component type {node.type_id}.",
                target,
            )


# Role placement: (kind, type id) -> (required parent group type or None for "top level only", code, message)
_TOP_LEVEL_ONLY = {
    dt.CAP_CATEGORY: ("CAP_CATEGORY_PARENT_INVALID", "Category / Department must be top-level (cannot be nested)."),
    dt.APP_CATEGORY: (
        "APP_CATEGORY_PARENT_INVALID",
        "Application Category / Department must be top-level (cannot be nested).",
    ),
    dt.PROG_CATEGORY: (
        "PROG_CATEGORY_PARENT_INVALID",
        "Programme Category / Department must be top-level (cannot be nested).",
    ),
}

_NESTED_UNDER = {
    ("group", dt.CAP_CAPABILITY): (
        dt.CAP_CATEGORY,
        "CAPABILITY_PARENT_INVALID",
        "Capability must be nested under a Category / Department.",
    ),
    ("group", dt.CAP_SUBCAPABILITY): (
        dt.CAP_CAPABILITY,
        "SUBCAPABILITY_PARENT_INVALID",
        "Sub-Capability must be nested under a Capability.",
    ),
    ("component", dt.BUSINESS_PROCESS): (
        dt.CAP_SUBCAPABILITY,
        "BUSINESS_PROCESS_PARENT_INVALID",
        "Business Process must be nested under a Sub-Capability.",
    ),
    ("group", dt.PROG_PROGRAMME): (
        dt.PROG_CATEGORY,
        "PROGRAMME_PARENT_INVALID",
        "Programme must be nested under a Category / Department.",
    ),
    ("component", dt.PROGRAMME_PROJECT): (
        dt.PROG_PROGRAMME,
        "PROJECT_PARENT_INVALID",
        "Project must be nested under a Programme.",
    ),
}


def _check_placement(
    out: _IssueCollector,
    nodes: Sequence[Node],
    node_by_id: Dict[str, Node],
    diagram_type_id: str,
) -> None:
    def parent_type_of(node: Node) -> Optional[str]:
        parent = node_by_id.get(node.parent_node) if node.parent_node else None
        return parent.type_id if parent is not None else None

    for node in nodes:
        target = _node_target(node.id)
        if node.is_group and node.type_id in _TOP_LEVEL_ONLY and node.parent_node:
            code, message = _TOP_LEVEL_ONLY[node.type_id]
            out.error(code, message, target)

        rule = _NESTED_UNDER.get((node.kind, node.type_id))
        if rule is not None:
            required_parent, code, message = rule
            if parent_type_of(node) != required_parent:
                out.error(code, message, target)

        if (
            diagram_type_id == dt.APPLICATION_LANDSCAPE
            and node.is_component
            and node.type_id == dt.APPLICATION
            and parent_type_of(node) != dt.APP_CATEGORY
        ):
            out.error(
                "APPLICATION_PARENT_INVALID",
                "Applications must be nested under a Category / Department in Application Landscape diagrams.",
                target,
            )


@dataclass(frozen=True)
class _CardinalityRule:
    child_kind: str
    child_type_id: str
    maximum: int
    max_code: str
    max_message: str
    min_code: Optional[str] = None
    min_message: str = ""


_CARDINALITY_RULES = {
    dt.CAP_CATEGORY: _CardinalityRule(
        "group", dt.CAP_CAPABILITY, CAP_CATEGORY_MAX_CAPABILITIES,
        "CAP_CATEGORY_MAX_CHILDREN", "Category / Department can contain at most 5 Capabilities.",
        "CAP_CATEGORY_MIN_CHILDREN", "Category / Department has no Capabilities. Add at least 1.",
    ),
    dt.CAP_CAPABILITY: _CardinalityRule(
        "group", dt.CAP_SUBCAPABILITY, CAPABILITY_MAX_SUBCAPABILITIES,
        "CAPABILITY_MAX_CHILDREN", "Capability can contain at most 3 Sub-Capabilities.",
        "CAPABILITY_MIN_CHILDREN", "Capability has no Sub-Capabilities. Add at least 1.",
    ),
    dt.CAP_SUBCAPABILITY: _CardinalityRule(
        "component", dt.BUSINESS_PROCESS, SUBCAPABILITY_MAX_PROCESSES,
        "SUBCAPABILITY_MAX_CHILDREN", "Sub-Capability can contain at most 2 Business Processes.",
        "SUBCAPABILITY_MIN_CHILDREN", "Sub-Capability has no Business Processes. Add at least 1.",
    ),
    dt.PROG_PROGRAMME: _CardinalityRule(
        "component", dt.PROGRAMME_PROJECT, PROGRAMME_MAX_PROJECTS,
        "PROGRAMME_MAX_PROJECTS", "Programme can contain at most 3 Projects.",
    ),
}


def _check_cardinality(out: _IssueCollector, nodes: Sequence[Node], children: Dict[str, List[Node]]) -> None:
    for node in nodes:
        if not node.is_group:
            continue
        rule = _CARDINALITY_RULES.get(node.type_id)
        if rule is None:
            continue
        count = _count(children.get(node.id, []), rule.child_kind, rule.child_type_id)
        if count > rule.maximum:
            out.error(rule.max_code, rule.max_message, _node_target(node.id))
        elif count == 0 and rule.min_code:
            out.warning(rule.min_code, rule.min_message, _node_target(node.id))


def _check_technology_layers(out: _IssueCollector, nodes: Sequence[Node], children: Dict[str, List[Node]]) -> None:
    lanes_by_type = {layer: _top_level_groups(nodes, layer) for layer in dt.TECH_LAYERS}
    if any(len(lanes) != 1 for lanes in lanes_by_type.values()):
        out.error(
            "TECH_LAYERS_MISSING",
            "Technology Architecture must contain exactly 3 top-level layers: "
            "Infrastructure, Application Hosting & Ops, Platform Services.",
            DIAGRAM_TARGET,
        )

    for lanes in lanes_by_type.values():
        for lane in lanes:
            lane_children = children.get(lane.id, [])
            if _count(lane_children, "component", dt.TECH_ELEMENT) > TECH_LANE_MAX_ELEMENTS:
                out.error(
                    "TECH_LANE_MAX_ELEMENTS",
                    "Each technology layer can contain at most 3 elements at the top level.",
                    _node_target(lane.id),
                )
            if _count(lane_children, "group", dt.TECH_GROUP) > TECH_LANE_MAX_GROUPS:
                out.error(
                    "TECH_LANE_MAX_GROUPS",
                    "Each technology layer can contain at most 3 groups at the top level.",
                    _node_target(lane.id),
                )


def _ancestors(node: Node, node_by_id: Dict[str, Node]) -> List[Node]:
    out: List[Node] = []
    seen = {node.id}
    current = node
    while current.parent_node and current.parent_node not in seen:
        parent = node_by_id.get(current.parent_node)
        if parent is None:
            break
        out.append(parent)
        seen.add(parent.id)
        current = parent
    return out


def _check_edges(
    out: _IssueCollector,
    registry: Optional[RegistryState],
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    node_by_id: Dict[str, Node],
    diagram_type_id: Optional[str],
) -> None:
    guided_types = dt.guided_edge_type_ids(diagram_type_id)
    for edge in edges:
        target = _edge_target(edge.id)
        source_node = node_by_id.get(edge.source)
        target_node = node_by_id.get(edge.target)
        if source_node is None or target_node is None:
            out.error("EDGE_MISSING_ENDPOINT", "Edge references missing source or target node.", target)
            continue

        source_is_group = source_node.is_group and bool(source_node.type_id)
        target_is_group = target_node.is_group and bool(target_node.type_id)
        if not source_node.is_component and not source_is_group:
            out.error(
                "EDGE_SOURCE_INVALID",
                "Edge source must be a typed component or a supported semantic group.",
                target,
            )
            continue
        if not target_node.is_component and not target_is_group:
            out.error(
                "EDGE_TARGET_INVALID",
                "Edge target must be a typed component or a supported semantic group.",
                target,
            )
            continue

        if not edge.edge_type_id:
            out.error("EDGE_TYPE_ID_MISSING", "Edge is missing edgeTypeId.", target)
            continue
        edge_type = get_edge_type(registry, edge.edge_type_id)
        if edge_type is None:
            out.error("EDGE_TYPE_UNKNOWN", f"Unknown edgeTypeId (not in registry): {edge.edge_type_id}.", target)
            continue

        _check_pinned_version(
            out, "EDGE", "edge", edge.edge_type_id, edge_type.display_name,
            edge.edge_type_version, edge_type.version, target,
        )

        if edge.edge_type_id in guided_types:
            guided = dt.resolve_guided_connection(diagram_type_id, nodes, edge.source, edge.target)
            if guided is None or guided.edge_type_id != edge.edge_type_id:
                out.error(
                    "GUIDED_EDGE_INVALID",
                    "This relationship is not valid for the selected endpoints in this diagram type.",
                    target,
                )
            if diagram_type_id == dt.TECHNOLOGY_ARCHITECTURE and edge.edge_type_id == dt.APPLICATION_TO_TECH:
                in_lane = any(
                    (ancestor.type_id or "").startswith(dt.TECH_LAYER_PREFIX)
                    for ancestor in _ancestors(target_node, node_by_id)
                )
                if not in_lane:
                    out.error(
                        "TECH_EDGE_TARGET_NOT_IN_LANE",
                        "Application → Technology edges must target a Technology Element placed inside "
                        "a technology layer swimlane.",
                        target,
                    )
            continue

        _check_legacy_edge(out, registry, edge, source_node, target_node)


def _check_legacy_edge(
    out: _IssueCollector,
    registry: Optional[RegistryState],
    edge: Edge,
    source_node: Node,
    target_node: Node,
) -> None:
    target = _edge_target(edge.id)
    if not source_node.is_component or not target_node.is_component:
        out.error("EDGE_ENDPOINT_NOT_COMPONENT", "Legacy edges can only connect typed components (not groups).", target)
        return

    source_type = get_component_type(registry, source_node.type_id)
    target_type = get_component_type(registry, target_node.type_id)
    if source_type is None or target_type is None:
        return

    if (
        edge.edge_type_id not in source_type.allowed_edge_types
        or edge.edge_type_id not in target_type.allowed_edge_types
    ):
        out.error(
            "EDGE_TYPE_NOT_ALLOWED",
            f"Edge type {edge.edge_type_id} is not allowed between "
            f"{source_type.display_name} and {target_type.display_name}.",
            target,
        )

    if source_type.allowed_child_types or target_type.allowed_parent_types:
        allowed_child = target_type.type_id in source_type.allowed_child_types
        allowed_parent = source_type.type_id in target_type.allowed_parent_types
        if not (allowed_child and allowed_parent):
            out.error(
                "EDGE_ENDPOINTS_INCOMPATIBLE",
                f"Invalid relationship: {source_type.display_name} cannot connect to {target_type.display_name}.",
                target,
            )


def _check_completeness(
    out: _IssueCollector,
    nodes: Sequence[Node],
    edges: Sequence[Edge],
    diagram_type_id: Optional[str],
) -> None:
    if diagram_type_id == dt.PROGRAMME_PORTFOLIO:
        linked = {
            edge.source
            for edge in edges
            if edge.edge_type_id in (dt.PROGRAMME_TO_APPLICATION, dt.PROGRAMME_TO_CAPABILITY)
        }
        for node in nodes:
            if node.is_group and node.type_id == dt.PROG_PROGRAMME and node.id not in linked:
                out.warning(
                    "PROGRAMME_MISSING_TARGETS",
                    "Programme has no links to Capabilities or Applications. Add at least one to make it meaningful.",
                    _node_target(node.id),
                )

    if diagram_type_id == dt.CROSS_DOMAIN_TRACEABILITY:
        attached = {edge.source for edge in edges} | {edge.target for edge in edges}
        for node in nodes:
            if node.is_component and node.type_id == dt.APPLICATION and node.id not in attached:
                out.warning(
                    "APPLICATION_UNLINKED",
                    "Application has no relationships. In traceability views, link Applications to "
                    "Business Processes and/or Technology.",
                    _node_target(node.id),
                )


def sort_issues(issues: Iterable[ValidationIssue]) -> List[ValidationIssue]:
    return sorted(issues, key=ValidationIssue.sort_key)


def validate_diagram(
    registry: Optional[RegistryState],
    nodes: Iterable[Node],
    edges: Iterable[Edge],
    diagram_type_id: Optional[str],
) -> List[ValidationIssue]:
    nodes = [node for node in nodes if node.id]
    edges = [edge for edge in edges if edge.id]
    node_by_id = {node.id: node for node in nodes}
    children = _children_by_parent(nodes)
    out = _IssueCollector()

    _check_diagram(out, registry, diagram_type_id)
    _check_node_types(out, registry, nodes)
    _check_nesting(out, registry, nodes, node_by_id)
    if dt.is_known_diagram_type(diagram_type_id):
        _check_placement(out, nodes, node_by_id, diagram_type_id)
        _check_cardinality(out, nodes, children)
        if diagram_type_id == dt.TECHNOLOGY_ARCHITECTURE:
            _check_technology_layers(out, nodes, children)
    _check_edges(out, registry, nodes, edges, node_by_id, diagram_type_id)
    _check_completeness(out, nodes, edges, diagram_type_id)

    return sort_issues(out.issues)
