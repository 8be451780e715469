"""Per-node visual hints for the rendering collaborator. Reads state, never writes it."""
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Dict, Iterable, List, Optional, Set

from ea_studio.impact.analysis import ImpactResult
from ea_studio.modeling import diagram_types as dt
from ea_studio.modeling.entities import Node, is_locked_template_member
from ea_studio.modeling.validate import ValidationIssue, ValidationSeverity
from ea_studio.store.state import DiagramState


@dataclass(frozen=True)
class NodeHints:
    impacted: bool = False
    impact_start: bool = False
    impact_depth: Optional[int] = None
    high_fan_in: bool = False
    high_fan_out: bool = False
    chain: bool = False
    connect_source: bool = False
    connect_target: bool = False
    locked: bool = False
    read_only: bool = False
    hidden_error_count: int = 0
    hidden_warning_count: int = 0

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


def _descendants(nodes: Iterable[Node]) -> Dict[str, Set[str]]:
    children: Dict[str, List[str]] = {}
    for node in nodes:
        if node.parent_node:
            children.setdefault(node.parent_node, []).append(node.id)

    out: Dict[str, Set[str]] = {}
    for parent_id in children:
        found: Set[str] = set()
        stack = list(children[parent_id])
        while stack:
            current = stack.pop()
            if current in found:
                continue
            found.add(current)
            stack.extend(children.get(current, ()))
        out[parent_id] = found
    return out


def visible_node_ids(state: DiagramState) -> Set[str]:
    """Active-view members, filtered by semantic layer and collapsed containers.

    Layers filter components only; groups stay visible so their members keep a frame.
    """
    view = state.active_view
    members = set(view.node_ids)
    layers = set(view.active_layer_ids)
    hidden: Set[str] = set()
    descendants = _descendants(state.nodes)
    for container_id in view.collapsed_container_ids:
        hidden |= descendants.get(container_id, set())

    visible = set()
    for node in state.nodes:
        if node.id not in members or node.id in hidden:
            continue
        if layers and node.is_component and dt.semantic_layer_for(node.type_id) not in layers:
            continue
        visible.add(node.id)
    return visible


def derive_node_hints(
    state: DiagramState,
    issues: Iterable[ValidationIssue] = (),
    impact: Optional[ImpactResult] = None,
    connect_source_id: Optional[str] = None,
) -> Dict[str, NodeHints]:
    issues_by_node: Dict[str, List[ValidationIssue]] = {}
    for issue in issues:
        if issue.target.kind == "node" and issue.target.id:
            issues_by_node.setdefault(issue.target.id, []).append(issue)

    allowed_targets: Set[str] = set()
    if connect_source_id:
        allowed_targets = dt.compute_allowed_target_ids(state.diagram_type_id, state.nodes, connect_source_id)

    descendants = _descendants(state.nodes)
    collapsed = set(state.active_view.collapsed_container_ids)
    hints: Dict[str, NodeHints] = {}
    for node in state.nodes:
        errors = warnings = 0
        if node.id in collapsed:
            for hidden_id in descendants.get(node.id, ()):
                for issue in issues_by_node.get(hidden_id, ()):
                    if issue.severity == ValidationSeverity.ERROR:
                        errors += 1
                    elif issue.severity == ValidationSeverity.WARNING:
                        warnings += 1

        impacted = impact is not None and node.id in impact.impacted_node_ids
        hints[node.id] = NodeHints(
            impacted=impacted,
            impact_start=impact is not None and node.id in impact.start_node_ids,
            impact_depth=impact.depth_by_node_id.get(node.id) if impacted else None,
            high_fan_in=impacted and node.id in impact.indicators.high_fan_in_node_ids,
            high_fan_out=impacted and node.id in impact.indicators.high_fan_out_node_ids,
            chain=impacted and node.id in impact.indicators.chain_node_ids,
            connect_source=node.id == connect_source_id,
            connect_target=node.id in allowed_targets,
            locked=is_locked_template_member(node.metadata),
            read_only=node.metadata.is_external,
            hidden_error_count=errors,
            hidden_warning_count=warnings,
        )
    return hints
