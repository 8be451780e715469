"""Diagram-type catalog: palettes, required root containers and guided connections."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ea_studio.modeling.entities import NODE_KIND_COMPONENT, NODE_KIND_GROUP, Node

CAPABILITY_MAP = "capability-map"
APPLICATION_LANDSCAPE = "application-landscape"
TECHNOLOGY_ARCHITECTURE = "technology-architecture"
PROGRAMME_PORTFOLIO = "programme-portfolio"
CROSS_DOMAIN_TRACEABILITY = "cross-domain-traceability"

# Group type ids
CAP_CATEGORY = "ea.catDept"
CAP_CAPABILITY = "ea.capability"
CAP_SUBCAPABILITY = "ea.subCapability"
APP_CATEGORY = "app.catDept"
PROG_CATEGORY = "prog.catDept"
PROG_PROGRAMME = "prog.programme"
TECH_LAYER_INFRA = "tech.layer.infrastructure"
TECH_LAYER_HOSTING = "tech.layer.hostingOps"
TECH_LAYER_PLATFORM = "tech.layer.platformServices"
TECH_GROUP = "tech.group"

TECH_LAYERS = (TECH_LAYER_INFRA, TECH_LAYER_HOSTING, TECH_LAYER_PLATFORM)
TECH_LAYER_PREFIX = "tech.layer."

# Component type ids
BUSINESS_PROCESS = "ea.businessProcess"
APPLICATION = "app.application"
PROGRAMME_PROJECT = "prog.project"
TECH_ELEMENT = "tech.element"

# Guided edge type ids
PROCESS_TO_APP = "rel.processToApp"
PROGRAMME_TO_CAPABILITY = "rel.programmeToCapability"
PROGRAMME_TO_APPLICATION = "rel.programmeToApplication"
APPLICATION_TO_TECH = "rel.appToTechnology"

GUIDED_EDGE_TYPE_IDS = frozenset({PROCESS_TO_APP, PROGRAMME_TO_CAPABILITY, PROGRAMME_TO_APPLICATION, APPLICATION_TO_TECH})

# Roles are (node kind, type id) pairs.
Role = Tuple[str, str]


@dataclass(frozen=True)
class GuidedConnection:
    edge_type_id: str
    label: str


@dataclass(frozen=True)
class GuidedRule:
    source_roles: Tuple[Role, ...]
    target_roles: Tuple[Role, ...]
    connection: GuidedConnection


GUIDED_RULES: Tuple[GuidedRule, ...] = (
    GuidedRule(
        source_roles=((NODE_KIND_COMPONENT, BUSINESS_PROCESS),),
        target_roles=((NODE_KIND_COMPONENT, APPLICATION),),
        connection=GuidedConnection(PROCESS_TO_APP, "Process → Application"),
    ),
    GuidedRule(
        source_roles=((NODE_KIND_GROUP, PROG_PROGRAMME),),
        target_roles=((NODE_KIND_COMPONENT, APPLICATION),),
        connection=GuidedConnection(PROGRAMME_TO_APPLICATION, "Programme → Application"),
    ),
    GuidedRule(
        source_roles=((NODE_KIND_GROUP, PROG_PROGRAMME),),
        target_roles=((NODE_KIND_GROUP, CAP_CAPABILITY), (NODE_KIND_GROUP, CAP_SUBCAPABILITY)),
        connection=GuidedConnection(PROGRAMME_TO_CAPABILITY, "Programme → Capability"),
    ),
    GuidedRule(
        source_roles=((NODE_KIND_COMPONENT, APPLICATION),),
        target_roles=((NODE_KIND_COMPONENT, TECH_ELEMENT),),
        connection=GuidedConnection(APPLICATION_TO_TECH, "Application → Technology"),
    ),
)


@dataclass(frozen=True)
class PaletteItem:
    kind: str  # "groupType" | "componentType"
    type_id: str
    label: str


@dataclass(frozen=True)
class PaletteSection:
    id: str
    label: str
    items: Tuple[PaletteItem, ...]


@dataclass(frozen=True)
class RootGroup:
    group_type_id: str
    name: str


@dataclass(frozen=True)
class DiagramDefinition:
    id: str
    label: str
    default_layout_style: str
    palette: Tuple[PaletteSection, ...]
    required_roots: Tuple[RootGroup, ...] = ()
    guided_rules: Tuple[GuidedRule, ...] = field(default=GUIDED_RULES)


def _group(type_id: str, label: str) -> PaletteItem:
    return PaletteItem("groupType", type_id, label)


def _component(type_id: str, label: str) -> PaletteItem:
    return PaletteItem("componentType", type_id, label)


_CAPABILITY_ITEMS = (
    _group(CAP_CATEGORY, "Category / Department"),
    _group(CAP_CAPABILITY, "Capability"),
    _group(CAP_SUBCAPABILITY, "Sub-Capability"),
    _component(BUSINESS_PROCESS, "Business Process"),
)
_TECH_LAYER_ITEMS = (
    _group(TECH_LAYER_INFRA, "Infrastructure Layer"),
    _group(TECH_LAYER_HOSTING, "Application Hosting & Ops"),
    _group(TECH_LAYER_PLATFORM, "Platform Services"),
    _group(TECH_GROUP, "Layer Group"),
)
_PROGRAMME_ITEMS = (
    _group(PROG_CATEGORY, "Category / Department"),
    _group(PROG_PROGRAMME, "Programme"),
    _component(PROGRAMME_PROJECT, "Project"),
)

DIAGRAM_DEFINITIONS: Dict[str, DiagramDefinition] = {
    CAPABILITY_MAP: DiagramDefinition(
        id=CAPABILITY_MAP,
        label="Capability Map",
        default_layout_style="flow-tb",
        palette=(PaletteSection("capability.structure", "Capability Structure", _CAPABILITY_ITEMS),),
        required_roots=(RootGroup(CAP_CATEGORY, "Category / Department"),),
    ),
    APPLICATION_LANDSCAPE: DiagramDefinition(
        id=APPLICATION_LANDSCAPE,
        label="Application Landscape",
        default_layout_style="flow-lr",
        palette=(
            PaletteSection(
                "application.structure",
                "Application Structure",
                (_group(APP_CATEGORY, "Category / Department"), _component(APPLICATION, "Application")),
            ),
        ),
        required_roots=(RootGroup(APP_CATEGORY, "Category / Department"),),
    ),
    TECHNOLOGY_ARCHITECTURE: DiagramDefinition(
        id=TECHNOLOGY_ARCHITECTURE,
        label="Technology Architecture",
        default_layout_style="flow-lr",
        palette=(
            PaletteSection("tech.layers", "Technology Layers", _TECH_LAYER_ITEMS),
            PaletteSection("tech.elements", "Technology Elements", (_component(TECH_ELEMENT, "Technology Element"),)),
            PaletteSection("applications", "Applications", (_component(APPLICATION, "Application"),)),
        ),
        required_roots=(
            RootGroup(TECH_LAYER_INFRA, "Infrastructure Layer"),
            RootGroup(TECH_LAYER_HOSTING, "Application Hosting & Ops"),
            RootGroup(TECH_LAYER_PLATFORM, "Platform Services"),
        ),
    ),
    PROGRAMME_PORTFOLIO: DiagramDefinition(
        id=PROGRAMME_PORTFOLIO,
        label="Programme Portfolio",
        default_layout_style="flow-tb",
        palette=(
            PaletteSection("programme.structure", "Programme Structure", _PROGRAMME_ITEMS),
            PaletteSection(
                "references",
                "Reference Nodes",
                (
                    _group(CAP_CATEGORY, "Capability Category"),
                    _group(CAP_CAPABILITY, "Capability"),
                    _group(CAP_SUBCAPABILITY, "Sub-Capability"),
                    _component(BUSINESS_PROCESS, "Business Process"),
                    _group(APP_CATEGORY, "Application Category"),
                    _component(APPLICATION, "Application"),
                ),
            ),
        ),
        required_roots=(RootGroup(PROG_CATEGORY, "Category / Department"),),
    ),
    CROSS_DOMAIN_TRACEABILITY: DiagramDefinition(
        id=CROSS_DOMAIN_TRACEABILITY,
        label="Traceability View",
        default_layout_style="flow-lr",
        palette=(
            PaletteSection("capabilities", "Capabilities", _CAPABILITY_ITEMS),
            PaletteSection(
                "applications",
                "Applications",
                (_group(APP_CATEGORY, "Category / Department"), _component(APPLICATION, "Application")),
            ),
            PaletteSection("technology", "Technology", _TECH_LAYER_ITEMS + (_component(TECH_ELEMENT, "Technology Element"),)),
            PaletteSection("programmes", "Programmes", _PROGRAMME_ITEMS),
        ),
        required_roots=(RootGroup(CAP_CATEGORY, "Capabilities"), RootGroup(APP_CATEGORY, "Applications")),
    ),
}

DIAGRAM_TYPE_IDS = tuple(DIAGRAM_DEFINITIONS)


def is_known_diagram_type(diagram_type_id: Optional[str]) -> bool:
    return diagram_type_id in DIAGRAM_DEFINITIONS


def get_diagram_definition(diagram_type_id: Optional[str]) -> Optional[DiagramDefinition]:
    return DIAGRAM_DEFINITIONS.get(diagram_type_id) if diagram_type_id else None


def get_diagram_type_label(diagram_type_id: Optional[str]) -> str:
    definition = get_diagram_definition(diagram_type_id)
    return definition.label if definition else ""


def palette_type_ids(diagram_type_id: Optional[str]) -> Set[str]:
    definition = get_diagram_definition(diagram_type_id)
    if definition is None:
        return set()
    return {item.type_id for section in definition.palette for item in section.items}


def required_root_groups(diagram_type_id: Optional[str]) -> Tuple[RootGroup, ...]:
    definition = get_diagram_definition(diagram_type_id)
    return definition.required_roots if definition else ()


def guided_edge_type_ids(diagram_type_id: Optional[str]) -> frozenset:
    """Edge types that are derived from endpoint roles rather than chosen."""
    definition = get_diagram_definition(diagram_type_id)
    if definition is None:
        return GUIDED_EDGE_TYPE_IDS
    return frozenset(rule.connection.edge_type_id for rule in definition.guided_rules)


def _role(node: Node) -> Role:
    return (node.kind, node.type_id or "")


def resolve_guided_connection(
    diagram_type_id: Optional[str],
    nodes: Iterable[Node],
    source_id: Optional[str],
    target_id: Optional[str],
) -> Optional[GuidedConnection]:
    definition = get_diagram_definition(diagram_type_id)
    if definition is None or not source_id or not target_id:
        return None
    node_by_id = {node.id: node for node in nodes}
    source = node_by_id.get(source_id)
    target = node_by_id.get(target_id)
    if source is None or target is None:
        return None

    source_role, target_role = _role(source), _role(target)
    for rule in definition.guided_rules:
        if source_role in rule.source_roles and target_role in rule.target_roles:
            return rule.connection
    return None


def compute_allowed_target_ids(
    diagram_type_id: Optional[str],
    nodes: Iterable[Node],
    source_id: Optional[str],
) -> Set[str]:
    nodes = list(nodes)
    if not is_known_diagram_type(diagram_type_id) or not source_id:
        return set()
    return {
        node.id
        for node in nodes
        if node.id != source_id and resolve_guided_connection(diagram_type_id, nodes, source_id, node.id)
    }


def is_connectable_group_type(group_type_id: Optional[str]) -> bool:
    return group_type_id in (CAP_CAPABILITY, CAP_SUBCAPABILITY, PROG_PROGRAMME)


def semantic_layer_for(type_id: Optional[str]) -> str:
    """Map a component or group type id onto one of the view's semantic layers."""
    if not type_id:
        return "application"
    if type_id.startswith("ext."):
        return "external"
    prefix = type_id.split(".", 1)[0]
    return {"ea": "business", "app": "application", "tech": "technology", "prog": "programme"}.get(prefix, "application")


SEMANTIC_LAYERS: List[str] = ["business", "application", "technology", "programme", "external"]
