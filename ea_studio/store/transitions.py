"""Reducer-style diagram transitions.

Every transition takes the prior `DiagramState` (never mutated) and returns a
`Result` holding the next state, or a `DomainError` describing why the change
was refused. History, validation and change notification are layered on top by
`DiagramStore`.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from ea_studio.modeling import diagram_types as dt
from ea_studio.modeling.entities import (
    Edge,
    EntityMetadata,
    Node,
    Position,
    is_locked_template_member,
    now_iso,
)
from ea_studio.modeling.model import (
    allowed_edge_type_ids,
    compute_component_title,
    create_component_node,
    create_group_node,
    create_relationship_edge,
    create_template_instance,
    new_entity_id,
)
from ea_studio.modeling.registry import (
    RegistryState,
    get_component_type,
    get_edge_type,
    get_group_type,
    get_template,
)
from ea_studio.store.result import DomainError, Result
from ea_studio.store.state import Clipboard, DiagramState
from ea_studio.store.views import include_in_active_view, remove_from_views, sync_active_layout

logger = logging.getLogger(__name__)

ALIGN_MODES = ("left", "center", "right", "top", "middle", "bottom")
DISTRIBUTE_AXES = ("horizontal", "vertical")


def _reject(code: str, message: str) -> Result:
    logger.debug("transition rejected: %s", code)
    return Result.failure(code, message)


def _touch(state: DiagramState) -> None:
    state.metadata.updated_at = now_iso()
    state.dirty = True


def _modeling_error(state: DiagramState, registry: Optional[RegistryState]) -> Optional[Result]:
    if registry is None or not registry.ready:
        return _reject("REGISTRY_NOT_READY", "Component Type Registry not loaded.")
    if not state.diagram_type_id:
        return _reject("DIAGRAM_TYPE_MISSING", "Select a diagram type before modeling.")
    if not dt.is_known_diagram_type(state.diagram_type_id):
        return _reject("DIAGRAM_TYPE_UNKNOWN", f"Unknown diagram type: {state.diagram_type_id}.")
    return None


def _palette_error(state: DiagramState, type_id: str) -> Optional[Result]:
    if type_id not in dt.palette_type_ids(state.diagram_type_id):
        label = dt.get_diagram_type_label(state.diagram_type_id)
        return _reject("TYPE_NOT_IN_PALETTE", f"{type_id} is not available in a {label} diagram.")
    return None


def mutation_block_reason(metadata: EntityMetadata) -> Optional[DomainError]:
    """Guard shared by edits and deletion: read-only imports and locked template members."""
    if metadata.is_external:
        return DomainError("READ_ONLY_SOURCE", "This item is imported from EA Core and is read-only.")
    if is_locked_template_member(metadata):
        return DomainError(
            "TEMPLATE_LOCKED",
            "This item belongs to a locked template instance. Enable overrides to edit it.",
        )
    return None


def _blocked(metadata: EntityMetadata) -> Optional[Result]:
    reason = mutation_block_reason(metadata)
    if reason is None:
        return None
    return _reject(reason.code, reason.message)


# ─── Geometry ─────────────────────────────────────────────────────────────────


def absolute_position(node: Node, node_by_id: Mapping[str, Node]) -> Position:
    """Child positions are relative to their parent group."""
    x, y = node.position.x, node.position.y
    seen = {node.id}
    parent_id = node.parent_node
    while parent_id and parent_id not in seen:
        parent = node_by_id.get(parent_id)
        if parent is None:
            break
        x += parent.position.x
        y += parent.position.y
        seen.add(parent.id)
        parent_id = parent.parent_node
    return Position(x=x, y=y)


def is_descendant(node_by_id: Mapping[str, Node], candidate_id: str, ancestor_id: str) -> bool:
    seen = set()
    current = node_by_id.get(candidate_id)
    while current is not None and current.parent_node and current.id not in seen:
        if current.parent_node == ancestor_id:
            return True
        seen.add(current.id)
        current = node_by_id.get(current.parent_node)
    return False


def containment_error(registry: Optional[RegistryState], parent: Node, child: Node) -> Optional[str]:
    """Both the parent's allowed-children and the child's allowed-parents must agree."""
    if not parent.is_group:
        return "Nodes can only be nested within groups."
    parent_type = get_group_type(registry, parent.type_id)
    if parent_type is None:
        return f"Unknown group type: {parent.type_id}"
    if child.is_group:
        child_type = get_group_type(registry, child.type_id)
        allowed_by_parent = child.type_id in parent_type.allowed_child_group_types
        allowed_by_child = child_type is not None and parent.type_id in child_type.allowed_parent_group_types
        if not (allowed_by_parent and allowed_by_child):
            child_name = child_type.display_name if child_type else child.type_id
            return f"{parent_type.display_name} cannot contain {child_name}."
        return None
    if child.type_id not in parent_type.allowed_child_component_types:
        return f"{parent_type.display_name} cannot contain component type {child.type_id}."
    return None


# ─── Diagram-level ────────────────────────────────────────────────────────────


def set_metadata(state: DiagramState, name: Optional[str] = None, description: Optional[str] = None) -> Result[DiagramState]:
    next_state = state.clone()
    if name is not None:
        next_state.metadata.name = name
    if description is not None:
        next_state.metadata.description = description
    _touch(next_state)
    return Result.success(next_state)


def set_diagram_type(
    state: DiagramState,
    registry: Optional[RegistryState],
    diagram_type_id: str,
    seed_roots: bool = False,
) -> Result[DiagramState]:
    """Commit the diagram type; it is locked as soon as any node exists."""
    if state.has_modeled:
        if diagram_type_id == state.diagram_type_id:
            return Result.success(state)
        return _reject("DIAGRAM_TYPE_LOCKED", "Diagram type cannot change once modeling has started.")
    if not dt.is_known_diagram_type(diagram_type_id):
        return _reject("DIAGRAM_TYPE_UNKNOWN", f"Unknown diagram type: {diagram_type_id}.")
    if seed_roots and (registry is None or not registry.ready):
        return _reject("REGISTRY_NOT_READY", "Component Type Registry not loaded.")

    next_state = state.clone()
    next_state.metadata.diagram_type_id = diagram_type_id
    if seed_roots:
        roots = []
        for index, root in enumerate(dt.required_root_groups(diagram_type_id)):
            if get_group_type(registry, root.group_type_id) is None:
                return _reject("GROUP_TYPE_UNKNOWN", f"Unknown group type: {root.group_type_id}")
            roots.append(
                create_group_node(registry, root.group_type_id, position=Position(x=0, y=index * 240), name=root.name)
            )
        next_state.nodes.extend(roots)
        include_in_active_view(next_state, [node.id for node in roots])
    _touch(next_state)
    return Result.success(next_state)


# ─── Creation ─────────────────────────────────────────────────────────────────


def _parent_for(
    state: DiagramState,
    registry: RegistryState,
    parent_id: Optional[str],
    child: Node,
) -> Optional[Result]:
    if not parent_id:
        return None
    parent = state.find_node(parent_id)
    if parent is None:
        return _reject("PARENT_NOT_FOUND", f"Unknown parent group: {parent_id}")
    message = containment_error(registry, parent, child)
    if message:
        return _reject("NESTING_INVALID", message)
    return None


def add_component_node(
    state: DiagramState,
    registry: Optional[RegistryState],
    component_type_id: str,
    position: Optional[Position] = None,
    parent_id: Optional[str] = None,
    attributes: Optional[Mapping[str, Any]] = None,
) -> Result[DiagramState]:
    error = _modeling_error(state, registry)
    if error:
        return error
    if get_component_type(registry, component_type_id) is None:
        return _reject("COMPONENT_TYPE_UNKNOWN", f"Unknown component type: {component_type_id}")
    error = _palette_error(state, component_type_id)
    if error:
        return error

    node = create_component_node(registry, component_type_id, position, attributes, parent_node=parent_id)
    error = _parent_for(state, registry, parent_id, node)
    if error:
        return error

    next_state = state.clone()
    next_state.nodes.append(node)
    include_in_active_view(next_state, [node.id])
    next_state.selection.node_ids = [node.id]
    next_state.selection.edge_ids = []
    _touch(next_state)
    return Result.success(next_state)


def add_group_node(
    state: DiagramState,
    registry: Optional[RegistryState],
    group_type_id: str,
    position: Optional[Position] = None,
    parent_id: Optional[str] = None,
    name: Optional[str] = None,
) -> Result[DiagramState]:
    error = _modeling_error(state, registry)
    if error:
        return error
    if get_group_type(registry, group_type_id) is None:
        return _reject("GROUP_TYPE_UNKNOWN", f"Unknown group type: {group_type_id}")
    error = _palette_error(state, group_type_id)
    if error:
        return error

    node = create_group_node(registry, group_type_id, position, name=name, parent_node=parent_id)
    error = _parent_for(state, registry, parent_id, node)
    if error:
        return error

    next_state = state.clone()
    next_state.nodes.append(node)
    include_in_active_view(next_state, [node.id])
    next_state.selection.node_ids = [node.id]
    next_state.selection.edge_ids = []
    _touch(next_state)
    return Result.success(next_state)


def instantiate_template(
    state: DiagramState,
    registry: Optional[RegistryState],
    template_id: str,
    origin: Optional[Position] = None,
) -> Result[DiagramState]:
    error = _modeling_error(state, registry)
    if error:
        return error
    if get_template(registry, template_id) is None:
        return _reject("TEMPLATE_UNKNOWN", f"Unknown template: {template_id}")

    nodes, edges = create_template_instance(registry, template_id, origin)
    next_state = state.clone()
    next_state.nodes.extend(nodes)
    next_state.edges.extend(edges)
    include_in_active_view(next_state, [n.id for n in nodes], [e.id for e in edges])
    next_state.selection.node_ids = [n.id for n in nodes]
    next_state.selection.edge_ids = []
    _touch(next_state)
    return Result.success(next_state)


def connect(
    state: DiagramState,
    registry: Optional[RegistryState],
    source_id: str,
    target_id: str,
) -> Result[DiagramState]:
    """Draw an edge; only guided connections for the diagram type are accepted."""
    error = _modeling_error(state, registry)
    if error:
        return error
    if source_id == target_id:
        return _reject("CONNECTION_NOT_ALLOWED", "A node cannot connect to itself.")

    guided = dt.resolve_guided_connection(state.diagram_type_id, state.nodes, source_id, target_id)
    if guided is None:
        return _reject("CONNECTION_NOT_ALLOWED", "This connection is not allowed for the selected diagram type.")
    edge_type = get_edge_type(registry, guided.edge_type_id)
    if edge_type is None:
        return _reject("EDGE_TYPE_UNKNOWN", f"Edge type {guided.edge_type_id} is missing from the registry.")
    duplicate = any(
        e.source == source_id and e.target == target_id and e.edge_type_id == guided.edge_type_id for e in state.edges
    )
    if duplicate:
        return _reject("EDGE_DUPLICATE", f"{guided.label} already exists between these nodes.")

    edge = create_relationship_edge(guided.edge_type_id, edge_type.version, source_id, target_id, label=guided.label)
    next_state = state.clone()
    next_state.edges.append(edge)
    include_in_active_view(next_state, edge_ids=[edge.id])
    _touch(next_state)
    return Result.success(next_state)


# ─── Editing ──────────────────────────────────────────────────────────────────


def set_node_attribute(
    state: DiagramState,
    registry: Optional[RegistryState],
    node_id: str,
    key: str,
    value: Any,
) -> Result[DiagramState]:
    node = state.find_node(node_id)
    if node is None:
        return _reject("NODE_NOT_FOUND", f"Unknown node: {node_id}")
    error = _blocked(node.metadata)
    if error:
        return error

    next_state = state.clone()
    target = next_state.find_node(node_id)
    target.attributes[key] = value
    if key == "name":
        if target.is_group:
            group_type = get_group_type(registry, target.type_id)
            fallback = group_type.display_name if group_type else "Group"
            target.title = value.strip() if isinstance(value, str) and value.strip() else fallback
        else:
            target.title = compute_component_title(get_component_type(registry, target.type_id), target.attributes)
    target.metadata.updated_at = now_iso()
    _touch(next_state)
    return Result.success(next_state)


def set_edge_type(
    state: DiagramState,
    registry: Optional[RegistryState],
    edge_id: str,
    edge_type_id: str,
) -> Result[DiagramState]:
    edge = state.find_edge(edge_id)
    if edge is None:
        return _reject("EDGE_NOT_FOUND", f"Unknown edge: {edge_id}")
    error = _blocked(edge.metadata)
    if error:
        return error
    guided_types = dt.guided_edge_type_ids(state.diagram_type_id)
    if edge.edge_type_id in guided_types or edge_type_id in guided_types:
        return _reject("GUIDED_EDGE_LOCKED", "Guided relationships are derived from their endpoints and cannot be retyped.")
    edge_type = get_edge_type(registry, edge_type_id)
    if edge_type is None:
        return _reject("EDGE_TYPE_UNKNOWN", f"Unknown edge type: {edge_type_id}")
    allowed = allowed_edge_type_ids(registry, state.find_node(edge.source), state.find_node(edge.target))
    if edge_type_id not in allowed:
        return _reject("EDGE_TYPE_NOT_ALLOWED", f"Edge type {edge_type_id} is not allowed between these endpoints.")

    next_state = state.clone()
    target = next_state.find_edge(edge_id)
    target.edge_type_id = edge_type_id
    target.edge_type_version = edge_type.version
    target.metadata.updated_at = now_iso()
    _touch(next_state)
    return Result.success(next_state)


def set_edge_description(state: DiagramState, edge_id: str, description: str) -> Result[DiagramState]:
    edge = state.find_edge(edge_id)
    if edge is None:
        return _reject("EDGE_NOT_FOUND", f"Unknown edge: {edge_id}")
    error = _blocked(edge.metadata)
    if error:
        return error
    next_state = state.clone()
    target = next_state.find_edge(edge_id)
    target.description = description or ""
    target.metadata.updated_at = now_iso()
    _touch(next_state)
    return Result.success(next_state)


def enable_template_overrides(
    state: DiagramState,
    node_ids: Iterable[str],
    edge_ids: Iterable[str] = (),
) -> Result[DiagramState]:
    """Unlock every member of the template instances touched by the given items."""
    selected = [n.metadata for n in state.nodes if n.id in set(node_ids)]
    selected += [e.metadata for e in state.edges if e.id in set(edge_ids)]
    instance_ids = {m.template.instance_id for m in selected if m.template is not None}
    if not instance_ids:
        return _reject("NO_TEMPLATE_SELECTED", "Select part of a template instance to enable overrides.")

    next_state = state.clone()
    for entity in [*next_state.nodes, *next_state.edges]:
        template = entity.metadata.template
        if template is not None and template.instance_id in instance_ids:
            template.overrides_enabled = True
    _touch(next_state)
    return Result.success(next_state)


def set_parent_group(
    state: DiagramState,
    registry: Optional[RegistryState],
    node_id: str,
    parent_id: Optional[str],
    position: Optional[Position] = None,
) -> Result[DiagramState]:
    """Move a node into (or out of) a group; refused unless containment is mutually allowed."""
    node = state.find_node(node_id)
    if node is None:
        return _reject("NODE_NOT_FOUND", f"Unknown node: {node_id}")
    if is_locked_template_member(node.metadata):
        return _reject("TEMPLATE_LOCKED", "This item belongs to a locked template instance. Enable overrides to edit it.")

    node_by_id = state.node_by_id()
    current_absolute = absolute_position(node, node_by_id)
    if parent_id:
        parent = node_by_id.get(parent_id)
        if parent is None:
            return _reject("PARENT_NOT_FOUND", f"Unknown parent group: {parent_id}")
        if parent_id == node_id or is_descendant(node_by_id, parent_id, node_id):
            return _reject("NESTING_CYCLE", "A group cannot be nested inside itself.")
        message = containment_error(registry, parent, node)
        if message:
            return _reject("NESTING_INVALID", message)
        parent_absolute = absolute_position(parent, node_by_id)
        relative = Position(x=current_absolute.x - parent_absolute.x, y=current_absolute.y - parent_absolute.y)
    else:
        relative = current_absolute

    next_state = state.clone()
    target = next_state.find_node(node_id)
    target.parent_node = parent_id or None
    target.position = position or relative
    target.metadata.updated_at = now_iso()
    sync_active_layout(next_state, [node_id])
    _touch(next_state)
    return Result.success(next_state)


def move_nodes(state: DiagramState, positions: Mapping[str, Position]) -> Result[DiagramState]:
    """Position changes are allowed for imported nodes but not for locked template members."""
    for node_id in positions:
        node = state.find_node(node_id)
        if node is None:
            return _reject("NODE_NOT_FOUND", f"Unknown node: {node_id}")
        if is_locked_template_member(node.metadata):
            return _reject("TEMPLATE_LOCKED", "This item belongs to a locked template instance. Enable overrides to edit it.")
    if not positions:
        return Result.success(state)

    next_state = state.clone()
    for node in next_state.nodes:
        if node.id in positions:
            node.position = positions[node.id].model_copy()
    sync_active_layout(next_state, positions.keys())
    _touch(next_state)
    return Result.success(next_state)


def _selected_nodes(state: DiagramState) -> List[Node]:
    selected = set(state.selection.node_ids)
    return [node for node in state.nodes if node.id in selected]


def nudge_selection(state: DiagramState, dx: float, dy: float) -> Result[DiagramState]:
    nodes = _selected_nodes(state)
    if not nodes:
        return _reject("SELECTION_EMPTY", "Select at least one node.")
    return move_nodes(state, {n.id: n.position.offset(dx, dy) for n in nodes})


def align_selection(state: DiagramState, mode: str) -> Result[DiagramState]:
    if mode not in ALIGN_MODES:
        return _reject("ALIGN_MODE_UNKNOWN", f"Unknown alignment: {mode}")
    nodes = _selected_nodes(state)
    if len(nodes) < 2:
        return _reject("SELECTION_TOO_SMALL", "Select at least two nodes to align.")

    def size(node: Node) -> Tuple[float, float]:
        return node.width or 0.0, node.height or 0.0

    lefts = [n.position.x for n in nodes]
    rights = [n.position.x + size(n)[0] for n in nodes]
    tops = [n.position.y for n in nodes]
    bottoms = [n.position.y + size(n)[1] for n in nodes]
    positions: Dict[str, Position] = {}
    for n in nodes:
        w, h = size(n)
        x, y = n.position.x, n.position.y
        if mode == "left":
            x = min(lefts)
        elif mode == "right":
            x = max(rights) - w
        elif mode == "center":
            x = (min(lefts) + max(rights)) / 2 - w / 2
        elif mode == "top":
            y = min(tops)
        elif mode == "bottom":
            y = max(bottoms) - h
        else:
            y = (min(tops) + max(bottoms)) / 2 - h / 2
        positions[n.id] = Position(x=x, y=y)
    return move_nodes(state, positions)


def distribute_selection(state: DiagramState, axis: str) -> Result[DiagramState]:
    if axis not in DISTRIBUTE_AXES:
        return _reject("DISTRIBUTE_AXIS_UNKNOWN", f"Unknown axis: {axis}")
    nodes = _selected_nodes(state)
    if len(nodes) < 3:
        return _reject("SELECTION_TOO_SMALL", "Select at least three nodes to distribute.")

    horizontal = axis == "horizontal"
    ordered = sorted(nodes, key=lambda n: (n.position.x if horizontal else n.position.y, n.id))
    first = ordered[0].position.x if horizontal else ordered[0].position.y
    last = ordered[-1].position.x if horizontal else ordered[-1].position.y
    step = (last - first) / (len(ordered) - 1)
    positions = {}
    for index, n in enumerate(ordered):
        coordinate = first + step * index
        positions[n.id] = Position(x=coordinate, y=n.position.y) if horizontal else Position(x=n.position.x, y=coordinate)
    return move_nodes(state, positions)


# ─── Selection ────────────────────────────────────────────────────────────────


def set_selection(state: DiagramState, node_ids: Iterable[str] = (), edge_ids: Iterable[str] = ()) -> Result[DiagramState]:
    node_ids, edge_ids = list(node_ids), list(edge_ids)
    next_state = state.clone()
    existing_nodes = {n.id for n in state.nodes}
    existing_edges = {e.id for e in state.edges}
    next_state.selection.node_ids = [i for i in dict.fromkeys(node_ids) if i in existing_nodes]
    next_state.selection.edge_ids = [i for i in dict.fromkeys(edge_ids) if i in existing_edges]
    return Result.success(next_state)


def select_all(state: DiagramState) -> Result[DiagramState]:
    view = state.active_view
    return set_selection(state, view.node_ids, view.edge_ids)


def delete_selection(state: DiagramState) -> Result[DiagramState]:
    """Remove the selection and every edge touching it; refused as a whole if any item is protected."""
    selection = state.selection
    if selection.empty:
        return _reject("SELECTION_EMPTY", "Nothing is selected.")
    node_ids = set(selection.node_ids)
    edge_ids = set(selection.edge_ids)
    for entity in [n for n in state.nodes if n.id in node_ids] + [e for e in state.edges if e.id in edge_ids]:
        error = _blocked(entity.metadata)
        if error:
            return error

    next_state = state.clone()
    node_by_id = next_state.node_by_id()
    for node in next_state.nodes:
        if node.id not in node_ids and node.parent_node in node_ids:
            node.position = absolute_position(node, node_by_id)
            node.parent_node = None
    removed_edges = {e.id for e in next_state.edges if e.id in edge_ids or e.source in node_ids or e.target in node_ids}
    next_state.nodes = [n for n in next_state.nodes if n.id not in node_ids]
    next_state.edges = [e for e in next_state.edges if e.id not in removed_edges]
    remove_from_views(next_state, node_ids, removed_edges)
    next_state.selection.node_ids = []
    next_state.selection.edge_ids = []
    _touch(next_state)
    return Result.success(next_state)


def remove_selection_from_active_view(state: DiagramState) -> Result[DiagramState]:
    """Hide the selection from the active view without touching the shared model."""
    if state.selection.empty:
        return _reject("SELECTION_EMPTY", "Nothing is selected.")
    node_ids = set(state.selection.node_ids)
    edge_ids = set(state.selection.edge_ids)
    next_state = state.clone()
    view = next_state.active_view
    edge_ids |= {e.id for e in next_state.edges if e.source in node_ids or e.target in node_ids}
    view.node_ids = [i for i in view.node_ids if i not in node_ids]
    view.edge_ids = [i for i in view.edge_ids if i not in edge_ids]
    view.layout = {k: v for k, v in view.layout.items() if k not in node_ids}
    view.collapsed_container_ids = [i for i in view.collapsed_container_ids if i not in node_ids]
    next_state.selection.node_ids = []
    next_state.selection.edge_ids = []
    next_state.dirty = True
    return Result.success(next_state)


# ─── Clipboard ────────────────────────────────────────────────────────────────


def copy_selection(state: DiagramState) -> Result[Clipboard]:
    """Copy selected nodes, edges strictly between them, and explicitly selected edges."""
    if state.selection.empty:
        return _reject("SELECTION_EMPTY", "Nothing is selected.")
    node_ids = set(state.selection.node_ids)
    edge_ids = set(state.selection.edge_ids)
    node_by_id = state.node_by_id()
    nodes = []
    for node in state.nodes:
        if node.id in node_ids:
            copied = node.model_copy(deep=True)
            copied.position = absolute_position(node, node_by_id)
            nodes.append(copied)
    edges = [
        e.model_copy(deep=True)
        for e in state.edges
        if e.id in edge_ids or (e.source in node_ids and e.target in node_ids)
    ]
    return Result.success(Clipboard(nodes=nodes, edges=edges))


def _edge_compatibility_error(
    registry: RegistryState,
    diagram_type_id: Optional[str],
    edge: Edge,
    nodes: List[Node],
) -> Optional[str]:
    node_by_id = {n.id: n for n in nodes}
    source, target = node_by_id[edge.source], node_by_id[edge.target]
    if edge.edge_type_id in dt.guided_edge_type_ids(diagram_type_id):
        guided = dt.resolve_guided_connection(diagram_type_id, nodes, edge.source, edge.target)
        if guided is None or guided.edge_type_id != edge.edge_type_id:
            return f"Relationship {edge.edge_type_id} is not valid for its endpoints in this diagram type."
        return None
    if not source.is_component or not target.is_component:
        return "Legacy edges can only connect typed components."
    source_type = get_component_type(registry, source.type_id)
    target_type = get_component_type(registry, target.type_id)
    if edge.edge_type_id not in allowed_edge_type_ids(registry, source, target):
        return f"Edge type {edge.edge_type_id} is not allowed between these components."
    if source_type.allowed_child_types or target_type.allowed_parent_types:
        if target_type.type_id not in source_type.allowed_child_types or source_type.type_id not in target_type.allowed_parent_types:
            return f"{source_type.display_name} cannot connect to {target_type.display_name}."
    return None


def paste_block_reason(
    registry: Optional[RegistryState],
    diagram_type_id: Optional[str],
    clipboard: Clipboard,
) -> Optional[DomainError]:
    """Stricter than validation: anything that would paste a known-invalid entity aborts the paste."""
    for node in clipboard.nodes:
        if node.type_version is None:
            return DomainError("PASTE_VERSION_MISSING", f"Copied node {node.title or node.id} has no pinned type version.")
        if node.is_group:
            known = get_group_type(registry, node.type_id) is not None
        elif node.is_component:
            known = get_component_type(registry, node.type_id) is not None
        else:
            known = False
        if not known:
            return DomainError("PASTE_TYPE_UNKNOWN", f"Copied node type {node.type_id} is not in the registry.")

    node_ids = {n.id for n in clipboard.nodes}
    for edge in clipboard.edges:
        if edge.edge_type_version is None:
            return DomainError("PASTE_VERSION_MISSING", f"Copied edge {edge.id} has no pinned type version.")
        if get_edge_type(registry, edge.edge_type_id) is None:
            return DomainError("PASTE_EDGE_TYPE_UNKNOWN", f"Copied edge type {edge.edge_type_id} is not in the registry.")
        if edge.source not in node_ids or edge.target not in node_ids:
            return DomainError("PASTE_EDGE_ENDPOINT_MISSING", "Copied edges must be pasted together with both endpoints.")
        message = _edge_compatibility_error(registry, diagram_type_id, edge, clipboard.nodes)
        if message:
            return DomainError("PASTE_EDGE_INCOMPATIBLE", message)
    return None


def _pasted_metadata() -> EntityMetadata:
    stamp = now_iso()
    return EntityMetadata(created_at=stamp, updated_at=stamp, version=1)


def paste_clipboard(
    state: DiagramState,
    registry: Optional[RegistryState],
    clipboard: Optional[Clipboard],
    offset: float = 24.0,
) -> Result[DiagramState]:
    error = _modeling_error(state, registry)
    if error:
        return error
    if clipboard is None or not clipboard.nodes and not clipboard.edges:
        return _reject("CLIPBOARD_EMPTY", "Clipboard is empty.")
    reason = paste_block_reason(registry, state.diagram_type_id, clipboard)
    if reason is not None:
        return _reject(reason.code, reason.message)

    id_map: Dict[str, str] = {}
    nodes: List[Node] = []
    for node in clipboard.nodes:
        copied = node.model_copy(deep=True)
        copied.id = new_entity_id("group" if node.is_group else "node")
        copied.parent_node = None
        copied.position = node.position.offset(offset, offset)
        copied.metadata = _pasted_metadata()
        id_map[node.id] = copied.id
        nodes.append(copied)
    edges: List[Edge] = []
    for edge in clipboard.edges:
        copied = edge.model_copy(deep=True)
        copied.id = new_entity_id("edge")
        copied.source = id_map[edge.source]
        copied.target = id_map[edge.target]
        copied.metadata = _pasted_metadata()
        edges.append(copied)

    next_state = state.clone()
    next_state.nodes.extend(nodes)
    next_state.edges.extend(edges)
    include_in_active_view(next_state, [n.id for n in nodes], [e.id for e in edges])
    next_state.selection.node_ids = [n.id for n in nodes]
    next_state.selection.edge_ids = [e.id for e in edges]
    _touch(next_state)
    return Result.success(next_state)
