"""Diagram-view projections: membership, per-view layout cache and view UI state."""
from __future__ import annotations

import logging
import uuid
from typing import Iterable, Optional

from ea_studio.modeling.diagram_types import SEMANTIC_LAYERS
from ea_studio.modeling.entities import DiagramView, Node, ViewLayout
from ea_studio.store.result import Result
from ea_studio.store.state import DiagramState

logger = logging.getLogger(__name__)


def _reject(code: str, message: str) -> Result[DiagramState]:
    logger.debug("view transition rejected: %s", code)
    return Result.failure(code, message)


def layout_of(node: Node) -> ViewLayout:
    return ViewLayout(
        position=node.position.model_copy(),
        width=node.width,
        height=node.height,
        parent_node=node.parent_node,
    )


def include_in_active_view(state: DiagramState, node_ids: Iterable[str] = (), edge_ids: Iterable[str] = ()) -> None:
    """Add existing entities to the active view's membership; mutates `state` in place."""
    view = state.active_view
    node_by_id = state.node_by_id()
    for node_id in node_ids:
        if node_id not in view.node_ids:
            view.node_ids.append(node_id)
        node = node_by_id.get(node_id)
        if node is not None:
            view.layout[node_id] = layout_of(node)
    for edge_id in edge_ids:
        if edge_id not in view.edge_ids:
            view.edge_ids.append(edge_id)


def sync_active_layout(state: DiagramState, node_ids: Optional[Iterable[str]] = None) -> None:
    view = state.active_view
    node_by_id = state.node_by_id()
    targets = view.node_ids if node_ids is None else list(node_ids)
    for node_id in targets:
        node = node_by_id.get(node_id)
        if node is not None and node_id in view.node_ids:
            view.layout[node_id] = layout_of(node)


def remove_from_views(state: DiagramState, node_ids: Iterable[str] = (), edge_ids: Iterable[str] = ()) -> None:
    node_ids, edge_ids = set(node_ids), set(edge_ids)
    for view in state.views:
        view.node_ids = [i for i in view.node_ids if i not in node_ids]
        view.edge_ids = [i for i in view.edge_ids if i not in edge_ids]
        view.layout = {k: v for k, v in view.layout.items() if k not in node_ids}
        view.collapsed_container_ids = [i for i in view.collapsed_container_ids if i not in node_ids]


def apply_view_layout(state: DiagramState, view: DiagramView) -> None:
    """Move shared nodes to the positions cached by `view`."""
    node_ids = {node.id for node in state.nodes}
    for node in state.nodes:
        cached = view.layout.get(node.id)
        if cached is None:
            continue
        node.position = cached.position.model_copy()
        node.width = cached.width if cached.width is not None else node.width
        node.height = cached.height if cached.height is not None else node.height
        if cached.parent_node is None or cached.parent_node in node_ids:
            node.parent_node = cached.parent_node


def create_view(state: DiagramState, name: str) -> Result[DiagramState]:
    """Open a new view seeded from the active one and make it active."""
    name = (name or "").strip()
    if not name:
        return _reject("VIEW_NAME_REQUIRED", "View name cannot be empty.")
    next_state = state.clone()
    sync_active_layout(next_state)
    source = next_state.active_view
    view = DiagramView(
        id=f"view-{uuid.uuid4().hex[:8]}",
        name=name,
        node_ids=list(source.node_ids),
        edge_ids=list(source.edge_ids),
        layout={k: v.model_copy(deep=True) for k, v in source.layout.items()},
        active_layer_ids=list(source.active_layer_ids),
    )
    next_state.views.append(view)
    next_state.active_view_id = view.id
    next_state.dirty = True
    return Result.success(next_state)


def rename_view(state: DiagramState, view_id: str, name: str) -> Result[DiagramState]:
    name = (name or "").strip()
    if not name:
        return _reject("VIEW_NAME_REQUIRED", "View name cannot be empty.")
    if state.find_view(view_id) is None:
        return _reject("VIEW_NOT_FOUND", f"Unknown view: {view_id}")
    next_state = state.clone()
    next_state.find_view(view_id).name = name
    next_state.dirty = True
    return Result.success(next_state)


def delete_view(state: DiagramState, view_id: str) -> Result[DiagramState]:
    if state.find_view(view_id) is None:
        return _reject("VIEW_NOT_FOUND", f"Unknown view: {view_id}")
    if len(state.views) <= 1:
        return _reject("VIEW_LAST", "A diagram must keep at least one view.")
    next_state = state.clone()
    next_state.views = [view for view in next_state.views if view.id != view_id]
    if next_state.active_view_id == view_id:
        next_state.active_view_id = next_state.views[0].id
        apply_view_layout(next_state, next_state.views[0])
    next_state.dirty = True
    return Result.success(next_state)


def set_active_view(state: DiagramState, view_id: str) -> Result[DiagramState]:
    if state.find_view(view_id) is None:
        return _reject("VIEW_NOT_FOUND", f"Unknown view: {view_id}")
    if view_id == state.active_view_id:
        return Result.success(state)
    next_state = state.clone()
    sync_active_layout(next_state)
    next_state.active_view_id = view_id
    apply_view_layout(next_state, next_state.active_view)
    next_state.selection.node_ids = []
    next_state.selection.edge_ids = []
    return Result.success(next_state)


def add_to_active_view(state: DiagramState, node_ids: Iterable[str], edge_ids: Iterable[str] = ()) -> Result[DiagramState]:
    node_ids = [i for i in node_ids if state.find_node(i) is not None]
    edge_ids = [i for i in edge_ids if state.find_edge(i) is not None]
    if not node_ids and not edge_ids:
        return _reject("NOTHING_TO_ADD", "None of the given items exist in this diagram.")
    next_state = state.clone()
    include_in_active_view(next_state, node_ids, edge_ids)
    next_state.dirty = True
    return Result.success(next_state)


def toggle_view_layer(state: DiagramState, layer_id: str) -> Result[DiagramState]:
    """An empty active-layer list shows every layer."""
    if layer_id not in SEMANTIC_LAYERS:
        return _reject("LAYER_UNKNOWN", f"Unknown layer: {layer_id}")
    next_state = state.clone()
    view = next_state.active_view
    if layer_id in view.active_layer_ids:
        view.active_layer_ids = [i for i in view.active_layer_ids if i != layer_id]
    else:
        view.active_layer_ids = [i for i in SEMANTIC_LAYERS if i in view.active_layer_ids or i == layer_id]
    return Result.success(next_state)


def toggle_collapsed_container(state: DiagramState, node_id: str) -> Result[DiagramState]:
    node = state.find_node(node_id)
    if node is None or not node.is_group:
        return _reject("CONTAINER_NOT_FOUND", "Only group containers can be collapsed.")
    next_state = state.clone()
    view = next_state.active_view
    if node_id in view.collapsed_container_ids:
        view.collapsed_container_ids = [i for i in view.collapsed_container_ids if i != node_id]
    else:
        view.collapsed_container_ids.append(node_id)
    return Result.success(next_state)
