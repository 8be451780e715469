"""Persistence contract: the serialised diagram record handed to external storage."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import ValidationError

from ea_studio.modeling.entities import DiagramMetadata, DiagramView
from ea_studio.modeling.model import normalize_diagram
from ea_studio.modeling.registry import RegistryState
from ea_studio.store.state import DEFAULT_VIEW_ID, DEFAULT_VIEW_NAME, DiagramState
from ea_studio.store.views import layout_of

logger = logging.getLogger(__name__)

TRANSIENT_KEYS = ("style", "selected", "dragging")


def _strip_transient(record: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in record.items() if key not in TRANSIENT_KEYS}


def serialize(state: DiagramState) -> Dict[str, Any]:
    """Return `{id, name, nodes, edges, activeViewId, views, metadata}` without UI-only fields."""
    return {
        "id": state.diagram_id,
        "name": state.metadata.name,
        "nodes": [_strip_transient(node.to_dict()) for node in state.nodes],
        "edges": [_strip_transient(edge.to_dict()) for edge in state.edges],
        "activeViewId": state.active_view_id,
        "views": [view.to_dict() for view in state.views],
        "metadata": state.metadata.to_dict(),
    }


def _parse_views(raw: Any) -> List[DiagramView]:
    views = []
    for item in raw if isinstance(raw, list) else []:
        try:
            views.append(DiagramView.model_validate(item))
        except ValidationError as exc:
            logger.warning("dropping malformed view: %s", exc.errors()[0].get("msg"))
    return views


def load_diagram(registry: Optional[RegistryState], record: Mapping[str, Any]) -> DiagramState:
    """Rebuild a state from a persisted record, normalising legacy entities on the way in."""
    normalized = normalize_diagram(registry, record)
    metadata_raw = dict(record.get("metadata") or {})
    if record.get("name") and not metadata_raw.get("name"):
        metadata_raw["name"] = record["name"]
    metadata = DiagramMetadata.model_validate(metadata_raw)

    state = DiagramState(
        diagram_id=record.get("id"),
        metadata=metadata,
        nodes=normalized["nodes"],
        edges=normalized["edges"],
    )

    node_ids = {node.id for node in state.nodes}
    edge_ids = {edge.id for edge in state.edges}
    views = _parse_views(record.get("views"))
    if not views:
        views = [
            DiagramView(
                id=DEFAULT_VIEW_ID,
                name=DEFAULT_VIEW_NAME,
                node_ids=[node.id for node in state.nodes],
                edge_ids=[edge.id for edge in state.edges],
                layout={node.id: layout_of(node) for node in state.nodes},
            )
        ]
    for view in views:
        view.node_ids = [i for i in view.node_ids if i in node_ids]
        view.edge_ids = [i for i in view.edge_ids if i in edge_ids]
        view.layout = {k: v for k, v in view.layout.items() if k in node_ids}
        view.collapsed_container_ids = [i for i in view.collapsed_container_ids if i in node_ids]
    state.views = views

    active_view_id = record.get("activeViewId")
    state.active_view_id = active_view_id if state.find_view(active_view_id) else views[0].id
    state.dirty = False
    return state
