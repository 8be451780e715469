"""Import of the read-only EA Core dependency snapshot into a diagram."""
from __future__ import annotations

import hashlib
import json
import logging
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ea_studio.modeling.entities import (
    EA_CORE_SOURCE,
    EA_SOURCE_APPLICATION,
    EA_SOURCE_DEPENDENCY,
    Edge,
    EntityMetadata,
    Node,
    Position,
    SnapshotInfo,
    now_iso,
)
from ea_studio.modeling.diagram_types import APPLICATION
from ea_studio.modeling.model import create_component_node, create_relationship_edge
from ea_studio.modeling.registry import RegistryState, get_component_type, get_edge_type
from ea_studio.store.result import Result
from ea_studio.store.state import DiagramState
from ea_studio.store.views import include_in_active_view, remove_from_views

logger = logging.getLogger(__name__)

DEPENDENCY_EDGE_TYPE_ID = "rel.dependsOn"
IMPORT_MODES = ("replace",)
GRID_COLUMNS = 4
GRID_SPACING = (220.0, 140.0)


class SnapshotApplication(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: Optional[str] = None
    owner: Optional[str] = None
    criticality: Optional[str] = None
    status: Optional[str] = None


class SnapshotDependency(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    source_id: str = Field(alias="sourceId")
    target_id: str = Field(alias="targetId")
    dependency_type: Optional[str] = None
    dependency_strength: Optional[str] = None
    dependency_mode: Optional[str] = None
    signature: Optional[str] = None

    @property
    def stable_signature(self) -> str:
        if self.signature:
            return self.signature
        return "|".join(
            value or ""
            for value in (
                self.source_id,
                self.target_id,
                self.dependency_type,
                self.dependency_strength,
                self.dependency_mode,
            )
        )


class SnapshotHeader(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, coerce_numbers_to_str=True)

    snapshot_id: Optional[str] = Field(default=None, alias="snapshotId")


class SnapshotPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    snapshot: SnapshotHeader = Field(default_factory=SnapshotHeader)
    applications: List[SnapshotApplication] = Field(default_factory=list)
    dependencies: List[SnapshotDependency] = Field(default_factory=list)


def _digest(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8")).hexdigest()[:16]


def application_node_id(source_id: str) -> str:
    return f"ea-app-{_digest(source_id)}"


def dependency_edge_id(signature: str) -> str:
    return f"ea-dep-{_digest(signature)}"


def parse_snapshot(payload: Any) -> SnapshotPayload:
    if isinstance(payload, SnapshotPayload):
        return payload
    return SnapshotPayload.model_validate(payload or {})


def _rejected(exc: ValidationError) -> Result:
    logger.warning("EA snapshot rejected: %s", exc)
    return Result.failure("SNAPSHOT_INVALID", f"EA snapshot is malformed: {exc.error_count()} error(s).")


def _application_attributes(app: SnapshotApplication) -> Dict[str, Any]:
    attributes: Dict[str, Any] = {"name": app.name or app.id}
    for key in ("owner", "criticality", "status"):
        value = getattr(app, key)
        if value is not None:
            attributes[key] = value
    return attributes


def _dependency_attributes(dep: SnapshotDependency) -> Dict[str, Any]:
    return {
        "signature": dep.stable_signature,
        "dependency_type": dep.dependency_type,
        "dependency_strength": dep.dependency_strength,
        "dependency_mode": dep.dependency_mode,
    }


def _source_metadata(source_type: str, source_id: str, snapshot_id: Optional[str], imported_at: str) -> EntityMetadata:
    return EntityMetadata(
        created_at=imported_at,
        updated_at=imported_at,
        source=EA_CORE_SOURCE,
        source_type=source_type,
        source_id=source_id,
        snapshot_id=snapshot_id,
        imported_at=imported_at,
    )


def _grid_position(index: int) -> Position:
    dx, dy = GRID_SPACING
    return Position(x=(index % GRID_COLUMNS) * dx, y=(index // GRID_COLUMNS) * dy)


def import_ea_snapshot(
    state: DiagramState,
    registry: Optional[RegistryState],
    payload: Any,
    mode: str = "replace",
) -> Result[DiagramState]:
    """Replace every EA Core node and edge with the snapshot's contents.

    User-authored entities are left untouched. Imported applications keep the
    position, size and parent they had before on a re-import because their ids
    are derived from the source system's own ids.
    """
    if mode not in IMPORT_MODES:
        return Result.failure("IMPORT_MODE_UNKNOWN", f"Unsupported import mode: {mode}")
    if registry is None or not registry.ready:
        return Result.failure("REGISTRY_NOT_READY", "Component Type Registry not loaded.")
    if get_component_type(registry, APPLICATION) is None:
        return Result.failure("COMPONENT_TYPE_UNKNOWN", f"Unknown component type: {APPLICATION}")
    edge_type = get_edge_type(registry, DEPENDENCY_EDGE_TYPE_ID)
    if edge_type is None:
        return Result.failure("EDGE_TYPE_UNKNOWN", f"Unknown edge type: {DEPENDENCY_EDGE_TYPE_ID}")
    try:
        snapshot = parse_snapshot(payload)
    except ValidationError as exc:
        return _rejected(exc)

    imported_at = now_iso()
    snapshot_id = snapshot.snapshot.snapshot_id
    previous = {node.id: node for node in state.nodes if node.metadata.is_external}

    nodes: List[Node] = []
    node_id_by_source: Dict[str, str] = {}
    for app in snapshot.applications:
        if app.id in node_id_by_source:
            continue
        node_id = application_node_id(app.id)
        earlier = previous.get(node_id)
        node = create_component_node(
            registry,
            APPLICATION,
            position=earlier.position.model_copy() if earlier else _grid_position(len(nodes)),
            attributes=_application_attributes(app),
        )
        node.id = node_id
        node.metadata = _source_metadata(EA_SOURCE_APPLICATION, app.id, snapshot_id, imported_at)
        if earlier is not None:
            node.parent_node = earlier.parent_node
            node.width = earlier.width
            node.height = earlier.height
        node_id_by_source[app.id] = node_id
        nodes.append(node)

    edges: List[Edge] = []
    seen_signatures = set()
    skipped = 0
    for dep in snapshot.dependencies:
        signature = dep.stable_signature
        if signature in seen_signatures:
            continue
        source = node_id_by_source.get(dep.source_id)
        target = node_id_by_source.get(dep.target_id)
        if source is None or target is None:
            skipped += 1
            continue
        seen_signatures.add(signature)
        edge = create_relationship_edge(DEPENDENCY_EDGE_TYPE_ID, edge_type.version, source, target)
        edge.id = dependency_edge_id(signature)
        edge.attributes = _dependency_attributes(dep)
        edge.metadata = _source_metadata(EA_SOURCE_DEPENDENCY, signature, snapshot_id, imported_at)
        edges.append(edge)
    if skipped:
        logger.info("EA snapshot: skipped %d dependencies with unknown endpoints", skipped)

    next_state = state.clone()
    kept_ids = {node.id for node in nodes}
    stale_nodes = {n.id for n in next_state.nodes if n.metadata.is_external and n.id not in kept_ids}
    stale_edges = {e.id for e in next_state.edges if e.metadata.is_external}
    stale_edges |= {e.id for e in next_state.edges if e.source in stale_nodes or e.target in stale_nodes}
    user_nodes = [n for n in next_state.nodes if not n.metadata.is_external]
    for node in user_nodes:
        if node.parent_node in stale_nodes:
            node.parent_node = None

    next_state.nodes = user_nodes + nodes
    next_state.edges = [e for e in next_state.edges if e.id not in stale_edges] + edges
    node_ids = {n.id for n in next_state.nodes}
    for node in nodes:
        if node.parent_node and node.parent_node not in node_ids:
            node.parent_node = None
    remove_from_views(next_state, stale_nodes, stale_edges - {e.id for e in edges})
    include_in_active_view(next_state, [n.id for n in nodes], [e.id for e in edges])
    next_state.metadata.ea_snapshot = SnapshotInfo(
        **{**snapshot.snapshot.model_dump(by_alias=True), "importedAt": imported_at}
    )
    next_state.metadata.updated_at = imported_at
    next_state.selection.node_ids = []
    next_state.selection.edge_ids = []
    next_state.dirty = True
    logger.info("EA snapshot imported: %d applications, %d dependencies", len(nodes), len(edges))
    return Result.success(next_state)


def _application_signature(values: Mapping[str, Any]) -> str:
    return json.dumps({key: values.get(key) or "" for key in ("name", "owner", "criticality", "status")}, sort_keys=True)


def _dependency_signature(values: Mapping[str, Any]) -> str:
    keys = ("signature", "dependency_type", "dependency_strength", "dependency_mode")
    return json.dumps({key: values.get(key) for key in keys}, sort_keys=True)


def compute_ea_diff_summary(nodes: List[Node], edges: List[Edge], payload: Any) -> Result[Dict[str, Dict[str, int]]]:
    """Compare the EA Core content already in a diagram against an incoming snapshot."""
    try:
        snapshot = parse_snapshot(payload)
    except ValidationError as exc:
        return _rejected(exc)
    current_apps = {
        n.metadata.source_id: n
        for n in nodes
        if n.metadata.is_external and n.metadata.source_type == EA_SOURCE_APPLICATION and n.metadata.source_id
    }
    current_deps = {
        e.metadata.source_id: e
        for e in edges
        if e.metadata.is_external and e.metadata.source_type == EA_SOURCE_DEPENDENCY and e.metadata.source_id
    }
    next_apps: Dict[str, SnapshotApplication] = {}
    for app in snapshot.applications:
        next_apps.setdefault(app.id, app)
    next_deps: Dict[str, SnapshotDependency] = {}
    for dep in snapshot.dependencies:
        next_deps.setdefault(dep.stable_signature, dep)

    apps_changed = sum(
        1
        for app_id, app in next_apps.items()
        if app_id in current_apps
        and _application_signature(current_apps[app_id].attributes)
        != _application_signature({"name": app.name or app.id, **app.model_dump(include={"owner", "criticality", "status"})})
    )
    deps_changed = sum(
        1
        for sig, dep in next_deps.items()
        if sig in current_deps
        and _dependency_signature(current_deps[sig].attributes) != _dependency_signature(_dependency_attributes(dep))
    )
    return Result.success(
        {
            "applications": {
                "added": len(next_apps.keys() - current_apps.keys()),
                "removed": len(current_apps.keys() - next_apps.keys()),
                "changed": apps_changed,
            },
            "dependencies": {
                "added": len(next_deps.keys() - current_deps.keys()),
                "removed": len(current_deps.keys() - next_deps.keys()),
                "changed": deps_changed,
            },
        }
    )
