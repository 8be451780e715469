"""Typed diagram entities shared by the modeling engine and the store.

Field names are snake_case in Python and camelCase on the wire so persisted
records keep the shape external storage already knows about.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

NODE_KIND_COMPONENT = "component"
NODE_KIND_GROUP = "group"
EDGE_KIND_RELATIONSHIP = "relationship"

EA_CORE_SOURCE = "EA_CORE"
EA_SOURCE_APPLICATION = "Application"
EA_SOURCE_DEPENDENCY = "Dependency"


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class StudioModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Position(StudioModel):
    x: float = 0.0
    y: float = 0.0

    def offset(self, dx: float, dy: float) -> "Position":
        return Position(x=self.x + dx, y=self.y + dy)


class TemplateMembership(StudioModel):
    template_id: str
    instance_id: str
    local_id: str = ""
    locked: bool = True
    overrides_enabled: bool = False

    @property
    def is_locked(self) -> bool:
        return self.locked and not self.overrides_enabled


class EntityMetadata(StudioModel):
    """Creation stamps plus template-membership and external-origin tags."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)
    version: int = 1
    template: Optional[TemplateMembership] = None
    source: Optional[str] = None
    source_type: Optional[str] = None
    source_id: Optional[str] = None
    snapshot_id: Optional[str] = None
    imported_at: Optional[str] = None

    @property
    def is_external(self) -> bool:
        return self.source == EA_CORE_SOURCE


class Node(StudioModel):
    id: str
    kind: str = NODE_KIND_COMPONENT
    type_id: Optional[str] = None
    # Left untyped: persisted records may carry strings or nulls that the validator reports.
    type_version: Any = None
    title: str = ""
    icon_key: str = ""
    attributes: Dict[str, Any] = Field(default_factory=dict)
    position: Position = Field(default_factory=Position)
    parent_node: Optional[str] = None
    width: Optional[float] = None
    height: Optional[float] = None
    style: Dict[str, Any] = Field(default_factory=dict)
    metadata: EntityMetadata = Field(default_factory=EntityMetadata)

    @property
    def is_group(self) -> bool:
        return self.kind == NODE_KIND_GROUP

    @property
    def is_component(self) -> bool:
        return self.kind == NODE_KIND_COMPONENT


class Edge(StudioModel):
    id: str
    source: str
    target: str
    kind: str = EDGE_KIND_RELATIONSHIP
    edge_type_id: Optional[str] = None
    edge_type_version: Any = None
    label: str = ""
    description: str = ""
    attributes: Dict[str, Any] = Field(default_factory=dict)
    style: Dict[str, Any] = Field(default_factory=dict)
    metadata: EntityMetadata = Field(default_factory=EntityMetadata)


class ViewLayout(StudioModel):
    position: Position = Field(default_factory=Position)
    width: Optional[float] = None
    height: Optional[float] = None
    parent_node: Optional[str] = None


class DiagramView(StudioModel):
    id: str
    name: str
    node_ids: List[str] = Field(default_factory=list)
    edge_ids: List[str] = Field(default_factory=list)
    layout: Dict[str, ViewLayout] = Field(default_factory=dict)
    active_layer_ids: List[str] = Field(default_factory=list)
    collapsed_container_ids: List[str] = Field(default_factory=list)


class SnapshotInfo(StudioModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    snapshot_id: Optional[str] = None
    imported_at: Optional[str] = None


class DiagramMetadata(StudioModel):
    name: str = "Untitled Diagram"
    description: str = ""
    diagram_type_id: Optional[str] = None
    created_at: str = Field(default_factory=now_iso)
    updated_at: str = Field(default_factory=now_iso)
    ea_snapshot: Optional[SnapshotInfo] = None


def is_locked_template_member(metadata: EntityMetadata) -> bool:
    return metadata.template is not None and metadata.template.is_locked
