"""The diagram aggregate held by the store."""
from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import Field

from ea_studio.modeling.entities import DiagramMetadata, DiagramView, Edge, Node, StudioModel

DEFAULT_VIEW_ID = "view-main"
DEFAULT_VIEW_NAME = "Main"


class Selection(StudioModel):
    node_ids: List[str] = Field(default_factory=list)
    edge_ids: List[str] = Field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.node_ids and not self.edge_ids


class Clipboard(StudioModel):
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)


def default_view(view_id: str = DEFAULT_VIEW_ID, name: str = DEFAULT_VIEW_NAME) -> DiagramView:
    return DiagramView(id=view_id, name=name)


class DiagramState(StudioModel):
    diagram_id: Optional[str] = None
    metadata: DiagramMetadata = Field(default_factory=DiagramMetadata)
    nodes: List[Node] = Field(default_factory=list)
    edges: List[Edge] = Field(default_factory=list)
    views: List[DiagramView] = Field(default_factory=lambda: [default_view()])
    active_view_id: str = DEFAULT_VIEW_ID
    selection: Selection = Field(default_factory=Selection)
    dirty: bool = False

    @property
    def diagram_type_id(self) -> Optional[str]:
        return self.metadata.diagram_type_id

    @property
    def has_modeled(self) -> bool:
        """Once any node exists the diagram type is locked."""
        return bool(self.nodes)

    @property
    def active_view(self) -> DiagramView:
        for view in self.views:
            if view.id == self.active_view_id:
                return view
        return self.views[0]

    def node_by_id(self) -> Dict[str, Node]:
        return {node.id: node for node in self.nodes}

    def edge_by_id(self) -> Dict[str, Edge]:
        return {edge.id: edge for edge in self.edges}

    def find_node(self, node_id: Optional[str]) -> Optional[Node]:
        return next((node for node in self.nodes if node.id == node_id), None)

    def find_edge(self, edge_id: Optional[str]) -> Optional[Edge]:
        return next((edge for edge in self.edges if edge.id == edge_id), None)

    def find_view(self, view_id: Optional[str]) -> Optional[DiagramView]:
        return next((view for view in self.views if view.id == view_id), None)

    def clone(self) -> "DiagramState":
        return self.model_copy(deep=True)


def initial_state() -> DiagramState:
    return DiagramState()
