"""Linear undo/redo history built from immutable deep-copied snapshots."""
from __future__ import annotations

import copy
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from ea_studio.modeling.entities import DiagramMetadata, DiagramView, Edge, Node
from ea_studio.store.state import DiagramState, Selection


@dataclass(frozen=True)
class HistorySnapshot:
    nodes: Tuple[Node, ...]
    edges: Tuple[Edge, ...]
    metadata: DiagramMetadata
    views: Tuple[DiagramView, ...]
    active_view_id: str

    @classmethod
    def capture(cls, state: DiagramState) -> "HistorySnapshot":
        return cls(
            nodes=tuple(copy.deepcopy(state.nodes)),
            edges=tuple(copy.deepcopy(state.edges)),
            metadata=state.metadata.model_copy(deep=True),
            views=tuple(copy.deepcopy(state.views)),
            active_view_id=state.active_view_id,
        )

    def restore(self, state: DiagramState) -> DiagramState:
        return state.model_copy(
            update={
                "nodes": copy.deepcopy(list(self.nodes)),
                "edges": copy.deepcopy(list(self.edges)),
                "metadata": self.metadata.model_copy(deep=True),
                "views": copy.deepcopy(list(self.views)),
                "active_view_id": self.active_view_id,
                "selection": Selection(),
                "dirty": True,
            }
        )


@dataclass(frozen=True)
class History:
    undo_stack: Tuple[HistorySnapshot, ...] = ()
    redo_stack: Tuple[HistorySnapshot, ...] = ()
    armed: Optional[HistorySnapshot] = None
    limit: int = 100

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def record(self, snapshot: HistorySnapshot) -> "History":
        """Push a pre-mutation snapshot; any redo branch is discarded."""
        undo_stack = (self.undo_stack + (snapshot,))[-self.limit:]
        return replace(self, undo_stack=undo_stack, redo_stack=())

    def discard_redo(self) -> "History":
        return replace(self, redo_stack=()) if self.redo_stack else self

    def arm(self, state: DiagramState) -> "History":
        if self.armed is not None:
            return self
        return replace(self, armed=HistorySnapshot.capture(state))

    def commit_armed(self, state: DiagramState) -> "History":
        """Close an edit burst: the armed snapshot becomes one undo step if anything changed."""
        if self.armed is None:
            return self
        disarmed = replace(self, armed=None)
        if HistorySnapshot.capture(state) == self.armed:
            return disarmed
        return disarmed.record(self.armed)

    def undo(self, state: DiagramState) -> Optional[Tuple["History", DiagramState]]:
        if not self.undo_stack:
            return None
        previous = self.undo_stack[-1]
        history = replace(
            self,
            undo_stack=self.undo_stack[:-1],
            redo_stack=self.redo_stack + (HistorySnapshot.capture(state),),
            armed=None,
        )
        return history, previous.restore(state)

    def redo(self, state: DiagramState) -> Optional[Tuple["History", DiagramState]]:
        if not self.redo_stack:
            return None
        following = self.redo_stack[-1]
        history = replace(
            self,
            undo_stack=self.undo_stack + (HistorySnapshot.capture(state),),
            redo_stack=self.redo_stack[:-1],
            armed=None,
        )
        return history, following.restore(state)

    def cleared(self) -> "History":
        return History(limit=self.limit)
