"""`DiagramStore`: the state container around the pure diagram transitions.

The store owns one open diagram. Each mutator delegates to a reducer in
`transitions`, `views` or `snapshot_import`, and on success it

* pushes the pre-mutation snapshot onto the undo stack (unless an armed edit
  burst is in progress),
* recomputes the full validation issue list,
* notifies subscribers with the new state.

A failed transition leaves state and history untouched; its message is kept in
`last_error` for UIs that show a single banner.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set

from ea_studio.modeling import diagram_types as dt
from ea_studio.modeling.entities import Position
from ea_studio.modeling.registry import RegistryState
from ea_studio.modeling.validate import (
    ValidationIssue,
    ValidationSummary,
    is_blocking,
    summarize_issues,
    validate_diagram,
)
from ea_studio.store import persistence, snapshot_import, transitions, views
from ea_studio.store.history import History, HistorySnapshot
from ea_studio.store.result import Result
from ea_studio.store.state import Clipboard, DiagramState, initial_state
from ea_studio.utils.config import settings

logger = logging.getLogger(__name__)

Listener = Callable[[DiagramState], None]


class DiagramStore:
    def __init__(
        self,
        registry: Optional[RegistryState] = None,
        state: Optional[DiagramState] = None,
        history_limit: Optional[int] = None,
    ) -> None:
        self._registry = registry
        self._state = state or initial_state()
        self._history = History(limit=history_limit or settings.history_limit)
        self._clipboard: Optional[Clipboard] = None
        self._connect_source_id: Optional[str] = None
        self._listeners: List[Listener] = []
        self._issues: List[ValidationIssue] = []
        self.last_error: Optional[str] = None
        self._revalidate()

    # ─── Read access ─────────────────────────────────────────────────────────

    @property
    def state(self) -> DiagramState:
        return self._state

    @property
    def registry(self) -> Optional[RegistryState]:
        return self._registry

    @property
    def history(self) -> History:
        return self._history

    @property
    def clipboard(self) -> Optional[Clipboard]:
        return self._clipboard

    @property
    def issues(self) -> List[ValidationIssue]:
        return list(self._issues)

    @property
    def validation_summary(self) -> ValidationSummary:
        return summarize_issues(self._issues)

    @property
    def can_export(self) -> bool:
        return self._registry is not None and self._registry.ready and not is_blocking(self._issues)

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def connect_source_id(self) -> Optional[str]:
        return self._connect_source_id

    # ─── Plumbing ────────────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a change listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self._state)

    def _revalidate(self) -> None:
        self._issues = validate_diagram(
            self._registry, self._state.nodes, self._state.edges, self._state.diagram_type_id
        )

    def clear_last_error(self) -> None:
        self.last_error = None

    def _fail(self, result: Result) -> Result:
        self.last_error = result.error.message
        return result

    def _commit(self, result: Result[DiagramState], record: bool = True, revalidate: bool = True) -> Result[DiagramState]:
        if not result.ok:
            return self._fail(result)
        next_state = result.value
        if next_state is self._state:
            self.last_error = None
            return result
        if record:
            if self._history.armed is None:
                self._history = self._history.record(HistorySnapshot.capture(self._state))
            else:
                self._history = self._history.discard_redo()
        self._state = next_state
        self.last_error = None
        if revalidate:
            self._revalidate()
        self._notify()
        return result

    def _replace(self, state: DiagramState) -> None:
        self._state = state
        self._history = self._history.cleared()
        self._connect_source_id = None
        self.last_error = None
        self._revalidate()
        self._notify()

    # ─── Lifecycle ───────────────────────────────────────────────────────────

    def reset(self) -> None:
        self._replace(initial_state())

    def set_registry(self, registry: Optional[RegistryState]) -> None:
        self._registry = registry
        self._revalidate()
        self._notify()

    def load_diagram(self, record: Mapping[str, Any]) -> DiagramState:
        self._replace(persistence.load_diagram(self._registry, record))
        logger.info("loaded diagram %s with %d nodes", self._state.diagram_id, len(self._state.nodes))
        return self._state

    def serialize(self) -> Dict[str, Any]:
        return persistence.serialize(self._state)

    def mark_clean(self, diagram_id: Optional[str] = None, updated_at: Optional[str] = None) -> None:
        """Record a successful save by the persistence collaborator."""
        next_state = self._state.clone()
        if diagram_id:
            next_state.diagram_id = diagram_id
        if updated_at:
            next_state.metadata.updated_at = updated_at
        next_state.dirty = False
        self._state = next_state
        self._notify()

    def set_metadata(self, name: Optional[str] = None, description: Optional[str] = None) -> Result[DiagramState]:
        return self._commit(transitions.set_metadata(self._state, name, description))

    def set_diagram_type(self, diagram_type_id: str, seed_roots: bool = False) -> Result[DiagramState]:
        return self._commit(
            transitions.set_diagram_type(self._state, self._registry, diagram_type_id, seed_roots=seed_roots)
        )

    # ─── Creation ────────────────────────────────────────────────────────────

    def add_component_node(
        self,
        component_type_id: str,
        position: Optional[Position] = None,
        parent_id: Optional[str] = None,
        attributes: Optional[Mapping[str, Any]] = None,
    ) -> Result[DiagramState]:
        return self._commit(
            transitions.add_component_node(
                self._state, self._registry, component_type_id, position, parent_id, attributes
            )
        )

    def add_group_node(
        self,
        group_type_id: str,
        position: Optional[Position] = None,
        parent_id: Optional[str] = None,
        name: Optional[str] = None,
    ) -> Result[DiagramState]:
        return self._commit(
            transitions.add_group_node(self._state, self._registry, group_type_id, position, parent_id, name)
        )

    def instantiate_template(self, template_id: str, origin: Optional[Position] = None) -> Result[DiagramState]:
        return self._commit(transitions.instantiate_template(self._state, self._registry, template_id, origin))

    # ─── Connect mode ────────────────────────────────────────────────────────

    def begin_connect(self, source_id: str) -> Set[str]:
        """Enter connect mode from `source_id`; returns the ids of valid drop targets."""
        self._connect_source_id = source_id
        return self.allowed_connect_target_ids()

    def allowed_connect_target_ids(self) -> Set[str]:
        if not self._connect_source_id:
            return set()
        return dt.compute_allowed_target_ids(self._state.diagram_type_id, self._state.nodes, self._connect_source_id)

    def end_connect(self) -> None:
        self._connect_source_id = None

    def connect(self, source_id: str, target_id: str) -> Result[DiagramState]:
        self._connect_source_id = None
        return self._commit(transitions.connect(self._state, self._registry, source_id, target_id))

    # ─── Editing ─────────────────────────────────────────────────────────────

    def arm_history(self) -> None:
        """Capture the pre-edit snapshot when an editor gains focus."""
        self._history = self._history.arm(self._state)

    def clear_armed_history(self) -> None:
        """Close the edit burst on blur; at most one undo step is recorded."""
        self._history = self._history.commit_armed(self._state)

    def set_node_attribute(self, node_id: str, key: str, value: Any) -> Result[DiagramState]:
        return self._commit(transitions.set_node_attribute(self._state, self._registry, node_id, key, value))

    def set_edge_type(self, edge_id: str, edge_type_id: str) -> Result[DiagramState]:
        return self._commit(transitions.set_edge_type(self._state, self._registry, edge_id, edge_type_id))

    def set_edge_description(self, edge_id: str, description: str) -> Result[DiagramState]:
        return self._commit(transitions.set_edge_description(self._state, edge_id, description))

    def enable_template_overrides_for_selection(self) -> Result[DiagramState]:
        selection = self._state.selection
        return self._commit(
            transitions.enable_template_overrides(self._state, selection.node_ids, selection.edge_ids)
        )

    def set_parent_group(
        self, node_id: str, parent_id: Optional[str], position: Optional[Position] = None
    ) -> Result[DiagramState]:
        return self._commit(transitions.set_parent_group(self._state, self._registry, node_id, parent_id, position))

    def move_nodes(self, positions: Mapping[str, Position]) -> Result[DiagramState]:
        return self._commit(transitions.move_nodes(self._state, positions))

    def nudge_selection(self, dx: int, dy: int) -> Result[DiagramState]:
        """Move the selection by whole grid cells."""
        step = settings.nudge_step
        return self._commit(transitions.nudge_selection(self._state, dx * step, dy * step))

    def align_selection(self, mode: str) -> Result[DiagramState]:
        return self._commit(transitions.align_selection(self._state, mode))

    def distribute_selection(self, axis: str) -> Result[DiagramState]:
        return self._commit(transitions.distribute_selection(self._state, axis))

    # ─── Undo / redo ─────────────────────────────────────────────────────────

    def undo(self) -> bool:
        self._history = self._history.commit_armed(self._state)
        outcome = self._history.undo(self._state)
        if outcome is None:
            return False
        self._history, self._state = outcome
        self._revalidate()
        self._notify()
        return True

    def redo(self) -> bool:
        self._history = self._history.commit_armed(self._state)
        outcome = self._history.redo(self._state)
        if outcome is None:
            return False
        self._history, self._state = outcome
        self._revalidate()
        self._notify()
        return True

    # ─── Selection and clipboard ─────────────────────────────────────────────

    def set_selection(self, node_ids: Iterable[str] = (), edge_ids: Iterable[str] = ()) -> Result[DiagramState]:
        return self._commit(transitions.set_selection(self._state, node_ids, edge_ids), record=False, revalidate=False)

    def select_all(self) -> Result[DiagramState]:
        return self._commit(transitions.select_all(self._state), record=False, revalidate=False)

    def delete_selection(self) -> Result[DiagramState]:
        return self._commit(transitions.delete_selection(self._state))

    def remove_selection_from_active_view(self) -> Result[DiagramState]:
        return self._commit(transitions.remove_selection_from_active_view(self._state), revalidate=False)

    def copy_selection(self) -> Result[Clipboard]:
        result = transitions.copy_selection(self._state)
        if not result.ok:
            return self._fail(result)
        self._clipboard = result.value
        self.last_error = None
        return result

    def paste_clipboard(self) -> Result[DiagramState]:
        return self._commit(
            transitions.paste_clipboard(self._state, self._registry, self._clipboard, offset=settings.paste_offset)
        )

    # ─── Views ───────────────────────────────────────────────────────────────

    def create_view(self, name: str) -> Result[DiagramState]:
        return self._commit(views.create_view(self._state, name), revalidate=False)

    def rename_view(self, view_id: str, name: str) -> Result[DiagramState]:
        return self._commit(views.rename_view(self._state, view_id, name), revalidate=False)

    def delete_view(self, view_id: str) -> Result[DiagramState]:
        return self._commit(views.delete_view(self._state, view_id))

    def set_active_view(self, view_id: str) -> Result[DiagramState]:
        return self._commit(views.set_active_view(self._state, view_id), record=False)

    def add_to_active_view(self, node_ids: Iterable[str], edge_ids: Iterable[str] = ()) -> Result[DiagramState]:
        return self._commit(views.add_to_active_view(self._state, node_ids, edge_ids), revalidate=False)

    def toggle_view_layer(self, layer_id: str) -> Result[DiagramState]:
        return self._commit(views.toggle_view_layer(self._state, layer_id), record=False, revalidate=False)

    def toggle_collapsed_container(self, node_id: str) -> Result[DiagramState]:
        return self._commit(views.toggle_collapsed_container(self._state, node_id), record=False, revalidate=False)

    # ─── External snapshot ───────────────────────────────────────────────────

    def import_ea_snapshot(self, payload: Any, mode: str = "replace") -> Result[DiagramState]:
        return self._commit(snapshot_import.import_ea_snapshot(self._state, self._registry, payload, mode=mode))

    def compute_ea_diff_summary(self, payload: Any) -> Result[Dict[str, Dict[str, int]]]:
        result = snapshot_import.compute_ea_diff_summary(self._state.nodes, self._state.edges, payload)
        if not result.ok:
            return self._fail(result)
        return result
