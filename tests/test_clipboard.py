from __future__ import annotations

from ea_studio.modeling.entities import Position
from ea_studio.modeling.model import create_component_node, create_relationship_edge


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _load_pair(store, registry, edge_type_id="rel.dependsOn", diagram_type_id="cross-domain-traceability"):
    """Open a diagram holding two applications joined by one edge."""
    first = create_component_node(registry, "app.application", Position(x=0, y=0), {"name": "Billing"})
    second = create_component_node(registry, "app.application", Position(x=240, y=0), {"name": "Ledger"})
    edge = create_relationship_edge(edge_type_id, 1, first.id, second.id)
    store.load_diagram(
        {
            "id": "diagram-clip",
            "metadata": {"diagramTypeId": diagram_type_id},
            "nodes": [first.to_dict(), second.to_dict()],
            "edges": [edge.to_dict()],
        }
    )
    return first.id, second.id, edge.id


# ─── Copy ─────────────────────────────────────────────────────────────────────

def test_copy_takes_internal_edges_only(store, registry):
    first, second, edge = _load_pair(store, registry)
    store.set_selection([first])
    clipboard = store.copy_selection().value
    assert [n.id for n in clipboard.nodes] == [first]
    assert clipboard.edges == []

    store.set_selection([first, second])
    clipboard = store.copy_selection().value
    assert [e.id for e in clipboard.edges] == [edge]
    assert store.clipboard is clipboard


def test_copy_uses_absolute_positions(store):
    store.set_diagram_type("application-landscape")
    store.add_group_node("app.catDept", Position(x=100, y=50))
    finance = store.state.selection.node_ids[0]
    store.add_component_node("app.application", Position(x=10, y=10), finance)
    clipboard = store.copy_selection().value
    assert clipboard.nodes[0].position == Position(x=110, y=60)
    assert clipboard.nodes[0].parent_node == finance


def test_copy_requires_a_selection(store):
    assert store.copy_selection().error.code == "SELECTION_EMPTY"


# ─── Paste ────────────────────────────────────────────────────────────────────

def test_paste_assigns_new_ids_and_offsets(store, registry):
    first, second, edge = _load_pair(store, registry)
    store.set_selection([first, second])
    store.copy_selection()
    assert store.paste_clipboard().ok

    state = store.state
    assert len(state.nodes) == 4 and len(state.edges) == 2
    pasted = [state.find_node(i) for i in state.selection.node_ids]
    assert {n.id for n in pasted}.isdisjoint({first, second})
    assert [n.position for n in pasted] == [Position(x=24, y=24), Position(x=264, y=24)]
    assert all(n.parent_node is None for n in pasted)
    new_edge = state.find_edge(state.selection.edge_ids[0])
    assert (new_edge.source, new_edge.target) == (pasted[0].id, pasted[1].id)
    assert new_edge.id != edge
    assert store.undo()
    assert len(store.state.nodes) == 2


def test_paste_strips_template_membership(store):
    store.set_diagram_type("cross-domain-traceability")
    store.instantiate_template("tpl.threeTierApplication")
    store.copy_selection()
    store.paste_clipboard()
    pasted = [store.state.find_node(i) for i in store.state.selection.node_ids]
    assert len(pasted) == 3
    assert all(n.metadata.template is None for n in pasted)


def test_paste_with_unknown_edge_type_changes_nothing(store, registry):
    first, second, _ = _load_pair(store, registry, edge_type_id="rel.ghost")
    store.set_selection([first, second])
    store.copy_selection()
    nodes_before = [n.id for n in store.state.nodes]
    depth = len(store.history.undo_stack)

    result = store.paste_clipboard()
    assert result.error.code == "PASTE_EDGE_TYPE_UNKNOWN"
    assert [n.id for n in store.state.nodes] == nodes_before
    assert len(store.state.edges) == 1
    assert len(store.history.undo_stack) == depth
    assert store.last_error == result.error.message


def test_paste_refuses_unpinned_versions(store, registry):
    first, _, _ = _load_pair(store, registry)
    store.set_selection([first])
    store.copy_selection()
    store.clipboard.nodes[0].type_version = None
    assert store.paste_clipboard().error.code == "PASTE_VERSION_MISSING"


def test_paste_refuses_edges_without_endpoints(store, registry):
    _, _, edge = _load_pair(store, registry)
    store.set_selection(edge_ids=[edge])
    store.copy_selection()
    assert store.paste_clipboard().error.code == "PASTE_EDGE_ENDPOINT_MISSING"


def test_paste_refuses_guided_edges_with_wrong_endpoints(store, registry):
    first, second, _ = _load_pair(store, registry, edge_type_id="rel.processToApp")
    store.set_selection([first, second])
    store.copy_selection()
    assert store.paste_clipboard().error.code == "PASTE_EDGE_INCOMPATIBLE"


def test_paste_with_empty_clipboard(store):
    store.set_diagram_type("cross-domain-traceability")
    assert store.paste_clipboard().error.code == "CLIPBOARD_EMPTY"
