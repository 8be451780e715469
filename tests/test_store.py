from __future__ import annotations

from ea_studio.modeling.entities import Position
from ea_studio.modeling.registry import RegistryState
from ea_studio.store.store import DiagramStore


# ─── Helpers ──────────────────────────────────────────────────────────────────

def _add(store, type_id, x=0.0, y=0.0, parent_id=None, **attributes):
    result = store.add_component_node(type_id, Position(x=x, y=y), parent_id, attributes or None)
    assert result.ok, result.error
    return result.value.selection.node_ids[0]


def _add_group(store, type_id, x=0.0, y=0.0, parent_id=None, name=None):
    result = store.add_group_node(type_id, Position(x=x, y=y), parent_id, name)
    assert result.ok, result.error
    return result.value.selection.node_ids[0]


def _node(store, node_id):
    return store.state.find_node(node_id)


# ─── Diagram type ─────────────────────────────────────────────────────────────

def test_modeling_requires_a_diagram_type(store):
    result = store.add_component_node("app.application")
    assert not result.ok
    assert result.error.code == "DIAGRAM_TYPE_MISSING"
    assert store.last_error == result.error.message
    assert store.state.nodes == []
    assert not store.can_undo


def test_modeling_requires_a_ready_registry():
    store = DiagramStore(registry=RegistryState.failed("Failed to load component-types.v1.json: boom"))
    store.set_diagram_type("application-landscape")
    result = store.add_component_node("app.application")
    assert result.error.code == "REGISTRY_NOT_READY"
    assert not store.can_export


def test_unknown_component_type_is_a_domain_error(store):
    store.set_diagram_type("application-landscape")
    result = store.add_component_node("app.ghost")
    assert result.error.code == "COMPONENT_TYPE_UNKNOWN"


def test_diagram_type_locks_once_modeling_starts(store):
    assert store.set_diagram_type("capability-map").ok
    assert store.set_diagram_type("application-landscape").ok
    _add(store, "app.application")
    before = store.issues

    result = store.set_diagram_type("application-landscape")
    assert result.ok
    result = store.set_diagram_type("capability-map")
    assert result.error.code == "DIAGRAM_TYPE_LOCKED"
    assert store.state.diagram_type_id == "application-landscape"
    assert store.issues == before


def test_seeding_required_roots(store):
    assert store.set_diagram_type("technology-architecture", seed_roots=True).ok
    titles = [n.title for n in store.state.nodes]
    assert titles == ["Infrastructure Layer", "Application Hosting & Ops", "Platform Services"]
    assert "TECH_LAYERS_MISSING" not in [i.code for i in store.issues]
    assert set(store.state.active_view.node_ids) == {n.id for n in store.state.nodes}


def test_validation_recomputed_after_each_change(store):
    store.set_diagram_type("application-landscape")
    finance = _add_group(store, "app.catDept", name="Finance")
    _add(store, "app.application")
    assert [i.code for i in store.issues] == ["APPLICATION_PARENT_INVALID"]
    assert not store.can_export
    _add(store, "app.application", parent_id=finance)
    assert store.validation_summary.errors == 1


# ─── History ──────────────────────────────────────────────────────────────────

def test_undo_redo_round_trip(store):
    store.set_diagram_type("cross-domain-traceability")
    first = _add(store, "app.application")
    second = _add(store, "app.application")

    assert store.undo()
    assert [n.id for n in store.state.nodes] == [first]
    assert store.can_redo
    assert store.redo()
    assert [n.id for n in store.state.nodes] == [first, second]
    assert store.state.selection.empty


def test_new_mutation_discards_redo(store):
    store.set_diagram_type("cross-domain-traceability")
    _add(store, "app.application")
    store.undo()
    assert store.can_redo
    _add(store, "tech.element")
    assert not store.can_redo
    assert not store.redo()


def test_undo_restores_metadata_and_type(store):
    store.set_diagram_type("cross-domain-traceability")
    store.set_metadata(name="Landscape 2026")
    store.undo()
    assert store.state.metadata.name == "Untitled Diagram"
    store.undo()
    assert store.state.diagram_type_id is None
    assert not store.undo()


def test_history_is_capped(registry):
    store = DiagramStore(registry=registry, history_limit=2)
    store.set_diagram_type("cross-domain-traceability")
    for _ in range(3):
        _add(store, "app.application")
    assert store.undo() and store.undo()
    assert not store.undo()
    assert len(store.state.nodes) == 1


def test_armed_history_collapses_an_edit_burst(store):
    store.set_diagram_type("cross-domain-traceability")
    app = _add(store, "app.application")
    store.arm_history()
    for text in ("B", "Bi", "Billing"):
        assert store.set_node_attribute(app, "name", text).ok
    store.clear_armed_history()
    assert _node(store, app).title == "Billing"

    assert store.undo()
    assert _node(store, app).attributes["name"] == "Application"
    assert _node(store, app).title == "Application"
    assert store.can_undo


def test_armed_history_without_changes_records_nothing(store):
    store.set_diagram_type("cross-domain-traceability")
    _add(store, "app.application")
    depth = len(store.history.undo_stack)
    store.arm_history()
    store.clear_armed_history()
    assert len(store.history.undo_stack) == depth


def test_undo_mid_burst_reverts_only_the_burst(store):
    store.set_diagram_type("cross-domain-traceability")
    app = _add(store, "app.application")
    store.arm_history()
    store.set_node_attribute(app, "name", "Bil")
    store.set_node_attribute(app, "name", "Billing")

    assert store.undo()
    assert store.history.armed is None
    assert [n.id for n in store.state.nodes] == [app]
    assert _node(store, app).attributes["name"] == "Application"
    assert store.redo()
    assert _node(store, app).attributes["name"] == "Billing"


# ─── Connect ──────────────────────────────────────────────────────────────────

def test_connect_uses_guided_resolution(store):
    store.set_diagram_type("cross-domain-traceability")
    process = _add(store, "ea.businessProcess")
    app = _add(store, "app.application")
    assert store.begin_connect(process) == {app}
    assert store.connect_source_id == process

    result = store.connect(process, app)
    assert result.ok
    edge = store.state.edges[0]
    assert (edge.edge_type_id, edge.label, edge.edge_type_version) == ("rel.processToApp", "Process → Application", 1)
    assert edge.id in store.state.active_view.edge_ids
    assert store.connect_source_id is None


def test_illegal_connection_is_rejected_without_change(store):
    store.set_diagram_type("cross-domain-traceability")
    process = _add(store, "ea.businessProcess")
    app = _add(store, "app.application")
    depth = len(store.history.undo_stack)

    result = store.connect(app, process)
    assert result.error.code == "CONNECTION_NOT_ALLOWED"
    assert store.last_error
    assert store.state.edges == []
    assert len(store.history.undo_stack) == depth
    store.clear_last_error()
    assert store.last_error is None


def test_duplicate_guided_edge_is_rejected(store):
    store.set_diagram_type("cross-domain-traceability")
    process = _add(store, "ea.businessProcess")
    app = _add(store, "app.application")
    assert store.connect(process, app).ok
    assert store.connect(process, app).error.code == "EDGE_DUPLICATE"
    assert store.connect(process, process).error.code == "CONNECTION_NOT_ALLOWED"


# ─── Editing ──────────────────────────────────────────────────────────────────

def test_edge_type_change_is_limited_to_generic_edges(store):
    store.set_diagram_type("cross-domain-traceability")
    process = _add(store, "ea.businessProcess")
    app = _add(store, "app.application")
    store.connect(process, app)
    guided = store.state.edges[0].id
    assert store.set_edge_type(guided, "rel.dependsOn").error.code == "GUIDED_EDGE_LOCKED"

    store.instantiate_template("tpl.threeTierApplication")
    store.enable_template_overrides_for_selection()
    generic = next(e for e in store.state.edges if e.edge_type_id == "rel.dataFlow")
    assert store.set_edge_type(generic.id, "rel.dependsOn").ok
    assert store.state.find_edge(generic.id).edge_type_id == "rel.dependsOn"
    assert store.set_edge_type(generic.id, "rel.ghost").error.code == "EDGE_TYPE_UNKNOWN"
    assert store.set_edge_description(generic.id, "nightly batch").ok
    assert store.state.find_edge(generic.id).description == "nightly batch"


def test_template_members_are_locked_until_overrides_enabled(store):
    store.set_diagram_type("cross-domain-traceability")
    assert store.instantiate_template("tpl.threeTierApplication", Position(x=40, y=40)).ok
    web = store.state.nodes[0]
    assert store.set_node_attribute(web.id, "name", "Portal").error.code == "TEMPLATE_LOCKED"

    store.select_all()
    delete = store.delete_selection()
    assert delete.error.code == "TEMPLATE_LOCKED"
    assert len(store.state.nodes) == 3

    assert store.enable_template_overrides_for_selection().ok
    assert store.set_node_attribute(web.id, "name", "Portal").ok
    assert store.delete_selection().ok
    assert store.state.nodes == [] and store.state.edges == []


def test_mixed_selection_with_template_member_deletes_nothing(store):
    store.set_diagram_type("cross-domain-traceability")
    store.instantiate_template("tpl.threeTierApplication")
    web = store.state.nodes[0].id
    app = _add(store, "app.application", x=600)
    count = len(store.state.nodes)

    store.set_selection([app, web])
    assert store.delete_selection().error.code == "TEMPLATE_LOCKED"
    assert len(store.state.nodes) == count
    assert store.state.find_node(app) is not None


def test_reparent_requires_mutual_containment(store):
    store.set_diagram_type("capability-map")
    category = _add_group(store, "ea.catDept", x=100, y=100)
    capability = _add_group(store, "ea.capability", x=150, y=180)
    assert store.set_parent_group(capability, category).ok
    moved = _node(store, capability)
    assert moved.parent_node == category
    assert moved.position == Position(x=50, y=80)

    assert store.set_parent_group(category, capability).error.code == "NESTING_CYCLE"
    assert store.set_parent_group(capability, None).ok
    assert _node(store, capability).position == Position(x=150, y=180)


def test_asymmetric_declarations_refuse_reparent(asymmetric_registry):
    store = DiagramStore(registry=asymmetric_registry)
    store.set_diagram_type("capability-map")
    category = _add_group(store, "ea.catDept")
    sub = _add_group(store, "ea.subCapability")
    result = store.set_parent_group(sub, category)
    assert result.error.code == "NESTING_INVALID"
    assert _node(store, sub).parent_node is None
    assert store.add_group_node("ea.subCapability", parent_id=category).error.code == "NESTING_INVALID"


def test_creation_is_limited_to_the_palette(store):
    store.set_diagram_type("application-landscape")
    assert store.add_component_node("tech.element").error.code == "TYPE_NOT_IN_PALETTE"
    assert store.add_group_node("ea.capability").error.code == "TYPE_NOT_IN_PALETTE"
    assert "Application Landscape" in store.last_error
    assert store.state.nodes == []
    assert len(store.history.undo_stack) == 1


def test_component_parent_must_accept_component_type(store):
    store.set_diagram_type("cross-domain-traceability")
    finance = _add_group(store, "app.catDept")
    assert store.add_component_node("tech.element", parent_id=finance).error.code == "NESTING_INVALID"
    assert store.add_component_node("app.application", parent_id="group-missing").error.code == "PARENT_NOT_FOUND"


def test_delete_removes_touching_edges_and_detaches_children(store):
    store.set_diagram_type("capability-map")
    category = _add_group(store, "ea.catDept", x=100, y=100)
    capability = _add_group(store, "ea.capability", x=10, y=20, parent_id=category)
    store.set_selection([category])
    assert store.delete_selection().ok
    child = _node(store, capability)
    assert child.parent_node is None
    assert child.position == Position(x=110, y=120)
    assert category not in store.state.active_view.node_ids
    assert store.delete_selection().error.code == "SELECTION_EMPTY"


def test_delete_cascades_edges(store):
    store.set_diagram_type("cross-domain-traceability")
    process = _add(store, "ea.businessProcess")
    app = _add(store, "app.application")
    store.connect(process, app)
    store.set_selection([app])
    store.delete_selection()
    assert store.state.edges == []
    assert store.state.active_view.edge_ids == []


# ─── Layout ───────────────────────────────────────────────────────────────────

def test_nudge_align_and_distribute(store):
    store.set_diagram_type("cross-domain-traceability")
    a = _add(store, "app.application", x=0, y=0)
    b = _add(store, "app.application", x=100, y=50)
    c = _add(store, "app.application", x=300, y=10)
    store.set_selection([a, b, c])

    assert store.align_selection("top").ok
    assert {_node(store, i).position.y for i in (a, b, c)} == {0}
    assert store.distribute_selection("horizontal").ok
    assert _node(store, b).position.x == 150
    assert store.nudge_selection(1, 0).ok
    assert _node(store, a).position.x == 16
    assert store.align_selection("diagonal").error.code == "ALIGN_MODE_UNKNOWN"

    store.set_selection([a])
    assert store.align_selection("left").error.code == "SELECTION_TOO_SMALL"


def test_move_updates_active_view_layout(store):
    store.set_diagram_type("cross-domain-traceability")
    app = _add(store, "app.application")
    store.move_nodes({app: Position(x=40, y=60)})
    assert store.state.active_view.layout[app].position == Position(x=40, y=60)


# ─── Notification ─────────────────────────────────────────────────────────────

def test_subscribers_receive_committed_states(store):
    seen = []
    unsubscribe = store.subscribe(seen.append)
    store.set_diagram_type("cross-domain-traceability")
    store.add_component_node("app.ghost")
    assert len(seen) == 1
    assert seen[0].diagram_type_id == "cross-domain-traceability"
    unsubscribe()
    _add(store, "app.application")
    assert len(seen) == 1


def test_mark_clean(store):
    store.set_diagram_type("cross-domain-traceability")
    assert store.state.dirty
    store.mark_clean("diagram-42", "2026-01-01T00:00:00Z")
    assert not store.state.dirty
    assert store.state.diagram_id == "diagram-42"
    assert store.state.metadata.updated_at == "2026-01-01T00:00:00Z"
