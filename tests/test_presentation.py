from __future__ import annotations

from ea_studio.impact.analysis import compute_impact_analysis
from ea_studio.modeling.entities import Position
from ea_studio.store.presentation import derive_node_hints, visible_node_ids
from ea_studio.store.snapshot_import import application_node_id


def _capability_tree(store):
    store.set_diagram_type("capability-map")
    store.add_group_node("ea.catDept", Position(x=0, y=0))
    category = store.state.selection.node_ids[0]
    store.add_group_node("ea.capability", Position(x=20, y=40), category)
    capability = store.state.selection.node_ids[0]
    return category, capability


def test_collapsed_containers_hide_descendants(store):
    category, capability = _capability_tree(store)
    assert visible_node_ids(store.state) == {category, capability}
    store.toggle_collapsed_container(category)
    assert visible_node_ids(store.state) == {category}


def test_layers_filter_components_but_keep_groups(store):
    store.set_diagram_type("cross-domain-traceability")
    store.add_group_node("app.catDept")
    group = store.state.selection.node_ids[0]
    store.add_component_node("app.application", parent_id=group)
    app = store.state.selection.node_ids[0]
    store.add_component_node("tech.element")
    tech = store.state.selection.node_ids[0]

    store.toggle_view_layer("technology")
    assert visible_node_ids(store.state) == {group, tech}
    store.toggle_view_layer("technology")
    assert visible_node_ids(store.state) == {group, app, tech}


def test_collapsed_container_rolls_up_hidden_issues(store):
    category, capability = _capability_tree(store)
    store.toggle_collapsed_container(category)
    hints = derive_node_hints(store.state, store.issues)
    # The capability has no sub-capabilities: one warning behind the collapsed category.
    assert hints[category].hidden_warning_count == 1
    assert hints[category].hidden_error_count == 0
    assert hints[capability].hidden_warning_count == 0


def test_connect_hints(store):
    store.set_diagram_type("cross-domain-traceability")
    store.add_component_node("ea.businessProcess")
    process = store.state.selection.node_ids[0]
    store.add_component_node("app.application")
    app = store.state.selection.node_ids[0]
    hints = derive_node_hints(store.state, connect_source_id=process)
    assert hints[process].connect_source and not hints[process].connect_target
    assert hints[app].connect_target


def test_impact_and_origin_hints(store):
    store.set_diagram_type("cross-domain-traceability")
    store.import_ea_snapshot(
        {
            "applications": [{"id": "A1", "name": "Billing"}, {"id": "A2", "name": "Ledger"}],
            "dependencies": [{"sourceId": "A1", "targetId": "A2"}],
        }
    )
    a1, a2 = application_node_id("A1"), application_node_id("A2")
    impact = compute_impact_analysis(store.state.nodes, store.state.edges, [a1], "downstream", 1)
    hints = derive_node_hints(store.state, impact=impact)
    assert hints[a1].impact_start and hints[a1].impact_depth == 0
    assert hints[a2].impacted and hints[a2].impact_depth == 1
    assert hints[a2].high_fan_in
    assert hints[a1].read_only
    assert hints[a2].to_dict()["locked"] is False


def test_template_members_are_marked_locked(store):
    store.set_diagram_type("cross-domain-traceability")
    store.instantiate_template("tpl.threeTierApplication")
    hints = derive_node_hints(store.state)
    assert all(h.locked for h in hints.values())
    assert not any(h.impacted for h in hints.values())
