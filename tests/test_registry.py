from __future__ import annotations

import copy
import json
import logging

from ea_studio.modeling.registry import (
    CATALOG_DIR,
    COMPONENT_TYPES_FILE,
    EDGE_TYPES_FILE,
    GROUP_TYPES_FILE,
    TEMPLATES_FILE,
    RegistryState,
    build_registry,
    get_component_type,
    get_edge_type,
    get_group_type,
    get_template,
    load_registries,
    reset_registry_cache,
)


def _shipped_docs():
    return [
        json.loads((CATALOG_DIR / name).read_text(encoding="utf-8"))
        for name in (COMPONENT_TYPES_FILE, GROUP_TYPES_FILE, EDGE_TYPES_FILE, TEMPLATES_FILE)
    ]


def test_shipped_catalogs_load_ready(registry):
    assert registry.ready
    assert registry.registry_version == 1
    assert "app.application" in registry.component_types_by_id
    assert "ea.catDept" in registry.group_types_by_id
    assert "rel.dependsOn" in registry.edge_types_by_id
    assert "tpl.threeTierApplication" in registry.templates_by_id


def test_load_is_memoised():
    reset_registry_cache()
    first = load_registries()
    assert load_registries() is first
    assert load_registries(CATALOG_DIR) is first


def test_lookups_return_none_for_unknown_ids_and_failed_registry(registry):
    assert get_component_type(registry, "nope") is None
    assert get_group_type(registry, None) is None
    failed = RegistryState.failed("boom")
    assert get_component_type(failed, "app.application") is None
    assert get_edge_type(failed, "rel.dependsOn") is None
    assert get_template(None, "tpl.threeTierApplication") is None


def test_lookup_returns_typed_definition(registry):
    app = get_component_type(registry, "app.application")
    assert app.display_name == "Application"
    assert app.version == 2
    assert "rel.dependsOn" in app.allowed_edge_types


def test_empty_component_catalog_fails_whole_registry(caplog):
    components, groups, edges, templates = _shipped_docs()
    components["componentTypes"] = []
    with caplog.at_level(logging.ERROR):
        state = build_registry(components, groups, edges, templates)
    assert not state.ready
    assert state.message == "Failed to load component-types.v1.json: Component Type Registry missing or empty."
    assert state.component_types == []
    assert any("[registry] failed to load" in r.message for r in caplog.records)


def test_malformed_group_catalog_names_the_file():
    components, groups, edges, templates = _shipped_docs()
    del groups["groupTypes"][0]["displayName"]
    state = build_registry(components, groups, edges, templates)
    assert state.status == "error"
    assert state.message.startswith("Failed to load group-types.v1.json: Schema validation failed")


def test_wrong_primitive_type_is_rejected():
    components, groups, edges, templates = _shipped_docs()
    edges["edgeTypes"][0]["version"] = "one"
    state = build_registry(components, groups, edges, templates)
    assert state.message.startswith("Failed to load edge-types.v1.json")


def test_broken_attribute_schema_fails_component_catalog():
    components, groups, edges, templates = _shipped_docs()
    components = copy.deepcopy(components)
    components["componentTypes"][0]["requiredAttributes"] = {"type": "not-a-type"}
    state = build_registry(components, groups, edges, templates)
    assert not state.ready
    assert "component-types.v1.json" in state.message
    assert "ea.businessProcess" in state.message


def test_template_referencing_unknown_component_type_fails():
    components, groups, edges, templates = _shipped_docs()
    templates["templates"][0]["nodes"][0]["componentTypeId"] = "app.ghost"
    state = build_registry(components, groups, edges, templates)
    assert state.message.startswith("Failed to load templates.v1.json")
    assert "app.ghost" in state.message


def test_missing_catalog_directory_reports_first_file(tmp_path):
    reset_registry_cache()
    state = load_registries(tmp_path)
    assert not state.ready
    assert state.message.startswith("Failed to load component-types.v1.json")
    reset_registry_cache()


def test_catalog_dir_setting_is_honoured(tmp_path, monkeypatch):
    from ea_studio.utils.config import settings

    for name in (COMPONENT_TYPES_FILE, GROUP_TYPES_FILE, EDGE_TYPES_FILE, TEMPLATES_FILE):
        (tmp_path / name).write_text((CATALOG_DIR / name).read_text(encoding="utf-8"), encoding="utf-8")
    monkeypatch.setattr(settings, "catalog_dir", str(tmp_path))
    reset_registry_cache()
    state = load_registries()
    assert state.ready
    reset_registry_cache()
