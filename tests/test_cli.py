from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from ea_studio.cli import app
from ea_studio.modeling.entities import Position
from ea_studio.store.snapshot_import import application_node_id
from ea_studio.utils.config import settings

runner = CliRunner()


@pytest.fixture(autouse=True)
def output_dir(tmp_path, monkeypatch):
    out = tmp_path / "outputs"
    monkeypatch.setattr(settings, "output_dir", str(out))
    monkeypatch.setattr(settings, "log_level", "WARNING")
    return out


def _write(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return str(path)


def _landscape(store, nested):
    store.set_diagram_type("application-landscape")
    store.add_group_node("app.catDept", Position(x=0, y=0), name="Finance")
    finance = store.state.selection.node_ids[0]
    store.add_component_node("app.application", Position(x=20, y=40), finance if nested else None)
    return store.serialize()


def test_registry_command_lists_catalogs(registry):
    result = runner.invoke(app, ["registry"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["status"] == "ready"
    assert "app.application" in payload["componentTypes"]
    assert "tpl.threeTierApplication" in payload["templates"]


def test_registry_command_reports_failure(tmp_path):
    result = runner.invoke(app, ["registry", "--catalog-dir", str(tmp_path / "nowhere")])
    assert result.exit_code == 1
    assert json.loads(result.stdout)["status"] == "error"


def test_validate_exit_code_follows_blocking_issues(store, tmp_path):
    diagram = _write(tmp_path / "bad.json", _landscape(store, nested=False))
    result = runner.invoke(app, ["validate", diagram])
    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["summary"]["errors"] == 1
    assert payload["issues"][0]["code"] == "APPLICATION_PARENT_INVALID"


def test_validate_clean_diagram(store, tmp_path):
    diagram = _write(tmp_path / "good.json", _landscape(store, nested=True))
    result = runner.invoke(app, ["validate", diagram])
    assert result.exit_code == 0, result.output
    assert json.loads(result.stdout)["summary"]["blocking"] is False


def test_export_blocked_then_written(store, tmp_path, output_dir):
    bad = _write(tmp_path / "bad.json", _landscape(store, nested=False))
    result = runner.invoke(app, ["export", bad, "--output", "bad-out.json"])
    assert result.exit_code == 1
    assert not (output_dir / "bad-out.json").exists()

    store.reset()
    good = _write(tmp_path / "good.json", _landscape(store, nested=True))
    result = runner.invoke(app, ["export", good, "--output", "good-out.json"])
    assert result.exit_code == 0, result.output
    written = json.loads((output_dir / "good-out.json").read_text(encoding="utf-8"))
    assert written["metadata"]["diagramTypeId"] == "application-landscape"


def test_import_snapshot_then_impact(store, tmp_path, output_dir):
    store.set_diagram_type("cross-domain-traceability")
    diagram = _write(tmp_path / "diagram.json", store.serialize())
    snapshot = _write(
        tmp_path / "snapshot.json",
        {
            "snapshot": {"snapshotId": "snap-cli"},
            "applications": [{"id": "A1", "name": "Billing"}, {"id": "A2", "name": "Ledger"}],
            "dependencies": [{"sourceId": "A1", "targetId": "A2"}],
        },
    )
    result = runner.invoke(app, ["import-snapshot", diagram, snapshot, "-o", "imported.json"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["diff"]["applications"]["added"] == 2

    imported = str(output_dir / "imported.json")
    result = runner.invoke(app, ["impact", imported, "-s", application_node_id("A1"), "--depth", "2"])
    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["result"]["depthByNodeId"] == {application_node_id("A1"): 0, application_node_id("A2"): 1}
    assert payload["explanation"]["impactedCount"] == 1


def test_import_snapshot_reports_malformed_file(store, tmp_path, output_dir):
    store.set_diagram_type("cross-domain-traceability")
    diagram = _write(tmp_path / "diagram.json", store.serialize())
    snapshot = _write(tmp_path / "snapshot.json", {"applications": [{"name": "no id"}]})
    result = runner.invoke(app, ["import-snapshot", diagram, snapshot])
    assert result.exit_code == 1
    assert "SNAPSHOT_INVALID" in result.stdout
    assert not (output_dir / "diagram.json").exists()
