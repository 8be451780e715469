"""CLI interface."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

import typer

from ea_studio.impact.analysis import compute_impact_analysis, explain_impact
from ea_studio.modeling.registry import load_registries
from ea_studio.store.store import DiagramStore
from ea_studio.tools.file_storage import ExportBlockedError, export_diagram, read_json_document, save_json
from ea_studio.utils.config import settings

app = typer.Typer(add_completion=False)


@app.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level.")):
    """Enterprise-architecture modeling core."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _echo(payload: Dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, indent=2))


def _open_store(diagram: str, catalog_dir: Optional[str]) -> DiagramStore:
    registry = load_registries(catalog_dir)
    if not registry.ready:
        _echo({"status": registry.status, "message": registry.message})
        raise typer.Exit(code=2)
    store = DiagramStore(registry=registry)
    store.load_diagram(read_json_document(diagram))
    return store


@app.command()
def registry(
    catalog_dir: Optional[str] = typer.Option(None, "--catalog-dir", help="Directory holding the four catalogs."),
):
    """Load the type registry and list what it defines."""
    state = load_registries(catalog_dir)
    if not state.ready:
        _echo({"status": state.status, "message": state.message})
        raise typer.Exit(code=1)
    _echo(
        {
            "status": state.status,
            "registryVersion": state.registry_version,
            "componentTypes": [t.type_id for t in state.component_types],
            "groupTypes": [t.group_type_id for t in state.group_types],
            "edgeTypes": [t.edge_type_id for t in state.edge_types],
            "templates": [t.template_id for t in state.templates],
        }
    )


@app.command()
def validate(
    diagram: str = typer.Argument(..., help="Path to a serialised diagram (.json)."),
    catalog_dir: Optional[str] = typer.Option(None, "--catalog-dir"),
):
    """Validate a diagram; exits 1 when blocking issues exist."""
    store = _open_store(diagram, catalog_dir)
    summary = store.validation_summary
    _echo({"summary": summary.to_dict(), "issues": [issue.to_dict() for issue in store.issues]})
    if summary.blocking:
        raise typer.Exit(code=1)


@app.command()
def impact(
    diagram: str = typer.Argument(..., help="Path to a serialised diagram (.json)."),
    start: List[str] = typer.Option(..., "--start", "-s", help="Start node id (repeatable)."),
    direction: str = typer.Option("downstream", "--direction", help="downstream or upstream."),
    depth: Optional[int] = typer.Option(None, "--depth", help="Traversal depth 1-3."),
    catalog_dir: Optional[str] = typer.Option(None, "--catalog-dir"),
):
    """Trace imported dependency impact from the given nodes."""
    store = _open_store(diagram, catalog_dir)
    nodes, edges = store.state.nodes, store.state.edges
    result = compute_impact_analysis(
        nodes, edges, start, direction=direction, max_depth=depth or settings.default_impact_depth
    )
    _echo({"result": result.to_dict(), "explanation": explain_impact(result, nodes)})


@app.command("import-snapshot")
def import_snapshot(
    diagram: str = typer.Argument(..., help="Path to a serialised diagram (.json)."),
    snapshot: str = typer.Argument(..., help="Path to an EA Core snapshot (.json)."),
    output: str = typer.Option("diagram.json", "--output", "-o", help="File name written under the output dir."),
    catalog_dir: Optional[str] = typer.Option(None, "--catalog-dir"),
):
    """Import an EA Core snapshot into a diagram and save the result."""
    store = _open_store(diagram, catalog_dir)
    payload = read_json_document(snapshot)
    diff = store.compute_ea_diff_summary(payload)
    result = store.import_ea_snapshot(payload) if diff.ok else diff
    if not result.ok:
        _echo({"error": {"code": result.error.code, "message": result.error.message}})
        raise typer.Exit(code=1)
    path = save_json(output, store.serialize())
    _echo({"diff": diff.value, "path": path, "summary": store.validation_summary.to_dict()})


@app.command()
def export(
    diagram: str = typer.Argument(..., help="Path to a serialised diagram (.json)."),
    output: str = typer.Option("diagram.json", "--output", "-o", help="File name written under the output dir."),
    catalog_dir: Optional[str] = typer.Option(None, "--catalog-dir"),
):
    """Export a diagram unless validation reports blocking errors."""
    store = _open_store(diagram, catalog_dir)
    try:
        path = export_diagram(store.serialize(), store.issues, output)
    except ExportBlockedError as exc:
        _echo({"error": str(exc), "issues": [issue.to_dict() for issue in exc.issues]})
        raise typer.Exit(code=1)
    _echo({"path": path})


if __name__ == "__main__":
    app()
