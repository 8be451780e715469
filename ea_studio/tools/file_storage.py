"""File storage tool: the export collaborator for serialised diagrams."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ea_studio.modeling.validate import ValidationIssue, ValidationSeverity, is_blocking
from ea_studio.utils.config import settings
from ea_studio.utils.file_utils import ensure_dir, read_text_file

logger = logging.getLogger(__name__)


class ExportBlockedError(RuntimeError):
    """Raised when a diagram with ERROR-severity issues is exported."""

    def __init__(self, issues: List[ValidationIssue]) -> None:
        errors = [issue for issue in issues if issue.severity == ValidationSeverity.ERROR]
        super().__init__(f"Export blocked by {len(errors)} validation error(s).")
        self.issues = errors


def _output_path(name: str, output_dir: Optional[str] = None) -> Path:
    return ensure_dir(output_dir or settings.output_dir) / name


def save_json(name: str, payload: Dict[str, Any], output_dir: Optional[str] = None) -> str:
    path = _output_path(name, output_dir)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    return str(path)


def read_json_document(path: str) -> Any:
    """Read a diagram record or snapshot from an arbitrary path."""
    try:
        return json.loads(read_text_file(path))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{Path(path).name}: invalid JSON ({exc.msg})") from exc


def export_diagram(
    record: Dict[str, Any],
    issues: List[ValidationIssue],
    name: str,
    output_dir: Optional[str] = None,
) -> str:
    """Write a serialised diagram; refused while blocking issues exist."""
    if is_blocking(issues):
        raise ExportBlockedError(issues)
    path = save_json(name, record, output_dir)
    logger.info("exported diagram %s to %s", record.get("id") or record.get("name"), path)
    return path
