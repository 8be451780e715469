"""Versioned type registry: component, group, edge and template catalogs."""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from jsonschema import Draft202012Validator
from jsonschema.exceptions import SchemaError
from pydantic import Field, ValidationError

from ea_studio.modeling.entities import Position, StudioModel
from ea_studio.utils.config import settings
from ea_studio.utils.file_utils import read_text_file

logger = logging.getLogger(__name__)

CATALOG_DIR = Path(__file__).parent / "component_registry"

COMPONENT_TYPES_FILE = "component-types.v1.json"
GROUP_TYPES_FILE = "group-types.v1.json"
EDGE_TYPES_FILE = "edge-types.v1.json"
TEMPLATES_FILE = "templates.v1.json"

REGISTRY_READY = "ready"
REGISTRY_ERROR = "error"

_STRING_LIST = {"type": "array", "items": {"type": "string"}}


def _catalog_schema(kind: str, items_key: str, item_schema: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "$schema": "https://json-schema.org/draft/2020-12/schema",
        "type": "object",
        "additionalProperties": False,
        "required": ["registryKind", "registryVersion", items_key],
        "properties": {
            "registryKind": {"const": kind},
            "registryVersion": {"type": "integer"},
            items_key: {"type": "array", "items": item_schema},
        },
    }


COMPONENT_TYPES_SCHEMA = _catalog_schema(
    "componentTypes",
    "componentTypes",
    {
        "type": "object",
        "additionalProperties": False,
        "required": [
            "typeId",
            "displayName",
            "category",
            "iconKey",
            "allowedParentTypes",
            "allowedChildTypes",
            "allowedEdgeTypes",
            "requiredAttributes",
            "version",
        ],
        "properties": {
            "typeId": {"type": "string", "minLength": 1},
            "displayName": {"type": "string", "minLength": 1},
            "category": {"type": "string"},
            "iconKey": {"type": "string"},
            "allowedParentTypes": _STRING_LIST,
            "allowedChildTypes": _STRING_LIST,
            "allowedEdgeTypes": _STRING_LIST,
            "requiredAttributes": {"type": "object"},
            "version": {"type": "number"},
        },
    },
)

GROUP_TYPES_SCHEMA = _catalog_schema(
    "groupTypes",
    "groupTypes",
    {
        "type": "object",
        "additionalProperties": False,
        "required": [
            "groupTypeId",
            "displayName",
            "allowedChildGroupTypes",
            "allowedParentGroupTypes",
            "allowedChildComponentTypes",
            "version",
        ],
        "properties": {
            "groupTypeId": {"type": "string", "minLength": 1},
            "displayName": {"type": "string", "minLength": 1},
            "allowedChildGroupTypes": _STRING_LIST,
            "allowedParentGroupTypes": _STRING_LIST,
            "allowedChildComponentTypes": _STRING_LIST,
            "version": {"type": "number"},
        },
    },
)

EDGE_TYPES_SCHEMA = _catalog_schema(
    "edgeTypes",
    "edgeTypes",
    {
        "type": "object",
        "additionalProperties": False,
        "required": ["edgeTypeId", "displayName", "version"],
        "properties": {
            "edgeTypeId": {"type": "string", "minLength": 1},
            "displayName": {"type": "string", "minLength": 1},
            "version": {"type": "number"},
        },
    },
)

TEMPLATES_SCHEMA = _catalog_schema(
    "templates",
    "templates",
    {
        "type": "object",
        "additionalProperties": False,
        "required": ["templateId", "displayName", "version", "nodes", "edges"],
        "properties": {
            "templateId": {"type": "string", "minLength": 1},
            "displayName": {"type": "string", "minLength": 1},
            "version": {"type": "number"},
            "nodes": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["localId", "componentTypeId", "attributes", "position"],
                    "properties": {
                        "localId": {"type": "string", "minLength": 1},
                        "componentTypeId": {"type": "string", "minLength": 1},
                        "attributes": {"type": "object"},
                        "position": {
                            "type": "object",
                            "additionalProperties": False,
                            "required": ["x", "y"],
                            "properties": {"x": {"type": "number"}, "y": {"type": "number"}},
                        },
                    },
                },
            },
            "edges": {
                "type": "array",
                "items": {
                    "type": "object",
                    "additionalProperties": False,
                    "required": ["localId", "sourceLocalId", "targetLocalId", "edgeTypeId"],
                    "properties": {
                        "localId": {"type": "string", "minLength": 1},
                        "sourceLocalId": {"type": "string", "minLength": 1},
                        "targetLocalId": {"type": "string", "minLength": 1},
                        "edgeTypeId": {"type": "string", "minLength": 1},
                    },
                },
            },
        },
    },
)


class ComponentType(StudioModel):
    type_id: str
    display_name: str
    category: str = ""
    icon_key: str = ""
    allowed_parent_types: List[str] = Field(default_factory=list)
    allowed_child_types: List[str] = Field(default_factory=list)
    allowed_edge_types: List[str] = Field(default_factory=list)
    required_attributes: Dict[str, Any] = Field(default_factory=dict)
    version: Union[int, float]


class GroupType(StudioModel):
    group_type_id: str
    display_name: str
    allowed_child_group_types: List[str] = Field(default_factory=list)
    allowed_parent_group_types: List[str] = Field(default_factory=list)
    allowed_child_component_types: List[str] = Field(default_factory=list)
    version: Union[int, float]


class EdgeType(StudioModel):
    edge_type_id: str
    display_name: str
    version: Union[int, float]


class TemplateNode(StudioModel):
    local_id: str
    component_type_id: str
    attributes: Dict[str, Any] = Field(default_factory=dict)
    position: Position = Field(default_factory=Position)


class TemplateEdge(StudioModel):
    local_id: str
    source_local_id: str
    target_local_id: str
    edge_type_id: str


class Template(StudioModel):
    template_id: str
    display_name: str
    version: Union[int, float]
    nodes: List[TemplateNode] = Field(default_factory=list)
    edges: List[TemplateEdge] = Field(default_factory=list)


class RegistryLoadError(RuntimeError):
    """Raised internally when one catalog fails; carries the offending file name."""

    def __init__(self, file_name: str, message: str) -> None:
        super().__init__(message)
        self.file_name = file_name
        self.message = message


@dataclass(frozen=True)
class RegistryState:
    status: str
    message: str = ""
    registry_version: int = 0
    component_types: List[ComponentType] = field(default_factory=list)
    component_types_by_id: Dict[str, ComponentType] = field(default_factory=dict)
    group_types: List[GroupType] = field(default_factory=list)
    group_types_by_id: Dict[str, GroupType] = field(default_factory=dict)
    edge_types: List[EdgeType] = field(default_factory=list)
    edge_types_by_id: Dict[str, EdgeType] = field(default_factory=dict)
    templates: List[Template] = field(default_factory=list)
    templates_by_id: Dict[str, Template] = field(default_factory=dict)

    @property
    def ready(self) -> bool:
        return self.status == REGISTRY_READY

    @classmethod
    def failed(cls, message: str) -> "RegistryState":
        return cls(status=REGISTRY_ERROR, message=message)


def _format_errors(errors) -> str:
    parts = []
    for err in sorted(errors, key=lambda e: "/".join(str(p) for p in e.absolute_path)):
        location = "/".join(str(part) for part in err.absolute_path)
        parts.append(f"/{location}: {err.message}" if location else err.message)
    return "; ".join(parts) or "Schema validation failed."


def _validate_catalog(file_name: str, schema: Dict[str, Any], document: Any) -> None:
    validator = Draft202012Validator(schema)
    errors = list(validator.iter_errors(document))
    if errors:
        raise RegistryLoadError(file_name, f"Schema validation failed: {_format_errors(errors)}")


def _check_attribute_schemas(component_types: List[Mapping[str, Any]]) -> None:
    for component_type in component_types:
        type_id = str(component_type.get("typeId", ""))
        schema = component_type.get("requiredAttributes")
        if not schema:
            continue
        try:
            Draft202012Validator.check_schema(schema)
        except SchemaError as exc:
            raise RegistryLoadError(
                COMPONENT_TYPES_FILE,
                f"Invalid requiredAttributes schema for component type {type_id}: {exc.message}",
            ) from exc


def _check_templates(
    templates: List[Template],
    component_types_by_id: Mapping[str, ComponentType],
    edge_types_by_id: Mapping[str, EdgeType],
) -> None:
    for template in templates:
        local_ids = {node.local_id for node in template.nodes}
        for node in template.nodes:
            if node.component_type_id not in component_types_by_id:
                raise RegistryLoadError(
                    TEMPLATES_FILE,
                    f"Template {template.template_id} references unknown component type {node.component_type_id}.",
                )
        for edge in template.edges:
            if edge.edge_type_id not in edge_types_by_id:
                raise RegistryLoadError(
                    TEMPLATES_FILE,
                    f"Template {template.template_id} references unknown edge type {edge.edge_type_id}.",
                )
            if edge.source_local_id not in local_ids or edge.target_local_id not in local_ids:
                raise RegistryLoadError(
                    TEMPLATES_FILE,
                    f"Template {template.template_id} edge {edge.local_id} references a missing local node.",
                )


def build_registry(
    component_types_doc: Any,
    group_types_doc: Any,
    edge_types_doc: Any,
    templates_doc: Any,
) -> RegistryState:
    """Validate four catalog documents and index them; all load or none do."""
    try:
        _validate_catalog(COMPONENT_TYPES_FILE, COMPONENT_TYPES_SCHEMA, component_types_doc)
        _validate_catalog(GROUP_TYPES_FILE, GROUP_TYPES_SCHEMA, group_types_doc)
        _validate_catalog(EDGE_TYPES_FILE, EDGE_TYPES_SCHEMA, edge_types_doc)
        _validate_catalog(TEMPLATES_FILE, TEMPLATES_SCHEMA, templates_doc)

        raw_component_types = component_types_doc["componentTypes"]
        if not raw_component_types:
            raise RegistryLoadError(COMPONENT_TYPES_FILE, "Component Type Registry missing or empty.")
        _check_attribute_schemas(raw_component_types)

        try:
            component_types = [ComponentType.model_validate(item) for item in raw_component_types]
            group_types = [GroupType.model_validate(item) for item in group_types_doc["groupTypes"]]
            edge_types = [EdgeType.model_validate(item) for item in edge_types_doc["edgeTypes"]]
            templates = [Template.model_validate(item) for item in templates_doc["templates"]]
        except ValidationError as exc:
            raise RegistryLoadError("unknown", str(exc)) from exc

        component_types_by_id = {t.type_id: t for t in component_types}
        edge_types_by_id = {t.edge_type_id: t for t in edge_types}
        _check_templates(templates, component_types_by_id, edge_types_by_id)
    except RegistryLoadError as exc:
        logger.error("[registry] failed to load %s: %s", exc.file_name, exc.message)
        return RegistryState.failed(f"Failed to load {exc.file_name}: {exc.message}")

    logger.info("[registry] loaded component types: %d", len(component_types))
    return RegistryState(
        status=REGISTRY_READY,
        registry_version=component_types_doc.get("registryVersion", 1),
        component_types=component_types,
        component_types_by_id=component_types_by_id,
        group_types=group_types,
        group_types_by_id={t.group_type_id: t for t in group_types},
        edge_types=edge_types,
        edge_types_by_id=edge_types_by_id,
        templates=templates,
        templates_by_id={t.template_id: t for t in templates},
    )


def _read_catalog(directory: Path, file_name: str) -> Any:
    try:
        return json.loads(read_text_file(str(directory / file_name)))
    except (OSError, ValueError) as exc:
        raise RegistryLoadError(file_name, str(exc)) from exc


@lru_cache(maxsize=8)
def _load_from_directory(directory: str) -> RegistryState:
    root = Path(directory)
    try:
        documents = [
            _read_catalog(root, name)
            for name in (COMPONENT_TYPES_FILE, GROUP_TYPES_FILE, EDGE_TYPES_FILE, TEMPLATES_FILE)
        ]
    except RegistryLoadError as exc:
        logger.error("[registry] failed to load %s: %s", exc.file_name, exc.message)
        return RegistryState.failed(f"Failed to load {exc.file_name}: {exc.message}")
    return build_registry(*documents)


def load_registries(catalog_dir: Optional[Union[str, Path]] = None) -> RegistryState:
    """Load the registry once per catalog directory; later calls return the same state."""
    directory = catalog_dir or settings.catalog_dir or CATALOG_DIR
    return _load_from_directory(str(Path(directory).resolve()))


def reset_registry_cache() -> None:
    _load_from_directory.cache_clear()


def get_component_type(registry: Optional[RegistryState], type_id: Optional[str]) -> Optional[ComponentType]:
    if registry is None or not registry.ready or not type_id:
        return None
    return registry.component_types_by_id.get(type_id)


def get_group_type(registry: Optional[RegistryState], group_type_id: Optional[str]) -> Optional[GroupType]:
    if registry is None or not registry.ready or not group_type_id:
        return None
    return registry.group_types_by_id.get(group_type_id)


def get_edge_type(registry: Optional[RegistryState], edge_type_id: Optional[str]) -> Optional[EdgeType]:
    if registry is None or not registry.ready or not edge_type_id:
        return None
    return registry.edge_types_by_id.get(edge_type_id)


def get_template(registry: Optional[RegistryState], template_id: Optional[str]) -> Optional[Template]:
    if registry is None or not registry.ready or not template_id:
        return None
    return registry.templates_by_id.get(template_id)
