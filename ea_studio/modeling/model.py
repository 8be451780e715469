"""Model factory: builds typed nodes and edges from registry entries and repairs persisted ones."""
from __future__ import annotations

import json
import uuid
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from jsonschema import Draft202012Validator

from ea_studio.modeling.entities import (
    EDGE_KIND_RELATIONSHIP,
    NODE_KIND_COMPONENT,
    NODE_KIND_GROUP,
    Edge,
    EntityMetadata,
    Node,
    Position,
    TemplateMembership,
    now_iso,
)
from ea_studio.modeling.registry import (
    ComponentType,
    RegistryState,
    get_component_type,
    get_edge_type,
    get_group_type,
    get_template,
)

LEGACY_COMPONENT_TYPE_ID = "legacy.unknown"
FALLBACK_EDGE_TYPE_ID = "rel.dependsOn"

COMPONENT_SIZE = (160.0, 92.0)
GROUP_SIZE = (320.0, 200.0)


class ModelFactoryError(ValueError):
    """Raised when a factory is called with an unusable registry or type id."""


def new_entity_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4()}"


def compute_component_title(component_type: Optional[ComponentType], attributes: Optional[Mapping[str, Any]]) -> str:
    name = (attributes or {}).get("name")
    if isinstance(name, str) and name.strip():
        return name.strip()
    return component_type.display_name if component_type else "Component"


def infer_schema_default(prop_schema: Any) -> Any:
    if not isinstance(prop_schema, Mapping):
        return None
    if "default" in prop_schema:
        return prop_schema["default"]
    enum = prop_schema.get("enum")
    if isinstance(enum, list) and enum:
        return enum[0]
    return {
        "string": "",
        "number": 0,
        "integer": 0,
        "boolean": False,
        "object": {},
        "array": [],
    }.get(prop_schema.get("type"))


def build_default_attributes(component_type: ComponentType) -> Dict[str, Any]:
    """Explicit defaults first, then inferred values for required keys still missing."""
    schema = component_type.required_attributes
    if not isinstance(schema, Mapping):
        return {}
    props = schema.get("properties") if isinstance(schema.get("properties"), Mapping) else {}
    required = schema.get("required") if isinstance(schema.get("required"), list) else []

    out: Dict[str, Any] = {}
    for key, prop_schema in props.items():
        if isinstance(prop_schema, Mapping) and "default" in prop_schema:
            out[key] = prop_schema["default"]

    for key in required:
        if key in out:
            continue
        prop_schema = props.get(key)
        value = infer_schema_default(prop_schema)
        if key in ("name", "title"):
            declared = prop_schema.get("type") if isinstance(prop_schema, Mapping) else None
            if (declared == "string" or not isinstance(declared, str)) and not (isinstance(value, str) and value.strip()):
                value = component_type.display_name
        out[key] = value
    return out


@lru_cache(maxsize=256)
def _attribute_validator(schema_json: str) -> Draft202012Validator:
    return Draft202012Validator(json.loads(schema_json))


def validate_attributes(component_type: ComponentType, attributes: Optional[Mapping[str, Any]]) -> List[str]:
    """Return human-readable schema violations; an empty list means the attributes conform."""
    schema = component_type.required_attributes
    if not isinstance(schema, Mapping):
        return ["Missing schema."]
    validator = _attribute_validator(json.dumps(schema, sort_keys=True))
    messages = []
    for err in sorted(validator.iter_errors(dict(attributes or {})), key=lambda e: "/".join(str(p) for p in e.path)):
        location = "/".join(str(part) for part in err.path)
        messages.append(f"/{location}: {err.message}" if location else err.message)
    return messages


def _fresh_metadata() -> EntityMetadata:
    created_at = now_iso()
    return EntityMetadata(created_at=created_at, updated_at=created_at, version=1)


def create_component_node(
    registry: Optional[RegistryState],
    component_type_id: str,
    position: Optional[Position] = None,
    attributes: Optional[Mapping[str, Any]] = None,
    parent_node: Optional[str] = None,
) -> Node:
    if registry is None or not registry.ready:
        raise ModelFactoryError("Component Type Registry not loaded.")
    component_type = get_component_type(registry, component_type_id)
    if component_type is None:
        raise ModelFactoryError(f"Unknown component type: {component_type_id}")

    values = build_default_attributes(component_type)
    values.update(attributes or {})
    width, height = COMPONENT_SIZE
    return Node(
        id=new_entity_id("node"),
        kind=NODE_KIND_COMPONENT,
        type_id=component_type_id,
        type_version=component_type.version,
        title=compute_component_title(component_type, values),
        icon_key=component_type.icon_key,
        attributes=values,
        position=position or Position(),
        parent_node=parent_node,
        width=width,
        height=height,
        metadata=_fresh_metadata(),
    )


def create_group_node(
    registry: Optional[RegistryState],
    group_type_id: str,
    position: Optional[Position] = None,
    name: Optional[str] = None,
    parent_node: Optional[str] = None,
) -> Node:
    if registry is None or not registry.ready:
        raise ModelFactoryError("Group Type Registry not loaded.")
    group_type = get_group_type(registry, group_type_id)
    if group_type is None:
        raise ModelFactoryError(f"Unknown group type: {group_type_id}")

    title = name.strip() if isinstance(name, str) and name.strip() else group_type.display_name
    width, height = GROUP_SIZE
    return Node(
        id=new_entity_id("group"),
        kind=NODE_KIND_GROUP,
        type_id=group_type_id,
        type_version=group_type.version,
        title=title,
        attributes={"name": title},
        position=position or Position(),
        parent_node=parent_node,
        width=width,
        height=height,
        metadata=_fresh_metadata(),
    )


def create_relationship_edge(
    edge_type_id: str,
    edge_type_version: Union[int, float, None],
    source: str,
    target: str,
    label: str = "",
) -> Edge:
    return Edge(
        id=new_entity_id("edge"),
        source=source,
        target=target,
        kind=EDGE_KIND_RELATIONSHIP,
        edge_type_id=edge_type_id,
        edge_type_version=edge_type_version,
        label=label,
        metadata=_fresh_metadata(),
    )


def create_template_instance(
    registry: Optional[RegistryState],
    template_id: str,
    origin: Optional[Position] = None,
) -> Tuple[List[Node], List[Edge]]:
    """Stamp every node and edge of a template as one locked instance."""
    if registry is None or not registry.ready:
        raise ModelFactoryError("Component Type Registry not loaded.")
    template = get_template(registry, template_id)
    if template is None:
        raise ModelFactoryError(f"Unknown template: {template_id}")

    origin = origin or Position()
    instance_id = f"tpl-{uuid.uuid4().hex[:12]}"

    def membership(local_id: str) -> TemplateMembership:
        return TemplateMembership(template_id=template_id, instance_id=instance_id, local_id=local_id)

    nodes: List[Node] = []
    node_id_by_local: Dict[str, str] = {}
    for template_node in template.nodes:
        node = create_component_node(
            registry,
            template_node.component_type_id,
            position=template_node.position.offset(origin.x, origin.y),
            attributes=template_node.attributes,
        )
        node.metadata.template = membership(template_node.local_id)
        node_id_by_local[template_node.local_id] = node.id
        nodes.append(node)

    edges: List[Edge] = []
    for template_edge in template.edges:
        edge_type = get_edge_type(registry, template_edge.edge_type_id)
        if edge_type is None:
            raise ModelFactoryError(f"Unknown edge type: {template_edge.edge_type_id}")
        edge = create_relationship_edge(
            template_edge.edge_type_id,
            edge_type.version,
            node_id_by_local[template_edge.source_local_id],
            node_id_by_local[template_edge.target_local_id],
        )
        edge.metadata.template = membership(template_edge.local_id)
        edges.append(edge)
    return nodes, edges


def allowed_edge_type_ids(registry: Optional[RegistryState], source: Optional[Node], target: Optional[Node]) -> List[str]:
    """Generic edge types both component endpoints accept, in the source type's order."""
    if source is None or target is None or not source.is_component or not target.is_component:
        return []
    source_type = get_component_type(registry, source.type_id)
    target_type = get_component_type(registry, target.type_id)
    if source_type is None or target_type is None:
        return []
    return [t for t in source_type.allowed_edge_types if t in target_type.allowed_edge_types]


# ─── Normalisation ────────────────────────────────────────────────────────────


def _as_record(entity: Any) -> Dict[str, Any]:
    if isinstance(entity, (Node, Edge)):
        return entity.model_dump(by_alias=True)
    if isinstance(entity, Mapping):
        return dict(entity)
    raise TypeError(f"Cannot normalise {type(entity).__name__}")


def _backfill_metadata(raw: Any) -> Dict[str, Any]:
    metadata = dict(raw) if isinstance(raw, Mapping) else {}
    created_at = metadata.get("createdAt") or now_iso()
    metadata["createdAt"] = created_at
    metadata["updatedAt"] = metadata.get("updatedAt") or created_at
    metadata["version"] = metadata.get("version") or 1
    return metadata


def _flatten_node_data(record: Dict[str, Any]) -> Dict[str, Any]:
    """Lift the earlier `{type, data: {...}}` node layout into the flat one."""
    data = record.get("data") if isinstance(record.get("data"), Mapping) else {}
    kind = data.get("kind") or record.get("type")
    if kind == NODE_KIND_GROUP:
        type_id, type_version = data.get("groupTypeId"), data.get("groupTypeVersion")
    else:
        type_id, type_version = data.get("componentTypeId"), data.get("componentTypeVersion")

    attributes = data.get("attributes")
    if not isinstance(attributes, Mapping):
        attributes = {}
        if data.get("label") is not None:
            attributes["name"] = data["label"]
        if data.get("description") is not None:
            attributes["description"] = data["description"]

    return {
        "id": record.get("id"),
        "kind": kind,
        "typeId": type_id,
        "typeVersion": type_version,
        "title": data.get("title") or data.get("label") or "",
        "iconKey": data.get("iconKey") or data.get("icon") or "",
        "attributes": dict(attributes),
        "position": record.get("position") or {"x": 0, "y": 0},
        "parentNode": record.get("parentNode"),
        "width": record.get("width"),
        "height": record.get("height"),
        "metadata": data.get("metadata") or {},
    }


def _migrate_legacy_node(registry: RegistryState, record: Dict[str, Any]) -> Dict[str, Any]:
    if LEGACY_COMPONENT_TYPE_ID in registry.component_types_by_id:
        type_id = LEGACY_COMPONENT_TYPE_ID
    else:
        type_id = registry.component_types[0].type_id
    component_type = get_component_type(registry, type_id)
    attributes = record.get("attributes") if isinstance(record.get("attributes"), Mapping) else {}
    migrated_attributes = {
        "name": attributes.get("name") or record.get("title") or "Legacy Component",
        "description": attributes.get("description") or "",
    }
    metadata = _backfill_metadata(record.get("metadata"))
    return {
        **record,
        "kind": NODE_KIND_COMPONENT,
        "typeId": type_id,
        "typeVersion": component_type.version if component_type else None,
        "title": compute_component_title(component_type, migrated_attributes),
        "iconKey": record.get("iconKey") or "LG",
        "attributes": migrated_attributes,
        "style": {},
        "metadata": {k: v for k, v in metadata.items() if k in ("createdAt", "updatedAt", "version")},
    }


def normalize_node(registry: Optional[RegistryState], entity: Any) -> Node:
    """Backfill metadata and migrate untyped nodes; a normalised node comes back unchanged."""
    record = _as_record(entity)
    if isinstance(record.get("data"), Mapping):
        record = _flatten_node_data(record)

    if registry is None or not registry.ready:
        return Node.model_validate(record)

    kind = record.get("kind")
    if kind in (NODE_KIND_COMPONENT, NODE_KIND_GROUP) and record.get("typeId"):
        attributes = record.get("attributes")
        if not isinstance(attributes, Mapping):
            attributes = {"name": record.get("title") or "Group"} if kind == NODE_KIND_GROUP else {}
        return Node.model_validate(
            {**record, "attributes": dict(attributes), "metadata": _backfill_metadata(record.get("metadata"))}
        )
    return Node.model_validate(_migrate_legacy_node(registry, record))


def _flatten_edge_data(record: Dict[str, Any]) -> Dict[str, Any]:
    data = record.get("data") if isinstance(record.get("data"), Mapping) else {}
    attributes = {
        key: value
        for key, value in data.items()
        if key not in ("kind", "edgeTypeId", "edgeTypeVersion", "description", "metadata", "attributes")
    }
    if isinstance(data.get("attributes"), Mapping):
        attributes.update(data["attributes"])
    return {
        "id": record.get("id"),
        "source": record.get("source"),
        "target": record.get("target"),
        "kind": data.get("kind"),
        "edgeTypeId": data.get("edgeTypeId"),
        "edgeTypeVersion": data.get("edgeTypeVersion"),
        "label": record.get("label") or "",
        "description": data.get("description") or "",
        "attributes": attributes,
        "metadata": data.get("metadata") or {},
    }


def normalize_edge(entity: Any) -> Edge:
    record = _as_record(entity)
    if isinstance(record.get("data"), Mapping):
        record = _flatten_edge_data(record)
    return Edge.model_validate(
        {
            **record,
            "kind": record.get("kind") or EDGE_KIND_RELATIONSHIP,
            "edgeTypeId": record.get("edgeTypeId") or FALLBACK_EDGE_TYPE_ID,
            "label": record.get("label") or "",
            "description": record.get("description") or "",
            "metadata": _backfill_metadata(record.get("metadata")),
        }
    )


def normalize_diagram(registry: Optional[RegistryState], record: Mapping[str, Any]) -> Dict[str, Any]:
    nodes = record.get("nodes") if isinstance(record.get("nodes"), list) else []
    edges = record.get("edges") if isinstance(record.get("edges"), list) else []
    return {
        **record,
        "nodes": [normalize_node(registry, node) for node in nodes],
        "edges": [normalize_edge(edge) for edge in edges],
    }
