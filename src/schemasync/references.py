"""Reference detection per schema format.

Each detector scans one schema's parsed structure and returns the symbolic
references it makes to other schemas. Detection never fails: content that
cannot be parsed yields no references plus a warning, because a missing
reference must not block publishing.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable, Iterable
from typing import Any

from .logging import get_logger
from .models import SchemaDocument, SchemaFormat, SchemaReference, SchemaWithReferences

AVRO_PRIMITIVES = frozenset(
    {"null", "boolean", "int", "long", "float", "double", "bytes", "string"}
)
_AVRO_CONTAINER_TYPES = frozenset({"record", "array", "map"})
_AVRO_TYPE_POSITIONS = ("type", "items", "values", "fields")

_JSON_REF_PREFIXES = ("http://", "https://", "apicurio://")
_REGISTRY_SCHEME = "apicurio://"
_SCHEMAS_SEGMENT = "/schemas/"

_PROTO_IMPORT_RE = re.compile(r'^\s*import\s+(?:public\s+|weak\s+)?"([^"]+)"\s*;', re.MULTILINE)


def _unique(names: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for name in names:
        seen.setdefault(name, None)
    return list(seen)


# ---- Avro -------------------------------------------------------------


def _is_avro_type_candidate(name: str) -> bool:
    if name.lower() in AVRO_PRIMITIVES:
        return False
    return "." in name or (bool(name) and name[0].isupper())


def _avro_type_refs(value: Any, found: list[str]) -> None:
    """Collect named types from a value sitting in a type position."""
    if isinstance(value, str):
        if _is_avro_type_candidate(value):
            found.append(value)
    elif isinstance(value, list):  # union
        for member in value:
            _avro_type_refs(member, found)
    elif isinstance(value, dict):
        for key in _AVRO_TYPE_POSITIONS:
            if key in value:
                _avro_type_refs(value[key], found)


def _avro_walk(node: Any, found: list[str], in_fields: bool = False) -> None:
    if isinstance(node, list):
        for element in node:
            _avro_walk(element, found, in_fields)
        return
    if not isinstance(node, dict):
        return
    for key, value in node.items():
        if key == "type" and in_fields:
            _avro_type_refs(value, found)
        elif key == "fields":
            _avro_walk(value, found, in_fields=True)
        elif key == "type":
            # top-level type names only matter when they open a container
            if isinstance(value, str) and value in _AVRO_CONTAINER_TYPES:
                _avro_walk(value, found, in_fields=False)
        else:
            _avro_walk(value, found, in_fields)


def detect_avro_references(content: str) -> list[SchemaReference]:
    try:
        root = json.loads(content)
    except ValueError as exc:
        get_logger().warning(
            "Failed to parse Avro schema for reference detection", error=str(exc)
        )
        return []
    found: list[str] = []
    _avro_walk(root, found)
    return [
        SchemaReference(display_name=name, artifact_id=name.rsplit(".", 1)[-1])
        for name in _unique(found)
    ]


# ---- JSON Schema ------------------------------------------------------


def _is_registry_ref(ref: str) -> bool:
    return ref.startswith(_JSON_REF_PREFIXES) or _SCHEMAS_SEGMENT in ref


def parse_json_schema_ref(ref: str) -> SchemaReference:
    """Turn a ``$ref`` value into a reference with whatever coordinates it encodes."""
    if ref.startswith(_REGISTRY_SCHEME):
        parts = ref[len(_REGISTRY_SCHEME) :].split("/")
        if len(parts) == 4 and parts[2] == "versions":  # noqa: PLR2004
            return SchemaReference(
                display_name=ref, group_id=parts[0], artifact_id=parts[1], version=parts[3]
            )
        if len(parts) == 2 and all(parts):  # noqa: PLR2004
            return SchemaReference(display_name=ref, group_id=parts[0], artifact_id=parts[1])
        return SchemaReference(display_name=ref)
    if _SCHEMAS_SEGMENT in ref:
        tail = ref.split(_SCHEMAS_SEGMENT)[-1]
        artifact_id = tail.split("/")[0].split("#")[0]
        return SchemaReference(display_name=ref, artifact_id=artifact_id or None)
    return SchemaReference(display_name=ref)


def _json_collect_refs(node: Any, found: list[str]) -> None:
    if isinstance(node, list):
        for element in node:
            _json_collect_refs(element, found)
    elif isinstance(node, dict):
        for key, value in node.items():
            if key == "$ref":
                if isinstance(value, str) and _is_registry_ref(value):
                    found.append(value)
            else:
                _json_collect_refs(value, found)


def detect_json_schema_references(content: str) -> list[SchemaReference]:
    try:
        root = json.loads(content)
    except ValueError as exc:
        get_logger().warning(
            "Failed to parse JSON Schema for reference detection", error=str(exc)
        )
        return []
    found: list[str] = []
    _json_collect_refs(root, found)
    return [parse_json_schema_ref(ref) for ref in _unique(found)]


# ---- Protobuf ---------------------------------------------------------


def detect_protobuf_references(content: str) -> list[SchemaReference]:
    refs: list[SchemaReference] = []
    for import_path in _unique(m.group(1) for m in _PROTO_IMPORT_RE.finditer(content)):
        file_name = import_path.rsplit("/", 1)[-1]
        artifact_id = file_name[: -len(".proto")] if file_name.endswith(".proto") else file_name
        refs.append(SchemaReference(display_name=import_path, artifact_id=artifact_id))
    return refs


def _no_references(content: str) -> list[SchemaReference]:
    # OpenAPI / AsyncAPI documents embed their schemas
    return []


_DETECTORS: dict[SchemaFormat, Callable[[str], list[SchemaReference]]] = {
    SchemaFormat.AVRO: detect_avro_references,
    SchemaFormat.JSON: detect_json_schema_references,
    SchemaFormat.PROTOBUF: detect_protobuf_references,
    SchemaFormat.OPENAPI: _no_references,
    SchemaFormat.ASYNCAPI: _no_references,
}


def detect_references(schema: SchemaDocument) -> list[SchemaReference]:
    """Return the references ``schema`` makes to other schemas."""
    detector = _DETECTORS.get(schema.format, _no_references)
    refs = detector(schema.content)
    if refs:
        get_logger().debug(
            f"Detected {len(refs)} reference(s) in {schema.artifact_id}",
            artifact_id=schema.artifact_id,
            references=[r.display_name for r in refs],
        )
    return refs


def detect_schema_references(schema: SchemaDocument) -> SchemaWithReferences:
    return SchemaWithReferences(
        schema=schema,
        artifact_id=schema.artifact_id,
        references=tuple(detect_references(schema)),
    )


__all__ = [
    "AVRO_PRIMITIVES",
    "detect_avro_references",
    "detect_json_schema_references",
    "detect_protobuf_references",
    "detect_references",
    "detect_schema_references",
    "parse_json_schema_ref",
]
