"""JSON Schemas for SchemaSync's own documents.

``config`` validates ``schemasync.config.yaml``; ``summary`` and ``plan``
describe the JSON emitted by ``publish --summary-json`` and ``plan --json``.
Output schemas are shallow on purpose: nested objects stay open so fields
can be added without a version bump.
"""

from __future__ import annotations

from typing import Any

SCHEMA_KEY = "$schema"
SCHEMA_URL = "http://json-schema.org/draft-07/schema#"
SUMMARY_SCHEMA_VERSION = "1"

_COMPATIBILITY_LEVELS = [
    "BACKWARD",
    "BACKWARD_TRANSITIVE",
    "FORWARD",
    "FORWARD_TRANSITIVE",
    "FULL",
    "FULL_TRANSITIVE",
    "NONE",
]

_STRING_OR_NULL = {"type": ["string", "null"]}

CONFIG_SCHEMA: dict[str, Any] = {
    SCHEMA_KEY: SCHEMA_URL,
    "title": "SchemaSyncConfig",
    "type": "object",
    "required": ["registry"],
    "properties": {
        "version": {"type": "integer", "minimum": 1},
        "registry": {
            "type": "object",
            "required": ["url", "group_id"],
            "properties": {
                "url": {"type": "string"},
                "group_id": {"type": "string"},
                "compatibility": {"type": "string", "enum": _COMPATIBILITY_LEVELS},
                "timeout": {"type": "number", "exclusiveMinimum": 0},
            },
            "additionalProperties": False,
        },
        "schemas": {
            "type": "object",
            "properties": {
                "paths": {"type": "array", "items": {"type": "string"}},
            },
            "additionalProperties": False,
        },
        "pull": {
            "type": "object",
            "properties": {
                "output_dir": {"type": "string"},
                "transitive": {"type": "boolean"},
                "dependencies": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "required": ["group_id", "artifact_id"],
                        "properties": {
                            "group_id": {"type": "string"},
                            "artifact_id": {"type": "string"},
                            "version": {"type": ["string", "integer"]},
                        },
                        "additionalProperties": False,
                    },
                },
            },
            "additionalProperties": False,
        },
        "auth": {
            "type": "object",
            "properties": {
                "api_key": _STRING_OR_NULL,
                "oauth": {
                    "type": "object",
                    "properties": {
                        "url": _STRING_OR_NULL,
                        "realm": _STRING_OR_NULL,
                        "client_id": _STRING_OR_NULL,
                        "client_secret": _STRING_OR_NULL,
                        "token_endpoint": _STRING_OR_NULL,
                        "refresh_buffer": {"type": "number", "minimum": 0},
                    },
                    "additionalProperties": False,
                },
            },
            "additionalProperties": False,
        },
        "logging": {
            "type": "object",
            "properties": {
                "json_enabled": {"type": "boolean"},
                "level": {"type": "string"},
            },
        },
        "retry": {
            "type": "object",
            "properties": {
                "attempts": {"type": "integer", "minimum": 1},
                "base_sleep": {"type": "number", "minimum": 0},
            },
        },
        "environment": {
            "type": "object",
            "properties": {
                "load_dotenv": {"type": "boolean"},
                "dotenv_path": _STRING_OR_NULL,
            },
        },
    },
}


def get_schemas() -> dict[str, Any]:
    """Return a mapping of schema name -> JSON Schema dictionary.

    Keys:
        config:  Schema for the YAML configuration file.
        summary: Schema for the publish summary document.
        plan:    Schema for the dry-run plan document.
    """
    summary_schema: dict[str, Any] = {
        SCHEMA_KEY: SCHEMA_URL,
        "$comment": f"SchemaSync publish summary schema v{SUMMARY_SCHEMA_VERSION}",
        "title": "PublishSummary",
        "type": "object",
        "required": ["schemaVersion", "generated_at", "group_id", "order", "totals", "outcomes"],
        "properties": {
            "schemaVersion": {"type": "string", "const": SUMMARY_SCHEMA_VERSION},
            "generated_at": {"type": "string"},
            "group_id": {"type": "string"},
            "compatibility": {"type": "string", "enum": _COMPATIBILITY_LEVELS},
            "order": {"type": "array", "items": {"type": "string"}},
            "totals": {
                "type": "object",
                "required": ["schemas", "created", "versioned", "unchanged", "failed"],
                "properties": {
                    key: {"type": "integer", "minimum": 0}
                    for key in ("schemas", "created", "versioned", "unchanged", "failed")
                },
            },
            "published_versions": {
                "type": "object",
                "additionalProperties": {"type": "string"},
            },
            "outcomes": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["artifact_id", "status"],
                    "properties": {
                        "artifact_id": {"type": "string"},
                        "status": {
                            "type": "string",
                            "enum": ["created", "versioned", "unchanged", "failed"],
                        },
                        "version": _STRING_OR_NULL,
                        "references": {"type": "array", "items": {"type": "object"}},
                        "error": {"type": "string"},
                        "error_type": {"type": "string"},
                    },
                },
            },
            "last_error": {
                "type": "object",
                "description": "Present only when the run aborted",
                "properties": {
                    "category": {"type": "string"},
                    "transient": {"type": "boolean"},
                    "original_type": {"type": "string"},
                    "message": {"type": "string"},
                },
            },
        },
    }

    plan_schema: dict[str, Any] = {
        SCHEMA_KEY: SCHEMA_URL,
        "$comment": f"SchemaSync plan schema v{SUMMARY_SCHEMA_VERSION}",
        "title": "PublishPlan",
        "type": "object",
        "required": ["group_id", "plan"],
        "properties": {
            "group_id": {"type": "string"},
            "plan": {
                "type": "array",
                "items": {
                    "type": "object",
                    "required": ["artifact_id", "action"],
                    "properties": {
                        "artifact_id": {"type": "string"},
                        "action": {
                            "type": "string",
                            "enum": ["create", "version", "unchanged", "error"],
                        },
                        "current_version": _STRING_OR_NULL,
                        "changes": _STRING_OR_NULL,
                        "reason": _STRING_OR_NULL,
                    },
                },
            },
        },
    }

    return {"config": CONFIG_SCHEMA, "summary": summary_schema, "plan": plan_schema}


__all__ = ["CONFIG_SCHEMA", "SUMMARY_SCHEMA_VERSION", "get_schemas"]
