from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any

LATEST = "latest"


class SchemaFormat(str, Enum):
    """Closed set of schema formats understood by the registry."""

    AVRO = "AVRO"
    JSON = "JSON"
    PROTOBUF = "PROTOBUF"
    OPENAPI = "OPENAPI"
    ASYNCAPI = "ASYNCAPI"

    @classmethod
    def from_extension(cls, ext: str) -> SchemaFormat | None:
        # yaml may also be AsyncAPI; discovery refines that by inspecting content
        return _EXTENSION_FORMATS.get(ext.lower().lstrip("."))

    @classmethod
    def from_string(cls, value: str | None) -> SchemaFormat | None:
        if not value:
            return None
        try:
            return cls(value.upper())
        except ValueError:
            return None


_EXTENSION_FORMATS: dict[str, SchemaFormat] = {
    "avsc": SchemaFormat.AVRO,
    "avro": SchemaFormat.AVRO,
    "proto": SchemaFormat.PROTOBUF,
    "json": SchemaFormat.JSON,
    "yaml": SchemaFormat.OPENAPI,
    "yml": SchemaFormat.OPENAPI,
}

SUPPORTED_EXTENSIONS = frozenset(_EXTENSION_FORMATS)


class CompatibilityLevel(str, Enum):
    BACKWARD = "BACKWARD"
    BACKWARD_TRANSITIVE = "BACKWARD_TRANSITIVE"
    FORWARD = "FORWARD"
    FORWARD_TRANSITIVE = "FORWARD_TRANSITIVE"
    FULL = "FULL"
    FULL_TRANSITIVE = "FULL_TRANSITIVE"
    NONE = "NONE"

    @classmethod
    def from_string(cls, value: str | None) -> CompatibilityLevel | None:
        if not value:
            return None
        try:
            return cls(value.strip().upper())
        except ValueError:
            return None


@dataclass(frozen=True)
class SchemaDocument:
    """A schema file loaded from disk (or fetched from the registry)."""

    artifact_id: str
    content: str
    content_hash: str
    format: SchemaFormat
    source_extension: str
    path: Path | None = None


@dataclass(frozen=True)
class SchemaReference:
    display_name: str
    group_id: str | None = None
    artifact_id: str | None = None
    version: str | None = None


@dataclass(frozen=True)
class SchemaWithReferences:
    schema: SchemaDocument
    artifact_id: str
    references: tuple[SchemaReference, ...] = ()


@dataclass(frozen=True)
class ContentReference:
    """Registry-facing, fully resolved reference."""

    group_id: str
    artifact_id: str
    version: str
    name: str

    def to_payload(self) -> dict[str, str]:
        return {
            "groupId": self.group_id,
            "artifactId": self.artifact_id,
            "version": self.version,
            "name": self.name,
        }


@dataclass(frozen=True)
class RegistryDependency:
    group_id: str
    artifact_id: str
    version: str = LATEST

    @property
    def coordinate(self) -> str:
        return f"{self.group_id}:{self.artifact_id}:{self.version}"

    def __str__(self) -> str:
        return self.coordinate


def _opt_str(value: Any) -> str | None:
    return str(value) if value is not None else None


@dataclass
class ArtifactMetadata:
    group_id: str
    artifact_id: str
    artifact_type: str
    name: str | None = None
    description: str | None = None
    owner: str | None = None
    created_on: str | None = None
    modified_on: str | None = None
    labels: dict[str, str] | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> ArtifactMetadata:
        labels = data.get("labels")
        return cls(
            group_id=str(data.get("groupId") or "default"),
            artifact_id=str(data.get("artifactId") or ""),
            artifact_type=str(data.get("artifactType") or ""),
            name=_opt_str(data.get("name")),
            description=_opt_str(data.get("description")),
            owner=_opt_str(data.get("owner")),
            created_on=_opt_str(data.get("createdOn")),
            modified_on=_opt_str(data.get("modifiedOn")),
            labels=labels if isinstance(labels, dict) else None,
        )


@dataclass
class VersionMetadata:
    version: str
    group_id: str
    artifact_id: str
    artifact_type: str | None = None
    content_id: int | None = None
    global_id: int | None = None
    state: str | None = None
    created_on: str | None = None

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> VersionMetadata:
        def _int(value: Any) -> int | None:
            return value if isinstance(value, int) else None

        return cls(
            version=str(data.get("version") or ""),
            group_id=str(data.get("groupId") or "default"),
            artifact_id=str(data.get("artifactId") or ""),
            artifact_type=_opt_str(data.get("artifactType")),
            content_id=_int(data.get("contentId")),
            global_id=_int(data.get("globalId")),
            state=_opt_str(data.get("state")),
            created_on=_opt_str(data.get("createdOn")),
        )


@dataclass
class CreateArtifactResponse:
    artifact: ArtifactMetadata
    version: VersionMetadata

    @classmethod
    def from_payload(cls, data: dict[str, Any]) -> CreateArtifactResponse:
        artifact = data.get("artifact")
        version = data.get("version")
        return cls(
            artifact=ArtifactMetadata.from_payload(artifact if isinstance(artifact, dict) else {}),
            version=VersionMetadata.from_payload(version if isinstance(version, dict) else {}),
        )


@dataclass(frozen=True)
class TokenState:
    access_token: str
    expires_at: float  # epoch seconds

    def needs_refresh(self, now: float, buffer: float) -> bool:
        return now >= self.expires_at - buffer


class PublishStatus(str, Enum):
    CREATED = "created"
    VERSIONED = "versioned"
    UNCHANGED = "unchanged"
    FAILED = "failed"


@dataclass(frozen=True)
class PublishOutcome:
    artifact_id: str
    status: PublishStatus
    version: str | None = None
    references: tuple[ContentReference, ...] = ()
    error: Exception | None = None

    @property
    def message(self) -> str:
        if self.error is not None:
            return str(self.error)
        if self.status is PublishStatus.UNCHANGED:
            return f"unchanged at version {self.version}"
        return f"{self.status.value} version {self.version}"

    def to_dict(self) -> dict[str, Any]:
        entry: dict[str, Any] = {
            "artifact_id": self.artifact_id,
            "status": self.status.value,
            "version": self.version,
            "references": [ref.to_payload() for ref in self.references],
        }
        if self.error is not None:
            entry["error"] = str(self.error)
            entry["error_type"] = type(self.error).__name__
        return entry


@dataclass(frozen=True)
class PublishState:
    """Accumulator threaded through the publish fold.

    ``record`` returns a new state; instances are never mutated.
    """

    published_versions: dict[str, str] = field(default_factory=dict)
    created: int = 0
    versioned: int = 0
    unchanged: int = 0
    failed: int = 0
    outcomes: tuple[PublishOutcome, ...] = ()

    def record(self, outcome: PublishOutcome) -> PublishState:
        versions = dict(self.published_versions)
        if outcome.status is not PublishStatus.FAILED and outcome.version:
            versions[outcome.artifact_id] = outcome.version
        return replace(
            self,
            published_versions=versions,
            created=self.created + (outcome.status is PublishStatus.CREATED),
            versioned=self.versioned + (outcome.status is PublishStatus.VERSIONED),
            unchanged=self.unchanged + (outcome.status is PublishStatus.UNCHANGED),
            failed=self.failed + (outcome.status is PublishStatus.FAILED),
            outcomes=(*self.outcomes, outcome),
        )

    @property
    def published(self) -> int:
        return self.created + self.versioned


@dataclass
class PublishSummary:
    group_id: str
    compatibility: CompatibilityLevel
    order: list[str]
    state: PublishState

    @property
    def outcomes(self) -> tuple[PublishOutcome, ...]:
        return self.state.outcomes

    @property
    def success(self) -> bool:
        return self.state.failed == 0

    def totals(self) -> dict[str, int]:
        return {
            "schemas": len(self.order),
            "created": self.state.created,
            "versioned": self.state.versioned,
            "unchanged": self.state.unchanged,
            "failed": self.state.failed,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_id": self.group_id,
            "compatibility": self.compatibility.value,
            "order": list(self.order),
            "totals": self.totals(),
            "published_versions": dict(self.state.published_versions),
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }


__all__ = [
    "LATEST",
    "SUPPORTED_EXTENSIONS",
    "ArtifactMetadata",
    "CompatibilityLevel",
    "ContentReference",
    "CreateArtifactResponse",
    "PublishOutcome",
    "PublishState",
    "PublishStatus",
    "PublishSummary",
    "RegistryDependency",
    "SchemaDocument",
    "SchemaFormat",
    "SchemaReference",
    "SchemaWithReferences",
    "TokenState",
    "VersionMetadata",
]
