"""In-memory stand-ins for the registry used by workflow tests."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from schemasync.discovery import compute_hash
from schemasync.errors import ArtifactNotFound, VersionNotFound
from schemasync.models import (
    LATEST,
    ArtifactMetadata,
    CompatibilityLevel,
    ContentReference,
    CreateArtifactResponse,
    SchemaDocument,
    SchemaFormat,
    VersionMetadata,
)


@dataclass
class StoredVersion:
    version: str
    content: str
    references: tuple[ContentReference, ...]


@dataclass
class StoredArtifact:
    artifact_type: str
    versions: list[StoredVersion] = field(default_factory=list)


class FakeRegistry:
    """Implements the registry calls the workflows use, backed by dicts."""

    def __init__(self) -> None:
        self.artifacts: dict[tuple[str, str], StoredArtifact] = {}
        self.calls: list[tuple[str, str]] = []
        self.incompatible: set[str] = set()
        self.compatibility_error: Exception | None = None
        self.errors: dict[tuple[str, str], Exception] = {}

    # -- helpers --------------------------------------------------------
    def seed(
        self,
        group_id: str,
        artifact_id: str,
        content: str,
        artifact_type: str = "JSON",
        references: Sequence[ContentReference] = (),
    ) -> None:
        stored = self.artifacts.setdefault((group_id, artifact_id), StoredArtifact(artifact_type))
        stored.versions.append(
            StoredVersion(str(len(stored.versions) + 1), content, tuple(references))
        )

    def _maybe_fail(self, op: str, artifact_id: str) -> None:
        self.calls.append((op, artifact_id))
        error = self.errors.get((op, artifact_id))
        if error is not None:
            raise error

    @property
    def mutations(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] in ("create_artifact", "create_version")]

    def latest(self, group_id: str, artifact_id: str) -> StoredVersion:
        return self.artifacts[(group_id, artifact_id)].versions[-1]

    # -- registry calls ---------------------------------------------------
    def get_artifact_metadata(self, group_id: str, artifact_id: str) -> ArtifactMetadata | None:
        self._maybe_fail("get_artifact_metadata", artifact_id)
        stored = self.artifacts.get((group_id, artifact_id))
        if stored is None:
            return None
        return ArtifactMetadata(group_id, artifact_id, stored.artifact_type)

    def get_latest_version(self, group_id: str, artifact_id: str) -> VersionMetadata:
        self._maybe_fail("get_latest_version", artifact_id)
        stored = self.artifacts.get((group_id, artifact_id))
        if stored is None or not stored.versions:
            raise ArtifactNotFound(group_id, artifact_id)
        return VersionMetadata(stored.versions[-1].version, group_id, artifact_id)

    def get_version_content(self, group_id: str, artifact_id: str, version: str = LATEST) -> str:
        self._maybe_fail("get_version_content", artifact_id)
        stored = self.artifacts.get((group_id, artifact_id))
        if stored is None:
            raise ArtifactNotFound(group_id, artifact_id)
        if version == LATEST:
            return stored.versions[-1].content
        for entry in stored.versions:
            if entry.version == version:
                return entry.content
        raise VersionNotFound(group_id, artifact_id, version)

    def search_artifacts(self, group_id: str) -> list[ArtifactMetadata]:
        self._maybe_fail("search_artifacts", group_id)
        return [
            ArtifactMetadata(group, artifact_id, stored.artifact_type)
            for (group, artifact_id), stored in sorted(self.artifacts.items())
            if group == group_id
        ]

    def create_artifact(
        self,
        group_id: str,
        artifact_id: str,
        fmt: SchemaFormat,
        content: str,
        references: Sequence[ContentReference] = (),
        content_type: str | None = None,
    ) -> CreateArtifactResponse:
        self._maybe_fail("create_artifact", artifact_id)
        self.seed(group_id, artifact_id, content, fmt.value, references)
        return CreateArtifactResponse(
            ArtifactMetadata(group_id, artifact_id, fmt.value),
            VersionMetadata("1", group_id, artifact_id),
        )

    def create_version(
        self,
        group_id: str,
        artifact_id: str,
        content: str,
        references: Sequence[ContentReference] = (),
        fmt: SchemaFormat | None = None,
        content_type: str | None = None,
    ) -> VersionMetadata:
        self._maybe_fail("create_version", artifact_id)
        stored = self.artifacts[(group_id, artifact_id)]
        self.seed(group_id, artifact_id, content, stored.artifact_type, references)
        return VersionMetadata(stored.versions[-1].version, group_id, artifact_id)

    def check_compatibility(
        self, group_id: str, artifact_id: str, content: str, policy: CompatibilityLevel
    ) -> bool:
        self._maybe_fail("check_compatibility", artifact_id)
        if self.compatibility_error is not None:
            raise self.compatibility_error
        return artifact_id not in self.incompatible


def make_schema(
    artifact_id: str,
    content: str,
    fmt: SchemaFormat = SchemaFormat.JSON,
    extension: str = "json",
) -> SchemaDocument:
    return SchemaDocument(
        artifact_id=artifact_id,
        content=content,
        content_hash=compute_hash(content),
        format=fmt,
        source_extension=extension,
    )
