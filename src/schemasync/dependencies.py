"""Resolve and download schemas that a project depends on.

A pull request names registry coordinates (``RegistryDependency``). With
``transitive`` enabled the references inside each fetched schema are
followed as well, so a consumer gets everything needed to compile it.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Protocol

from .discovery import save_schema
from .errors import AuthenticationError, SchemaSyncError, classify_error
from .logging import get_logger
from .models import LATEST, ArtifactMetadata, RegistryDependency, SchemaDocument, SchemaFormat
from .references import detect_references

_EXTENSIONS: dict[SchemaFormat, str] = {
    SchemaFormat.AVRO: "avsc",
    SchemaFormat.JSON: "json",
    SchemaFormat.PROTOBUF: "proto",
    SchemaFormat.OPENAPI: "yaml",
    SchemaFormat.ASYNCAPI: "yaml",
}
DEFAULT_EXTENSION = "json"


class RegistryReader(Protocol):
    def get_artifact_metadata(
        self, group_id: str, artifact_id: str
    ) -> ArtifactMetadata | None: ...  # pragma: no cover

    def get_version_content(
        self, group_id: str, artifact_id: str, version: str = LATEST
    ) -> str: ...  # pragma: no cover


def extension_for(fmt: SchemaFormat | None) -> str:
    if fmt is None:
        return DEFAULT_EXTENSION
    return _EXTENSIONS.get(fmt, DEFAULT_EXTENSION)


def _artifact_format(client: RegistryReader, group_id: str, artifact_id: str) -> SchemaFormat | None:
    metadata = client.get_artifact_metadata(group_id, artifact_id)
    return SchemaFormat.from_string(metadata.artifact_type) if metadata else None


def _direct_dependencies(client: RegistryReader, dep: RegistryDependency) -> list[RegistryDependency]:
    content = client.get_version_content(dep.group_id, dep.artifact_id, dep.version)
    fmt = _artifact_format(client, dep.group_id, dep.artifact_id)
    if fmt is None:
        return []
    fetched = SchemaDocument(
        artifact_id=dep.artifact_id,
        content=content,
        content_hash="",
        format=fmt,
        source_extension=extension_for(fmt),
    )
    children: list[RegistryDependency] = []
    for ref in detect_references(fetched):
        if not ref.artifact_id:
            continue
        children.append(
            RegistryDependency(
                group_id=ref.group_id or dep.group_id,
                artifact_id=ref.artifact_id,
                version=ref.version or LATEST,
            )
        )
    return children


def resolve_transitive_dependencies(
    client: RegistryReader, seed: RegistryDependency
) -> list[RegistryDependency]:
    """Every schema ``seed`` references, directly or indirectly.

    Depth-first, first-seen order, without duplicates and without the seed
    artifact itself. A failure on the seed raises; a failure further down is
    logged and that branch is skipped.
    """
    logger = get_logger()
    visited: set[str] = set()
    found: dict[str, RegistryDependency] = {}

    def _walk(dep: RegistryDependency) -> None:
        if dep.coordinate in visited:
            return
        visited.add(dep.coordinate)
        logger.debug(f"Fetching dependencies for {dep.coordinate}")
        try:
            children = _direct_dependencies(client, dep)
        except AuthenticationError:
            raise
        except SchemaSyncError as exc:
            if dep is seed:
                raise
            logger.warning(
                f"Failed to fetch transitive dependencies for {dep.artifact_id}: {exc}",
                artifact_id=dep.artifact_id,
            )
            return
        for child in children:
            if (child.group_id, child.artifact_id) == (seed.group_id, seed.artifact_id):
                continue
            found.setdefault(child.coordinate, child)
            _walk(child)

    _walk(seed)
    return list(found.values())


@dataclass
class PullSummary:
    saved: list[Path] = field(default_factory=list)
    failed: list[tuple[RegistryDependency, str]] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed

    def to_dict(self) -> dict[str, Any]:
        return {
            "saved": [str(p) for p in self.saved],
            "failed": [{"dependency": dep.coordinate, "error": err} for dep, err in self.failed],
        }


def _expand(
    client: RegistryReader, dependencies: Iterable[RegistryDependency], transitive: bool
) -> list[RegistryDependency]:
    ordered: dict[str, RegistryDependency] = {}
    for dep in dependencies:
        ordered.setdefault(dep.coordinate, dep)
        if not transitive:
            continue
        try:
            for child in resolve_transitive_dependencies(client, dep):
                ordered.setdefault(child.coordinate, child)
        except AuthenticationError:
            raise
        except SchemaSyncError as exc:
            # the pull of ``dep`` itself reports this failure
            get_logger().warning(
                f"Could not resolve dependencies of {dep.coordinate}: {exc}",
                artifact_id=dep.artifact_id,
            )
    return list(ordered.values())


def pull_dependencies(
    client: RegistryReader,
    dependencies: Iterable[RegistryDependency],
    output_dir: str | Path,
    transitive: bool = False,
) -> PullSummary:
    logger = get_logger()
    out = Path(output_dir)
    targets = _expand(client, dependencies, transitive)
    summary = PullSummary()
    if not targets:
        logger.info("No schema dependencies configured; nothing to pull")
        return summary

    logger.info(f"Pulling {len(targets)} schema dependencies from the registry")
    for dep in targets:
        try:
            content = client.get_version_content(dep.group_id, dep.artifact_id, dep.version)
            fmt = _artifact_format(client, dep.group_id, dep.artifact_id)
            path = save_schema(out, dep, content, extension_for(fmt))
        except AuthenticationError:
            raise
        except (SchemaSyncError, OSError) as exc:
            message = classify_error(exc).message
            logger.log_error(
                f"Failed to pull schema {dep.coordinate}", error=message, artifact_id=dep.artifact_id
            )
            summary.failed.append((dep, message))
            continue
        summary.saved.append(path)

    if summary.failed:
        logger.warning(f"Failed to pull {len(summary.failed)} schema(s)")
    logger.info(f"Successfully pulled {len(summary.saved)} schema(s) to {out}")
    return summary


__all__ = [
    "PullSummary",
    "extension_for",
    "pull_dependencies",
    "resolve_transitive_dependencies",
]
