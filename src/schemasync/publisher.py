"""Publish a batch of schemas to the registry in dependency order.

The batch is ordered before any registry call, so a schema that references
another schema of the same batch is always published after it and can point
at the exact version that run assigned. Each schema ends up with one
``PublishOutcome``:

- ``created``: the artifact did not exist; its first version was created.
- ``versioned``: content or references changed and the registry accepted a
  new version.
- ``unchanged``: content identical to the latest version and no references.
- ``failed``: a registry or validation error, or an incompatible change.

Failures are recorded and the batch moves on. ``AuthenticationError`` is the
exception: without a token no later call can succeed, so it aborts the run.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Protocol, TypedDict

from .diffing import compute_diff, needs_new_version, summarize_diff
from .errors import (
    AuthenticationError,
    HttpError,
    IncompatibleSchema,
    NetworkError,
    SchemaSyncError,
    classify_error,
    redact,
)
from .graph import order_by_dependencies
from .logging import StructuredLogger, get_logger
from .models import (
    LATEST,
    ArtifactMetadata,
    CompatibilityLevel,
    ContentReference,
    CreateArtifactResponse,
    PublishOutcome,
    PublishState,
    PublishStatus,
    PublishSummary,
    SchemaDocument,
    SchemaFormat,
    SchemaReference,
    SchemaWithReferences,
    VersionMetadata,
)
from .references import detect_schema_references
from .registry_client import content_type_for

FIRST_VERSION = "1"


class RegistryOperations(Protocol):
    """Registry calls the publish workflow depends on."""

    def get_artifact_metadata(
        self, group_id: str, artifact_id: str
    ) -> ArtifactMetadata | None: ...  # pragma: no cover

    def get_latest_version(self, group_id: str, artifact_id: str) -> VersionMetadata: ...  # pragma: no cover

    def get_version_content(
        self, group_id: str, artifact_id: str, version: str = LATEST
    ) -> str: ...  # pragma: no cover

    def create_artifact(
        self,
        group_id: str,
        artifact_id: str,
        fmt: SchemaFormat,
        content: str,
        references: Sequence[ContentReference] = (),
        content_type: str | None = None,
    ) -> CreateArtifactResponse: ...  # pragma: no cover

    def create_version(
        self,
        group_id: str,
        artifact_id: str,
        content: str,
        references: Sequence[ContentReference] = (),
        fmt: SchemaFormat | None = None,
        content_type: str | None = None,
    ) -> VersionMetadata: ...  # pragma: no cover

    def check_compatibility(
        self, group_id: str, artifact_id: str, content: str, policy: CompatibilityLevel
    ) -> bool: ...  # pragma: no cover


class PlanEntry(TypedDict, total=False):
    artifact_id: str
    format: str
    action: str  # create|version|unchanged|error
    current_version: str | None
    references: list[dict[str, str]]
    changes: str | None
    diff: list[str]
    reason: str | None


def resolve_references(
    references: Iterable[SchemaReference],
    group_id: str,
    batch_ids: Iterable[str],
    published_versions: Mapping[str, str],
    logger: StructuredLogger | None = None,
) -> list[ContentReference]:
    """Turn detected references into registry coordinates.

    A reference to a member of the batch points at the version recorded for
    it earlier in this run. Anything else is an external artifact, addressed
    by its own coordinates with the active group and ``latest`` as defaults.
    """
    logger = logger or get_logger()
    members = set(batch_ids)
    resolved: list[ContentReference] = []
    for ref in references:
        artifact_id = ref.artifact_id
        if not artifact_id:
            logger.warning(
                f"Skipping reference without an artifact id: {ref.display_name}",
                reference=ref.display_name,
            )
            continue
        if artifact_id in members:
            version = published_versions.get(artifact_id)
            if version is None:
                logger.warning(
                    f"No version recorded for batch member {artifact_id}; "
                    "falling back to latest. The publish order is broken.",
                    artifact_id=artifact_id,
                )
                version = LATEST
            ref_group = group_id
        else:
            ref_group = ref.group_id or group_id
            version = ref.version or LATEST
        resolved.append(
            ContentReference(
                group_id=ref_group,
                artifact_id=artifact_id,
                version=version,
                name=ref.display_name,
            )
        )
    return resolved


def _compatibility_allows(
    client: RegistryOperations,
    schema: SchemaDocument,
    group_id: str,
    policy: CompatibilityLevel,
    logger: StructuredLogger,
) -> bool:
    try:
        return client.check_compatibility(group_id, schema.artifact_id, schema.content, policy)
    except (HttpError, NetworkError) as exc:
        # Degraded mode: the check guards publishing only when it can run.
        reason = "timed out" if isinstance(exc, NetworkError) and exc.timed_out else "failed"
        logger.warning(
            f"Compatibility check for {schema.artifact_id} {reason}; "
            "creating the version without it",
            artifact_id=schema.artifact_id,
            group_id=group_id,
            error=redact(str(exc)),
        )
        return True


def _publish(
    client: RegistryOperations,
    schema: SchemaDocument,
    references: list[ContentReference],
    group_id: str,
    policy: CompatibilityLevel,
    logger: StructuredLogger,
) -> PublishOutcome:
    artifact_id = schema.artifact_id
    content_type = content_type_for(schema.format, schema.source_extension)
    refs = tuple(references)

    metadata = client.get_artifact_metadata(group_id, artifact_id)
    if metadata is None:
        created = client.create_artifact(
            group_id, artifact_id, schema.format, schema.content, references, content_type
        )
        return PublishOutcome(
            artifact_id,
            PublishStatus.CREATED,
            version=created.version.version or FIRST_VERSION,
            references=refs,
        )

    latest = client.get_latest_version(group_id, artifact_id)
    existing = client.get_version_content(group_id, artifact_id, latest.version)
    if not needs_new_version(schema, existing, references):
        return PublishOutcome(artifact_id, PublishStatus.UNCHANGED, version=latest.version)

    if not _compatibility_allows(client, schema, group_id, policy, logger):
        raise IncompatibleSchema(
            group_id,
            artifact_id,
            f"registry rejected the change under {policy.value} compatibility",
        )
    new_version = client.create_version(
        group_id,
        artifact_id,
        schema.content,
        references,
        fmt=schema.format,
        content_type=content_type,
    )
    return PublishOutcome(
        artifact_id, PublishStatus.VERSIONED, version=new_version.version, references=refs
    )


def publish_schema(
    client: RegistryOperations,
    item: SchemaWithReferences,
    state: PublishState,
    group_id: str,
    policy: CompatibilityLevel,
    batch_ids: Iterable[str],
    logger: StructuredLogger | None = None,
) -> PublishOutcome:
    """Publish one schema of an ordered batch and describe what happened.

    Registry and validation failures come back as a ``FAILED`` outcome;
    ``AuthenticationError`` propagates.
    """
    logger = logger or get_logger()
    references = resolve_references(
        item.references, group_id, batch_ids, state.published_versions, logger
    )
    for ref in references:
        logger.debug(
            f"  -> {ref.group_id}:{ref.artifact_id}:{ref.version}",
            artifact_id=item.artifact_id,
        )
    try:
        return _publish(client, item.schema, references, group_id, policy, logger)
    except AuthenticationError:
        raise
    except SchemaSyncError as exc:
        info = classify_error(exc)
        logger.log_error(
            f"Failed to publish {item.artifact_id}",
            error=info.message,
            artifact_id=item.artifact_id,
            category=info.category,
        )
        return PublishOutcome(
            item.artifact_id, PublishStatus.FAILED, references=tuple(references), error=exc
        )


class Publisher:
    """Publishes batches of schemas into one registry group."""

    def __init__(
        self,
        client: RegistryOperations,
        group_id: str,
        policy: CompatibilityLevel = CompatibilityLevel.BACKWARD,
        *,
        logger: StructuredLogger | None = None,
    ):
        self.client = client
        self.group_id = group_id
        self.policy = policy
        self.logger = logger or get_logger()

    def prepare(self, schemas: Iterable[SchemaDocument]) -> list[SchemaWithReferences]:
        """Detect references and order the batch; raises ``CircularDependency``."""
        detected = [detect_schema_references(schema) for schema in schemas]
        ordered = order_by_dependencies(detected)
        if ordered:
            self.logger.info(
                "Publish order: " + " -> ".join(item.artifact_id for item in ordered),
                group_id=self.group_id,
            )
        return ordered

    def step(
        self, state: PublishState, item: SchemaWithReferences, batch_ids: frozenset[str]
    ) -> PublishState:
        outcome = publish_schema(
            self.client, item, state, self.group_id, self.policy, batch_ids, self.logger
        )
        extra: dict[str, Any] = {"group_id": self.group_id}
        if outcome.error is not None:
            extra["error"] = redact(str(outcome.error))
        self.logger.log_schema_action(
            outcome.status.value, outcome.artifact_id, outcome.version, **extra
        )
        return state.record(outcome)

    def publish_batch(self, schemas: Iterable[SchemaDocument]) -> PublishSummary:
        ordered = self.prepare(schemas)
        batch_ids = frozenset(item.artifact_id for item in ordered)
        state = PublishState()
        with self.logger.timed_operation(
            "publish_batch", group_id=self.group_id, schema_count=len(ordered)
        ):
            for item in ordered:
                state = self.step(state, item, batch_ids)
        self.logger.info(
            f"Published: {state.published}, Unchanged: {state.unchanged}, Failed: {state.failed}",
            group_id=self.group_id,
        )
        return PublishSummary(
            group_id=self.group_id,
            compatibility=self.policy,
            order=[item.artifact_id for item in ordered],
            state=state,
        )

    # ---- dry run ------------------------------------------------------------
    def _plan_entry(
        self,
        item: SchemaWithReferences,
        batch_ids: frozenset[str],
        planned_versions: dict[str, str],
    ) -> PlanEntry:
        schema = item.schema
        references = resolve_references(
            item.references, self.group_id, batch_ids, planned_versions, self.logger
        )
        entry = PlanEntry(
            artifact_id=item.artifact_id,
            format=schema.format.value,
            current_version=None,
            references=[ref.to_payload() for ref in references],
            changes=None,
            reason=None,
        )
        metadata = self.client.get_artifact_metadata(self.group_id, item.artifact_id)
        if metadata is None:
            entry["action"] = "create"
            entry["reason"] = "artifact does not exist"
            planned_versions[item.artifact_id] = FIRST_VERSION
            return entry
        latest = self.client.get_latest_version(self.group_id, item.artifact_id)
        existing = self.client.get_version_content(self.group_id, item.artifact_id, latest.version)
        entry["current_version"] = latest.version
        if not needs_new_version(schema, existing, references):
            entry["action"] = "unchanged"
            planned_versions[item.artifact_id] = latest.version
            return entry
        diff = compute_diff(schema, existing, references)
        entry["action"] = "version"
        entry["changes"] = summarize_diff(diff)
        entry["diff"] = diff.get("content_diff", [])
        # the new version number is only known once the registry assigns it
        planned_versions[item.artifact_id] = LATEST
        return entry

    def plan_batch(self, schemas: Iterable[SchemaDocument]) -> list[PlanEntry]:
        """Describe what ``publish_batch`` would do without changing the registry."""
        ordered = self.prepare(schemas)
        batch_ids = frozenset(item.artifact_id for item in ordered)
        planned_versions: dict[str, str] = {}
        plan: list[PlanEntry] = []
        for item in ordered:
            try:
                entry = self._plan_entry(item, batch_ids, planned_versions)
            except AuthenticationError:
                raise
            except SchemaSyncError as exc:
                entry = PlanEntry(
                    artifact_id=item.artifact_id,
                    format=item.schema.format.value,
                    action="error",
                    current_version=None,
                    references=[],
                    changes=None,
                    reason=classify_error(exc).message,
                )
            self.logger.log_schema_action(
                entry["action"], item.artifact_id, entry.get("current_version"), dry_run=True
            )
            plan.append(entry)
        return plan


def publish_batch(
    client: RegistryOperations,
    schemas: Iterable[SchemaDocument],
    group_id: str,
    policy: CompatibilityLevel = CompatibilityLevel.BACKWARD,
) -> PublishSummary:
    """Publish ``schemas`` into ``group_id``; see ``Publisher.publish_batch``."""
    return Publisher(client, group_id, policy).publish_batch(schemas)


__all__ = [
    "FIRST_VERSION",
    "PlanEntry",
    "Publisher",
    "RegistryOperations",
    "publish_batch",
    "publish_schema",
    "resolve_references",
]
