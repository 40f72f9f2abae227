from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import requests

from .config import SchemaSyncConfig, validate_settings
from .dependencies import PullSummary, pull_dependencies, resolve_transitive_dependencies
from .discovery import discover_schemas
from .env_auth import EnvAuthConfig, create_env_auth_manager
from .graph import dependency_map, order_by_dependencies
from .logging import configure_logging
from .models import (
    ArtifactMetadata,
    PublishSummary,
    RegistryDependency,
    SchemaDocument,
    SchemaWithReferences,
)
from .publisher import PlanEntry, Publisher
from .references import detect_schema_references
from .registry_client import RegistryClient
from .retry import RetryConfig
from .token_manager import TokenProvider, create_token_provider


def build_token_provider(
    cfg: SchemaSyncConfig, session: requests.Session | None = None
) -> TokenProvider | None:
    """OAuth when fully configured, else the API key, else unauthenticated."""
    return create_token_provider(
        cfg.oauth,
        cfg.api_key,
        refresh_buffer=cfg.oauth_refresh_buffer,
        session=session,
    )


def build_retry_config(cfg: SchemaSyncConfig) -> RetryConfig:
    retry = RetryConfig()
    if cfg.retry_attempts is not None:
        retry.attempts = cfg.retry_attempts
    if cfg.retry_base_sleep is not None:
        retry.base_sleep = cfg.retry_base_sleep
    return retry


class SchemaSync:
    """Entry point tying configuration, registry access and workflows together."""

    def __init__(
        self,
        cfg: SchemaSyncConfig,
        *,
        client: Any | None = None,
        session: requests.Session | None = None,
    ):
        self._logger = configure_logging(
            json_logging=cfg.logging_json_enabled, level=cfg.logging_level
        )
        self._env_auth_manager = create_env_auth_manager(
            EnvAuthConfig(
                load_dotenv=cfg.env_auth_load_dotenv,
                dotenv_path=cfg.env_auth_dotenv_path,
            )
        )
        self.cfg = self._env_auth_manager.apply(cfg)
        recommendations = self._env_auth_manager.get_authentication_recommendations(self.cfg)
        # Suppress recommendation noise when quiet mode requested
        if recommendations and os.environ.get("SCHEMASYNC_QUIET") != "1":
            self._logger.info("Authentication recommendations: " + "; ".join(recommendations))
        self._session = session
        self._client = client

    @classmethod
    def from_config_path(cls, path: str | Path, **kwargs: Any) -> SchemaSync:
        from .config import load_config  # noqa: PLC0415

        return cls(load_config(path), **kwargs)

    @property
    def client(self) -> Any:
        """Registry client, built on first use after the settings are validated."""
        if self._client is None:
            validate_settings(self.cfg)
            self._client = RegistryClient(
                base_url=self.cfg.registry_url,
                token_provider=build_token_provider(self.cfg, self._session),
                session=self._session,
                timeout=self.cfg.timeout,
                retry=build_retry_config(self.cfg),
            )
        return self._client

    # ---- local-only operations ------------------------------------------
    def discover(self) -> list[SchemaDocument]:
        return discover_schemas(self.cfg.schema_paths)

    def order(self, schemas: list[SchemaDocument] | None = None) -> list[SchemaWithReferences]:
        """Publish order of the discovered schemas; raises ``CircularDependency``."""
        docs = self.discover() if schemas is None else schemas
        return order_by_dependencies([detect_schema_references(doc) for doc in docs])

    def dependency_report(self, schemas: list[SchemaDocument] | None = None) -> dict[str, list[str]]:
        docs = self.discover() if schemas is None else schemas
        return dependency_map([detect_schema_references(doc) for doc in docs])

    # ---- registry operations ------------------------------------------
    def _publisher(self) -> Publisher:
        return Publisher(self.client, self.cfg.group_id, self.cfg.compatibility, logger=self._logger)

    def plan(self, schemas: list[SchemaDocument] | None = None) -> list[PlanEntry]:
        docs = self.discover() if schemas is None else schemas
        return self._publisher().plan_batch(docs)

    def publish(self, schemas: list[SchemaDocument] | None = None) -> PublishSummary:
        docs = self.discover() if schemas is None else schemas
        if not docs:
            self._logger.warning("No schema files found to publish")
        return self._publisher().publish_batch(docs)

    def pull(
        self,
        dependencies: list[RegistryDependency] | None = None,
        *,
        transitive: bool | None = None,
        output_dir: str | Path | None = None,
    ) -> PullSummary:
        deps = self.cfg.pull_dependencies if dependencies is None else dependencies
        return pull_dependencies(
            self.client,
            deps,
            output_dir or self.cfg.pull_output_dir,
            transitive=self.cfg.pull_transitive if transitive is None else transitive,
        )

    def artifacts(self, group_id: str | None = None) -> list[ArtifactMetadata]:
        """Artifacts registered under ``group_id`` (default: the configured group)."""
        return self.client.search_artifacts(group_id or self.cfg.group_id)

    def transitive_dependencies(self, seed: RegistryDependency) -> list[RegistryDependency]:
        return resolve_transitive_dependencies(self.client, seed)


__all__ = ["SchemaSync", "build_retry_config", "build_token_provider"]
