"""HTTP client for an Apicurio-style schema registry (v3 REST API).

Every call attaches ``Authorization: Bearer <token>`` when a token provider
is configured. Non-2xx responses raise ``HttpError``; transport failures
raise ``NetworkError``. "Artifact does not exist" is an expected answer for
``get_artifact_metadata`` and is returned as ``None``.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import quote

import requests
import yaml
from packaging.version import InvalidVersion, Version

from .errors import (
    ArtifactNotFound,
    HttpError,
    InvalidSchema,
    NetworkError,
    ParseError,
    VersionNotFound,
)
from .logging import get_logger
from .models import (
    LATEST,
    ArtifactMetadata,
    CompatibilityLevel,
    ContentReference,
    CreateArtifactResponse,
    SchemaFormat,
    VersionMetadata,
)
from .retry import RetryConfig, run_with_retries
from .token_manager import TokenProvider

USER_AGENT = "schemasync/0.3.0"
HTTP_ERROR_STATUS = 400
HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409
HTTP_UNPROCESSABLE = 422
DEFAULT_TIMEOUT_SECONDS = 30.0

CONTENT_TYPE_JSON = "application/json"
CONTENT_TYPE_PROTOBUF = "application/x-protobuf"
CONTENT_TYPE_YAML = "application/x-yaml"

_YAML_EXTENSIONS = frozenset({"yaml", "yml"})


def content_type_for(fmt: SchemaFormat, source_extension: str | None = None) -> str:
    if fmt is SchemaFormat.PROTOBUF:
        return CONTENT_TYPE_PROTOBUF
    if source_extension and source_extension.lower() in _YAML_EXTENSIONS:
        return CONTENT_TYPE_YAML
    return CONTENT_TYPE_JSON


def _validate_content(content: str, content_type: str, artifact_id: str) -> None:
    """Reject content the registry could not parse before sending it."""
    if content_type == CONTENT_TYPE_PROTOBUF:
        return
    if content_type == CONTENT_TYPE_YAML:
        try:
            yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise InvalidSchema(
                f"Failed to parse schema content as YAML: {exc}", artifact_id
            ) from exc
        return
    try:
        json.loads(content)
    except ValueError as exc:
        raise InvalidSchema(f"Failed to parse schema content as JSON: {exc}", artifact_id) from exc


def _version_sort_key(version: str) -> tuple[int, Any]:
    if version.isdigit():
        return (2, int(version))
    try:
        return (1, Version(version))
    except InvalidVersion:
        return (0, version)


def pick_latest(versions: Sequence[VersionMetadata]) -> VersionMetadata:
    """Highest version: plain integers first, then PEP 440 versions, then by string."""
    return max(versions, key=lambda v: _version_sort_key(v.version))


@dataclass
class RegistryClient:
    """Thin call surface over the registry's REST API."""

    base_url: str
    token_provider: TokenProvider | None = None
    session: requests.Session | None = None
    timeout: float = DEFAULT_TIMEOUT_SECONDS
    retry: RetryConfig = field(default_factory=RetryConfig)
    _session: requests.Session = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._session = self.session or requests.Session()
        self._session.headers.setdefault("User-Agent", USER_AGENT)
        self.logger = get_logger()

    # ---- transport ------------------------------------------------------
    def _url(self, *segments: str) -> str:
        path = "/".join(quote(segment, safe="") for segment in segments)
        return f"{self.base_url.rstrip('/')}/{path}"

    def _headers(self, content_type: str | None = None, accept: str = "application/json") -> dict[str, str]:
        headers = {"Accept": accept}
        if content_type:
            headers["Content-Type"] = content_type
        if self.token_provider is not None:
            headers["Authorization"] = f"Bearer {self.token_provider.get_valid_token()}"
        return headers

    def _send(
        self,
        method: str,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: Any | None = None,
        data: str | None = None,
        content_type: str | None = None,
        accept: str = "application/json",
    ) -> requests.Response:
        def _run() -> requests.Response:
            return self._session.request(
                method,
                url,
                params=params,
                json=json_body,
                data=data.encode("utf-8") if data is not None else None,
                headers=self._headers(content_type, accept),
                timeout=self.timeout,
            )

        try:
            # Reads are idempotent; mutations go out exactly once
            if method == "GET":
                return run_with_retries(_run, cfg=self.retry)
            return _run()
        except requests.RequestException as exc:
            raise NetworkError(exc, url=url) from exc

    @staticmethod
    def _raise_for_status(response: requests.Response, url: str) -> None:
        if response.status_code >= HTTP_ERROR_STATUS:
            raise HttpError(response.status_code, response.text, url=url)

    @staticmethod
    def _json(response: requests.Response, url: str) -> Any:
        if not response.text:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise ParseError(f"Unexpected non-JSON response from {url}: {exc}") from exc

    # ---- reads ------------------------------------------------------------
    def get_artifact_metadata(self, group_id: str, artifact_id: str) -> ArtifactMetadata | None:
        url = self._url("groups", group_id, "artifacts", artifact_id)
        self.logger.debug(f"Getting artifact metadata: {group_id}:{artifact_id}")
        response = self._send("GET", url)
        if response.status_code == HTTP_NOT_FOUND:
            return None
        self._raise_for_status(response, url)
        payload = self._json(response, url)
        if not isinstance(payload, dict):
            raise ParseError(f"Artifact metadata for {group_id}:{artifact_id} is not an object")
        return ArtifactMetadata.from_payload(payload)

    def list_versions(self, group_id: str, artifact_id: str) -> list[VersionMetadata]:
        url = self._url("groups", group_id, "artifacts", artifact_id, "versions")
        response = self._send("GET", url, params={"limit": 1000})
        if response.status_code == HTTP_NOT_FOUND:
            raise ArtifactNotFound(group_id, artifact_id)
        self._raise_for_status(response, url)
        payload = self._json(response, url)
        entries = payload.get("versions") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            raise ParseError(f"Failed to parse versions of {group_id}:{artifact_id}")
        versions: list[VersionMetadata] = []
        for entry in entries:
            if isinstance(entry, dict):
                meta = VersionMetadata.from_payload(
                    {"groupId": group_id, "artifactId": artifact_id, **entry}
                )
                if meta.version:
                    versions.append(meta)
        return versions

    def get_latest_version(self, group_id: str, artifact_id: str) -> VersionMetadata:
        self.logger.debug(f"Getting latest version: {group_id}:{artifact_id}")
        versions = self.list_versions(group_id, artifact_id)
        if not versions:
            raise ArtifactNotFound(group_id, artifact_id)
        return pick_latest(versions)

    def get_version_content(self, group_id: str, artifact_id: str, version: str = LATEST) -> str:
        if version == LATEST:
            version = self.get_latest_version(group_id, artifact_id).version
        url = self._url("groups", group_id, "artifacts", artifact_id, "versions", version, "content")
        self.logger.debug(f"Getting content: {group_id}:{artifact_id}:{version}")
        response = self._send("GET", url, accept="*/*")
        if response.status_code == HTTP_NOT_FOUND:
            raise VersionNotFound(group_id, artifact_id, version)
        self._raise_for_status(response, url)
        return response.text

    def search_artifacts(self, group_id: str) -> list[ArtifactMetadata]:
        url = self._url("groups", group_id, "artifacts")
        response = self._send("GET", url, params={"limit": 1000})
        if response.status_code == HTTP_NOT_FOUND:
            return []
        self._raise_for_status(response, url)
        payload = self._json(response, url)
        entries = payload.get("artifacts") if isinstance(payload, dict) else payload
        if not isinstance(entries, list):
            return []
        return [
            ArtifactMetadata.from_payload({"groupId": group_id, **entry})
            for entry in entries
            if isinstance(entry, dict)
        ]

    # ---- mutations --------------------------------------------------------
    def create_artifact(
        self,
        group_id: str,
        artifact_id: str,
        fmt: SchemaFormat,
        content: str,
        references: Sequence[ContentReference] = (),
        content_type: str | None = None,
    ) -> CreateArtifactResponse:
        url = self._url("groups", group_id, "artifacts")
        content_type = content_type or content_type_for(fmt)
        _validate_content(content, content_type, artifact_id)
        body = {
            "artifactId": artifact_id,
            "artifactType": fmt.value,
            "firstVersion": {
                "content": {
                    "content": content,
                    "contentType": content_type,
                    "references": [ref.to_payload() for ref in references],
                }
            },
        }
        self.logger.info(f"Creating artifact: {group_id}:{artifact_id} ({fmt.value})")
        if references:
            self.logger.debug(
                f"Creating artifact with {len(references)} reference(s)",
                references=[ref.artifact_id for ref in references],
            )
        response = self._send("POST", url, json_body=body, content_type=CONTENT_TYPE_JSON)
        self._raise_for_status(response, url)
        payload = self._json(response, url)
        if not isinstance(payload, dict):
            raise ParseError(f"Unexpected create response for {group_id}:{artifact_id}")
        return CreateArtifactResponse.from_payload(payload)

    def create_version(
        self,
        group_id: str,
        artifact_id: str,
        content: str,
        references: Sequence[ContentReference] = (),
        fmt: SchemaFormat | None = None,
        content_type: str | None = None,
    ) -> VersionMetadata:
        url = self._url("groups", group_id, "artifacts", artifact_id, "versions")
        if content_type is None:
            if fmt is None:
                meta = self.get_artifact_metadata(group_id, artifact_id)
                fmt = SchemaFormat.from_string(meta.artifact_type) if meta else None
            content_type = content_type_for(fmt) if fmt else CONTENT_TYPE_JSON
        _validate_content(content, content_type, artifact_id)
        body = {
            "content": {
                "content": content,
                "contentType": content_type,
                "references": [ref.to_payload() for ref in references],
            }
        }
        self.logger.info(f"Creating new version: {group_id}:{artifact_id}")
        response = self._send("POST", url, json_body=body, content_type=CONTENT_TYPE_JSON)
        self._raise_for_status(response, url)
        payload = self._json(response, url)
        if not isinstance(payload, dict):
            raise ParseError(f"Unexpected version response for {group_id}:{artifact_id}")
        return VersionMetadata.from_payload(
            {"groupId": group_id, "artifactId": artifact_id, **payload}
        )

    def check_compatibility(
        self,
        group_id: str,
        artifact_id: str,
        content: str,
        policy: CompatibilityLevel,
    ) -> bool:
        """Ask the registry whether ``content`` may follow the current version.

        The artifact's compatibility rule is set to ``policy`` first. A 404
        (no artifact, no rule) counts as compatible; an unreadable verdict
        counts as incompatible.
        """
        rule_url = self._url("groups", group_id, "artifacts", artifact_id, "rules", "COMPATIBILITY")
        self.logger.debug(f"Checking compatibility: {group_id}:{artifact_id} ({policy.value})")
        rule = self._send(
            "PUT", rule_url, json_body={"config": policy.value}, content_type=CONTENT_TYPE_JSON
        )
        if rule.status_code >= HTTP_ERROR_STATUS and rule.status_code != HTTP_NOT_FOUND:
            self.logger.warning(
                f"Failed to set compatibility rule for {artifact_id}: HTTP {rule.status_code}",
                artifact_id=artifact_id,
            )

        test_url = f"{rule_url}/test"
        response = self._send("POST", test_url, data=content, content_type=CONTENT_TYPE_JSON)
        if response.status_code == HTTP_NOT_FOUND:
            self.logger.debug(f"No existing artifact for {artifact_id}; skipping compatibility check")
            return True
        if response.status_code in (HTTP_CONFLICT, HTTP_UNPROCESSABLE):
            return False
        self._raise_for_status(response, test_url)
        try:
            verdict = response.json()
        except ValueError:
            verdict = None
        compatible = verdict.get("compatible") if isinstance(verdict, dict) else None
        if not isinstance(compatible, bool):
            self.logger.warning(
                "Could not parse compatibility response, assuming incompatible",
                artifact_id=artifact_id,
            )
            return False
        return compatible


__all__ = [
    "CONTENT_TYPE_JSON",
    "CONTENT_TYPE_PROTOBUF",
    "CONTENT_TYPE_YAML",
    "RegistryClient",
    "content_type_for",
    "pick_latest",
]
