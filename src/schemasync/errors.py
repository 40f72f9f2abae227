"""Error taxonomy & redaction helpers.

Every failure SchemaSync reports is a ``SchemaSyncError`` subclass carrying a
human readable message that names the offending artifact where one exists.
The publish workflow converts these into per-schema outcomes; only
``AuthenticationError`` (no later registry call can succeed), ``CircularDependency``
and a batch with a duplicate artifact id (``InvalidSchema``) escape a batch
run; nothing may be published from a malformed batch.

Public API:
- the exception classes below
- classify_error(exc) -> ErrorInfo
- redact(text) -> str
"""
from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

import requests

_SENSITIVE_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(?i)(bearer\s+)[A-Za-z0-9\-._~+/]+=*"),
    re.compile(r"(?i)(client_secret=)[^&\s]+"),
    re.compile(r"(?i)(\"?access_token\"?\s*[:=]\s*\"?)[^\"&\s,}]+"),
    re.compile(r"-----BEGIN (?:RSA )?PRIVATE KEY-----[\s\S]*?-----END (?:RSA )?PRIVATE KEY-----"),
]

_REDACTION_PLACEHOLDER = "<redacted>"


class SchemaSyncError(Exception):
    """Base class for all SchemaSync failures."""

    @property
    def message(self) -> str:
        return str(self)


class ArtifactNotFound(SchemaSyncError):
    def __init__(self, group_id: str, artifact_id: str):
        super().__init__(f"Artifact not found: {group_id}:{artifact_id}")
        self.group_id = group_id
        self.artifact_id = artifact_id


class VersionNotFound(SchemaSyncError):
    def __init__(self, group_id: str, artifact_id: str, version: str):
        super().__init__(f"Version not found: {group_id}:{artifact_id}:{version}")
        self.group_id = group_id
        self.artifact_id = artifact_id
        self.version = version


class IncompatibleSchema(SchemaSyncError):
    def __init__(self, group_id: str, artifact_id: str, reason: str):
        super().__init__(
            f"Schema is not compatible with existing versions: {group_id}:{artifact_id} - {reason}"
        )
        self.group_id = group_id
        self.artifact_id = artifact_id
        self.reason = reason


class CircularDependency(SchemaSyncError):
    def __init__(self, artifact_ids: Iterable[str]):
        self.artifact_ids = frozenset(artifact_ids)
        schema_list = ", ".join(sorted(self.artifact_ids))
        super().__init__(
            f"Circular dependency detected among schemas: {schema_list}\n"
            "\n"
            "These schemas form a dependency cycle (or depend on one) so no publish order exists.\n"
            "Schemas must form a directed acyclic graph before they can be published.\n"
            "\n"
            "To resolve:\n"
            "1. Review the references between the schemas listed above\n"
            "2. Break the cycle by extracting the shared type into its own schema\n"
            "3. Make dependencies flow in one direction only"
        )


class InvalidSchema(SchemaSyncError):
    def __init__(self, reason: str, artifact_id: str | None = None):
        prefix = f"Invalid schema {artifact_id}" if artifact_id else "Invalid schema"
        super().__init__(f"{prefix}: {reason}")
        self.reason = reason
        self.artifact_id = artifact_id


class HttpError(SchemaSyncError):
    def __init__(self, status: int, body: str, *, url: str | None = None):
        location = f" ({url})" if url else ""
        super().__init__(f"HTTP error {status}{location}: {body}")
        self.status = status
        self.body = body
        self.url = url


class NetworkError(SchemaSyncError):
    def __init__(self, cause: BaseException, *, url: str | None = None):
        location = f" calling {url}" if url else ""
        super().__init__(f"Network error{location}: {cause}")
        self.cause = cause
        self.url = url

    @property
    def timed_out(self) -> bool:
        return isinstance(self.cause, requests.Timeout)


class ParseError(SchemaSyncError):
    def __init__(self, reason: str):
        super().__init__(f"Parse error: {reason}")
        self.reason = reason


class ConfigurationError(SchemaSyncError):
    def __init__(self, reason: str):
        super().__init__(f"Configuration error: {reason}")
        self.reason = reason


class AuthenticationError(SchemaSyncError):
    def __init__(self, reason: str, cause: BaseException | None = None):
        super().__init__(f"Authentication error: {reason}")
        self.reason = reason
        self.cause = cause


@dataclass
class ErrorInfo:
    category: str
    message: str
    original_type: str
    transient: bool = False
    details: dict[str, Any] | None = None


def redact(text: str) -> str:
    """Redact bearer tokens, client secrets and key material in arbitrary text."""
    if not text:
        return text
    redacted = text
    for pat in _SENSITIVE_PATTERNS:
        if pat.groups:
            redacted = pat.sub(lambda m: m.group(1) + _REDACTION_PLACEHOLDER, redacted)
        else:
            redacted = pat.sub(_REDACTION_PLACEHOLDER, redacted)
    return redacted


_TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})


def classify_error(exc: BaseException) -> ErrorInfo:
    """Best-effort classification of an exception for logs and summaries."""
    msg = redact(str(exc) if exc else "")
    name = exc.__class__.__name__

    if isinstance(exc, AuthenticationError):
        return ErrorInfo("auth", msg, name)
    if isinstance(exc, CircularDependency):
        return ErrorInfo(
            "dependency.cycle", msg, name, details={"artifacts": sorted(exc.artifact_ids)}
        )
    if isinstance(exc, IncompatibleSchema):
        return ErrorInfo("registry.incompatible", msg, name, details={"artifact": exc.artifact_id})
    if isinstance(exc, (ArtifactNotFound, VersionNotFound)):
        return ErrorInfo("registry.not_found", msg, name)
    if isinstance(exc, HttpError):
        return ErrorInfo(
            "registry.http",
            msg,
            name,
            transient=exc.status in _TRANSIENT_STATUSES,
            details={"status": exc.status},
        )
    if isinstance(exc, NetworkError):
        return ErrorInfo("network", msg, name, transient=True)
    if isinstance(exc, ConfigurationError):
        return ErrorInfo("config", msg, name)
    if isinstance(exc, (InvalidSchema, ParseError)):
        return ErrorInfo("parse", msg, name)
    low = msg.lower()
    if any(k in low for k in ("timeout", "timed out", "connection reset", "temporarily unavailable")):
        return ErrorInfo("network", msg, name, transient=True)
    if any(k in low for k in ("yaml", "json", "scannererror", "parsererror")):
        return ErrorInfo("parse", msg, name)
    return ErrorInfo("generic", msg, name)


__all__ = [
    "ArtifactNotFound",
    "AuthenticationError",
    "CircularDependency",
    "ConfigurationError",
    "ErrorInfo",
    "HttpError",
    "IncompatibleSchema",
    "InvalidSchema",
    "NetworkError",
    "ParseError",
    "SchemaSyncError",
    "VersionNotFound",
    "classify_error",
    "redact",
]
