"""Centralized retry / backoff helpers.

Provides ``run_with_retries`` which wraps a thunk performing one HTTP
request and repeats it with exponential backoff plus jitter when the
failure looks transient: a connection error, a timeout, or a response with
status 429/502/503/504. An explicit ``Retry-After`` hint wins over the
computed backoff.

Only idempotent reads go through this helper. Registry mutations (create
artifact, create version, rule updates) are sent once; retrying those is an
operator decision.

Environment overrides:
  SCHEMASYNC_RETRY_ATTEMPTS (default 3)
  SCHEMASYNC_RETRY_BASE (seconds base, default 0.5)
  SCHEMASYNC_RETRY_MAX_SLEEP (cap in seconds, unset by default)
"""

from __future__ import annotations

import os
import random
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeVar

import requests

from .logging import get_logger

T = TypeVar("T")

TRANSIENT_STATUSES = frozenset({429, 502, 503, 504})
TRANSIENT_EXCEPTIONS: tuple[type[BaseException], ...] = (
    requests.ConnectionError,
    requests.Timeout,
)

_RE_RETRY_AFTER = re.compile(r"retry[-\s]after:?\s*(\d+)", re.IGNORECASE)
_RE_SECONDS_HINT = re.compile(r"wait\s*(\d+)\s*seconds", re.IGNORECASE)
_JITTER = random.SystemRandom()


def _extract_explicit_backoff(text: str) -> float | None:
    """Extract an explicit backoff (seconds) from a header or error text.

    Supports patterns like:
      Retry-After: 12
      retry after 12
      wait 30 seconds
    Returns None if no valid positive value found.
    """
    if not text:
        return None
    for pattern in (_RE_RETRY_AFTER, _RE_SECONDS_HINT):
        m = pattern.search(text)
        if m:
            val = float(m.group(1))
            return val if val > 0 else None
    return None


def _env_int(name: str, default: int) -> int:
    return int(os.environ.get(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


@dataclass
class RetryConfig:
    attempts: int = field(default_factory=lambda: _env_int("SCHEMASYNC_RETRY_ATTEMPTS", 3))
    base_sleep: float = field(default_factory=lambda: _env_float("SCHEMASYNC_RETRY_BASE", 0.5))


def is_transient_response(response: Any) -> bool:
    status = getattr(response, "status_code", None)
    return isinstance(status, int) and status in TRANSIENT_STATUSES


def _retry_after_hint(response: Any) -> str:
    headers = getattr(response, "headers", None) or {}
    value = headers.get("Retry-After") if hasattr(headers, "get") else None
    return f"Retry-After: {value}" if value else ""


def _compute_sleep(attempt: int, cfg: RetryConfig, hint: str) -> float:
    explicit = _extract_explicit_backoff(hint)
    backoff = cfg.base_sleep * (2 ** (attempt - 1)) + _JITTER.uniform(0, 0.25)
    sleep_for: float = explicit if explicit is not None else backoff
    max_cap_env = os.environ.get("SCHEMASYNC_RETRY_MAX_SLEEP")
    if max_cap_env:
        try:
            cap = float(max_cap_env)
        except ValueError:
            return sleep_for
        if cap >= 0:
            sleep_for = min(sleep_for, cap)
    return sleep_for


def _pause(attempt: int, attempts: int, cfg: RetryConfig, hint: str, reason: str) -> None:
    sleep_for = _compute_sleep(attempt, cfg, hint)
    get_logger().warning(
        f"[retry] transient error, attempt {attempt}/{attempts}, sleeping {sleep_for:.2f}s",
        reason=reason,
    )
    time.sleep(sleep_for)


def run_with_retries(fn: Callable[[], T], *, cfg: RetryConfig | None = None) -> T:
    cfg = cfg or RetryConfig()
    attempts = max(1, cfg.attempts)
    for attempt in range(1, attempts + 1):
        try:
            result = fn()
        except TRANSIENT_EXCEPTIONS as exc:
            if attempt >= attempts:
                raise
            _pause(attempt, attempts, cfg, str(exc), exc.__class__.__name__)
            continue
        if attempt < attempts and is_transient_response(result):
            _pause(
                attempt,
                attempts,
                cfg,
                _retry_after_hint(result),
                f"HTTP {getattr(result, 'status_code', '?')}",
            )
            continue
        return result
    raise RuntimeError("retry logic exited unexpectedly")  # pragma: no cover


__all__ = [
    "RetryConfig",
    "TRANSIENT_STATUSES",
    "is_transient_response",
    "run_with_retries",
]
