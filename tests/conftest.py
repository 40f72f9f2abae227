"""Pytest configuration for SchemaSync tests.

Ensures the in-repo `src` directory is on `sys.path` so the package can be
imported without an editable install (`pip install -e .`).
"""

from __future__ import annotations

import os
import sys
import time
from collections.abc import Iterator
from pathlib import Path

import pytest

_TEST_START_TIMES: dict[str, float] = {}
_TEST_DURATIONS: list[tuple[str, float]] = []

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

py_path = os.environ.get("PYTHONPATH", "")
parts = [p for p in py_path.split(os.pathsep) if p]
if str(SRC) not in parts:
    parts.insert(0, str(SRC))
    os.environ["PYTHONPATH"] = os.pathsep.join(parts)


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep developer credentials and retry tuning out of the tests."""
    for var in (
        "SCHEMASYNC_API_KEY",
        "APICURIO_API_KEY",
        "SCHEMASYNC_CLIENT_ID",
        "SCHEMASYNC_CLIENT_SECRET",
        "SCHEMASYNC_OAUTH_URL",
        "SCHEMASYNC_OAUTH_REALM",
        "SCHEMASYNC_QUIET",
        "SCHEMASYNC_RETRY_ATTEMPTS",
        "SCHEMASYNC_RETRY_BASE",
        "SCHEMASYNC_RETRY_MAX_SLEEP",
    ):
        monkeypatch.delenv(var, raising=False)
    yield
    # loggers bind to the stream current at creation; drop the shared one
    import schemasync.logging as structured_logging  # noqa: PLC0415

    structured_logging._GLOBAL = None


# --- Timing utilities to help identify slow/stalling tests ---


def pytest_runtest_setup(item):  # type: ignore
    _TEST_START_TIMES[item.nodeid] = time.perf_counter()


def pytest_runtest_teardown(item):  # type: ignore
    start = _TEST_START_TIMES.pop(item.nodeid, None)
    if start is not None:
        duration = time.perf_counter() - start
        _TEST_DURATIONS.append((item.nodeid, duration))


def pytest_sessionfinish(session, exitstatus):  # type: ignore
    if not _TEST_DURATIONS:
        return
    slow = sorted(_TEST_DURATIONS, key=lambda x: x[1], reverse=True)[:10]
    print("\n=== Slowest Tests (top 10) ===")
    for nodeid, secs in slow:
        print(f"{secs:0.3f}s  {nodeid}")
