"""Terminal output helpers for the CLI - no external dependencies."""

from __future__ import annotations

import os
import sys
from collections.abc import Sequence
from typing import Any, TextIO

from .models import PublishOutcome, PublishStatus, PublishSummary


class Colors:
    """ANSI color codes for terminal output."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RED = "\033[31m"
    GREEN = "\033[32m"
    YELLOW = "\033[33m"
    BLUE = "\033[34m"
    CYAN = "\033[36m"


_STATUS_STYLE: dict[str, tuple[str, str]] = {
    PublishStatus.CREATED.value: ("+", Colors.GREEN),
    PublishStatus.VERSIONED.value: ("↑", Colors.GREEN),
    PublishStatus.UNCHANGED.value: ("○", Colors.DIM),
    PublishStatus.FAILED.value: ("✗", Colors.RED),
    "create": ("+", Colors.GREEN),
    "version": ("↑", Colors.YELLOW),
    "unchanged": ("○", Colors.DIM),
    "error": ("✗", Colors.RED),
}


def supports_color(stream: TextIO | None = None) -> bool:
    """NO_COLOR, a non-TTY stream or TERM=dumb disable colors."""
    stream = stream or sys.stdout
    if os.environ.get("NO_COLOR"):
        return False
    if not hasattr(stream, "isatty") or not stream.isatty():
        return False
    return os.environ.get("TERM") != "dumb"


def colorize(text: str, color: str, bold: bool = False, stream: TextIO | None = None) -> str:
    if not supports_color(stream):
        return text
    prefix = (Colors.BOLD if bold else "") + color
    return f"{prefix}{text}{Colors.RESET}"


def _print_marked(marker: str, color: str, message: str, stream: TextIO) -> None:
    print(colorize(marker, color, bold=True, stream=stream) + " " + message, file=stream)


def print_success(message: str, stream: TextIO | None = None) -> None:
    _print_marked("✓", Colors.GREEN, message, stream or sys.stdout)


def print_error(message: str, stream: TextIO | None = None) -> None:
    _print_marked("✗", Colors.RED, message, stream or sys.stderr)


def print_warning(message: str, stream: TextIO | None = None) -> None:
    _print_marked("⚠", Colors.YELLOW, message, stream or sys.stdout)


def print_info(message: str, stream: TextIO | None = None) -> None:
    _print_marked("ℹ", Colors.BLUE, message, stream or sys.stdout)


def print_summary_box(
    title: str, items: Sequence[tuple[str, str | int]], stream: TextIO | None = None
) -> None:
    """Print a titled block of aligned key/value pairs."""
    stream = stream or sys.stdout
    width = max((len(k) for k, _ in items), default=0)
    rule = colorize("─" * 60, Colors.DIM, stream=stream)
    print(colorize(f"\n{title}", Colors.CYAN, bold=True, stream=stream), file=stream)
    print(rule, file=stream)
    for key, value in items:
        text = str(value)
        if key == "failed" and isinstance(value, int) and value > 0:
            text = colorize(text, Colors.RED, bold=True, stream=stream)
        elif isinstance(value, int) and value > 0:
            text = colorize(text, Colors.GREEN, bold=True, stream=stream)
        print(f"  {key.ljust(width)}  {text}", file=stream)
    print(rule, file=stream)


def format_status_line(status: str, artifact_id: str, detail: str = "", stream: TextIO | None = None) -> str:
    marker, color = _STATUS_STYLE.get(status, ("•", Colors.BLUE))
    line = f"{colorize(marker, color, bold=True, stream=stream)} {artifact_id}: {status}"
    if detail:
        line += " " + colorize(f"({detail})", Colors.DIM, stream=stream)
    return line


def print_outcome(outcome: PublishOutcome, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    detail = outcome.message if outcome.status is PublishStatus.FAILED else (
        f"version {outcome.version}" if outcome.version else ""
    )
    print(format_status_line(outcome.status.value, outcome.artifact_id, detail, stream), file=stream)


def print_publish_summary(summary: PublishSummary, stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    for outcome in summary.outcomes:
        print_outcome(outcome, stream)
    print_summary_box(
        f"Publish summary ({summary.group_id}, {summary.compatibility.value})",
        list(summary.totals().items()),
        stream,
    )


def print_plan(plan: Sequence[dict[str, Any]], stream: TextIO | None = None) -> None:
    stream = stream or sys.stdout
    for entry in plan:
        detail = entry.get("changes") or entry.get("reason") or ""
        print(format_status_line(entry["action"], entry["artifact_id"], detail, stream), file=stream)
        for line in entry.get("diff") or []:
            print(f"    {line}", file=stream)


__all__ = [
    "Colors",
    "colorize",
    "format_status_line",
    "print_error",
    "print_info",
    "print_outcome",
    "print_plan",
    "print_publish_summary",
    "print_success",
    "print_summary_box",
    "print_warning",
    "supports_color",
]
