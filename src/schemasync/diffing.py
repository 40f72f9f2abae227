from __future__ import annotations

import difflib
from collections.abc import Sequence
from typing import Any, TypedDict

from .discovery import compute_hash
from .models import ContentReference, SchemaDocument

MAX_CONTENT_DIFF_LINES = 120


class ContentDiff(TypedDict, total=False):
    content_changed: bool
    references_changed: bool
    lines_added: int
    lines_removed: int
    content_diff: list[str]


def content_changed(schema: SchemaDocument, existing_content: str) -> bool:
    return schema.content_hash != compute_hash(existing_content)


def needs_new_version(
    schema: SchemaDocument,
    existing_content: str,
    references: Sequence[ContentReference],
) -> bool:
    # The registry does not report the reference set of the latest version,
    # so any reference list is assumed to differ from what is stored.
    if references:
        return True
    return content_changed(schema, existing_content)


def compute_diff(
    schema: SchemaDocument,
    existing_content: str,
    references: Sequence[ContentReference] = (),
    *,
    max_lines: int = MAX_CONTENT_DIFF_LINES,
) -> ContentDiff:
    d: ContentDiff = {
        "content_changed": content_changed(schema, existing_content),
        "references_changed": bool(references),
    }
    if not d["content_changed"]:
        return d
    old_lines = existing_content.splitlines()
    new_lines = schema.content.splitlines()
    diff_lines = list(
        difflib.unified_diff(
            old_lines, new_lines, fromfile="registry", tofile="local", lineterm="", n=3
        )
    )
    d["lines_added"] = sum(
        1 for line in diff_lines if line.startswith("+") and not line.startswith("+++")
    )
    d["lines_removed"] = sum(
        1 for line in diff_lines if line.startswith("-") and not line.startswith("---")
    )
    if len(diff_lines) > max_lines:
        diff_lines = diff_lines[:max_lines] + ["... (truncated)"]
    d["content_diff"] = diff_lines
    return d


def summarize_diff(diff: ContentDiff | dict[str, Any]) -> str:
    parts: list[str] = []
    if diff.get("content_changed"):
        parts.append(f"+{diff.get('lines_added', 0)}/-{diff.get('lines_removed', 0)} lines")
    if diff.get("references_changed"):
        parts.append("references")
    return ", ".join(parts) or "no changes"


__all__ = [
    "MAX_CONTENT_DIFF_LINES",
    "ContentDiff",
    "compute_diff",
    "content_changed",
    "needs_new_version",
    "summarize_diff",
]
