"""SchemaSync CLI.

Subcommands:
  discover     -> list schema files found under the configured paths
  validate     -> check configuration and that the schemas can be ordered
  order        -> print the publish order (or the dependency cycle)
  plan         -> dry run: what publish would change, with content diffs
  publish      -> publish schemas in dependency order (summary JSON)
  pull         -> download configured registry dependencies
  deps         -> list transitive dependencies of one registry artifact
  list         -> list the artifacts registered under a group
  schema       -> print JSON Schemas for config / summary / plan documents
  show-config  -> print the effective configuration (secrets masked)

Exit status is 1 when any schema fails or the run aborts.
"""

from __future__ import annotations

import argparse
import json
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from schemasync.config import (
    DEFAULT_CONFIG_FILE,
    SchemaSyncConfig,
    describe_config,
    load_config,
    validate_settings,
)
from schemasync.core import SchemaSync
from schemasync.errors import ConfigurationError, SchemaSyncError, classify_error
from schemasync.models import LATEST, PublishSummary, RegistryDependency
from schemasync.schemas import SUMMARY_SCHEMA_VERSION, get_schemas
from schemasync.ux import (
    print_error,
    print_info,
    print_plan,
    print_publish_summary,
    print_success,
    print_warning,
)

_MAX_HELP_WIDTH = 100
_NO_CONFIG_COMMANDS = frozenset({"schema"})


class _HelpFormatter(argparse.HelpFormatter):
    def __init__(self, prog: str) -> None:
        super().__init__(prog, max_help_position=30, width=_MAX_HELP_WIDTH)


class _FormatterArgumentParser(argparse.ArgumentParser):
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        kwargs.setdefault("formatter_class", _HelpFormatter)
        super().__init__(*args, **kwargs)


def _build_parser() -> argparse.ArgumentParser:
    """Construct top-level CLI parser with subcommands.

    Keep ordering stable for help output readability.
    """
    p = _FormatterArgumentParser(
        prog="schemasync", description="Synchronize local schemas with a schema registry"
    )
    p.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress informational logging (env: SCHEMASYNC_QUIET=1)",
    )
    sub = p.add_subparsers(
        dest="cmd",
        required=True,
        parser_class=_FormatterArgumentParser,
        metavar="<command>",
    )

    def _with_config(name: str, help_text: str) -> argparse.ArgumentParser:
        parser = sub.add_parser(name, help=help_text)
        parser.add_argument("--config", default=DEFAULT_CONFIG_FILE)
        return parser

    _with_config("discover", "List schema files found under the configured paths")
    _with_config("validate", "Check configuration and schema ordering (no registry calls)")
    _with_config("order", "Print the dependency-ordered publish sequence")

    pp = _with_config("plan", "Show what publish would do without changing the registry")
    pp.add_argument("--plan-json", help="Write the plan to a JSON file")
    pp.add_argument("--no-diff", action="store_true", help="Omit content diffs from output")

    pub = _with_config("publish", "Publish schemas to the registry")
    pub.add_argument("--summary-json", help="Write the publish summary to a JSON file")

    pl = _with_config("pull", "Download configured schema dependencies")
    pl.add_argument("--transitive", action="store_true", help="Also pull referenced schemas")
    pl.add_argument("--output-dir", help="Override pull.output_dir")

    dp = _with_config("deps", "List transitive dependencies of a registry artifact")
    dp.add_argument("coordinate", help="group:artifact[:version] (version defaults to latest)")

    ls = _with_config("list", "List artifacts registered under a group")
    ls.add_argument("--group", help="Group to list (defaults to registry.group_id)")

    sch = sub.add_parser("schema", help="Print JSON Schemas for SchemaSync documents")
    sch.add_argument("--name", choices=["config", "summary", "plan"], help="Print only one schema")

    _with_config("show-config", "Print the effective configuration")
    return p


def _quiet(args: argparse.Namespace) -> bool:
    return bool(getattr(args, "quiet", False)) or os.environ.get("SCHEMASYNC_QUIET") == "1"


def _write_json(path: str | Path, payload: Any) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")


def _summary_document(
    summary: PublishSummary | None, cfg: SchemaSyncConfig, error: BaseException | None = None
) -> dict[str, Any]:
    body: dict[str, Any] = (
        summary.to_dict()
        if summary is not None
        else {
            "group_id": cfg.group_id,
            "compatibility": cfg.compatibility.value,
            "order": [],
            "totals": {"schemas": 0, "created": 0, "versioned": 0, "unchanged": 0, "failed": 0},
            "published_versions": {},
            "outcomes": [],
        }
    )
    doc: dict[str, Any] = {
        "schemaVersion": SUMMARY_SCHEMA_VERSION,
        "generated_at": datetime.now(timezone.utc).isoformat(),
        **body,
    }
    if error is not None:
        info = classify_error(error)
        doc["last_error"] = {
            "category": info.category,
            "transient": info.transient,
            "original_type": info.original_type,
            "message": info.message,
        }
    return doc


def parse_coordinate(text: str) -> RegistryDependency:
    parts = text.split(":")
    if len(parts) not in (2, 3) or not all(parts):  # noqa: PLR2004
        raise ConfigurationError(f"expected group:artifact[:version], got {text!r}")
    version = parts[2] if len(parts) == 3 else LATEST  # noqa: PLR2004
    return RegistryDependency(group_id=parts[0], artifact_id=parts[1], version=version)


# ---- command handlers -----------------------------------------------------


def _cmd_discover(suite: SchemaSync, args: argparse.Namespace) -> int:
    schemas = suite.discover()
    for schema in schemas:
        print(f"{schema.artifact_id}\t{schema.format.value}\t{schema.path}")
    if not _quiet(args):
        print_info(f"{len(schemas)} schema file(s) found")
    return 0


def _cmd_validate(suite: SchemaSync, args: argparse.Namespace) -> int:
    validate_settings(suite.cfg)
    ordered = suite.order()
    if not _quiet(args):
        print_success(f"Configuration valid; {len(ordered)} schema(s) can be published in order")
    return 0


def _cmd_order(suite: SchemaSync, args: argparse.Namespace) -> int:
    docs = suite.discover()
    deps = suite.dependency_report(docs)
    for position, item in enumerate(suite.order(docs), start=1):
        after = deps.get(item.artifact_id) or []
        suffix = f"  (after {', '.join(after)})" if after else ""
        print(f"{position}. {item.artifact_id}{suffix}")
    return 0


def _cmd_plan(suite: SchemaSync, args: argparse.Namespace) -> int:
    plan = [dict(entry) for entry in suite.plan()]
    if args.plan_json:
        _write_json(args.plan_json, {"group_id": suite.cfg.group_id, "plan": plan})
    if args.no_diff:
        for entry in plan:
            entry.pop("diff", None)
    print_plan(plan)
    return 1 if any(entry.get("action") == "error" for entry in plan) else 0


def _cmd_publish(suite: SchemaSync, args: argparse.Namespace) -> int:
    try:
        summary = suite.publish()
    except SchemaSyncError as exc:
        if args.summary_json:
            _write_json(args.summary_json, _summary_document(None, suite.cfg, exc))
        raise
    if args.summary_json:
        _write_json(args.summary_json, _summary_document(summary, suite.cfg))
    if _quiet(args):
        print("[publish] totals", json.dumps(summary.totals()))
    else:
        print_publish_summary(summary)
    if not summary.success:
        print_error(f"{summary.state.failed} schema(s) failed to publish")
        return 1
    return 0


def _cmd_pull(suite: SchemaSync, args: argparse.Namespace) -> int:
    result = suite.pull(
        transitive=True if args.transitive else None,
        output_dir=args.output_dir,
    )
    for dep, error in result.failed:
        print_error(f"Failed to pull {dep.coordinate}: {error}")
    if not _quiet(args):
        print_success(f"Pulled {len(result.saved)} schema(s)")
    return 0 if result.success else 1


def _cmd_deps(suite: SchemaSync, args: argparse.Namespace) -> int:
    seed = parse_coordinate(args.coordinate)
    deps = suite.transitive_dependencies(seed)
    for dep in deps:
        print(dep.coordinate)
    if not deps and not _quiet(args):
        print_info(f"{seed.coordinate} has no registry references")
    return 0


def _cmd_list(suite: SchemaSync, args: argparse.Namespace) -> int:
    artifacts = suite.artifacts(args.group)
    for meta in artifacts:
        print(f"{meta.artifact_id}\t{meta.artifact_type}")
    if not _quiet(args):
        print_info(f"{len(artifacts)} artifact(s) in {args.group or suite.cfg.group_id}")
    return 0


def _cmd_schema(args: argparse.Namespace) -> int:
    schemas = get_schemas()
    payload = schemas[args.name] if args.name else schemas
    print(json.dumps(payload, indent=2))
    return 0


def _cmd_show_config(suite: SchemaSync, args: argparse.Namespace) -> int:
    print(json.dumps(describe_config(suite.cfg), indent=2))
    try:
        validate_settings(suite.cfg)
    except ConfigurationError as exc:
        print_warning(str(exc))
        return 1
    return 0


_HANDLERS = {
    "discover": _cmd_discover,
    "validate": _cmd_validate,
    "order": _cmd_order,
    "plan": _cmd_plan,
    "publish": _cmd_publish,
    "pull": _cmd_pull,
    "deps": _cmd_deps,
    "list": _cmd_list,
    "show-config": _cmd_show_config,
}


def _load_suite(args: argparse.Namespace) -> SchemaSync:
    cfg = load_config(args.config)
    if _quiet(args):
        cfg.logging_level = "WARNING"
    return SchemaSync(cfg)


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    if not getattr(args, "quiet", False) and os.environ.get("SCHEMASYNC_QUIET") == "1":
        args.quiet = True
    try:
        if args.cmd in _NO_CONFIG_COMMANDS:
            return _cmd_schema(args)
        handler = _HANDLERS.get(args.cmd)
        if handler is None:  # pragma: no cover - argparse enforces valid choices
            parser.print_help()
            return 1
        return handler(_load_suite(args), args)
    except SchemaSyncError as exc:
        info = classify_error(exc)
        print_error(f"[{info.category}] {info.message}", stream=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
