from __future__ import annotations

import hashlib
from collections.abc import Iterable
from pathlib import Path
from typing import Any, cast

import yaml

from .errors import InvalidSchema
from .logging import get_logger
from .models import SUPPORTED_EXTENSIONS, RegistryDependency, SchemaDocument, SchemaFormat

_YAML_EXTENSIONS = frozenset({'yaml', 'yml'})


def compute_hash(content: str) -> str:
    """SHA-256 hex digest of the UTF-8 encoded content."""
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


def artifact_id_for(path: Path) -> str:
    name = path.name
    dot = name.rfind('.')
    return name[:dot] if dot > 0 else name


def _extension(path: Path) -> str:
    return path.suffix.lower().lstrip('.')


def is_schema_file(path: Path) -> bool:
    return _extension(path) in SUPPORTED_EXTENSIONS


def _sniff_yaml_format(content: str) -> SchemaFormat:
    try:
        loaded = yaml.safe_load(content)
    except yaml.YAMLError:
        return SchemaFormat.OPENAPI
    if isinstance(loaded, dict) and 'asyncapi' in cast(dict[str, Any], loaded):
        return SchemaFormat.ASYNCAPI
    return SchemaFormat.OPENAPI


def load_schema_file(path: Path) -> SchemaDocument:
    ext = _extension(path)
    fmt = SchemaFormat.from_extension(ext)
    if fmt is None:
        raise InvalidSchema(f'unknown schema type for file {path.name}')
    content = path.read_text(encoding='utf-8')
    if ext in _YAML_EXTENSIONS:
        fmt = _sniff_yaml_format(content)
    return SchemaDocument(
        artifact_id=artifact_id_for(path),
        content=content,
        content_hash=compute_hash(content),
        format=fmt,
        source_extension=ext,
        path=path,
    )


def _walk(directory: Path) -> list[Path]:
    return sorted(p for p in directory.rglob('*') if p.is_file() and is_schema_file(p))


def discover_schemas(paths: Iterable[str | Path]) -> list[SchemaDocument]:
    """Load every schema file found under ``paths`` (files or directories).

    Missing paths and unreadable files are logged and skipped. When two files
    map to the same artifact id the first one found is kept.
    """
    logger = get_logger()
    candidates: list[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            candidates.extend(_walk(path))
        elif path.is_file() and is_schema_file(path):
            candidates.append(path)
        else:
            logger.warning(f'Schema path does not exist or is not a directory/file: {path}')

    schemas: list[SchemaDocument] = []
    seen: dict[str, Path] = {}
    for candidate in candidates:
        try:
            schema = load_schema_file(candidate)
        except (OSError, UnicodeDecodeError, InvalidSchema) as exc:
            logger.log_error(f'Failed to load schema file {candidate}', error=str(exc))
            continue
        if schema.artifact_id in seen:
            logger.warning(
                f'Duplicate artifact id {schema.artifact_id}: {candidate} ignored, '
                f'already loaded from {seen[schema.artifact_id]}',
                artifact_id=schema.artifact_id,
            )
            continue
        seen[schema.artifact_id] = candidate
        schemas.append(schema)

    logger.info(f'Discovered {len(schemas)} schema files')
    return schemas


def save_schema(
    output_dir: Path, dependency: RegistryDependency, content: str, extension: str = 'json'
) -> Path:
    """Write pulled content to ``output_dir/<group as dirs>/<artifact>.<ext>``."""
    target_dir = output_dir.joinpath(*dependency.group_id.split('.'))
    target_dir.mkdir(parents=True, exist_ok=True)
    target = target_dir / f'{dependency.artifact_id}.{extension}'
    target.write_text(content, encoding='utf-8')
    get_logger().info(
        f'Downloaded schema: {dependency.coordinate} -> {target}',
        artifact_id=dependency.artifact_id,
        group_id=dependency.group_id,
    )
    return target


__all__ = [
    'artifact_id_for',
    'compute_hash',
    'discover_schemas',
    'is_schema_file',
    'load_schema_file',
    'save_schema',
]
