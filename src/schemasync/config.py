from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

import jsonschema
import yaml

from .errors import ConfigurationError
from .models import CompatibilityLevel, RegistryDependency
from .schemas import CONFIG_SCHEMA
from .token_manager import DEFAULT_REFRESH_BUFFER_SECONDS, OAuthConfig

DEFAULT_CONFIG_FILE = 'schemasync.config.yaml'
DEFAULT_SCHEMA_PATHS = ['src/main/schemas']
DEFAULT_PULL_OUTPUT_DIR = 'target/schemas'
DEFAULT_TIMEOUT_SECONDS = 30.0


@dataclass
class SchemaSyncConfig:
    version: int
    config_file: Path | None
    registry_url: str
    group_id: str
    compatibility: CompatibilityLevel
    timeout: float
    schema_paths: list[Path]
    pull_output_dir: Path
    pull_transitive: bool
    pull_dependencies: list[RegistryDependency]
    api_key: str | None
    oauth: OAuthConfig | None
    oauth_refresh_buffer: float
    # Logging configuration
    logging_json_enabled: bool = False
    logging_level: str = 'INFO'
    # Retry configuration
    retry_attempts: int | None = None
    retry_base_sleep: float | None = None
    # Environment authentication configuration
    env_auth_load_dotenv: bool = True
    env_auth_dotenv_path: str | None = None


def _resolve_env_var(value: Any, env_var_name: str | None = None) -> Any:
    """Resolve environment variable if value starts with $."""
    if isinstance(value, str) and value.startswith('$'):
        env_name = env_var_name or value[1:]  # Remove $ prefix
        return os.getenv(env_name, value)  # Fallback to original if not found
    return value


def _optional_str(value: Any) -> str | None:
    resolved = _resolve_env_var(value)
    if resolved is None:
        return None
    text = str(resolved).strip()
    # an unresolved $VAR means the variable is not set
    if not text or text.startswith('$'):
        return None
    return text


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    return cast(dict[str, Any], raw.get(key, {}) or {})


def _validate_document(raw: Any, source: str) -> dict[str, Any]:
    if not isinstance(raw, dict):
        raise ConfigurationError(f'{source} must contain a mapping at the top level')
    validator = jsonschema.Draft7Validator(CONFIG_SCHEMA)
    errors = sorted(validator.iter_errors(raw), key=lambda e: list(e.absolute_path))
    if errors:
        first = errors[0]
        location = '.'.join(str(p) for p in first.absolute_path) or '<root>'
        raise ConfigurationError(f'{source}: {location}: {first.message}')
    return cast(dict[str, Any], raw)


def _parse_dependencies(entries: list[dict[str, Any]]) -> list[RegistryDependency]:
    deps: list[RegistryDependency] = []
    for entry in entries:
        version = entry.get('version')
        deps.append(
            RegistryDependency(
                group_id=str(entry['group_id']),
                artifact_id=str(entry['artifact_id']),
                version=str(version) if version is not None else 'latest',
            )
        )
    return deps


def _parse_oauth(block: dict[str, Any]) -> OAuthConfig | None:
    if not block:
        return None
    client_id = _optional_str(block.get('client_id'))
    client_secret = _optional_str(block.get('client_secret'))
    url = _optional_str(block.get('url'))
    realm = _optional_str(block.get('realm'))
    token_endpoint = _optional_str(block.get('token_endpoint'))
    if not any((client_id, client_secret, url, realm, token_endpoint)):
        return None
    return OAuthConfig(
        url=url or '',
        realm=realm or '',
        client_id=client_id or '',
        client_secret=client_secret or '',
        token_endpoint=token_endpoint,
    )


def config_from_dict(raw: Any, base_dir: Path | None = None, source: str = 'config') -> SchemaSyncConfig:
    data = _validate_document(raw, source)
    base = base_dir or Path.cwd()
    registry = _section(data, 'registry')
    schemas = _section(data, 'schemas')
    pull = _section(data, 'pull')
    auth = _section(data, 'auth')
    oauth_block = _section(auth, 'oauth')
    logging_config = _section(data, 'logging')
    retry_config = _section(data, 'retry')
    env_auth = _section(data, 'environment')

    compatibility = CompatibilityLevel.from_string(registry.get('compatibility')) or CompatibilityLevel.BACKWARD
    paths = schemas.get('paths') or DEFAULT_SCHEMA_PATHS
    attempts = retry_config.get('attempts')
    base_sleep = retry_config.get('base_sleep')

    return SchemaSyncConfig(
        version=int(data.get('version', 1)),
        config_file=None,
        registry_url=str(_resolve_env_var(registry.get('url', ''), None)).strip(),
        group_id=str(_resolve_env_var(registry.get('group_id', ''), None)).strip(),
        compatibility=compatibility,
        timeout=float(registry.get('timeout', DEFAULT_TIMEOUT_SECONDS)),
        schema_paths=[base / p for p in paths],
        pull_output_dir=base / pull.get('output_dir', DEFAULT_PULL_OUTPUT_DIR),
        pull_transitive=bool(pull.get('transitive', False)),
        pull_dependencies=_parse_dependencies(pull.get('dependencies', []) or []),
        # Credentials accept $ENV references
        api_key=_optional_str(auth.get('api_key')),
        oauth=_parse_oauth(oauth_block),
        oauth_refresh_buffer=float(oauth_block.get('refresh_buffer', DEFAULT_REFRESH_BUFFER_SECONDS)),
        logging_json_enabled=bool(logging_config.get('json_enabled', False)),
        logging_level=logging_config.get('level', 'INFO'),
        retry_attempts=int(attempts) if attempts is not None else None,
        retry_base_sleep=float(base_sleep) if base_sleep is not None else None,
        env_auth_load_dotenv=bool(env_auth.get('load_dotenv', True)),
        env_auth_dotenv_path=env_auth.get('dotenv_path'),
    )


def load_config(path: str | Path) -> SchemaSyncConfig:
    p = Path(path)
    if not p.exists():
        raise ConfigurationError(f'Configuration file not found: {p}')
    try:
        raw = yaml.safe_load(p.read_text(encoding='utf-8')) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f'Invalid YAML in {p}: {exc}') from exc
    cfg = config_from_dict(raw, base_dir=p.parent, source=str(p))
    cfg.config_file = p
    return cfg


def validate_settings(cfg: SchemaSyncConfig) -> None:
    """Raise ``ConfigurationError`` when the registry cannot be addressed."""
    if not cfg.registry_url or cfg.registry_url.startswith('$'):
        raise ConfigurationError('registry.url is not set')
    if not cfg.registry_url.startswith(('http://', 'https://')):
        raise ConfigurationError(f'registry.url must be an http(s) URL: {cfg.registry_url}')
    if not cfg.group_id or cfg.group_id.startswith('$'):
        raise ConfigurationError('registry.group_id is not set (this is required, no default is provided)')
    if cfg.oauth is not None and not cfg.oauth.is_complete():
        missing = [
            name
            for name, value in (
                ('client_id', cfg.oauth.client_id),
                ('client_secret', cfg.oauth.client_secret),
            )
            if not value
        ]
        if not cfg.oauth.token_endpoint and not (cfg.oauth.url and cfg.oauth.realm):
            missing.append('url/realm or token_endpoint')
        raise ConfigurationError('incomplete auth.oauth settings: missing ' + ', '.join(missing))


def describe_config(cfg: SchemaSyncConfig) -> dict[str, Any]:
    """Printable view of the effective configuration, secrets masked."""
    return {
        'config_file': str(cfg.config_file) if cfg.config_file else None,
        'registry_url': cfg.registry_url,
        'group_id': cfg.group_id,
        'compatibility': cfg.compatibility.value,
        'timeout': cfg.timeout,
        'schema_paths': [str(p) for p in cfg.schema_paths],
        'pull_output_dir': str(cfg.pull_output_dir),
        'pull_transitive': cfg.pull_transitive,
        'pull_dependencies': [dep.coordinate for dep in cfg.pull_dependencies],
        'auth': (
            'oauth'
            if cfg.oauth is not None and cfg.oauth.is_complete()
            else 'api_key'
            if cfg.api_key
            else 'none'
        ),
        'oauth_client_id': cfg.oauth.client_id if cfg.oauth else None,
        'logging_level': cfg.logging_level,
        'logging_json_enabled': cfg.logging_json_enabled,
    }


__all__ = [
    'DEFAULT_CONFIG_FILE',
    'SchemaSyncConfig',
    'config_from_dict',
    'describe_config',
    'load_config',
    'validate_settings',
]
