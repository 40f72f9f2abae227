"""Environment-based credentials for SchemaSync.

Credentials may live in the config file, in environment variables, or in a
``.env`` file (loaded with python-dotenv). Values from the config file win;
the environment only fills what the file leaves empty.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

from dotenv import load_dotenv

from .config import SchemaSyncConfig
from .logging import get_logger
from .token_manager import OAuthConfig

_DOTENV_FALLBACKS = ('.env', '.env.local')


@dataclass
class EnvAuthConfig:
    """Configuration for environment-based authentication."""

    load_dotenv: bool = True
    dotenv_path: str | None = None
    api_key_var: str = "SCHEMASYNC_API_KEY"
    client_id_var: str = "SCHEMASYNC_CLIENT_ID"
    client_secret_var: str = "SCHEMASYNC_CLIENT_SECRET"
    oauth_url_var: str = "SCHEMASYNC_OAUTH_URL"
    oauth_realm_var: str = "SCHEMASYNC_OAUTH_REALM"


class EnvironmentAuthManager:
    """Reads registry credentials from environment variables and .env files."""

    def __init__(self, config: EnvAuthConfig):
        self.config = config
        self.logger = get_logger()
        self._dotenv_loaded = False

        if config.load_dotenv:
            self._load_dotenv()

    @property
    def dotenv_loaded(self) -> bool:
        return self._dotenv_loaded

    def _load_dotenv(self) -> None:
        """Load the configured .env file, else the first conventional one found."""
        candidates = [self.config.dotenv_path] if self.config.dotenv_path else list(_DOTENV_FALLBACKS)
        for location in candidates:
            env_path = Path(location) if location else None
            if env_path is not None and env_path.is_file():
                # existing environment variables take precedence over the file
                load_dotenv(str(env_path), override=False)
                self._dotenv_loaded = True
                self.logger.debug(f"Loaded environment variables from {env_path}")
                return

    def get_api_key(self) -> str | None:
        key = os.getenv(self.config.api_key_var)
        if key:
            self.logger.debug(f"Found registry API key in {self.config.api_key_var}")
            return key
        alias = os.getenv("APICURIO_API_KEY")
        if alias:
            self.logger.debug("Found registry API key in APICURIO_API_KEY")
            return alias
        return None

    def get_oauth_settings(self) -> dict[str, str | None]:
        return {
            'url': os.getenv(self.config.oauth_url_var),
            'realm': os.getenv(self.config.oauth_realm_var),
            'client_id': os.getenv(self.config.client_id_var),
            'client_secret': os.getenv(self.config.client_secret_var),
        }

    def apply(self, cfg: SchemaSyncConfig) -> SchemaSyncConfig:
        """Return ``cfg`` with credentials missing from the file filled from the environment."""
        api_key = cfg.api_key or self.get_api_key()
        env_oauth = self.get_oauth_settings()
        oauth = cfg.oauth
        if oauth is None and env_oauth['client_id'] and env_oauth['client_secret']:
            oauth = OAuthConfig(url='', realm='', client_id='', client_secret='')
        if oauth is not None:
            oauth = replace(
                oauth,
                url=oauth.url or env_oauth['url'] or '',
                realm=oauth.realm or env_oauth['realm'] or '',
                client_id=oauth.client_id or env_oauth['client_id'] or '',
                client_secret=oauth.client_secret or env_oauth['client_secret'] or '',
            )
        if oauth != cfg.oauth or api_key != cfg.api_key:
            self.logger.log_operation(
                "credentials_from_env",
                api_key=bool(api_key and not cfg.api_key),
                oauth=oauth is not None and oauth != cfg.oauth,
            )
        return replace(cfg, api_key=api_key, oauth=oauth)

    def get_authentication_recommendations(self, cfg: SchemaSyncConfig) -> list[str]:
        """Hints for ``show-config`` when credentials look incomplete."""
        recommendations: list[str] = []
        if cfg.oauth is not None and not cfg.oauth.is_complete():
            recommendations.append(
                f"Incomplete OAuth configuration - set auth.oauth in the config file or "
                f"{self.config.client_id_var} and {self.config.client_secret_var}"
            )
        if cfg.oauth is None and not cfg.api_key:
            recommendations.append(
                f"No credentials configured; requests are sent unauthenticated. "
                f"Set {self.config.api_key_var} or configure auth.oauth if the registry requires it"
            )
        return recommendations


def create_env_auth_manager(config: EnvAuthConfig | None = None) -> EnvironmentAuthManager:
    """Factory function to create environment authentication manager."""
    if config is None:
        config = EnvAuthConfig()
    return EnvironmentAuthManager(config)


__all__ = ["EnvAuthConfig", "EnvironmentAuthManager", "create_env_auth_manager"]
