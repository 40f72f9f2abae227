"""SchemaSync - publish local schemas to a schema registry in dependency order.

High-level public API:

from schemasync import SchemaSync

suite = SchemaSync.from_config_path('schemasync.config.yaml')
summary = suite.publish()
print(summary.totals())

The building blocks are usable on their own, e.g. for validation tooling:

from schemasync import detect_schema_references, order_by_dependencies

ordered = order_by_dependencies([detect_schema_references(s) for s in schemas])
"""

from __future__ import annotations

from .config import SchemaSyncConfig, load_config
from .core import SchemaSync
from .dependencies import pull_dependencies, resolve_transitive_dependencies
from .errors import CircularDependency, SchemaSyncError
from .graph import order_by_dependencies
from .publisher import Publisher, publish_batch
from .references import detect_references, detect_schema_references
from .registry_client import RegistryClient
from .token_manager import OAuthConfig, TokenManager

# Version constant (sync manually with pyproject)
__version__ = "0.3.0"

__all__ = [
    "CircularDependency",
    "OAuthConfig",
    "Publisher",
    "RegistryClient",
    "SchemaSync",
    "SchemaSyncConfig",
    "SchemaSyncError",
    "TokenManager",
    "__version__",
    "detect_references",
    "detect_schema_references",
    "load_config",
    "order_by_dependencies",
    "publish_batch",
    "pull_dependencies",
    "resolve_transitive_dependencies",
]
