"""Runtime configuration for query execution.

Loads data sources and the retry policy from a YAML file:

    data_sources:
      orders:
        database_type: mysql
        connection_string: "Server=db;Database=orders;User=svc;"
    default_data_source: orders
    retry:
      max_retries: 5
      base_delay: 1.0

Environment variables ARE supported using ${VAR_NAME} and
${VAR_NAME:-default} syntax in YAML files.

Access tokens are never read from YAML. An override token comes from the
QUERYGATE_ACCESS_TOKEN environment variable or from
RuntimeConfigProvider.configure(), which is how a hosted deployment is
configured after startup ("late-configured").
"""

import logging
import os
import re
import threading
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

from querygate.resilience.retry import RetryPolicy
from querygate.types import DatabaseType

logger = logging.getLogger(__name__)

ACCESS_TOKEN_ENV_VAR = "QUERYGATE_ACCESS_TOKEN"


def load_yaml(path: Path) -> dict[str, Any]:
    """Load YAML file and return dict."""
    if not path.exists():
        return {}
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _expand_env_vars(data: Any) -> Any:
    """Recursively expand ${VAR_NAME} and ${VAR_NAME:-default} environment variables in config data."""
    if isinstance(data, dict):
        return {key: _expand_env_vars(value) for key, value in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str):
        pattern = r"\$\{([^}:]+)(?::-([^}]*))?\}"

        def replacer(match):
            var_name = match.group(1)
            default_value = match.group(2) if match.group(2) is not None else match.group(0)
            return os.getenv(var_name, default_value)

        return re.sub(pattern, replacer, data)
    else:
        return data


@dataclass(frozen=True)
class DataSourceConfig:
    """A named database the executor can run queries against."""

    name: str
    database_type: DatabaseType
    connection_string: str

    def __post_init__(self):
        object.__setattr__(self, "database_type", DatabaseType(self.database_type))

    def __repr__(self) -> str:
        # Connection strings may hold passwords
        return (
            f"DataSourceConfig(name={self.name!r}, "
            f"database_type={self.database_type.value!r})"
        )


@dataclass(frozen=True)
class RuntimeSettings:
    """
    Immutable configuration snapshot.

    A query execution reads one snapshot at its start and uses it for every
    attempt, so reconfiguration never changes a call mid-flight.

    Attributes:
        data_sources: Data sources by name
        default_data_source: Name used when a call names no data source
        retry: Retry policy for query execution
        access_token: Override access token, if one was configured
        is_late_configured: True once configured at runtime (hosted mode);
            query text is not logged in this mode
    """

    data_sources: Mapping[str, DataSourceConfig]
    default_data_source: str
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    access_token: str | None = field(default=None, repr=False)
    is_late_configured: bool = False

    def __post_init__(self):
        object.__setattr__(self, "data_sources", MappingProxyType(dict(self.data_sources)))
        if self.default_data_source not in self.data_sources:
            raise ValueError(
                f"default_data_source '{self.default_data_source}' is not a configured "
                f"data source. Available: {sorted(self.data_sources)}"
            )

    def resolve_data_source(self, name: str | None = None) -> DataSourceConfig | None:
        """Look up a data source; an empty name selects the default."""
        return self.data_sources.get(name or self.default_data_source)

    def with_overrides(
        self,
        connection_string: str | None = None,
        access_token: str | None = None,
        data_source: str | None = None,
    ) -> "RuntimeSettings":
        """
        Return a new late-configured snapshot with the given overrides.

        Raises:
            ValueError: If data_source names an unknown data source
        """
        target = data_source or self.default_data_source
        if target not in self.data_sources:
            raise ValueError(f"Unknown data source: {target}")

        data_sources = dict(self.data_sources)
        if connection_string:
            data_sources[target] = replace(
                data_sources[target], connection_string=connection_string
            )

        return replace(
            self,
            data_sources=data_sources,
            access_token=access_token or self.access_token,
            is_late_configured=True,
        )


def parse_settings(data: dict[str, Any]) -> RuntimeSettings:
    """
    Build RuntimeSettings from an already expanded config mapping.

    Raises:
        ValueError: If no data sources are configured or one is incomplete
    """
    raw_sources = data.get("data_sources") or {}
    if not raw_sources:
        raise ValueError(
            "Invalid config file: missing 'data_sources:' section\n"
            "At least one data source with database_type and connection_string is required"
        )

    data_sources: dict[str, DataSourceConfig] = {}
    for name, source in raw_sources.items():
        source = source or {}
        database_type = source.get("database_type")
        connection_string = source.get("connection_string")
        if not database_type or not connection_string:
            raise ValueError(
                f"data_sources.{name} requires database_type and connection_string"
            )
        try:
            data_sources[name] = DataSourceConfig(
                name=name,
                database_type=str(database_type).lower(),
                connection_string=connection_string,
            )
        except ValueError as e:
            valid = ", ".join(t.value for t in DatabaseType)
            raise ValueError(
                f"data_sources.{name}.database_type must be one of: {valid}"
            ) from e

    default_data_source = data.get("default_data_source") or next(iter(data_sources))

    return RuntimeSettings(
        data_sources=data_sources,
        default_data_source=default_data_source,
        retry=RetryPolicy.from_dict(data.get("retry")),
        access_token=os.getenv(ACCESS_TOKEN_ENV_VAR) or None,
    )


def load_settings(config_path: Path) -> RuntimeSettings:
    """Load runtime settings from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the file content is invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    logger.info("Loading configuration from file: %s", config_path)
    yaml_data = _expand_env_vars(load_yaml(config_path))
    settings = parse_settings(yaml_data)

    logger.debug(
        "Configuration loaded",
        extra={
            "data_source": settings.default_data_source,
            "data_source_count": len(settings.data_sources),
            "max_attempts": settings.retry.max_attempts,
        },
    )
    return settings


class RuntimeConfigProvider:
    """
    Holder of the current RuntimeSettings snapshot.

    Snapshots are swapped whole under a lock; readers always get a complete,
    immutable snapshot.
    """

    def __init__(self, settings: RuntimeSettings):
        self._settings = settings
        self._lock = threading.Lock()

    @classmethod
    def from_file(cls, config_path: Path) -> "RuntimeConfigProvider":
        return cls(load_settings(config_path))

    def snapshot(self) -> RuntimeSettings:
        with self._lock:
            return self._settings

    def load_settings(self, config_path: Path) -> RuntimeSettings:
        """Replace the current snapshot with settings read from a file."""
        settings = load_settings(config_path)
        with self._lock:
            self._settings = settings
        return settings

    def configure(
        self,
        connection_string: str | None = None,
        access_token: str | None = None,
        data_source: str | None = None,
    ) -> RuntimeSettings:
        """
        Apply runtime configuration and mark the runtime late-configured.

        Args:
            connection_string: New connection string for the data source
            access_token: Override access token for managed identity
            data_source: Data source to reconfigure (default when omitted)

        Returns:
            The new snapshot
        """
        with self._lock:
            self._settings = self._settings.with_overrides(
                connection_string=connection_string,
                access_token=access_token,
                data_source=data_source,
            )
            settings = self._settings

        logger.info(
            "Runtime configuration updated",
            extra={
                "data_source": data_source or settings.default_data_source,
                "connection_string_updated": bool(connection_string),
                "access_token_configured": bool(access_token),
            },
        )
        return settings


__all__ = [
    "ACCESS_TOKEN_ENV_VAR",
    "DataSourceConfig",
    "RuntimeConfigProvider",
    "RuntimeSettings",
    "load_settings",
    "load_yaml",
    "parse_settings",
]
