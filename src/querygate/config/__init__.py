"""Configuration loading for querygate.

Main Functions
--------------

    - load_settings(): Load RuntimeSettings from a YAML file
    - RuntimeConfigProvider: Holds the current settings snapshot and applies
      runtime (late) configuration

Usage Examples
--------------

    >>> from querygate.config import RuntimeConfigProvider
    >>> provider = RuntimeConfigProvider.from_file(Path("config.yaml"))
    >>> settings = provider.snapshot()
    >>> provider.configure(access_token="eyJ0eXAi...")
"""

from querygate.config.config import (
    ACCESS_TOKEN_ENV_VAR,
    DataSourceConfig,
    RuntimeConfigProvider,
    RuntimeSettings,
    load_settings,
    load_yaml,
    parse_settings,
)

__all__ = [
    "ACCESS_TOKEN_ENV_VAR",
    "DataSourceConfig",
    "RuntimeConfigProvider",
    "RuntimeSettings",
    "load_settings",
    "load_yaml",
    "parse_settings",
]
