"""Harvester configuration."""

from .migrator import CURRENT_VERSION, get_default_config, migrate_config, validate_config
from .settings import ConfigError, HarvestSettings, HarvesterConfig, load_config, parse_config

__all__ = [
    "CURRENT_VERSION",
    "ConfigError",
    "HarvestSettings",
    "HarvesterConfig",
    "get_default_config",
    "load_config",
    "migrate_config",
    "parse_config",
    "validate_config",
]
