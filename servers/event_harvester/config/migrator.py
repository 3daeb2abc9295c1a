"""
Configuration migrator for backwards compatibility.

Handles version migrations:
- v1 -> v2: `scrapers` rows (name, enabled, JSON-string config blob)
  become structured `sources`; flat tunables move under `settings`
"""

import json
from typing import Any

import structlog

log = structlog.get_logger(__name__)

CURRENT_VERSION = 2

# v1 kept tunables at the top level
_V1_SETTING_KEYS = (
    "concurrency",
    "forward_window_days",
    "grace_period_hours",
    "adapter_timeout_seconds",
    "politeness_delay_seconds",
    "database_path",
)

# Fields of a v2 source entry; anything else in a v1 blob is adapter config
_SOURCE_FIELDS = ("url", "category", "adapter", "location", "replace_on_run")


def migrate_config(config: dict[str, Any]) -> dict[str, Any]:
    """
    Migrate config from any version to current.

    Args:
        config: Raw config dict (may be any version)

    Returns:
        Config dict at CURRENT_VERSION
    """
    version = config.get("version", 1)

    if version == CURRENT_VERSION:
        return config

    log.info("migrating_config", from_version=version, to_version=CURRENT_VERSION)

    if version == 1:
        config = _migrate_v1_to_v2(config)
        config["version"] = CURRENT_VERSION

    return config


def _migrate_v1_to_v2(config: dict[str, Any]) -> dict[str, Any]:
    """
    Migrate v1 config to v2 format.

    Changes:
    - scrapers (list of rows with a JSON string `config`) -> sources
    - top-level tunables -> settings
    """
    migrated = {k: v for k, v in config.items() if k not in ("scrapers", *_V1_SETTING_KEYS)}

    settings = dict(config.get("settings", {}))
    for key in _V1_SETTING_KEYS:
        if key in config:
            settings.setdefault(key, config[key])
    migrated["settings"] = settings

    sources = list(config.get("sources", []))
    for row in config.get("scrapers", []):
        sources.append(_scraper_row_to_source(row))
    migrated["sources"] = sources

    if config.get("scrapers"):
        log.info("migrated_scraper_rows", count=len(config["scrapers"]))

    return migrated


def _scraper_row_to_source(row: dict[str, Any]) -> dict[str, Any]:
    """Convert one v1 scraper row into a v2 source entry."""
    blob = row.get("config") or {}
    if isinstance(blob, str):
        try:
            blob = json.loads(blob)
        except json.JSONDecodeError:
            log.warning("unreadable_scraper_config", scraper=row.get("name"))
            blob = {}

    source: dict[str, Any] = {
        "name": row.get("name"),
        "enabled": bool(row.get("enabled", True)),
    }
    extra = {}
    for key, value in blob.items():
        if key in _SOURCE_FIELDS:
            source[key] = value
        else:
            extra[key] = value
    source["config"] = extra
    return source


def validate_config(config: dict[str, Any]) -> list[str]:
    """
    Validate config and return list of errors.

    Returns:
        List of error messages (empty if valid)
    """
    errors: list[str] = []

    version = config.get("version", 1)
    if version > CURRENT_VERSION:
        errors.append(
            f"Config version {version} is newer than supported version {CURRENT_VERSION}"
        )

    sources = config.get("sources", [])
    if not isinstance(sources, list):
        errors.append("sources must be a list")
        sources = []

    seen: set[str] = set()
    for i, source in enumerate(sources):
        if not isinstance(source, dict):
            errors.append(f"sources[{i}] must be an object")
            continue
        name = source.get("name")
        if not name:
            errors.append(f"sources[{i}] is missing a name")
            continue
        if name in seen:
            errors.append(f"Duplicate source name: {name}")
        seen.add(name)

    settings = config.get("settings", {})
    concurrency = settings.get("concurrency", 3)
    if not isinstance(concurrency, int) or concurrency < 1:
        errors.append(f"Invalid concurrency: {concurrency} (must be >= 1)")

    window = settings.get("forward_window_days", 14)
    if not isinstance(window, (int, float)) or window <= 0:
        errors.append(f"Invalid forward_window_days: {window} (must be > 0)")

    return errors


def get_default_config() -> dict[str, Any]:
    """Return default config for new installations."""
    return {
        "version": CURRENT_VERSION,
        "settings": {
            "concurrency": 3,
            "forward_window_days": 14,
            "grace_period_hours": 24,
            "adapter_timeout_seconds": 60,
            "politeness_delay_seconds": 2,
            "timezone": "America/Los_Angeles",
            "replace_on_run": True,
            "database_path": "harvester.db",
        },
        "sources": [],
    }
