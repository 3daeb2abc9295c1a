"""
Harvester configuration loading.

The configuration file is JSON. It is migrated to the current version,
validated, and parsed into pydantic models once at startup. Failure to
load it is the only fatal condition of the harvester.
"""

import json
import os
from datetime import timedelta
from pathlib import Path
from typing import Any, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from ..models import Source
from .migrator import migrate_config, validate_config

log = structlog.get_logger(__name__)

DEFAULT_CONFIG_PATH = "harvester.json"
CONFIG_ENV_VAR = "HARVESTER_CONFIG"
DB_ENV_VAR = "HARVESTER_DB"

# Generic page furniture that scrapers tend to pick up as titles
DEFAULT_BLACKLIST = [
    "privacy policy",
    "cookie policy",
    "cookies",
    "terms of service",
    "newsletter",
    "click here",
    "read more",
    "learn more",
    "shop now",
    "buy now",
    "order now",
    "sign up",
    "subscribe",
    "get in touch",
    "contact us",
    "about us",
    "event spaces",
    "main navigation",
    "breadcrumb",
    "sitemap",
    "upcoming events",
    "past events",
    "next page",
    "previous page",
    "add to cart",
    "get directions",
    "view map",
    "plan your event",
    "stay up to date",
]

# Headings that calendars render between listings (neighbourhoods, branches)
DEFAULT_SECTION_TITLES = [
    "bayview",
    "bernal heights",
    "chinatown",
    "excelsior",
    "glen park",
    "mission bay",
    "noe valley",
    "north beach",
    "ocean view",
    "parkside",
    "potrero",
    "presidio",
    "sunset",
    "treasure island",
    "visitacion valley",
    "west portal",
    "western addition",
    "virtual library",
    "bookmobiles",
]


class ConfigError(Exception):
    """Raised when the harvester configuration cannot be loaded."""

    def __init__(self, message: str, errors: Optional[list[str]] = None):
        super().__init__(message)
        self.errors = errors or []


class HarvestSettings(BaseModel):
    """Tunables for runs and the normalization pipeline."""

    concurrency: int = Field(default=3, ge=1)
    forward_window_days: float = Field(default=14, gt=0)
    grace_period_hours: float = Field(default=24, ge=0)
    adapter_timeout_seconds: float = Field(default=60, gt=0)
    politeness_delay_seconds: float = Field(default=2, ge=0)
    timezone: str = "America/Los_Angeles"

    blacklist: list[str] = Field(default_factory=lambda: list(DEFAULT_BLACKLIST))
    section_titles: list[str] = Field(default_factory=lambda: list(DEFAULT_SECTION_TITLES))
    default_price_text: str = "Varies"
    default_category: str = "Other"

    replace_on_run: bool = True
    database_path: str = "harvester.db"
    auto_run_interval_hours: float = Field(default=6, gt=0)

    @property
    def forward_window(self) -> timedelta:
        return timedelta(days=self.forward_window_days)

    @property
    def grace_period(self) -> timedelta:
        return timedelta(hours=self.grace_period_hours)


class HarvesterConfig(BaseModel):
    """Top-level configuration: settings plus the source list."""

    version: int
    settings: HarvestSettings = Field(default_factory=HarvestSettings)
    sources: list[Source] = Field(default_factory=list)

    def enabled_sources(self) -> list[Source]:
        return [s for s in self.sources if s.enabled]

    def get_source(self, name: str) -> Optional[Source]:
        for source in self.sources:
            if source.name == name:
                return source
        return None


def parse_config(raw: dict[str, Any]) -> HarvesterConfig:
    """
    Migrate, validate and parse a raw config dict.

    Raises:
        ConfigError: If the config is invalid
    """
    config = migrate_config(dict(raw))

    errors = validate_config(config)
    if errors:
        log.error("config_invalid", errors=errors)
        raise ConfigError("Invalid harvester configuration", errors)

    try:
        return HarvesterConfig.model_validate(config)
    except ValidationError as e:
        messages = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        log.error("config_invalid", errors=messages)
        raise ConfigError("Invalid harvester configuration", messages) from e


def load_config(path: Optional[str | Path] = None) -> HarvesterConfig:
    """
    Load the harvester configuration from a JSON file.

    Args:
        path: Config file path. Defaults to $HARVESTER_CONFIG, then
              harvester.json in the working directory.

    Returns:
        Parsed configuration

    Raises:
        ConfigError: If the file is missing, unreadable or invalid
    """
    if path is None:
        path = os.environ.get(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
    path = Path(path)

    try:
        raw = json.loads(path.read_text())
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read config {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config {path} must contain a JSON object")

    config = parse_config(raw)

    db_override = os.environ.get(DB_ENV_VAR)
    if db_override:
        config.settings.database_path = db_override

    log.info(
        "config_loaded",
        path=str(path),
        sources=len(config.sources),
        enabled=len(config.enabled_sources()),
    )
    return config
