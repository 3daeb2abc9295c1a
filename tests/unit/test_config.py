"""Tests for configuration loading and migration."""

import json

import pytest

from servers.event_harvester.config import (
    CURRENT_VERSION,
    ConfigError,
    get_default_config,
    load_config,
    migrate_config,
    parse_config,
    validate_config,
)


@pytest.fixture
def v1_config() -> dict:
    """Config in the original scrapers-table shape."""
    return {
        "version": 1,
        "concurrency": 2,
        "database_path": "old.db",
        "scrapers": [
            {
                "name": "sf-library",
                "enabled": 1,
                "config": json.dumps({
                    "url": "https://sfpl.example.org/events",
                    "category": "Library",
                    "selectors": {"title": [".event-title"]},
                }),
            },
            {"name": "sf-parks", "enabled": 0, "config": "{not json"},
        ],
    }


class TestMigration:
    """Tests for v1 -> v2 migration."""

    def test_scraper_rows_become_sources(self, v1_config):
        migrated = migrate_config(v1_config)

        assert migrated["version"] == CURRENT_VERSION
        assert "scrapers" not in migrated
        library, parks = migrated["sources"]
        assert library["url"] == "https://sfpl.example.org/events"
        assert library["category"] == "Library"
        assert library["config"] == {"selectors": {"title": [".event-title"]}}
        assert library["enabled"] is True
        assert parks["enabled"] is False
        assert parks["config"] == {}

    def test_flat_tunables_move_to_settings(self, v1_config):
        migrated = migrate_config(v1_config)

        assert migrated["settings"] == {"concurrency": 2, "database_path": "old.db"}
        assert "concurrency" not in migrated

    def test_current_version_untouched(self):
        config = get_default_config()
        assert migrate_config(config) is config

    def test_parse_migrated(self, v1_config):
        config = parse_config(v1_config)

        assert config.settings.concurrency == 2
        assert [s.name for s in config.enabled_sources()] == ["sf-library"]
        assert config.get_source("sf-parks").enabled is False
        assert config.get_source("missing") is None


class TestValidation:
    """Tests for validate_config."""

    def test_default_is_valid(self):
        assert validate_config(get_default_config()) == []

    def test_duplicate_and_missing_names(self):
        config = get_default_config()
        config["sources"] = [{"name": "a"}, {"name": "a"}, {"url": "https://x.example"}]

        errors = validate_config(config)

        assert "Duplicate source name: a" in errors
        assert "sources[2] is missing a name" in errors

    def test_bad_settings(self):
        config = get_default_config()
        config["settings"]["concurrency"] = 0
        config["settings"]["forward_window_days"] = -1

        assert len(validate_config(config)) == 2

    def test_future_version(self):
        errors = validate_config({"version": CURRENT_VERSION + 1})
        assert "newer than supported" in errors[0]

    def test_parse_raises_with_errors(self):
        with pytest.raises(ConfigError) as exc_info:
            parse_config({"version": 2, "sources": [{"name": "a"}, {"name": "a"}]})
        assert exc_info.value.errors == ["Duplicate source name: a"]

    def test_parse_reports_model_errors(self):
        config = get_default_config()
        config["settings"]["timezone"] = 42

        with pytest.raises(ConfigError) as exc_info:
            parse_config(config)
        assert any("timezone" in e for e in exc_info.value.errors)


class TestLoadConfig:
    """Tests for load_config."""

    def test_loads_file(self, tmp_path):
        path = tmp_path / "harvester.json"
        config = get_default_config()
        config["sources"] = [{"name": "sf-library", "url": "https://sfpl.example.org/events"}]
        path.write_text(json.dumps(config))

        loaded = load_config(path)

        assert loaded.sources[0].name == "sf-library"
        assert loaded.settings.timezone == "America/Los_Angeles"

    def test_env_var_path_and_db_override(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.json"
        path.write_text(json.dumps(get_default_config()))
        monkeypatch.setenv("HARVESTER_CONFIG", str(path))
        monkeypatch.setenv("HARVESTER_DB", str(tmp_path / "events.db"))

        loaded = load_config()

        assert loaded.settings.database_path == str(tmp_path / "events.db")

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError) as exc_info:
            load_config(tmp_path / "nope.json")
        assert "not found" in str(exc_info.value)

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{")
        with pytest.raises(ConfigError):
            load_config(path)

    def test_not_an_object(self, tmp_path):
        path = tmp_path / "list.json"
        path.write_text("[]")
        with pytest.raises(ConfigError):
            load_config(path)
