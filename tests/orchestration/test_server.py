"""Tests for the trigger surface and CLI."""

import asyncio
import json
import os
import signal
from functools import partial
from unittest.mock import patch

import pytest
from structlog.testing import capture_logs

from servers.event_harvester.__main__ import (
    EXIT_CONFIG,
    EXIT_OK,
    EXIT_UNKNOWN_SOURCE,
    HarvesterServer,
    main,
    watch,
)
from servers.event_harvester.config import HarvesterConfig, get_default_config, load_config
from servers.event_harvester.log_config import configure_logging
from servers.event_harvester.sources import AdapterNetworkError, AdapterRegistry, UnknownSourceError


@pytest.fixture
def server(make_sources, scripted, live_show, gateway, settings, clock) -> HarvesterServer:
    """Server over two scripted sources: one healthy, one failing."""
    sources = make_sources("chapel", "library")
    registry = AdapterRegistry()
    registry.register("chapel", scripted(candidates=[live_show]))
    registry.register("library", scripted(error=AdapterNetworkError("HTTP 503")))
    config = HarvesterConfig(version=2, settings=settings, sources=sources)
    return HarvesterServer(config, gateway, registry=registry, clock=clock)


class TestHarvesterServer:
    """Tests for the tool table."""

    def test_tools_registered(self, server):
        assert set(server.tools) == {
            "run_all", "run_one", "status", "logs", "events",
            "set_enabled", "reset_status", "clear_events", "stats",
        }

    @pytest.mark.asyncio
    async def test_run_all_returns_json_report(self, server):
        report = await server.tools["run_all"]()

        json.dumps(report)
        assert report["status"] == "completed"
        assert report["succeeded"] == 1
        assert report["failed"] == 1
        assert report["per_source"][1]["error_kind"] == "network"

    @pytest.mark.asyncio
    async def test_run_one_unknown(self, server):
        with pytest.raises(UnknownSourceError):
            await server.run_one("chapl")

    @pytest.mark.asyncio
    async def test_status_after_run(self, server):
        before = await server.status()
        assert [s["status"] for s in before["sources"]] == [None, None]

        await server.run_all()
        status = await server.status()

        assert status["running"] is False
        assert status["healthy"] == ["chapel"]
        assert status["unhealthy"] == ["library"]
        library = status["sources"][1]
        assert library["healthy"] is False
        assert library["status"]["last_error"] == "network: HTTP 503"

    @pytest.mark.asyncio
    async def test_logs_and_events(self, server):
        await server.run_all()

        logs = await server.logs("library")
        assert [line["status"] for line in logs["logs"]] == ["error"]

        events = await server.events(source="chapel", date_from="2025-08-21", date_to="2025-08-22")
        assert events["total"] == 1
        assert events["events"][0]["title"] == "Live Show"

        assert (await server.events(search="nothing like this"))["total"] == 0

    @pytest.mark.asyncio
    async def test_set_enabled_and_stats(self, server):
        await server.run_all()

        toggled = await server.set_enabled("library", False)
        stats = await server.stats()

        assert toggled == {"name": "library", "enabled": False}
        assert stats == {"total": 1, "by_source": {"chapel": 1}, "sources": 2, "enabled": 1}

    @pytest.mark.asyncio
    async def test_reset_and_clear(self, server):
        await server.run_all()

        assert await server.reset_status("chapel") == {"removed": 1}
        assert await server.clear_events() == {"removed": 1}
        with pytest.raises(UnknownSourceError):
            await server.reset_status("nobody")


class TestWatch:
    """Tests for the signal-driven scheduled loop."""

    @pytest.mark.asyncio
    async def test_signal_cancels_run_in_progress(
        self, make_sources, scripted, gateway, settings, clock
    ):
        """SIGTERM mid-run closes every open adapter session before returning."""
        sources = make_sources("chapel", "library")
        adapters = {s.name: scripted(delay=30) for s in sources}
        registry = AdapterRegistry()
        for name, adapter in adapters.items():
            registry.register(name, adapter)
        config = HarvesterConfig(version=2, settings=settings, sources=sources)
        server = HarvesterServer(config, gateway, registry=registry, clock=clock)

        watching = asyncio.create_task(watch(server, interval_hours=6))
        while sum(a.sessions_opened for a in adapters.values()) < 2:
            await asyncio.sleep(0.01)

        os.kill(os.getpid(), signal.SIGTERM)
        runs = await asyncio.wait_for(watching, timeout=5)

        assert runs == 1
        for adapter in adapters.values():
            assert adapter.sessions_closed == 1
        assert server.orchestrator.is_running is False
        assert gateway.list_status() == []


class TestCli:
    """Tests for the command line entry point."""

    @pytest.fixture(autouse=True)
    def uncached_logging(self):
        """main() points logging at the captured stderr; keep loggers from pinning it."""
        with patch(
            "servers.event_harvester.__main__.configure_logging",
            partial(configure_logging, cache_loggers=False),
        ):
            yield

    @pytest.fixture
    def config_path(self, tmp_path):
        config = get_default_config()
        config["settings"]["database_path"] = str(tmp_path / "harvester.db")
        config["sources"] = [
            {"name": "chapel", "url": "https://chapel.example.com/calendar"},
            {"name": "library", "url": "https://library.example.org/feed", "adapter": "rss_feed"},
        ]
        path = tmp_path / "harvester.json"
        path.write_text(json.dumps(config))
        return path

    def test_status(self, config_path, capsys):
        code = main(["--config", str(config_path), "status"])

        assert code == EXIT_OK
        output = json.loads(capsys.readouterr().out)
        assert [s["name"] for s in output["sources"]] == ["chapel", "library"]

    def test_stats_with_db_override(self, config_path, tmp_path, capsys):
        code = main(["--config", str(config_path), "--db", str(tmp_path / "other.db"), "stats"])

        assert code == EXIT_OK
        assert json.loads(capsys.readouterr().out)["total"] == 0
        assert (tmp_path / "other.db").exists()

    def test_missing_config(self, tmp_path):
        assert main(["--config", str(tmp_path / "missing.json"), "status"]) == EXIT_CONFIG

    def test_invalid_config(self, tmp_path):
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"version": 2, "sources": [{"name": "a"}, {"name": "a"}]}))
        assert main(["--config", str(path), "run-all"]) == EXIT_CONFIG

    def test_unknown_source(self, config_path, capsys):
        code = main(["--config", str(config_path), "run-one", "chapl"])

        assert code == EXIT_UNKNOWN_SOURCE
        assert "did you mean 'chapel'" in json.loads(capsys.readouterr().out)["error"]

    def test_loggers_usable_after_cli_run(self, config_path):
        main(["--config", str(config_path), "status"])

        with capture_logs() as captured:
            load_config(config_path)

        assert "config_loaded" in [e["event"] for e in captured]
