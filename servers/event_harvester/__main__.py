"""
Trigger surface and CLI entry point for the Event Harvester.

HarvesterServer exposes the operator tools (run, status, logs, events,
enable/disable, reset) as a table of async callables returning
JSON-serialisable dicts. The CLI wraps the same tools.

Run with: python -m servers.event_harvester run-all
"""

import argparse
import asyncio
import json
import signal
import sys
from datetime import datetime
from typing import Callable, Optional

import structlog

from . import __version__
from .config import ConfigError, HarvesterConfig, load_config
from .ledger import SourceStatusLedger
from .log_config import configure_logging
from .models import EventQuery
from .orchestrator import RunOrchestrator
from .pipeline.dates import localize, reference_zone
from .sources import AdapterRegistry, UnknownSourceError, build_registry
from .storage import PersistenceError, PersistenceGateway, SqliteGateway

logger = structlog.get_logger()

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_UNKNOWN_SOURCE = 2


class HarvesterServer:
    """Operator-facing tool table over one orchestrator."""

    def __init__(
        self,
        config: HarvesterConfig,
        gateway: PersistenceGateway,
        registry: Optional[AdapterRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.config = config
        self.gateway = gateway
        self.ledger = SourceStatusLedger(gateway)
        self.orchestrator = RunOrchestrator(
            config.sources,
            registry if registry is not None else build_registry(config.sources),
            gateway,
            self.ledger,
            config.settings,
            clock,
        )
        self.tools = {
            "run_all": self.run_all,
            "run_one": self.run_one,
            "status": self.status,
            "logs": self.logs,
            "events": self.events,
            "set_enabled": self.set_enabled,
            "reset_status": self.reset_status,
            "clear_events": self.clear_events,
            "stats": self.stats,
        }

    async def run_all(self) -> dict:
        """Run every enabled source."""
        report = await self.orchestrator.run_all()
        return report.model_dump(mode="json")

    async def run_one(self, name: str) -> dict:
        """
        Run a single source by name.

        Raises:
            UnknownSourceError: If no source has that name
        """
        report = await self.orchestrator.run_one(name)
        return report.model_dump(mode="json")

    async def status(self) -> dict:
        """
        Health of every configured source.

        Sources that have never run are listed with a null status.
        """
        entries = {e.source_name: e for e in self.ledger.list()}
        sources = []
        for source in self.orchestrator.sources:
            entry = entries.get(source.name)
            sources.append({
                "name": source.name,
                "adapter": source.adapter,
                "category": source.category,
                "enabled": source.enabled,
                "healthy": entry.healthy if entry else None,
                "status": entry.model_dump(mode="json") if entry else None,
            })

        return {
            "running": self.orchestrator.is_running,
            "sources": sources,
            "healthy": self.ledger.healthy_sources(),
            "unhealthy": self.ledger.unhealthy_sources(),
        }

    async def logs(self, name: Optional[str] = None, limit: int = 100) -> dict:
        """Most recent run log lines, newest first."""
        lines = self.ledger.logs(name, limit)
        return {
            "source": name,
            "logs": [line.model_dump(mode="json") for line in lines],
        }

    async def events(
        self,
        source: Optional[str] = None,
        category: Optional[str] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
        search: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> dict:
        """
        Stored events matching the filters, soonest first.

        Args:
            source: Source name
            category: Category label
            date_from: ISO date or datetime; naive values are local time
            date_to: ISO date or datetime; naive values are local time
            search: Substring of title, description or location
            limit: Maximum events returned
        """
        query = EventQuery(
            source=source,
            category=category,
            date_from=date_from,
            date_to=date_to,
            search=search,
            limit=limit,
        )
        tz = reference_zone(self.config.settings.timezone)
        if query.date_from:
            query.date_from = localize(query.date_from, tz)
        if query.date_to:
            query.date_to = localize(query.date_to, tz)

        events = self.gateway.query_events(query)
        return {
            "events": [e.model_dump(mode="json") for e in events],
            "total": len(events),
        }

    async def set_enabled(self, name: str, enabled: bool) -> dict:
        """Enable or disable a source for subsequent runs."""
        source = self.orchestrator.set_enabled(name, enabled)
        return {"name": source.name, "enabled": source.enabled}

    async def reset_status(self, name: Optional[str] = None) -> dict:
        """Forget ledger entries for one source, or all of them."""
        if name is not None:
            self.orchestrator.get_source(name)
        return {"removed": self.ledger.reset(name)}

    async def clear_events(self) -> dict:
        """Delete every stored event."""
        removed = self.gateway.clear_all_events()
        logger.info("events_cleared", removed=removed)
        return {"removed": removed}

    async def stats(self) -> dict:
        """Stored event counts, total and per source."""
        counts = self.gateway.event_stats()
        return {
            "total": counts.pop("total", 0),
            "by_source": counts,
            "sources": len(self.orchestrator.sources),
            "enabled": len(self.orchestrator.enabled_sources()),
        }


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m servers.event_harvester",
        description="Harvest event listings from configured sources.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config", help="Config file (default: $HARVESTER_CONFIG or harvester.json)")
    parser.add_argument("--db", help="SQLite database path (overrides the config)")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR")
    parser.add_argument("--json-logs", action="store_true", help="Emit JSON log lines on stderr")

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("run-all", help="Run every enabled source once")

    run_one = commands.add_parser("run-one", help="Run a single source")
    run_one.add_argument("name")

    commands.add_parser("status", help="Show per-source health")

    logs = commands.add_parser("logs", help="Show recent run log lines")
    logs.add_argument("name", nargs="?")
    logs.add_argument("--limit", type=int, default=100)

    events = commands.add_parser("events", help="List stored events")
    events.add_argument("--source")
    events.add_argument("--category")
    events.add_argument("--from", dest="date_from", help="ISO date or datetime")
    events.add_argument("--to", dest="date_to", help="ISO date or datetime")
    events.add_argument("--search")
    events.add_argument("--limit", type=int)

    commands.add_parser("stats", help="Show stored event counts")

    watch = commands.add_parser("watch", help="Run every enabled source on an interval")
    watch.add_argument("--interval-hours", type=float, help="Hours between runs")

    return parser


async def watch(server: HarvesterServer, interval_hours: Optional[float]) -> int:
    """Run until SIGINT or SIGTERM.

    A signal cancels the run in progress; every in-flight adapter session
    is closed before this returns.

    Returns:
        Number of scheduled runs started
    """
    orchestrator = server.orchestrator
    stop = asyncio.Event()
    interval = interval_hours * 3600 if interval_hours else None
    task = asyncio.create_task(orchestrator.run_periodically(interval, stop))

    def shutdown(sig: signal.Signals) -> None:
        if not stop.is_set():
            logger.info("watch_shutdown", signal=sig.name)
        stop.set()
        task.cancel()

    loop = asyncio.get_running_loop()
    signals = (signal.SIGINT, signal.SIGTERM)
    for sig in signals:
        loop.add_signal_handler(sig, shutdown, sig)

    logger.info("watch_started", interval_seconds=interval)
    try:
        await task
    except asyncio.CancelledError:
        if not stop.is_set():
            raise
    finally:
        for sig in signals:
            loop.remove_signal_handler(sig)

    logger.info("watch_stopped", runs=orchestrator.scheduled_runs)
    return orchestrator.scheduled_runs


async def dispatch(server: HarvesterServer, args: argparse.Namespace) -> Optional[dict]:
    if args.command == "run-all":
        return await server.run_all()
    if args.command == "run-one":
        return await server.run_one(args.name)
    if args.command == "status":
        return await server.status()
    if args.command == "logs":
        return await server.logs(args.name, args.limit)
    if args.command == "events":
        return await server.events(
            source=args.source,
            category=args.category,
            date_from=args.date_from,
            date_to=args.date_to,
            search=args.search,
            limit=args.limit,
        )
    if args.command == "stats":
        return await server.stats()
    if args.command == "watch":
        return {"runs": await watch(server, args.interval_hours)}
    return None


def main(argv: Optional[list[str]] = None) -> int:
    """CLI entry point. Prints command output as JSON on stdout."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level, json_output=args.json_logs)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        logger.error("config_load_failed", error=str(e), details=e.errors)
        return EXIT_CONFIG

    db_path = args.db or config.settings.database_path
    try:
        gateway = SqliteGateway(db_path)
    except PersistenceError as e:
        logger.error("database_open_failed", path=db_path, error=str(e))
        return EXIT_CONFIG

    server = HarvesterServer(config, gateway)
    try:
        result = asyncio.run(dispatch(server, args))
    except UnknownSourceError as e:
        logger.error("unknown_source", name=e.name, suggestion=e.suggestion)
        print(json.dumps({"error": str(e)}, indent=2))
        return EXIT_UNKNOWN_SOURCE
    finally:
        gateway.close()

    print(json.dumps(result, indent=2))
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
