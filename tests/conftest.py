"""Shared pytest fixtures for event harvester tests."""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

import pytest
import structlog

from servers.event_harvester.config import HarvestSettings
from servers.event_harvester.ledger import SourceStatusLedger
from servers.event_harvester.models import RawCandidate, Source
from servers.event_harvester.sources.base import Adapter
from servers.event_harvester.storage import MemoryGateway

PACIFIC = ZoneInfo("America/Los_Angeles")


class ConcurrencyTracker:
    """Records how many adapters are inside extract() at once."""

    def __init__(self):
        self.active = 0
        self.max_active = 0
        self.started: list[str] = []
        self.finished: list[str] = []

    def enter(self, name: str) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.started.append(name)

    def exit(self, name: str) -> None:
        self.active -= 1
        self.finished.append(name)


class ScriptedAdapter(Adapter):
    """Adapter whose behaviour is fixed up front: return, raise, or stall."""

    kind = "scripted"

    def __init__(
        self,
        candidates: Optional[list[RawCandidate]] = None,
        error: Optional[BaseException] = None,
        delay: float = 0.0,
        tracker: Optional[ConcurrencyTracker] = None,
    ):
        self.candidates = candidates or []
        self.error = error
        self.delay = delay
        self.tracker = tracker
        self.calls: list[str] = []
        self.sessions_opened = 0
        self.sessions_closed = 0

    @asynccontextmanager
    async def session(self, source: Source):
        self.sessions_opened += 1
        try:
            yield None
        finally:
            self.sessions_closed += 1

    async def extract(self, source: Source, session, deadline: datetime) -> list[RawCandidate]:
        self.calls.append(source.name)
        if self.tracker:
            self.tracker.enter(source.name)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                raise self.error
            return list(self.candidates)
        finally:
            if self.tracker:
                self.tracker.exit(source.name)


@pytest.fixture
def now() -> datetime:
    """Fixed reference instant: Monday 2025-08-18 10:00 Pacific."""
    return datetime(2025, 8, 18, 10, 0, tzinfo=PACIFIC)


@pytest.fixture
def clock(now: datetime):
    """Clock callable returning the fixed reference instant."""
    return lambda: now


@pytest.fixture
def settings() -> HarvestSettings:
    """Settings with the politeness delay switched off for fast tests."""
    return HarvestSettings(
        concurrency=3,
        forward_window_days=14,
        grace_period_hours=24,
        adapter_timeout_seconds=5,
        politeness_delay_seconds=0,
    )


@pytest.fixture
def sample_source() -> Source:
    """Provide a sample calendar source."""
    return Source(
        name="sf-library",
        url="https://sfpl.example.org/events",
        category="Library",
        location="Main Library, San Francisco",
    )


@pytest.fixture
def make_sources():
    """Factory for a list of enabled sources named after the given letters."""

    def _make(*names: str, **overrides) -> list[Source]:
        return [
            Source(name=name, url=f"https://{name.lower()}.example.com/events", **overrides)
            for name in names
        ]

    return _make


@pytest.fixture
def live_show() -> RawCandidate:
    """A well-formed candidate three days after the reference instant."""
    return RawCandidate(
        title="Live Show",
        date_text="2025-08-21 20:00",
        location="The Chapel",
        price="$20",
        url="/events/live-show",
    )


@pytest.fixture
def gateway() -> MemoryGateway:
    """Provide an empty in-memory gateway."""
    return MemoryGateway()


@pytest.fixture
def ledger(gateway: MemoryGateway) -> SourceStatusLedger:
    """Provide a ledger over the in-memory gateway."""
    return SourceStatusLedger(gateway)


@pytest.fixture
def tracker() -> ConcurrencyTracker:
    return ConcurrencyTracker()


@pytest.fixture
def scripted():
    """Factory for ScriptedAdapter instances."""
    return ScriptedAdapter


@pytest.fixture(autouse=True)
def reset_structlog():
    """Drop any logging configuration a test installed, e.g. via main()."""
    yield
    structlog.reset_defaults()
