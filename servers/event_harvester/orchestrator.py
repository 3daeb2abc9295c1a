"""
Run orchestrator.

Runs source adapters in concurrency-bounded groups, each under its own
deadline, and pushes every result through the normalization pipeline into
storage and the status ledger. A failing adapter only fails its own
source; nothing but cancellation escapes run_all() or run_one().

Full runs are single-flight: a second run_all() while one is in progress
returns an "already_running" report immediately. run_one() is not bound by
that lock, so an operator can re-run a single source at any time.
"""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional, Sequence, TypeVar

import httpx
import structlog

from .config.settings import HarvestSettings
from .ledger import SourceStatusLedger
from .models import ErrorKind, NormalizedEvent, RawCandidate, RunReport, Source, SourceRunResult
from .pipeline import process_batch, reference_zone
from .sources import AdapterError, AdapterRegistry, UnknownSourceError
from .sources.registry import suggest_name
from .storage import PersistenceGateway

logger = structlog.get_logger()

T = TypeVar("T")

RUN_ALREADY_IN_PROGRESS = "already_running"


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive groups of at most `size`."""
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


def classify_error(error: BaseException) -> ErrorKind:
    """Map an adapter failure onto network / timeout / parse."""
    if isinstance(error, AdapterError):
        return error.kind
    if isinstance(error, (asyncio.TimeoutError, httpx.TimeoutException)):
        return ErrorKind.TIMEOUT
    if isinstance(error, httpx.HTTPError):
        return ErrorKind.NETWORK
    return ErrorKind.PARSE


class RunOrchestrator:
    """Schedules adapters and drives the pipeline for full and single runs."""

    def __init__(
        self,
        sources: Sequence[Source],
        registry: AdapterRegistry,
        gateway: PersistenceGateway,
        ledger: SourceStatusLedger,
        settings: Optional[HarvestSettings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the orchestrator.

        Args:
            sources: Configured sources, in scheduling order
            registry: Source name -> adapter mapping built at startup
            gateway: Event storage
            ledger: Source status ledger
            settings: Run and pipeline tunables
            clock: Reference clock for the date window (defaults to now in
                   the configured timezone)
        """
        self.sources = list(sources)
        self.registry = registry
        self.gateway = gateway
        self.ledger = ledger
        self.settings = settings or HarvestSettings()
        self.clock = clock or (lambda: datetime.now(reference_zone(self.settings.timezone)))
        self._full_run_active = False
        # Started by run_periodically(), including runs later cancelled
        self.scheduled_runs = 0

    @property
    def is_running(self) -> bool:
        """True while a full run is in progress."""
        return self._full_run_active

    def enabled_sources(self) -> list[Source]:
        return [s for s in self.sources if s.enabled]

    def get_source(self, name: str) -> Source:
        """Configured source by name.

        Raises:
            UnknownSourceError: If no source has that name
        """
        for source in self.sources:
            if source.name == name:
                return source
        raise UnknownSourceError(name, suggest_name(name, [s.name for s in self.sources]))

    def set_enabled(self, name: str, enabled: bool) -> Source:
        """Operator switch for a source. Takes effect from the next run."""
        source = self.get_source(name)
        source.enabled = enabled
        self.ledger.set_enabled(name, enabled)
        logger.info("source_toggled", source=name, enabled=enabled)
        return source

    async def run_all(self) -> RunReport:
        """Run every enabled source.

        Returns:
            RunReport for this run, or an "already_running" report if a
            full run is in progress
        """
        if self._full_run_active:
            logger.info("run_already_in_progress")
            return RunReport(status=RUN_ALREADY_IN_PROGRESS)

        self._full_run_active = True
        try:
            # Snapshot so operator toggles during the run apply to the next one
            snapshot = [s.model_copy(deep=True) for s in self.enabled_sources()]
            return await self._run(snapshot, label="all")
        finally:
            self._full_run_active = False

    async def run_one(self, name: str) -> RunReport:
        """Run a single source, enabled or not, regardless of any full run.

        Raises:
            UnknownSourceError: If no source has that name
        """
        source = self.get_source(name)
        if not source.enabled:
            logger.info("running_disabled_source", source=name)
        return await self._run([source.model_copy(deep=True)], label=name)

    async def run_periodically(
        self,
        interval_seconds: Optional[float] = None,
        stop: Optional[asyncio.Event] = None,
    ) -> int:
        """Call run_all() every interval until `stop` is set.

        Returns:
            Number of runs started
        """
        if interval_seconds is None:
            interval_seconds = self.settings.auto_run_interval_hours * 3600
        stop = stop or asyncio.Event()
        runs = 0

        while not stop.is_set():
            runs += 1
            self.scheduled_runs += 1
            report = await self.run_all()
            logger.info(
                "scheduled_run_finished",
                status=report.status,
                succeeded=report.succeeded,
                failed=report.failed,
                next_run_in=interval_seconds,
            )
            try:
                await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            except asyncio.TimeoutError:
                pass

        return runs

    async def _run(self, sources: list[Source], label: str) -> RunReport:
        started_at = datetime.now(timezone.utc)
        started = time.monotonic()
        groups = chunk(sources, self.settings.concurrency)

        logger.info("run_started", run=label, sources=len(sources), groups=len(groups))

        results: dict[str, SourceRunResult] = {}
        for index, group in enumerate(groups):
            logger.debug(
                "group_started",
                run=label,
                group=index + 1,
                total_groups=len(groups),
                sources=[s.name for s in group],
            )
            for result in await self._run_group(group):
                results[result.name] = result

            if index < len(groups) - 1 and self.settings.politeness_delay_seconds > 0:
                await asyncio.sleep(self.settings.politeness_delay_seconds)

        report = RunReport(
            started_at=started_at,
            per_source=[results[s.name] for s in sources],
            total_duration_ms=_elapsed_ms(started),
        )
        logger.info(
            "run_finished",
            run=label,
            succeeded=report.succeeded,
            failed=report.failed,
            events=report.total_events,
            duration_ms=report.total_duration_ms,
        )
        return report

    async def _run_group(self, group: list[Source]) -> list[SourceRunResult]:
        """Run one group concurrently; results in completion order."""
        tasks = [
            asyncio.create_task(self._run_source(source), name=f"harvest:{source.name}")
            for source in group
        ]
        results: list[SourceRunResult] = []
        try:
            for finished in asyncio.as_completed(tasks):
                results.append(await finished)
        finally:
            # Only reached with pending tasks when this run is being cancelled;
            # wait for their sessions to close before letting it propagate
            pending = [t for t in tasks if not t.done()]
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        return results

    async def _run_source(self, source: Source) -> SourceRunResult:
        """Harvest, normalize and store one source. Never raises except on cancel."""
        started = time.monotonic()

        if source.name not in self.registry:
            return self._fail(source, ErrorKind.PARSE, "No adapter registered for source", started)

        adapter = self.registry.get(source.name)
        timeout = self.settings.adapter_timeout_seconds
        deadline = datetime.now(timezone.utc) + timedelta(seconds=timeout)

        try:
            candidates = await asyncio.wait_for(adapter.run(source, deadline), timeout=timeout)
        except asyncio.TimeoutError:
            return self._fail(source, ErrorKind.TIMEOUT, f"Timed out after {timeout:g}s", started)
        except (AdapterError, httpx.HTTPError) as e:
            return self._fail(source, classify_error(e), str(e) or type(e).__name__, started)
        except Exception as e:
            logger.error("adapter_crashed", source=source.name, exc_info=True)
            return self._fail(source, ErrorKind.PARSE, f"{type(e).__name__}: {e}", started)

        try:
            return self._complete(source, list(candidates or []), started)
        except Exception as e:
            logger.error("pipeline_crashed", source=source.name, exc_info=True)
            return self._fail(source, ErrorKind.PARSE, f"{type(e).__name__}: {e}", started)

    def _complete(
        self, source: Source, candidates: list[RawCandidate], started: float
    ) -> SourceRunResult:
        outcome = process_batch(candidates, source, self.clock(), self.settings)
        persisted, failures = self._persist(source, outcome.accepted)
        duration_ms = _elapsed_ms(started)

        result = SourceRunResult(
            name=source.name,
            success=True,
            events_found=len(outcome.accepted),
            candidates=len(candidates),
            rejected=outcome.rejected,
            dedup_hits=outcome.dedup_hits,
            persisted=persisted,
            persist_failures=failures,
            duration_ms=duration_ms,
        )
        self._write_ledger(self.ledger.record_success, source.name, len(outcome.accepted), duration_ms)
        logger.info(
            "source_completed",
            source=source.name,
            candidates=result.candidates,
            accepted=result.events_found,
            rejected=outcome.rejected_total,
            dedup_hits=result.dedup_hits,
            persisted=persisted,
            persist_failures=failures,
            duration_ms=duration_ms,
        )
        return result

    def _fail(
        self, source: Source, kind: ErrorKind, message: str, started: float
    ) -> SourceRunResult:
        duration_ms = _elapsed_ms(started)
        text = f"{kind.value}: {message}"
        self._write_ledger(self.ledger.record_error, source.name, text, duration_ms)
        logger.warning(
            "source_failed",
            source=source.name,
            error_kind=kind.value,
            error=message,
            duration_ms=duration_ms,
        )
        return SourceRunResult(
            name=source.name,
            success=False,
            error=message,
            error_kind=kind,
            duration_ms=duration_ms,
        )

    def _persist(self, source: Source, events: list[NormalizedEvent]) -> tuple[int, int]:
        """Write accepted events; failures are per event. Returns (written, failed).

        Under replace-on-run the source's other stored events are removed
        only after at least one new event was written.
        """
        if not events:
            return 0, 0

        written: set[str] = set()
        failed = 0
        for event in events:
            try:
                self.gateway.upsert_event(event)
                written.add(event.unique_key)
            except Exception as e:
                failed += 1
                logger.error(
                    "event_persist_failed",
                    source=source.name,
                    title=event.title,
                    error=str(e),
                )

        replace = source.replace_on_run
        if replace is None:
            replace = self.settings.replace_on_run
        if replace and written:
            try:
                removed = self.gateway.clear_events_for_source(source.name, keep=written)
                logger.debug("source_events_replaced", source=source.name, removed=removed)
            except Exception as e:
                logger.error("source_clear_failed", source=source.name, error=str(e))
        elif replace:
            logger.warning("source_events_kept", source=source.name, reason="nothing written")

        return len(written), failed

    def _write_ledger(self, record: Callable[..., object], *args: object) -> None:
        try:
            record(*args)
        except Exception as e:
            logger.error("ledger_write_failed", source=args[0], error=str(e))
