"""Source status ledger: durable per-source health records."""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from .models import SourceStatusEntry, StatusLogEntry
from .storage import PersistenceGateway

logger = structlog.get_logger()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SourceStatusLedger:
    """Record and report the outcome of every source run.

    Every write appends a log line and upserts the source's current entry.
    Names are created on first write; nothing is deleted except by reset().
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        clock: Callable[[], datetime] = utc_now,
    ):
        """Initialize the ledger.

        Args:
            gateway: Storage for entries and log lines
            clock: Source of timestamps (injectable for tests)
        """
        self.gateway = gateway
        self.clock = clock

    def _current(self, source_name: str, now: datetime) -> SourceStatusEntry:
        return self.gateway.get_status(source_name) or SourceStatusEntry(
            source_name=source_name, last_run_at=now
        )

    def record_success(
        self, source_name: str, event_count: int, duration_ms: int = 0
    ) -> SourceStatusEntry:
        """Record a successful run of a source.

        Args:
            source_name: Name of the source
            event_count: Events accepted from this run
            duration_ms: Run duration

        Returns:
            The updated entry
        """
        now = self.clock()
        entry = self._current(source_name, now).model_copy(
            update={
                "last_run_at": now,
                "last_success_at": now,
                "consecutive_failures": 0,
                "last_event_count": event_count,
            }
        )
        self.gateway.append_status_log(
            StatusLogEntry(
                source_name=source_name,
                status="success",
                events_found=event_count,
                duration_ms=duration_ms,
                created_at=now,
            )
        )
        self.gateway.upsert_status(entry)
        logger.debug("source_healthy", source=source_name, event_count=event_count)
        return entry

    def record_error(
        self, source_name: str, message: str, duration_ms: int = 0
    ) -> SourceStatusEntry:
        """Record a failed run of a source.

        Args:
            source_name: Name of the source
            message: Classified error text
            duration_ms: Run duration

        Returns:
            The updated entry
        """
        now = self.clock()
        current = self._current(source_name, now)
        entry = current.model_copy(
            update={
                "last_run_at": now,
                "error_count": current.error_count + 1,
                "consecutive_failures": current.consecutive_failures + 1,
                "last_error": message,
                "last_event_count": 0,
            }
        )
        self.gateway.append_status_log(
            StatusLogEntry(
                source_name=source_name,
                status="error",
                message=message,
                duration_ms=duration_ms,
                created_at=now,
            )
        )
        self.gateway.upsert_status(entry)
        logger.warning(
            "source_unhealthy",
            source=source_name,
            consecutive_failures=entry.consecutive_failures,
            error=message,
        )
        return entry

    def set_enabled(self, source_name: str, enabled: bool) -> SourceStatusEntry:
        """Mirror an operator's enable/disable decision into the ledger."""
        now = self.clock()
        entry = self._current(source_name, now).model_copy(update={"enabled": enabled})
        self.gateway.upsert_status(entry)
        return entry

    def get(self, source_name: str) -> Optional[SourceStatusEntry]:
        return self.gateway.get_status(source_name)

    def logs(self, source_name: Optional[str] = None, limit: int = 100) -> list[StatusLogEntry]:
        """Most recent run log lines, optionally for one source."""
        return self.gateway.list_status_logs(source_name, limit)

    def healthy_sources(self) -> list[str]:
        return [e.source_name for e in self.list() if e.healthy]

    def unhealthy_sources(self) -> list[str]:
        return [e.source_name for e in self.list() if not e.healthy]

    def reset(self, source_name: Optional[str] = None) -> int:
        """Delete status entries for one source, or all. Log lines are kept."""
        removed = self.gateway.delete_status(source_name)
        logger.info("ledger_reset", source=source_name or "*", removed=removed)
        return removed

    # Defined last: inside the class body this name shadows the builtin
    def list(self) -> list[SourceStatusEntry]:
        return self.gateway.list_status()
