"""
Persistence gateway interface.

The harvester only talks to storage through this narrow interface:
idempotent event upserts keyed by NormalizedEvent.unique_key, per-source
clears, filtered queries, and the status ledger's upsert/append records.
Every method is synchronous; within one event loop each call is atomic.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

from ..models import EventQuery, NormalizedEvent, SourceStatusEntry, StatusLogEntry


class PersistenceError(Exception):
    """Raised when a storage operation fails."""
    pass


class PersistenceGateway(ABC):
    """Storage backend used by the orchestrator and the status ledger."""

    # Events

    @abstractmethod
    def upsert_event(self, event: NormalizedEvent) -> None:
        """Insert or replace the event with the same unique_key."""

    @abstractmethod
    def clear_events_for_source(self, source_name: str, keep: Iterable[str] = ()) -> int:
        """Delete a source's events except those whose unique_key is in `keep`.

        Returns the number removed.
        """

    @abstractmethod
    def query_events(self, query: Optional[EventQuery] = None) -> list[NormalizedEvent]:
        """Events matching the filters, ordered by start time."""

    @abstractmethod
    def clear_all_events(self) -> int:
        """Delete every event. Returns the number removed."""

    @abstractmethod
    def event_stats(self) -> dict[str, int]:
        """Event counts: total plus one entry per source."""

    # Source status

    @abstractmethod
    def get_status(self, source_name: str) -> Optional[SourceStatusEntry]:
        """Current status of a source, or None if never recorded."""

    @abstractmethod
    def list_status(self) -> list[SourceStatusEntry]:
        """All status entries ordered by source name."""

    @abstractmethod
    def upsert_status(self, entry: SourceStatusEntry) -> None:
        """Insert or replace the status entry for entry.source_name."""

    @abstractmethod
    def append_status_log(self, entry: StatusLogEntry) -> None:
        """Append one run log line."""

    @abstractmethod
    def list_status_logs(
        self, source_name: Optional[str] = None, limit: int = 100
    ) -> list[StatusLogEntry]:
        """Most recent log lines first."""

    @abstractmethod
    def delete_status(self, source_name: Optional[str] = None) -> int:
        """Remove status entries (one source, or all). Returns the number removed."""

    def close(self) -> None:
        """Release backend resources."""
