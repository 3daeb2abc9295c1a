"""In-process persistence gateway, used by tests and dry runs."""

from typing import Iterable, Optional

from ..models import EventQuery, NormalizedEvent, SourceStatusEntry, StatusLogEntry
from .gateway import PersistenceGateway


def matches(event: NormalizedEvent, query: EventQuery) -> bool:
    """Check one event against query filters."""
    if query.source and event.source_name != query.source:
        return False
    if query.category and event.category != query.category:
        return False
    if query.date_from and event.start_time < query.date_from:
        return False
    if query.date_to and event.start_time > query.date_to:
        return False
    if query.search:
        needle = query.search.casefold()
        haystack = " ".join(
            part for part in (event.title, event.description, event.location) if part
        ).casefold()
        if needle not in haystack:
            return False
    return True


class MemoryGateway(PersistenceGateway):
    """Dict-backed gateway."""

    def __init__(self):
        self.events: dict[str, NormalizedEvent] = {}
        self.status: dict[str, SourceStatusEntry] = {}
        self.logs: list[StatusLogEntry] = []

    def upsert_event(self, event: NormalizedEvent) -> None:
        self.events[event.unique_key] = event.model_copy()

    def clear_events_for_source(self, source_name: str, keep: Iterable[str] = ()) -> int:
        keep = set(keep)
        doomed = [
            k for k, e in self.events.items() if e.source_name == source_name and k not in keep
        ]
        for key in doomed:
            del self.events[key]
        return len(doomed)

    def query_events(self, query: Optional[EventQuery] = None) -> list[NormalizedEvent]:
        query = query or EventQuery()
        found = sorted(
            (e for e in self.events.values() if matches(e, query)),
            key=lambda e: e.start_time,
        )
        if query.limit is not None:
            found = found[: query.limit]
        return [e.model_copy() for e in found]

    def clear_all_events(self) -> int:
        count = len(self.events)
        self.events.clear()
        return count

    def event_stats(self) -> dict[str, int]:
        stats: dict[str, int] = {"total": len(self.events)}
        for event in self.events.values():
            stats[event.source_name] = stats.get(event.source_name, 0) + 1
        return stats

    def get_status(self, source_name: str) -> Optional[SourceStatusEntry]:
        entry = self.status.get(source_name)
        return entry.model_copy() if entry else None

    def list_status(self) -> list[SourceStatusEntry]:
        return [self.status[name].model_copy() for name in sorted(self.status)]

    def upsert_status(self, entry: SourceStatusEntry) -> None:
        self.status[entry.source_name] = entry.model_copy()

    def append_status_log(self, entry: StatusLogEntry) -> None:
        self.logs.append(entry.model_copy())

    def list_status_logs(
        self, source_name: Optional[str] = None, limit: int = 100
    ) -> list[StatusLogEntry]:
        lines = [e for e in self.logs if source_name is None or e.source_name == source_name]
        return [e.model_copy() for e in reversed(lines)][:limit]

    def delete_status(self, source_name: Optional[str] = None) -> int:
        if source_name is None:
            count = len(self.status)
            self.status.clear()
            return count
        return 1 if self.status.pop(source_name, None) else 0
