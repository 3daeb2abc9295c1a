"""
Per-source, per-run deduplication.

Within one run, candidates from the same source collapse on
(title, start day): the first accepted instance is kept and later repeats
are dropped. Drops are counted as dedup hits, not rejections.
"""

from datetime import date

from ..models import NormalizedEvent, normalize_title


def dedup_key(event: NormalizedEvent) -> tuple[str, date]:
    """Key used to detect repeats within a run."""
    return normalize_title(event.title), event.start_time.date()


class RunDeduplicator:
    """Tracks keys already accepted for one source during one run."""

    def __init__(self):
        self._seen: set[tuple[str, date]] = set()
        self.hits = 0

    def admit(self, event: NormalizedEvent) -> bool:
        """Return True the first time a key is seen, False for repeats."""
        key = dedup_key(event)
        if key in self._seen:
            self.hits += 1
            return False
        self._seen.add(key)
        return True

    def __len__(self) -> int:
        return len(self._seen)
