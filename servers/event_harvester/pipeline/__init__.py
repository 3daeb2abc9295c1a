"""Normalization and validation pipeline for raw candidates."""

from .dates import reference_zone, resolve_date
from .dedup import RunDeduplicator, dedup_key
from .normalize import BatchOutcome, normalize_candidate, process_batch

__all__ = [
    "BatchOutcome",
    "RunDeduplicator",
    "dedup_key",
    "normalize_candidate",
    "process_batch",
    "reference_zone",
    "resolve_date",
]
