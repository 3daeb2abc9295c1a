"""
Pydantic models for harvested event data.

These models define the core data types shared by every layer:
- Source: one configured event origin and its adapter settings
- RawCandidate: unvalidated record produced by an adapter
- NormalizedEvent: canonical event accepted into storage
- RunReport / SourceRunResult: outcome of one orchestrator invocation
- SourceStatusEntry / StatusLogEntry: the status ledger's records
"""

from pydantic import BaseModel, Field, computed_field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional, Union
import hashlib
import re


class RejectReason(str, Enum):
    """Why the pipeline refused a candidate."""

    MISSING_FIELD = "missing-field"
    TITLE_SHAPE = "title-shape"
    GENERIC_TITLE = "generic-title"
    BAD_DATE = "bad-date"
    OUT_OF_WINDOW = "out-of-window"


class ErrorKind(str, Enum):
    """Classification of adapter failures."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    PARSE = "parse"


class Source(BaseModel):
    """A configured event source."""

    name: str
    url: str = ""
    enabled: bool = True
    category: str = "Other"
    adapter: str = "html_calendar"  # key into the adapter kinds table
    location: Optional[str] = None  # default location for its events
    replace_on_run: Optional[bool] = None  # None = use the global setting
    config: dict[str, Any] = Field(default_factory=dict)


class RawCandidate(BaseModel):
    """Unstructured record produced by an adapter."""

    title: Optional[str] = None

    # Either a textual date or an already-typed value
    date_text: Optional[str] = None
    date_value: Optional[Union[datetime, date, float]] = None
    end_text: Optional[str] = None
    end_value: Optional[Union[datetime, date, float]] = None

    location: Optional[str] = None
    price: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def has_date(self) -> bool:
        if self.date_value is not None:
            return True
        return bool(self.date_text and self.date_text.strip())


def normalize_title(title: str) -> str:
    """Casefold and collapse whitespace for key comparison."""
    return re.sub(r"\s+", " ", title).strip().casefold()


class NormalizedEvent(BaseModel):
    """Canonical, validated event record."""

    title: str
    start_time: datetime
    end_time: Optional[datetime] = None

    location: Optional[str] = None
    price_text: str = "Varies"
    description: Optional[str] = None

    source_name: str
    source_url: Optional[str] = None
    category: str = "Other"
    image_url: Optional[str] = None

    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @computed_field
    @property
    def unique_key(self) -> str:
        """Identity of the event: source, title and start day."""
        day = self.start_time.strftime("%Y-%m-%d")
        key_string = f"{self.source_name}|{normalize_title(self.title)}|{day}"
        return hashlib.md5(key_string.encode()).hexdigest()


class ValidationVerdict(BaseModel):
    """Outcome of validating one candidate. Never persisted."""

    accepted: bool
    reason: Optional[RejectReason] = None
    detail: Optional[str] = None


class SourceRunResult(BaseModel):
    """Outcome of running one source within a run."""

    name: str
    success: bool
    events_found: int = 0  # accepted after validation and dedup
    candidates: int = 0
    rejected: dict[str, int] = Field(default_factory=dict)
    dedup_hits: int = 0
    persisted: int = 0
    persist_failures: int = 0
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    duration_ms: int = 0


class RunReport(BaseModel):
    """Aggregate result of one run_all() or run_one() call."""

    status: str = "completed"  # completed, already_running
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    per_source: list[SourceRunResult] = Field(default_factory=list)
    total_duration_ms: int = 0

    @computed_field
    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.per_source if r.success)

    @computed_field
    @property
    def failed(self) -> int:
        return sum(1 for r in self.per_source if not r.success)

    @computed_field
    @property
    def total_events(self) -> int:
        return sum(r.events_found for r in self.per_source)


class SourceStatusEntry(BaseModel):
    """Current health record for one source."""

    source_name: str
    last_run_at: datetime
    last_success_at: Optional[datetime] = None
    error_count: int = 0
    consecutive_failures: int = 0
    last_error: Optional[str] = None
    last_event_count: int = 0
    enabled: bool = True

    @property
    def healthy(self) -> bool:
        return self.consecutive_failures == 0


class StatusLogEntry(BaseModel):
    """One line of the append-only run log."""

    source_name: str
    status: str  # success, error
    message: Optional[str] = None
    events_found: int = 0
    duration_ms: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class EventQuery(BaseModel):
    """Filters for reading stored events."""

    source: Optional[str] = None
    category: Optional[str] = None
    date_from: Optional[datetime] = None
    date_to: Optional[datetime] = None
    search: Optional[str] = None
    limit: Optional[int] = None
