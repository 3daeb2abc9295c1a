"""
Candidate normalization.

Turns one RawCandidate into a NormalizedEvent or a rejection. Steps, in
order, stopping at the first failure:

1. Presence: title and some date are required
2. Title shape: 5-150 characters, not just punctuation/digits
3. Blacklist: generic page text such as "privacy policy"
4. Date resolution into the reference timezone
5. Window: now - grace_period <= start <= now + forward_window
6. Construction with defaults from the source and settings

Deterministic and free of side effects apart from debug logging.
"""

from collections import Counter
from datetime import datetime
from typing import Iterable, Optional, Union
from urllib.parse import urljoin

import structlog
from pydantic import BaseModel, Field

from ..config.settings import HarvestSettings
from ..models import NormalizedEvent, RawCandidate, RejectReason, Source, ValidationVerdict
from .dates import localize, reference_zone, resolve_date
from .dedup import RunDeduplicator
from .validation import (
    check_blacklist,
    check_presence,
    check_title_shape,
    check_window,
    clean_title,
    reject,
)

logger = structlog.get_logger()


class BatchOutcome(BaseModel):
    """Result of pushing one source's candidates through the pipeline."""

    accepted: list[NormalizedEvent] = Field(default_factory=list)
    rejected: dict[str, int] = Field(default_factory=dict)
    dedup_hits: int = 0

    @property
    def rejected_total(self) -> int:
        return sum(self.rejected.values())


def normalize_candidate(
    candidate: RawCandidate,
    source: Source,
    now: datetime,
    settings: HarvestSettings,
) -> Union[NormalizedEvent, ValidationVerdict]:
    """
    Normalize one candidate.

    Args:
        candidate: Raw record from an adapter
        source: The source it came from
        now: Reference instant (naive values are taken as reference-timezone time)
        settings: Window, blacklist and default values

    Returns:
        The NormalizedEvent, or the rejecting ValidationVerdict
    """
    verdict = check_presence(candidate)
    if not verdict.accepted:
        return verdict

    title = clean_title(candidate.title)

    verdict = check_title_shape(title)
    if not verdict.accepted:
        return verdict

    verdict = check_blacklist(title, settings.blacklist, settings.section_titles)
    if not verdict.accepted:
        return verdict

    tz = reference_zone(settings.timezone)
    now = localize(now, tz)

    start_time = resolve_date(
        candidate.date_text,
        candidate.date_value,
        now=now,
        tz=tz,
        rollover_before=settings.grace_period,
    )
    if start_time is None:
        return reject(RejectReason.BAD_DATE, candidate.date_text)

    verdict = check_window(start_time, now, settings.grace_period, settings.forward_window)
    if not verdict.accepted:
        return verdict

    end_time = resolve_date(
        candidate.end_text,
        candidate.end_value,
        now=start_time,
        tz=tz,
        rollover_before=settings.grace_period,
    )
    if end_time is not None and end_time < start_time:
        end_time = None

    return NormalizedEvent(
        title=title,
        start_time=start_time,
        end_time=end_time,
        location=_clean(candidate.location) or source.location,
        price_text=_clean(candidate.price) or settings.default_price_text,
        description=_clean(candidate.description),
        source_name=source.name,
        source_url=_absolute(candidate.url, source.url) or source.url or None,
        category=source.category or settings.default_category,
        image_url=_absolute(candidate.image_url, source.url),
    )


def process_batch(
    candidates: Iterable[RawCandidate],
    source: Source,
    now: datetime,
    settings: HarvestSettings,
) -> BatchOutcome:
    """
    Normalize and deduplicate all candidates from one source for one run.

    Returns:
        BatchOutcome with accepted events in input order, rejection counts
        keyed by reason value, and the number of dedup hits
    """
    dedup = RunDeduplicator()
    accepted: list[NormalizedEvent] = []
    rejected: Counter[str] = Counter()

    for candidate in candidates:
        result = normalize_candidate(candidate, source, now, settings)
        if isinstance(result, ValidationVerdict):
            rejected[result.reason.value] += 1
            logger.debug(
                "candidate_rejected",
                source=source.name,
                title=candidate.title,
                reason=result.reason.value,
                detail=result.detail,
            )
            continue
        if dedup.admit(result):
            accepted.append(result)

    return BatchOutcome(accepted=accepted, rejected=dict(rejected), dedup_hits=dedup.hits)


def _clean(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    cleaned = " ".join(text.split())
    return cleaned or None


def _absolute(url: Optional[str], base: str) -> Optional[str]:
    url = _clean(url)
    if not url:
        return None
    return urljoin(base, url) if base else url
