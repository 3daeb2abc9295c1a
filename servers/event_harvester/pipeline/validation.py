"""
Validation checks for raw candidates.

Each check returns a ValidationVerdict; the pipeline stops at the first
rejection. Rejections are expected and are not errors.
"""

import re
from datetime import datetime, timedelta
from typing import Iterable, Optional

from ..models import RawCandidate, RejectReason, ValidationVerdict

MIN_TITLE_LENGTH = 5
MAX_TITLE_LENGTH = 150

# Nothing but punctuation, digits and whitespace
NON_TEXT_TITLE = re.compile(r"^[\W\d_]+$")

ACCEPTED = ValidationVerdict(accepted=True)


def reject(reason: RejectReason, detail: Optional[str] = None) -> ValidationVerdict:
    return ValidationVerdict(accepted=False, reason=reason, detail=detail)


def clean_title(title: Optional[str]) -> str:
    """Collapse whitespace and trim."""
    if not title:
        return ""
    return " ".join(title.split())


def check_presence(candidate: RawCandidate) -> ValidationVerdict:
    """Title and some date representation are required."""
    if not clean_title(candidate.title):
        return reject(RejectReason.MISSING_FIELD, "title")
    if not candidate.has_date:
        return reject(RejectReason.MISSING_FIELD, "date")
    return ACCEPTED


def check_title_shape(title: str) -> ValidationVerdict:
    """Length bounds and rejection of non-text titles."""
    length = len(title)
    if length < MIN_TITLE_LENGTH or length > MAX_TITLE_LENGTH:
        return reject(RejectReason.TITLE_SHAPE, f"length {length}")
    if NON_TEXT_TITLE.match(title):
        return reject(RejectReason.TITLE_SHAPE, "no letters")
    return ACCEPTED


def check_blacklist(
    title: str,
    blacklist: Iterable[str],
    section_titles: Iterable[str] = (),
) -> ValidationVerdict:
    """Reject page furniture mistaken for event titles.

    Blacklist terms match as case-insensitive substrings; section titles
    (neighbourhood or branch headings) only match the whole title.
    """
    lowered = title.casefold()
    for term in blacklist:
        if term and term.casefold() in lowered:
            return reject(RejectReason.GENERIC_TITLE, term)
    for section in section_titles:
        if section and section.casefold() == lowered:
            return reject(RejectReason.GENERIC_TITLE, section)
    return ACCEPTED


def check_window(
    start_time: datetime,
    now: datetime,
    grace_period: timedelta,
    forward_window: timedelta,
) -> ValidationVerdict:
    """Accept only starts within [now - grace_period, now + forward_window]."""
    if start_time < now - grace_period:
        return reject(RejectReason.OUT_OF_WINDOW, "past")
    if start_time > now + forward_window:
        return reject(RejectReason.OUT_OF_WINDOW, "too far ahead")
    return ACCEPTED
