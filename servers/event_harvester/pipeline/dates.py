"""
Date resolution for scraped event dates.

Sources publish dates in every imaginable shape: ISO timestamps, US
numeric dates, "Friday, August 22", "Tonight 8pm", ranges. Everything is
resolved to an aware datetime in the reference timezone.
"""

import re
from datetime import date, datetime, time, timedelta, tzinfo
from functools import lru_cache
from typing import Optional, Union
from zoneinfo import ZoneInfo

from dateutil import parser
from dateutil.relativedelta import relativedelta

DateValue = Union[datetime, date, int, float]

RELATIVE_PATTERN = re.compile(
    r"^(?P<word>today|tonight|tomorrow)\b[\s,@-]*(?:at\s+)?(?P<rest>.*)$",
    re.IGNORECASE,
)
YEAR_PATTERN = re.compile(r"\b(?:19|20)\d{2}\b")
EPOCH_PATTERN = re.compile(r"^\d{10}(?:\d{3})?$")
# "Aug 21 - Aug 23", "8/21 to 8/23"; bare hyphens inside ISO dates do not match
RANGE_SPLIT = re.compile(r"\s+(?:-|–|—|to|through|thru|until)\s+", re.IGNORECASE)


@lru_cache(maxsize=None)
def reference_zone(name: str = "America/Los_Angeles") -> ZoneInfo:
    """Cached ZoneInfo lookup."""
    return ZoneInfo(name)


def localize(moment: datetime, tz: tzinfo) -> datetime:
    """Attach `tz` to naive datetimes, convert aware ones into it."""
    if moment.tzinfo is None:
        return moment.replace(tzinfo=tz)
    return moment.astimezone(tz)


def resolve_date(
    text: Optional[str] = None,
    value: Optional[DateValue] = None,
    *,
    now: datetime,
    tz: tzinfo,
    rollover_before: timedelta = timedelta(days=1),
) -> Optional[datetime]:
    """
    Resolve a candidate's date into an aware datetime.

    A typed `value` wins over `text`.

    Args:
        text: Free-form date text
        value: datetime, date, or POSIX timestamp (seconds or milliseconds)
        now: Reference instant
        tz: Reference timezone for naive and date-only values
        rollover_before: Year-less dates earlier than now - rollover_before
                         are taken to mean next year

    Returns:
        Aware datetime in `tz`, or None if nothing could be resolved
    """
    if value is not None:
        return _from_value(value, tz)
    if text:
        return parse_date_text(text, now=now, tz=tz, rollover_before=rollover_before)
    return None


def _from_value(value: DateValue, tz: tzinfo) -> Optional[datetime]:
    if isinstance(value, datetime):
        try:
            return localize(value, tz)
        except (OverflowError, ValueError):
            return None
    if isinstance(value, date):
        return datetime.combine(value, time(), tzinfo=tz)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=tz)
        except (OverflowError, OSError, ValueError):
            return None
    return None


def parse_date_text(
    text: str,
    *,
    now: datetime,
    tz: tzinfo,
    rollover_before: timedelta = timedelta(days=1),
) -> Optional[datetime]:
    """Parse free-form date text. See resolve_date()."""
    text = " ".join(text.split())
    if not text:
        return None

    local_now = localize(now, tz)

    if EPOCH_PATTERN.match(text):
        return _from_value(int(text), tz)

    relative = RELATIVE_PATTERN.match(text)
    if relative:
        return _parse_relative(relative, local_now, tz)

    first = RANGE_SPLIT.split(text, maxsplit=1)[0]
    default = datetime.combine(local_now.date(), time())
    try:
        parsed = localize(parser.parse(first, fuzzy=True, default=default), tz)
        if not YEAR_PATTERN.search(first) and parsed < local_now - rollover_before:
            parsed = parsed + relativedelta(years=1)
    except (ValueError, OverflowError, TypeError):
        # Also covers dates that leave the datetime range once shifted into tz
        return None

    return parsed


def _parse_relative(match: re.Match, local_now: datetime, tz: tzinfo) -> datetime:
    day = local_now.date()
    if match.group("word").lower() == "tomorrow":
        day += timedelta(days=1)

    clock = time()
    rest = match.group("rest").strip()
    if rest:
        try:
            clock = parser.parse(rest, fuzzy=True, default=datetime.combine(day, time())).time()
        except (ValueError, OverflowError, TypeError):
            clock = time()

    return datetime.combine(day, clock, tzinfo=tz)
