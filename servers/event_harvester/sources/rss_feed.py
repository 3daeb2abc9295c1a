"""
Generic adapter for RSS/Atom event feeds.

Use Case: Library calendars, bookstore readings, club newsletters
"""

import calendar
from datetime import datetime, timezone
from typing import Any, Optional

import feedparser
import httpx
from bs4 import BeautifulSoup

from ..models import RawCandidate, Source
from .base import AdapterParseError
from .http import HttpAdapter

# Entry attributes that may carry the event start, most specific first
DATE_KEYS = ("start_time", "ev_startdate", "startdate", "published", "updated", "created")


class RssFeedAdapter(HttpAdapter):
    """Map feed entries onto raw candidates."""

    kind = "rss_feed"

    async def extract(
        self, source: Source, session: httpx.AsyncClient, deadline: datetime
    ) -> list[RawCandidate]:
        response = await self.fetch(session, source.url, source, deadline)
        return feed_to_candidates(response.content)


def feed_to_candidates(body: bytes | str) -> list[RawCandidate]:
    """
    Parse a feed document into raw candidates.

    Raises:
        AdapterParseError: If the document is not a feed
    """
    feed = feedparser.parse(body)
    if feed.bozo and not feed.entries:
        raise AdapterParseError(f"Unreadable feed: {feed.get('bozo_exception')}")

    candidates = []
    for entry in feed.entries:
        date_text, date_value = _entry_date(entry)
        candidates.append(
            RawCandidate(
                title=(entry.get("title") or "").strip() or None,
                date_text=date_text,
                date_value=date_value,
                location=entry.get("location") or entry.get("ev_location"),
                description=_strip_html(entry.get("summary") or entry.get("description")),
                url=entry.get("link"),
                image_url=_entry_image(entry),
            )
        )
    return candidates


def _entry_date(entry: Any) -> tuple[Optional[str], Optional[datetime]]:
    for key in DATE_KEYS:
        parsed = entry.get(f"{key}_parsed")
        if parsed:
            return None, datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)
        raw = entry.get(key)
        if raw:
            return str(raw), None
    return None, None


def _entry_image(entry: Any) -> Optional[str]:
    for media in entry.get("media_content", []) or entry.get("media_thumbnail", []):
        if media.get("url"):
            return media["url"]
    for link in entry.get("links", []):
        if link.get("rel") == "enclosure" and str(link.get("type", "")).startswith("image/"):
            return link.get("href")
    return None


def _strip_html(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    cleaned = " ".join(BeautifulSoup(text, "html.parser").get_text(" ").split())
    return cleaned or None
