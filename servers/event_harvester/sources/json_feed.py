"""
Generic adapter for JSON event feeds.

Use Case: Sports schedules, WordPress "tribe" calendars, league APIs

Source config:
    items_path: dotted path to the list of items ("events", "data.games")
    fields: candidate field -> dotted path inside one item, e.g.
            {"title": "name", "date_text": "start_date", "location": "venue.venue"}
    params: optional query parameters
"""

from datetime import datetime
from typing import Any, Optional

import httpx

from ..models import RawCandidate, Source
from .base import AdapterParseError
from .http import HttpAdapter


DEFAULT_FIELDS = {
    "title": "title",
    "date_text": "start_date",
    "end_text": "end_date",
    "location": "venue",
    "price": "cost",
    "description": "description",
    "url": "url",
    "image_url": "image",
}


class JsonFeedAdapter(HttpAdapter):
    """Map items of a JSON feed onto raw candidates."""

    kind = "json_feed"

    async def extract(
        self, source: Source, session: httpx.AsyncClient, deadline: datetime
    ) -> list[RawCandidate]:
        data = await self.fetch_json(
            session, source.url, source, deadline, params=source.config.get("params")
        )
        return items_to_candidates(
            data,
            items_path=source.config.get("items_path", ""),
            fields=source.config.get("fields"),
        )


def items_to_candidates(
    data: Any,
    items_path: str = "",
    fields: Optional[dict[str, str]] = None,
) -> list[RawCandidate]:
    """
    Convert a decoded JSON document into raw candidates.

    Raises:
        AdapterParseError: If items_path does not lead to a list
    """
    items = resolve_path(data, items_path) if items_path else data
    if not isinstance(items, list):
        raise AdapterParseError(f"Expected a list at '{items_path or '<root>'}'")

    mapping = dict(DEFAULT_FIELDS)
    if fields:
        mapping.update(fields)

    candidates = []
    for item in items:
        if not isinstance(item, dict):
            continue
        values = {}
        for field, path in mapping.items():
            value = _as_text(resolve_path(item, path))
            if value is not None:
                values[field] = value
        candidates.append(RawCandidate(**values))
    return candidates


def resolve_path(data: Any, path: str) -> Any:
    """Follow a dotted path through dicts and list indexes."""
    current = data
    for part in path.split("."):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            current = current[index] if index < len(current) else None
        else:
            return None
        if current is None:
            return None
    return current


def _as_text(value: Any) -> Optional[str]:
    """Flatten nested JSON values into display text."""
    if value is None or value == "":
        return None
    if isinstance(value, dict):
        for key in ("name", "url", "venue", "text", "value"):
            if isinstance(value.get(key), str):
                return value[key]
        return None
    if isinstance(value, list):
        return _as_text(value[0]) if value else None
    if isinstance(value, bool):
        return None
    return str(value)
