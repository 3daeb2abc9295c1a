"""
Generic adapter for venue calendar pages.

Cost: Free (httpx + BeautifulSoup)
Use Case: Venue calendars, library event listings, club schedules

Extraction order:
1. schema.org Event objects embedded as JSON-LD
2. CSS selector fallbacks (overridable per source via config["selectors"])

Only raw text is extracted here; dates, titles and windows are judged by
the normalization pipeline.
"""

import json
from datetime import datetime
from typing import Any, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup, Tag

from ..models import RawCandidate, Source
from .base import AdapterParseError
from .http import HttpAdapter


# Common selectors for event listing pages
DEFAULT_SELECTORS = {
    "event_container": [
        ".event", ".event-item", ".event-card", ".views-row",
        "[class*='event']", "[data-event]",
        ".show", ".performance", ".listing",
    ],
    "title": [
        ".event-title", ".show-title", ".title",
        "[class*='title']", "h2", "h3", "h4", ".name",
    ],
    "date": [
        "time[datetime]", "[datetime]", ".date", ".event-date",
        "[class*='date']", ".when", ".time",
    ],
    "location": [
        ".venue", ".location", "[class*='venue']",
        "[class*='location']", ".place", ".branch",
    ],
    "price": [
        ".price", "[class*='price']", ".cost",
        ".admission", ".ticket-price",
    ],
    "description": [
        ".description", ".summary", "[class*='description']", ".excerpt",
    ],
    "link": ["a[href]"],
    "image": ["img[src]"],
}


class HtmlCalendarAdapter(HttpAdapter):
    """Scrape a calendar page fetched over plain HTTP."""

    kind = "html_calendar"

    async def extract(
        self, source: Source, session: httpx.AsyncClient, deadline: datetime
    ) -> list[RawCandidate]:
        response = await self.fetch(session, source.url, source, deadline)
        return extract_candidates(
            response.text,
            base_url=str(response.url),
            selectors=source.config.get("selectors"),
        )


def extract_candidates(
    html: str,
    base_url: str,
    selectors: Optional[dict[str, list[str]]] = None,
) -> list[RawCandidate]:
    """
    Extract raw candidates from calendar page HTML.

    Args:
        html: Page markup
        base_url: URL the page was fetched from, for relative links
        selectors: Overrides for DEFAULT_SELECTORS, merged per key

    Returns:
        Candidates from JSON-LD when present, else from CSS selectors

    Raises:
        AdapterParseError: If the markup cannot be parsed at all
    """
    merged = dict(DEFAULT_SELECTORS)
    if selectors:
        merged.update(selectors)

    try:
        soup = BeautifulSoup(html, "html.parser")
    except Exception as e:
        raise AdapterParseError(f"Unparseable HTML: {e}") from e

    candidates = extract_json_ld(soup, base_url)
    if candidates:
        return candidates

    candidates = []
    for element in _find_event_elements(soup, merged["event_container"]):
        candidate = _parse_event_element(element, merged, base_url)
        if candidate:
            candidates.append(candidate)
    return candidates


def extract_json_ld(soup: BeautifulSoup, base_url: str) -> list[RawCandidate]:
    """Collect schema.org Event objects from ld+json script blocks."""
    candidates = []
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        try:
            data = json.loads(script.string or "")
        except (json.JSONDecodeError, TypeError):
            continue
        for item in _iter_ld_items(data):
            candidate = _ld_event_to_candidate(item, base_url)
            if candidate:
                candidates.append(candidate)
    return candidates


def _iter_ld_items(data: Any):
    if isinstance(data, list):
        for item in data:
            yield from _iter_ld_items(item)
    elif isinstance(data, dict):
        if "@graph" in data:
            yield from _iter_ld_items(data["@graph"])
        else:
            yield data


def _is_event_type(value: Any) -> bool:
    types = value if isinstance(value, list) else [value]
    return any(isinstance(t, str) and t.endswith("Event") for t in types)


def _ld_event_to_candidate(item: dict, base_url: str) -> Optional[RawCandidate]:
    if not _is_event_type(item.get("@type")):
        return None

    location = item.get("location")
    if isinstance(location, dict):
        address = location.get("address")
        if isinstance(address, dict):
            address = address.get("streetAddress")
        location = location.get("name") or address
    elif isinstance(location, list) and location:
        first = location[0]
        location = first.get("name") if isinstance(first, dict) else str(first)

    offers = item.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    price = None
    if isinstance(offers, dict) and offers.get("price") not in (None, ""):
        price = str(offers["price"])
        if price.replace(".", "", 1).isdigit():
            price = "Free" if float(price) == 0 else f"${price}"

    image = item.get("image")
    if isinstance(image, list):
        image = image[0] if image else None
    if isinstance(image, dict):
        image = image.get("url")

    url = item.get("url")
    return RawCandidate(
        title=_clean(item.get("name")),
        date_text=_clean(_first(item.get("startDate"))),
        end_text=_clean(_first(item.get("endDate"))),
        location=_clean(location) if isinstance(location, str) else None,
        price=price,
        description=_clean(item.get("description")),
        url=urljoin(base_url, url) if isinstance(url, str) else None,
        image_url=urljoin(base_url, image) if isinstance(image, str) else None,
    )


def _find_event_elements(soup: BeautifulSoup, selectors: list[str]) -> list[Tag]:
    """Use the first container selector that matches anything."""
    for selector in selectors:
        try:
            elements = soup.select(selector)
        except (ValueError, TypeError):
            continue
        if elements:
            return elements
    return []


def _parse_event_element(
    element: Tag, selectors: dict[str, list[str]], base_url: str
) -> Optional[RawCandidate]:
    title = _extract_text(element, selectors["title"])
    if not title:
        return None

    link = _extract_attr(element, selectors["link"], "href")
    image = _extract_attr(element, selectors["image"], "src")

    return RawCandidate(
        title=title,
        date_text=_extract_date_text(element, selectors["date"]),
        location=_extract_text(element, selectors["location"]),
        price=_extract_text(element, selectors["price"]),
        description=_extract_text(element, selectors["description"]),
        url=urljoin(base_url, link) if link else None,
        image_url=urljoin(base_url, image) if image else None,
    )


def _extract_text(element: Tag, selectors: list[str]) -> Optional[str]:
    """Text of the first selector match with non-empty content."""
    for selector in selectors:
        try:
            sub_el = element.select_one(selector)
        except (ValueError, TypeError):
            continue
        if sub_el:
            text = _clean(sub_el.get_text(" ", strip=True))
            if text:
                return text
    return None


def _extract_date_text(element: Tag, selectors: list[str]) -> Optional[str]:
    """Prefer machine-readable datetime attributes over display text."""
    for selector in selectors:
        try:
            sub_el = element.select_one(selector)
        except (ValueError, TypeError):
            continue
        if not sub_el:
            continue
        value = sub_el.get("datetime") or sub_el.get_text(" ", strip=True)
        if value:
            return _clean(value)
    return None


def _extract_attr(element: Tag, selectors: list[str], attr: str) -> Optional[str]:
    for selector in selectors:
        try:
            sub_el = element.select_one(selector)
        except (ValueError, TypeError):
            continue
        if sub_el and sub_el.get(attr):
            return str(sub_el.get(attr))
    return None


def _first(value: Any) -> Any:
    if isinstance(value, list):
        return value[0] if value else None
    return value


def _clean(text: Any) -> Optional[str]:
    if not isinstance(text, str):
        return None
    cleaned = " ".join(text.split())
    return cleaned or None
