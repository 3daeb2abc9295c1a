"""
Event source adapters.

Each adapter implements:
- run(source, deadline) -> list[RawCandidate]
- session(source): scoped acquisition of its transient resources
"""

from .base import (
    Adapter,
    AdapterError,
    AdapterNetworkError,
    AdapterParseError,
    AdapterTimeoutError,
)
from .browser import BrowserPageAdapter
from .html_calendar import HtmlCalendarAdapter
from .http import HttpAdapter
from .json_feed import JsonFeedAdapter
from .registry import ADAPTER_KINDS, AdapterRegistry, UnknownSourceError, build_registry
from .rss_feed import RssFeedAdapter

__all__ = [
    "ADAPTER_KINDS",
    "Adapter",
    "AdapterError",
    "AdapterNetworkError",
    "AdapterParseError",
    "AdapterRegistry",
    "AdapterTimeoutError",
    "BrowserPageAdapter",
    "HtmlCalendarAdapter",
    "HttpAdapter",
    "JsonFeedAdapter",
    "RssFeedAdapter",
    "UnknownSourceError",
    "build_registry",
]
