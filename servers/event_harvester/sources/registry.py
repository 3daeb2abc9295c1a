"""
Explicit source name -> adapter registry.

The registry is built once at startup from configuration and handed to the
orchestrator. Adapter implementations are chosen through the ADAPTER_KINDS
table; nothing is looked up by class name.
"""

from typing import Callable, Iterable, Iterator, Optional

import structlog
from rapidfuzz import process

from ..models import Source
from .base import Adapter
from .browser import BrowserPageAdapter
from .html_calendar import HtmlCalendarAdapter
from .json_feed import JsonFeedAdapter
from .rss_feed import RssFeedAdapter

log = structlog.get_logger(__name__)

AdapterFactory = Callable[[], Adapter]

ADAPTER_KINDS: dict[str, AdapterFactory] = {
    "html_calendar": HtmlCalendarAdapter,
    "json_feed": JsonFeedAdapter,
    "rss_feed": RssFeedAdapter,
    "browser_page": BrowserPageAdapter,
}

# Minimum rapidfuzz score for a "did you mean" suggestion
SUGGESTION_CUTOFF = 70


class UnknownSourceError(KeyError):
    """Raised when a source name has no registered adapter or config."""

    def __init__(self, name: str, suggestion: Optional[str] = None):
        message = f"Unknown source '{name}'"
        if suggestion:
            message += f" (did you mean '{suggestion}'?)"
        super().__init__(message)
        self.name = name
        self.suggestion = suggestion

    def __str__(self) -> str:
        return self.args[0]


def suggest_name(name: str, choices: Iterable[str]) -> Optional[str]:
    """Closest known name to `name`, if any is close enough."""
    match = process.extractOne(name, list(choices), score_cutoff=SUGGESTION_CUTOFF)
    return match[0] if match else None


class AdapterRegistry:
    """Maps source names to adapter instances."""

    def __init__(self):
        self._adapters: dict[str, Adapter] = {}

    def register(self, name: str, adapter: Adapter) -> None:
        self._adapters[name] = adapter

    def get(self, name: str) -> Adapter:
        """Adapter for a source.

        Raises:
            UnknownSourceError: If nothing is registered under `name`
        """
        try:
            return self._adapters[name]
        except KeyError:
            raise UnknownSourceError(name, suggest_name(name, self._adapters)) from None

    def __contains__(self, name: object) -> bool:
        return name in self._adapters

    def __iter__(self) -> Iterator[str]:
        return iter(self._adapters)

    def __len__(self) -> int:
        return len(self._adapters)


def build_registry(
    sources: Iterable[Source],
    kinds: Optional[dict[str, AdapterFactory]] = None,
) -> AdapterRegistry:
    """
    Build the registry for configured sources.

    Sources whose adapter kind is unknown are logged and left out; the
    orchestrator reports them as failed when they come up in a run.

    Args:
        sources: Configured sources (enabled or not)
        kinds: Adapter kind table, defaults to ADAPTER_KINDS

    Returns:
        Registry with one adapter instance per source
    """
    kinds = kinds if kinds is not None else ADAPTER_KINDS
    registry = AdapterRegistry()
    shared: dict[str, Adapter] = {}

    for source in sources:
        factory = kinds.get(source.adapter)
        if factory is None:
            log.warning(
                "unknown_adapter_kind",
                source=source.name,
                adapter=source.adapter,
                suggestion=suggest_name(source.adapter, kinds),
            )
            continue
        # One instance per kind; adapters keep no per-run state
        if source.adapter not in shared:
            shared[source.adapter] = factory()
        registry.register(source.name, shared[source.adapter])

    log.info("registry_built", adapters=len(registry))
    return registry
