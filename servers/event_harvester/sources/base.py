"""
Adapter contract shared by every event source.

An adapter turns one Source into zero or more RawCandidates. Its transient
resources (HTTP client, browser page) are acquired by `session()` and
released when that context exits, on success, failure or cancellation.
`run()` is the only entry point the orchestrator uses.
"""

from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from ..models import ErrorKind, RawCandidate, Source


class AdapterError(Exception):
    """Raised by an adapter when a source cannot be harvested."""

    kind: ErrorKind = ErrorKind.PARSE

    def __init__(self, message: str, kind: Optional[ErrorKind] = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class AdapterNetworkError(AdapterError):
    """Fetching the source failed."""

    kind = ErrorKind.NETWORK


class AdapterTimeoutError(AdapterError):
    """The source did not answer before the deadline."""

    kind = ErrorKind.TIMEOUT


class AdapterParseError(AdapterError):
    """The source answered but its content could not be extracted."""

    kind = ErrorKind.PARSE


class Adapter(ABC):
    """Base class for source adapters.

    Subclasses implement `extract()` and, when they need a transient
    resource, override `session()`. Adapters must not keep per-run state on
    `self`; anything a run needs lives in the session object so an
    abandoned run leaves nothing behind for the next one.
    """

    kind: str = "adapter"

    @asynccontextmanager
    async def session(self, source: Source) -> AsyncIterator[Any]:
        """Acquire the transient resource for one run. Default: none."""
        yield None

    @abstractmethod
    async def extract(
        self, source: Source, session: Any, deadline: datetime
    ) -> list[RawCandidate]:
        """Produce raw candidates using an open session."""
        ...

    async def run(self, source: Source, deadline: datetime) -> list[RawCandidate]:
        """Harvest one source.

        Args:
            source: The source to harvest
            deadline: Aware instant after which the caller abandons the run

        Returns:
            Raw candidates, possibly empty

        Raises:
            AdapterError: If the source could not be harvested
        """
        async with self.session(source) as session:
            return await self.extract(source, session, deadline)


def seconds_until(deadline: datetime, floor: float = 1.0) -> float:
    """Seconds left before a deadline, never below `floor`."""
    remaining = (deadline - datetime.now(timezone.utc)).total_seconds()
    return max(floor, remaining)
