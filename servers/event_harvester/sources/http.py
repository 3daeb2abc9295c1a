"""
Base class for adapters that fetch over HTTP.

The session is an httpx.AsyncClient opened for one run and closed when the
run ends. Fetches are validated against SSRF rules, bounded by the run
deadline, retried on transient failures, and translated into AdapterErrors.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any, AsyncIterator, Optional

import httpx
import structlog

from ..models import Source
from ..resilience import retry_call
from .base import (
    Adapter,
    AdapterNetworkError,
    AdapterParseError,
    AdapterTimeoutError,
    seconds_until,
)
from .url_validator import SSRFError, validate_url

logger = structlog.get_logger()

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


class HttpAdapter(Adapter):
    """Adapter whose session is an httpx client."""

    kind = "http"

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        resolve_dns: bool = True,
        max_attempts: int = 3,
        retry_base_delay: float = 0.5,
    ):
        """
        Args:
            transport: Optional httpx transport (tests pass a MockTransport)
            resolve_dns: Resolve hostnames when checking URLs
            max_attempts: Attempts per request for transient failures
            retry_base_delay: Initial backoff delay in seconds
        """
        self.transport = transport
        self.resolve_dns = resolve_dns
        self.max_attempts = max_attempts
        self.retry_base_delay = retry_base_delay

    @asynccontextmanager
    async def session(self, source: Source) -> AsyncIterator[httpx.AsyncClient]:
        headers = {"User-Agent": source.config.get("user_agent", USER_AGENT)}
        headers.update(source.config.get("headers", {}))
        async with httpx.AsyncClient(
            transport=self.transport,
            headers=headers,
            follow_redirects=True,
        ) as client:
            yield client

    def check_url(self, url: str, source: Source) -> str:
        """Validate a URL before fetching it for `source`."""
        allowed = source.config.get("allowed_domains")
        try:
            return validate_url(
                url,
                require_https=not source.config.get("allow_http", False),
                allowed_domains=set(allowed) if allowed else None,
                resolve_dns=self.resolve_dns,
            )
        except SSRFError as e:
            raise AdapterNetworkError(f"URL validation failed: {e}") from e

    async def fetch(
        self,
        client: httpx.AsyncClient,
        url: str,
        source: Source,
        deadline: datetime,
        params: Optional[dict[str, Any]] = None,
    ) -> httpx.Response:
        """GET a URL within the run deadline.

        Raises:
            AdapterTimeoutError: The request timed out
            AdapterNetworkError: Transport failure, bad status or blocked URL
        """
        url = self.check_url(url, source)

        async def get() -> httpx.Response:
            response = await client.get(url, params=params, timeout=seconds_until(deadline))
            response.raise_for_status()
            return response

        try:
            response = await retry_call(
                get,
                max_attempts=self.max_attempts,
                base_delay=self.retry_base_delay,
                label=f"fetch:{source.name}",
            )
        except httpx.TimeoutException as e:
            raise AdapterTimeoutError(f"Timed out fetching {url}") from e
        except httpx.HTTPStatusError as e:
            raise AdapterNetworkError(f"HTTP {e.response.status_code} from {url}") from e
        except httpx.HTTPError as e:
            raise AdapterNetworkError(f"Request to {url} failed: {e}") from e

        logger.debug(
            "source_fetched",
            source=source.name,
            url=url,
            status=response.status_code,
            size=len(response.content),
        )
        return response

    async def fetch_json(
        self,
        client: httpx.AsyncClient,
        url: str,
        source: Source,
        deadline: datetime,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        response = await self.fetch(client, url, source, deadline, params=params)
        try:
            return response.json()
        except ValueError as e:
            raise AdapterParseError(f"Response from {url} is not valid JSON") from e
