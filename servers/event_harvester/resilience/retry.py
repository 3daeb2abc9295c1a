"""Retry with exponential backoff for source fetches."""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional, TypeVar

import httpx
import structlog

logger = structlog.get_logger()

T = TypeVar("T")


def is_transient_http_error(error: Exception) -> bool:
    """True for failures worth retrying: transport errors and 5xx/429."""
    if isinstance(error, httpx.TimeoutException):
        # The deadline is shared by all attempts, so timeouts are not retried
        return False
    if isinstance(error, httpx.TransportError):
        return True
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        return status == 429 or status >= 500
    return False


def backoff_delay(
    attempt: int,
    base_delay: float,
    max_delay: float,
    exponential_base: float = 2.0,
    jitter: bool = True,
) -> float:
    """Delay before retry number `attempt` (0-based)."""
    delay = min(base_delay * (exponential_base**attempt), max_delay)
    if jitter:
        delay *= 0.5 + random.random()
    return delay


async def retry_call(
    func: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 10.0,
    retry_if: Callable[[Exception], bool] = is_transient_http_error,
    label: Optional[str] = None,
    **kwargs: Any,
) -> T:
    """Call an async function, retrying transient failures with backoff.

    Args:
        func: Async function to execute
        *args: Positional arguments for func
        max_attempts: Maximum number of attempts
        base_delay: Initial delay between attempts in seconds
        max_delay: Maximum delay between attempts in seconds
        retry_if: Predicate deciding whether an exception is retryable
        label: Name used in log lines (defaults to the function name)
        **kwargs: Keyword arguments for func

    Returns:
        Result of the first successful call

    Raises:
        The last exception once attempts are exhausted, or immediately
        for exceptions rejected by `retry_if`
    """
    name = label or getattr(func, "__name__", "call")

    for attempt in range(max_attempts):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not retry_if(e) or attempt == max_attempts - 1:
                if attempt > 0:
                    logger.warning(
                        "retry_exhausted",
                        function=name,
                        attempts=attempt + 1,
                        error=str(e),
                    )
                raise

            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.info(
                "retry_attempt",
                function=name,
                attempt=attempt + 1,
                max_attempts=max_attempts,
                delay=round(delay, 2),
                error=str(e),
            )
            await asyncio.sleep(delay)

    raise RuntimeError("max_attempts must be at least 1")
