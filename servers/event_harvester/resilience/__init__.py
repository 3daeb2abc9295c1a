"""Resilience helpers for source fetches."""

from .retry import backoff_delay, is_transient_http_error, retry_call

__all__ = [
    "backoff_delay",
    "is_transient_http_error",
    "retry_call",
]
