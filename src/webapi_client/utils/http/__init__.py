"""HTTP utilities public API (barrel module).

This package provides:
- The HTTP executor abstraction and its httpx implementation
- The bounded FIFO request queue
- The retry policy and Retry-After parsing
- Request body serialization

Recommended import pattern for consumers:
    from webapi_client.utils.http import RequestQueue, RetryPolicy
"""

from .executor import (
    HTTPExecutor,
    HttpxExecutor,
    create_limits,
    create_timeout,
)
from .queue import DEFAULT_MAX_CONCURRENCY, RequestQueue, Ticket
from .retry import (
    DEFAULT_RETRY_POLICY,
    FailureInfo,
    FailureKind,
    RetryDecision,
    RetryPolicy,
    five_retries_in_five_minutes,
    parse_retry_after,
    rapid_retry_policy,
    ten_retries_in_about_thirty_minutes,
)
from .serialization import SerializedBody, serialize_call_options

__all__ = [
    "HTTPExecutor",
    "HttpxExecutor",
    "create_timeout",
    "create_limits",
    "RequestQueue",
    "Ticket",
    "DEFAULT_MAX_CONCURRENCY",
    "RetryPolicy",
    "RetryDecision",
    "FailureInfo",
    "FailureKind",
    "DEFAULT_RETRY_POLICY",
    "ten_retries_in_about_thirty_minutes",
    "five_retries_in_five_minutes",
    "rapid_retry_policy",
    "parse_retry_after",
    "SerializedBody",
    "serialize_call_options",
]
