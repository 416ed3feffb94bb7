"""Async Web API client package.

This package provides a client for a request/response Web API that
queues outbound requests behind a concurrency limit, retries transport
failures and rate-limited responses, and walks cursor-paginated
methods either lazily or to completion.

:var __version__: Current package version
:type __version__: str
"""

__version__ = "0.1.0"

from .client import WebClient, WebClientEvent  # noqa: E402
from .exceptions import (  # noqa: E402
    ConfigurationError,
    ErrorCode,
    HTTPError,
    PlatformError,
    RateLimitedError,
    TransportError,
    WebAPIClientError,
)
from .models import CallResult, ResponseMetadata  # noqa: E402

__all__ = [
    "__version__",
    "WebClient",
    "WebClientEvent",
    "CallResult",
    "ResponseMetadata",
    "WebAPIClientError",
    "ConfigurationError",
    "TransportError",
    "HTTPError",
    "RateLimitedError",
    "PlatformError",
    "ErrorCode",
]
