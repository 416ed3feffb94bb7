"""Structured exception classes for the Web API client.

Callers distinguish two kinds of failure. Transport and protocol
failures (network errors, unexpected HTTP statuses, rate limiting that
could not be absorbed by retries) are raised from ``api_call``.
API-semantic failures, where the server answered with ``ok: false``,
are returned as a normal :class:`~webapi_client.models.CallResult` and
only become a :class:`PlatformError` when the caller asks for it.
"""

import json
from enum import Enum
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

if TYPE_CHECKING:
    from .models.api_responses import CallResult


class ErrorCode(str, Enum):
    """Stable codes identifying each failure class."""

    CONFIGURATION_ERROR = "webapi_configuration_error"
    REQUEST_ERROR = "webapi_request_error"
    HTTP_ERROR = "webapi_http_error"
    PLATFORM_ERROR = "webapi_platform_error"
    RATE_LIMITED_ERROR = "webapi_rate_limited_error"


class WebAPIClientError(Exception):
    """Base exception for all Web API client errors.

    :param message: Human-readable error message
    :param code: Optional error code for programmatic handling
    :param details: Optional dictionary containing additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize the exception with message, code, and details."""
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format.

        :return: Dictionary containing error code, message, and details
        """
        return {
            "error": str(self.code),
            "message": self.message,
            "details": self.details,
        }

    def to_json(self) -> str:
        """Convert exception to JSON string.

        :return: JSON-encoded string representation of the exception
        """
        return json.dumps(self.to_dict(), default=str)


class ConfigurationError(WebAPIClientError):
    """Raised for invalid construction or call arguments.

    Raised before any network activity, e.g. for an empty method name
    or a concurrency limit below one.

    :param message: Description of the configuration error
    :param setting: Optional name of the problematic setting
    """

    def __init__(self, message: str, setting: Optional[str] = None):
        """Initialize configuration error with message and optional setting."""
        details = {}
        if setting:
            details["setting"] = setting
        super().__init__(
            message=message, code=ErrorCode.CONFIGURATION_ERROR.value, details=details
        )
        self.setting = setting


class TransportError(WebAPIClientError):
    """Raised when the HTTP exchange could not be completed.

    Covers DNS failures, refused connections and timeouts. Only raised
    after the retry policy gave up.

    :param message: Description of the transport failure
    :param original: The underlying transport exception
    :param attempts: Number of attempts made before giving up
    """

    def __init__(
        self,
        message: str,
        original: Optional[BaseException] = None,
        attempts: Optional[int] = None,
    ):
        """Initialize transport error with the wrapped exception."""
        details: Dict[str, Any] = {}
        if original is not None:
            details["original_error"] = str(original)
            details["error_type"] = type(original).__name__
        if attempts is not None:
            details["attempts"] = attempts
        super().__init__(
            message=message, code=ErrorCode.REQUEST_ERROR.value, details=details
        )
        self.original = original
        self.attempts = attempts


class HTTPError(WebAPIClientError):
    """Raised when the server answered with an unexpected HTTP status.

    :param message: Description of the HTTP error
    :param status_code: HTTP status code from the response
    :param response_body: Optional raw response body
    :param headers: Optional response headers
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ):
        """Initialize HTTP error with message and optional response details."""
        details: Dict[str, Any] = {}
        if status_code:
            details["status_code"] = status_code
        if response_body:
            details["response_body"] = response_body
        super().__init__(
            message=message, code=ErrorCode.HTTP_ERROR.value, details=details
        )
        self.status_code = status_code
        self.response_body = response_body
        self.headers = dict(headers or {})


class RateLimitedError(WebAPIClientError):
    """Raised when the server throttled the call and it was not retried.

    This happens either because the client rejects rate-limited calls
    outright or because the retry policy ran out of attempts.

    :param message: Description of the rate limit error
    :param retry_after: Seconds the server asked the caller to wait
    :param status_code: HTTP status of the throttled response
    """

    def __init__(
        self,
        message: str,
        retry_after: Optional[float] = None,
        status_code: Optional[int] = None,
    ):
        """Initialize rate limit error with the suggested wait."""
        details: Dict[str, Any] = {}
        if retry_after is not None:
            details["retry_after"] = retry_after
        if status_code:
            details["status_code"] = status_code
        super().__init__(
            message=message, code=ErrorCode.RATE_LIMITED_ERROR.value, details=details
        )
        self.retry_after = retry_after
        self.status_code = status_code


class PlatformError(WebAPIClientError):
    """An ``ok: false`` result converted to an exception.

    ``api_call`` never raises this itself; it is produced by
    :meth:`CallResult.raise_for_error`.

    :param message: Description of the platform error
    :param result: The result that carried the error
    """

    def __init__(self, message: str, result: "CallResult"):
        """Initialize platform error with the failing result."""
        super().__init__(
            message=message,
            code=ErrorCode.PLATFORM_ERROR.value,
            details={"error": result.error},
        )
        self.result = result
        self.error = result.error
