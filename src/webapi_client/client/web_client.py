"""Async client for the Web API.

:class:`WebClient` turns a method name and a mapping of arguments into a
``POST`` against the Web API. Every HTTP exchange first takes a slot in
the client's :class:`~webapi_client.utils.http.RequestQueue` and gives it
back as soon as the exchange completes, so a call that is waiting out a
retry delay does not hold up other calls.

Failures are classified for the retry policy:

- transport errors (no response) are retried with backoff
- 5xx responses are retried with backoff
- 429 responses and ``{"ok": false, "error": "ratelimited"}`` bodies are
  rate limiting: a ``rate_limited`` event is emitted, then the call is
  retried after at least the server's ``Retry-After``, unless the client
  rejects rate-limited calls
- any other non-2xx status raises :class:`HTTPError` straight away

A 2xx JSON body is returned as a :class:`CallResult` whether ``ok`` is
true or false.

Examples:
    >>> async with WebClient(token) as client:
    ...     result = await client.api_call("conversations.info", {"channel": "C1"})
    ...     async for page in client.paginate("conversations.list"):
    ...         print(len(page.channels))
"""

import asyncio
import itertools
import logging
import platform
from functools import partial
from typing import Any, Dict, Mapping, Optional, Union

import httpx
from pydantic import ValidationError

from .. import __version__
from ..config.settings import ClientSettings
from ..exceptions import (
    ConfigurationError,
    HTTPError,
    RateLimitedError,
    TransportError,
    WebAPIClientError,
)
from ..models.api_responses import CallResult
from ..utils.http.executor import HTTPExecutor, HttpxExecutor
from ..utils.http.queue import RequestQueue
from ..utils.http.retry import (
    NO_RETRY,
    FailureInfo,
    FailureKind,
    RetryPolicy,
    parse_retry_after,
)
from ..utils.http.serialization import SerializedBody, serialize_call_options
from ..utils.security import sanitize_headers
from .events import EventEmitter, Listener, RateLimitedEvent, WebClientEvent
from .pagination import (
    A,
    CursorPaginator,
    PagePredicate,
    PageReducer,
    drive_pages,
)


USER_AGENT = (
    f"webapi-client/{__version__} "
    f"Python/{platform.python_version()} httpx/{httpx.__version__}"
)

RATE_LIMITED_ERROR = "ratelimited"

_client_ids = itertools.count(1)


def _split_scopes(value: Optional[str]):
    if value is None:
        return None
    return [scope.strip() for scope in value.split(",") if scope.strip()]


class WebClient:
    """Client for the Web API.

    Keyword arguments override the matching :class:`ClientSettings`
    values; anything not given falls back to ``settings`` or the
    environment.

    :param token: Bearer token sent with every call
    :param settings: Base settings; loaded from the environment if omitted
    :param base_url: Base URL that method names are appended to
    :param max_request_concurrency: Maximum requests in flight at once
    :param retry_policy: Retry policy; built from ``settings.retry`` if omitted
    :param reject_rate_limited_calls: Fail rate-limited calls immediately
    :param headers: Extra headers merged into every request
    :param timeout: Per-request timeout in seconds
    :param max_pages: Default safety cap for pagination runs
    :param logger: Logger to use instead of the module logger
    :param log_level: Level to set on the client logger. Without an
        injected ``logger`` the level goes on a child of the module
        logger owned by this client
    :param executor: HTTP executor to use instead of an httpx client
    :param transport_options: Passed to ``httpx.AsyncClient`` (``transport``,
        ``verify``, ``cert``, ``proxy``, ``limits``...)
    :raises ConfigurationError: When a setting is invalid
    """

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        settings: Optional[ClientSettings] = None,
        base_url: Optional[str] = None,
        max_request_concurrency: Optional[int] = None,
        retry_policy: Optional[RetryPolicy] = None,
        reject_rate_limited_calls: Optional[bool] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout: Optional[float] = None,
        max_pages: Optional[int] = None,
        logger: Optional[logging.Logger] = None,
        log_level: Optional[Union[str, int]] = None,
        executor: Optional[HTTPExecutor] = None,
        **transport_options: Any,
    ):
        overrides = {
            key: value
            for key, value in {
                "token": token,
                "base_url": base_url,
                "max_request_concurrency": max_request_concurrency,
                "reject_rate_limited_calls": reject_rate_limited_calls,
                "headers": dict(headers) if headers is not None else None,
                "timeout": timeout,
                "max_pages": max_pages,
            }.items()
            if value is not None
        }
        self.settings = self._load_settings(settings, overrides)

        level = log_level if log_level is not None else self.settings.log_level
        if logger is None:
            logger = logging.getLogger(__name__)
            if level is not None:
                # per-client level
                logger = logger.getChild(f"client{next(_client_ids)}")
        self.logger = logger
        if level is not None:
            self.logger.setLevel(level.upper() if isinstance(level, str) else level)

        self.token = self.settings.token
        self.base_url = self.settings.base_url
        self.reject_rate_limited_calls = self.settings.reject_rate_limited_calls
        self.retry_policy = retry_policy or self.settings.retry.to_policy()
        self.queue = RequestQueue(self.settings.max_request_concurrency)
        self.events = EventEmitter()

        if executor is None:
            executor = HttpxExecutor(
                timeout=self.settings.timeout,
                max_connections=self.settings.max_request_concurrency,
                **transport_options,
            )
        elif transport_options:
            raise ConfigurationError(
                "Transport options cannot be combined with a custom executor",
                setting=", ".join(sorted(transport_options)),
            )
        self.executor = executor

        self.logger.debug(
            f"WebClient initialized: base_url={self.base_url}, "
            f"max_request_concurrency={self.queue.max_concurrency}, "
            f"max_attempts={self.retry_policy.max_attempts}, "
            f"reject_rate_limited_calls={self.reject_rate_limited_calls}"
        )

    @staticmethod
    def _load_settings(
        settings: Optional[ClientSettings], overrides: Dict[str, Any]
    ) -> ClientSettings:
        try:
            if settings is None:
                return ClientSettings(**overrides)
            return ClientSettings(**{**settings.model_dump(), **overrides})
        except ValidationError as e:
            first = e.errors()[0] if e.errors() else {}
            setting = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ConfigurationError(
                f"Invalid client configuration: {first.get('msg', e)}",
                setting=setting,
            ) from e

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def aclose(self) -> None:
        """Release the HTTP executor's connections."""
        await self.executor.aclose()

    async def __aenter__(self) -> "WebClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event: WebClientEvent, listener: Listener) -> Listener:
        """Register a listener; see :class:`EventEmitter`."""
        return self.events.on(event, listener)

    def off(self, event: WebClientEvent, listener: Listener) -> None:
        """Unregister a listener."""
        self.events.off(event, listener)

    # ------------------------------------------------------------------
    # Calls
    # ------------------------------------------------------------------

    async def api_call(
        self,
        method: str,
        options: Optional[Mapping[str, Any]] = None,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> CallResult:
        """Call a Web API method.

        A ``token`` entry in ``options`` replaces the client token for
        this call and is not sent in the body.

        :param method: Web API method name, e.g. ``"chat.postMessage"``
        :param options: Method arguments
        :param headers: Headers for this call only; they replace
            configured headers of the same name
        :return: The parsed result, including ``ok: false`` results
        :raises ConfigurationError: When ``method`` is empty or
            ``options`` is not a mapping
        :raises TransportError: When no response could be obtained
        :raises RateLimitedError: When throttling was not absorbed by retries
        :raises HTTPError: For unexpected HTTP statuses or non-JSON bodies
        """
        self._validate_method(method)
        self._validate_options(options)
        self.logger.debug(f"apiCall('{method}') start")

        options = dict(options or {})
        token = options.pop("token", None) or self.token
        body = serialize_call_options(options)
        headers = self._build_headers(token, headers)
        url = self.base_url + method

        attempt = 0
        while True:
            attempt += 1
            request = self._build_request(url, headers, body)
            response: Optional[httpx.Response] = None
            failure: Optional[FailureInfo] = None

            ticket = await self.queue.acquire()
            try:
                response = await self.executor.send(request)
            except httpx.RequestError as e:
                failure = FailureInfo(kind=FailureKind.NETWORK, error=e)
                self.logger.warning(
                    f"Request for {method} failed on attempt {attempt}: {e!r}"
                )
            finally:
                self.queue.release(ticket)

            if response is not None:
                outcome = self._interpret_response(method, response)
                if isinstance(outcome, CallResult):
                    if attempt > 1:
                        self.logger.info(f"{method} succeeded after {attempt} attempts")
                    return outcome
                failure = outcome

            rate_limited = failure.kind == FailureKind.RATE_LIMITED
            if rate_limited and self.reject_rate_limited_calls:
                decision = NO_RETRY
            else:
                decision = self.retry_policy.decide(attempt, failure)

            if rate_limited:
                await self._emit_rate_limited(method, url, attempt, failure, decision)

            if not decision.retry:
                raise self._terminal_error(method, attempt, failure, response)

            self.logger.info(
                f"Retry {attempt}/{self.retry_policy.max_attempts - 1} for {method} "
                f"after {decision.delay:.2f}s ({failure.kind.value})"
            )
            await asyncio.sleep(decision.delay)

    def paginate(
        self,
        method: str,
        options: Optional[Mapping[str, Any]] = None,
        *,
        max_pages: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> CursorPaginator:
        """Iterate lazily over the pages of a cursor-paginated method.

        Each step of ``async for`` fetches one page. Errors are raised
        from the step that fetched the failing page.

        :param method: Web API method name
        :param options: Method arguments; ``limit`` sets the page size
        :param max_pages: Safety cap overriding the client default
        :param headers: Headers sent with every page of this run
        :return: An async iterator of :class:`CallResult` pages
        """
        self._validate_method(method)
        self._validate_options(options)
        call = self.api_call
        if headers is not None:
            call = partial(self.api_call, headers=headers)
        return CursorPaginator(
            call,
            method,
            options,
            page_size=self.settings.default_page_size,
            max_pages=max_pages if max_pages is not None else self.settings.max_pages,
        )

    async def paginate_until(
        self,
        method: str,
        options: Optional[Mapping[str, Any]],
        should_stop: PagePredicate,
        *,
        max_pages: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> None:
        """Fetch pages until ``should_stop(page)`` is truthy or pages run out."""
        await drive_pages(
            self.paginate(method, options, max_pages=max_pages, headers=headers),
            should_stop,
        )

    async def paginate_reduce(
        self,
        method: str,
        options: Optional[Mapping[str, Any]],
        should_stop: PagePredicate,
        reduce: PageReducer,
        *,
        max_pages: Optional[int] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Optional[A]:
        """Fold pages into an accumulator.

        ``reduce(accumulator, page, index)`` is called for every fetched
        page in order, with ``None`` as the first accumulator. The page
        for which ``should_stop`` is truthy is still reduced.

        :return: The accumulator returned by the last ``reduce`` call
        """
        return await drive_pages(
            self.paginate(method, options, max_pages=max_pages, headers=headers),
            should_stop,
            reduce,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_method(method: str) -> None:
        if not isinstance(method, str) or not method.strip():
            raise ConfigurationError(
                "Web API method name must be a non-empty string", setting="method"
            )

    @staticmethod
    def _validate_options(options: Any) -> None:
        if options is not None and not isinstance(options, Mapping):
            raise ConfigurationError(
                f"Call options must be a mapping, got {type(options).__name__}",
                setting="options",
            )

    def _build_headers(
        self, token: Optional[str], extra: Optional[Mapping[str, str]] = None
    ) -> httpx.Headers:
        headers = httpx.Headers({"User-Agent": USER_AGENT})
        headers.update(self.settings.headers)
        if extra:
            headers.update(extra)
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(f"Request headers: {sanitize_headers(dict(headers))}")
        return headers

    @staticmethod
    def _build_request(
        url: str, headers: httpx.Headers, body: SerializedBody
    ) -> httpx.Request:
        if body.is_multipart:
            return httpx.Request(
                "POST", url, headers=headers, data=body.data, files=body.files
            )
        return httpx.Request("POST", url, headers=headers, data=body.data)

    def _interpret_response(
        self, method: str, response: httpx.Response
    ) -> Union[CallResult, FailureInfo]:
        status = response.status_code

        if status == 429:
            retry_after = parse_retry_after(response.headers)
            self.logger.warning(
                f"{method} was rate limited (HTTP 429), retry after {retry_after}s"
            )
            return FailureInfo(
                kind=FailureKind.RATE_LIMITED, status_code=status, retry_after=retry_after
            )

        if 200 <= status < 300:
            result = self._build_result(response)
            if not result.ok and result.error == RATE_LIMITED_ERROR:
                retry_after = (
                    result.response_metadata.retry_after
                    if result.response_metadata is not None
                    else None
                )
                self.logger.warning(
                    f"{method} was rate limited (ratelimited), retry after {retry_after}s"
                )
                return FailureInfo(
                    kind=FailureKind.RATE_LIMITED,
                    status_code=status,
                    retry_after=retry_after,
                )
            self._log_warnings(method, result)
            return result

        self.logger.warning(f"{method} returned HTTP {status}")
        if status >= 500:
            return FailureInfo(kind=FailureKind.SERVER_ERROR, status_code=status)
        return FailureInfo(kind=FailureKind.HTTP_ERROR, status_code=status)

    def _build_result(self, response: httpx.Response) -> CallResult:
        """Parse the body and merge scope and Retry-After headers into it."""
        try:
            data = response.json()
        except ValueError as e:
            raise HTTPError(
                "Response body is not valid JSON",
                status_code=response.status_code,
                response_body=response.text,
                headers=response.headers,
            ) from e
        if not isinstance(data, dict):
            raise HTTPError(
                "Response body is not a JSON object",
                status_code=response.status_code,
                response_body=response.text,
                headers=response.headers,
            )

        metadata = dict(data.get("response_metadata") or {})
        scopes = _split_scopes(response.headers.get("x-oauth-scopes"))
        if scopes is not None:
            metadata["scopes"] = scopes
        accepted_scopes = _split_scopes(response.headers.get("x-accepted-oauth-scopes"))
        if accepted_scopes is not None:
            metadata["acceptedScopes"] = accepted_scopes
        retry_after = parse_retry_after(response.headers)
        if retry_after is not None:
            metadata["retryAfter"] = retry_after
        if metadata:
            data = {**data, "response_metadata": metadata}

        try:
            return CallResult.model_validate(data)
        except ValidationError as e:
            raise HTTPError(
                f"Response body is not a valid call result: {e.errors()[0]['msg']}",
                status_code=response.status_code,
                response_body=response.text,
                headers=response.headers,
            ) from e

    def _log_warnings(self, method: str, result: CallResult) -> None:
        warnings = []
        if result.warning:
            warnings.extend(w.strip() for w in result.warning.split(",") if w.strip())
        if result.response_metadata is not None and result.response_metadata.warnings:
            warnings.extend(result.response_metadata.warnings)
        for warning in warnings:
            self.logger.warning(f"{method} returned warning: {warning}")

    async def _emit_rate_limited(
        self, method, url, attempt, failure: FailureInfo, decision
    ) -> None:
        if decision.retry:
            wait = decision.delay
        elif failure.retry_after is not None:
            wait = failure.retry_after
        else:
            wait = self.retry_policy.backoff(attempt, randomize=False)
        await self.events.emit(
            WebClientEvent.RATE_LIMITED,
            RateLimitedEvent(
                retry_after=wait,
                method=method,
                url=url,
                attempt=attempt,
                status_code=failure.status_code,
            ),
        )

    def _terminal_error(
        self,
        method: str,
        attempt: int,
        failure: FailureInfo,
        response: Optional[httpx.Response],
    ) -> WebAPIClientError:
        if failure.kind == FailureKind.NETWORK:
            self.logger.error(f"{method} failed after {attempt} attempts: {failure.error}")
            error: WebAPIClientError = TransportError(
                f"A request error occurred calling {method}: {failure.error}",
                original=failure.error,
                attempts=attempt,
            )
            error.__cause__ = failure.error
            return error

        if failure.kind == FailureKind.RATE_LIMITED:
            reason = (
                "rejected rate-limited call"
                if self.reject_rate_limited_calls
                else f"gave up after {attempt} attempts"
            )
            self.logger.error(f"{method} was rate limited and {reason}")
            return RateLimitedError(
                f"A rate limit was exceeded calling {method} ({reason})",
                retry_after=failure.retry_after,
                status_code=failure.status_code,
            )

        self.logger.error(
            f"{method} failed with HTTP {failure.status_code} after {attempt} attempts"
        )
        return HTTPError(
            f"An HTTP protocol error occurred calling {method}: "
            f"status code {failure.status_code}",
            status_code=failure.status_code,
            response_body=response.text if response is not None else None,
            headers=response.headers if response is not None else None,
        )
