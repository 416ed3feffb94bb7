"""HTTP executor used by the Web API client.

The executor performs exactly one HTTP exchange per call and knows
nothing about queuing, retries or result parsing. The default
implementation wraps an ``httpx.AsyncClient``; anything with a matching
``send``/``aclose`` pair can be injected instead.
"""

import logging
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)


@runtime_checkable
class HTTPExecutor(Protocol):
    """Performs one HTTP exchange.

    ``send`` returns the response for any HTTP status and raises
    ``httpx.RequestError`` (or a subclass) when no response was
    received.
    """

    async def send(self, request: httpx.Request) -> httpx.Response: ...

    async def aclose(self) -> None: ...


DEFAULT_TIMEOUT = 30.0
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_MAX_CONNECTIONS = 10


def create_timeout(
    timeout: float = DEFAULT_TIMEOUT, connect: Optional[float] = None
) -> httpx.Timeout:
    """Build the per-request timeout.

    ``timeout`` bounds reading, writing and waiting for a pooled
    connection. Connecting gets :data:`DEFAULT_CONNECT_TIMEOUT`, or
    ``timeout`` when that is shorter.

    :param timeout: Overall per-request timeout in seconds
    :param connect: Connect timeout in seconds
    """
    if connect is None:
        connect = min(DEFAULT_CONNECT_TIMEOUT, timeout)
    return httpx.Timeout(timeout, connect=connect)


def create_limits(max_connections: int = DEFAULT_MAX_CONNECTIONS) -> httpx.Limits:
    """Size the connection pool to the number of requests in flight.

    The request queue never lets more than ``max_connections`` exchanges
    run at once, so every one of them may keep its connection alive.
    """
    return httpx.Limits(
        max_connections=max_connections,
        max_keepalive_connections=max_connections,
    )


class HttpxExecutor:
    """Executor backed by ``httpx.AsyncClient``.

    Connection pooling, TLS, proxies and timeouts are all handled by
    httpx. Transport options are passed through untouched.

    :param client: An existing client to use; it is not closed by
        :meth:`aclose` unless ``owns_client`` is set
    :param timeout: Timeout in seconds or an ``httpx.Timeout``
    :param max_connections: Connection pool size, normally the client's
        request concurrency; ignored when ``limits`` is given
    :param owns_client: Whether :meth:`aclose` closes ``client``
    :param client_options: Extra ``httpx.AsyncClient`` keyword arguments
        (``transport``, ``verify``, ``cert``, ``proxy``, ``limits`` ...)
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        timeout: Optional[Any] = None,
        max_connections: int = DEFAULT_MAX_CONNECTIONS,
        owns_client: Optional[bool] = None,
        **client_options: Any,
    ):
        if client is None:
            config: Dict[str, Any] = {
                "timeout": _coerce_timeout(timeout),
                "limits": client_options.pop("limits", None)
                or create_limits(max_connections),
                "follow_redirects": True,
                **client_options,
            }
            client = httpx.AsyncClient(**config)
            logger.debug("Created httpx.AsyncClient for executor")
            owns_client = True if owns_client is None else owns_client
        self.client = client
        self.owns_client = bool(owns_client)

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send ``request`` and read the full response body."""
        return await self.client.send(request)

    async def aclose(self) -> None:
        """Close the underlying client if this executor created it."""
        if self.owns_client and not self.client.is_closed:
            await self.client.aclose()
            logger.debug("Closed executor httpx.AsyncClient")


def _coerce_timeout(timeout: Optional[Any]) -> httpx.Timeout:
    if timeout is None:
        return create_timeout()
    if isinstance(timeout, httpx.Timeout):
        return timeout
    return create_timeout(float(timeout))
