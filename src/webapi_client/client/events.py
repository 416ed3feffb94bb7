"""Client events and the per-client listener registry."""

import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

logger = logging.getLogger(__name__)


class WebClientEvent(str, Enum):
    """Events emitted by :class:`~webapi_client.WebClient`."""

    RATE_LIMITED = "rate_limited"


@dataclass(frozen=True)
class RateLimitedEvent:
    """Payload of :attr:`WebClientEvent.RATE_LIMITED`.

    :param retry_after: Seconds the client will wait (or would have
        waited) before the next attempt
    :param method: Web API method that was throttled
    :param url: Request URL
    :param attempt: Number of the throttled attempt, from 1
    :param status_code: HTTP status of the throttled response
    """

    retry_after: float
    method: str
    url: str
    attempt: int
    status_code: Optional[int] = None


Listener = Callable[[Any], Union[None, Awaitable[None]]]


class EventEmitter:
    """Listener registry with fan-out in registration order.

    Listeners may be plain callables or coroutine functions. A listener
    that raises is logged and skipped; the remaining listeners still run.
    """

    def __init__(self):
        self._listeners: Dict[WebClientEvent, List[Listener]] = defaultdict(list)

    def on(self, event: WebClientEvent, listener: Listener) -> Listener:
        """Register ``listener`` for ``event``.

        :return: The listener, so this can be used as a decorator
        """
        self._listeners[WebClientEvent(event)].append(listener)
        return listener

    def off(self, event: WebClientEvent, listener: Listener) -> None:
        """Remove a previously registered listener if present."""
        listeners = self._listeners.get(WebClientEvent(event), [])
        if listener in listeners:
            listeners.remove(listener)

    def listener_count(self, event: WebClientEvent) -> int:
        return len(self._listeners.get(WebClientEvent(event), []))

    async def emit(self, event: WebClientEvent, payload: Any) -> None:
        """Deliver ``payload`` to every listener of ``event`` in order."""
        event = WebClientEvent(event)
        for listener in list(self._listeners.get(event, [])):
            try:
                result = listener(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Listener for '{event.value}' event failed")
