"""Bounded FIFO admission queue for outbound requests.

At most ``max_concurrency`` tickets are held at any time. Callers that
arrive while the queue is full wait in arrival order; a released slot
is handed directly to the longest-waiting caller.
"""

import asyncio
import itertools
import logging
import time
from collections import deque
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Deque, Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 3

_ticket_ids = itertools.count(1)


@dataclass
class Ticket:
    """One occupied concurrency slot."""

    id: int = field(default_factory=lambda: next(_ticket_ids))
    granted_at: float = field(default_factory=time.monotonic)
    released: bool = False


class RequestQueue:
    """Admits a bounded number of concurrently in-flight requests.

    :param max_concurrency: Maximum number of tickets held at once
    """

    def __init__(self, max_concurrency: int = DEFAULT_MAX_CONCURRENCY):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.max_concurrency = max_concurrency
        self._held = 0
        self._waiters: Deque[asyncio.Future] = deque()

    @property
    def in_flight(self) -> int:
        """Number of tickets currently held."""
        return self._held

    @property
    def pending(self) -> int:
        """Number of callers waiting for a ticket."""
        return sum(1 for w in self._waiters if not w.done())

    async def acquire(self) -> Ticket:
        """Wait until a slot is free and take it.

        :return: The granted ticket, to be passed to :meth:`release`
        """
        if self._held < self.max_concurrency and not self._waiters:
            self._held += 1
            return Ticket()

        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        started = time.monotonic()
        try:
            ticket = await waiter
        except asyncio.CancelledError:
            if waiter.done() and not waiter.cancelled():
                # Granted between wake-up and cancellation; pass it on.
                self.release(waiter.result())
            else:
                try:
                    self._waiters.remove(waiter)
                except ValueError:
                    pass
            raise

        waited = time.monotonic() - started
        if waited > 5.0:
            logger.warning(f"Long queue wait: {waited:.2f}s")
        return ticket

    def release(self, ticket: Ticket) -> None:
        """Free the slot held by ``ticket``.

        The slot goes to the longest-waiting caller if there is one.
        Releasing a ticket twice has no effect.
        """
        if ticket.released:
            logger.debug(f"Ticket {ticket.id} already released")
            return
        ticket.released = True

        while self._waiters:
            waiter = self._waiters.popleft()
            if not waiter.done():
                waiter.set_result(Ticket())
                return
        self._held -= 1

    @asynccontextmanager
    async def slot(self) -> AsyncIterator[Ticket]:
        """Hold a ticket for the duration of the ``async with`` block."""
        ticket: Optional[Ticket] = None
        try:
            ticket = await self.acquire()
            yield ticket
        finally:
            if ticket is not None:
                self.release(ticket)
