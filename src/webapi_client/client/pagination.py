"""Cursor pagination over Web API methods.

A paginated method returns ``response_metadata.next_cursor`` while more
results exist. :class:`CursorPaginator` fetches one page per step and
feeds each page's cursor into the next request. :func:`drive_pages`
walks a paginator to completion for callers that only want a stop
predicate and an optional accumulator.
"""

import inspect
import logging
from enum import Enum
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

from ..config.settings import DEFAULT_PAGE_SIZE
from ..models.api_responses import CallResult

logger = logging.getLogger(__name__)

A = TypeVar("A")

CallFunction = Callable[[str, Dict[str, Any]], Awaitable[CallResult]]
PagePredicate = Callable[[CallResult], Union[Any, Awaitable[Any]]]
PageReducer = Callable[[Optional[A], CallResult, int], Union[A, Awaitable[A]]]


class PaginationState(str, Enum):
    """Lifecycle of one pagination run."""

    START = "start"
    FETCHING = "fetching"
    HAS_NEXT = "has_next"
    STOPPED_BY_CALLER = "stopped_by_caller"
    EXHAUSTED = "exhausted"


TERMINAL_STATES = frozenset(
    {PaginationState.STOPPED_BY_CALLER, PaginationState.EXHAUSTED}
)


class CursorPaginator:
    """Lazy, non-restartable sequence of result pages.

    Each ``__anext__`` performs one call. A ``limit`` in the options is
    sent unchanged with every page in place of ``page_size``; a
    ``cursor`` in the options is used for the first page.

    :param call: Coroutine function performing a single API call
    :param method: Web API method name
    :param options: Call options shared by every page
    :param page_size: ``limit`` sent when the options carry none
    :param max_pages: Stop after this many pages even if a cursor remains
    """

    def __init__(
        self,
        call: CallFunction,
        method: str,
        options: Optional[Mapping[str, Any]] = None,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: Optional[int] = None,
    ):
        base = dict(options or {})
        limit = base.pop("limit", None)
        if limit is not None:
            page_size = limit

        self.method = method
        self.page_size = page_size
        self.max_pages = max_pages
        self.pages_fetched = 0
        self.state = PaginationState.START
        self._call = call
        self._cursor: Optional[str] = base.pop("cursor", None) or None
        self._base_options = base

    @property
    def cursor(self) -> Optional[str]:
        """Cursor that the next fetch will send."""
        return self._cursor

    @property
    def done(self) -> bool:
        return self.state in TERMINAL_STATES

    def __aiter__(self) -> "CursorPaginator":
        return self

    async def __anext__(self) -> CallResult:
        if self.state not in (PaginationState.START, PaginationState.HAS_NEXT):
            raise StopAsyncIteration

        self.state = PaginationState.FETCHING
        try:
            page = await self._call(self.method, self._page_options())
        except BaseException:
            self.state = PaginationState.EXHAUSTED
            raise
        self.pages_fetched += 1

        next_cursor = page.next_cursor
        if not next_cursor:
            self.state = PaginationState.EXHAUSTED
        elif self.max_pages is not None and self.pages_fetched >= self.max_pages:
            logger.warning(
                f"Stopping pagination of {self.method} after {self.pages_fetched} "
                f"pages (max_pages={self.max_pages}) with a cursor still pending"
            )
            self.state = PaginationState.EXHAUSTED
        else:
            self._cursor = next_cursor
            self.state = PaginationState.HAS_NEXT
        return page

    def stop(self) -> None:
        """End the run on behalf of the caller."""
        if not self.done:
            self.state = PaginationState.STOPPED_BY_CALLER

    def _page_options(self) -> Dict[str, Any]:
        options = {**self._base_options, "limit": self.page_size}
        if self._cursor:
            options["cursor"] = self._cursor
        return options


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def drive_pages(
    paginator: CursorPaginator,
    should_stop: PagePredicate,
    reduce: Optional[PageReducer] = None,
) -> Optional[A]:
    """Walk ``paginator`` until ``should_stop`` is truthy or pages run out.

    ``reduce(accumulator, page, index)`` runs for every visited page,
    including the one that stopped the run, starting from ``None``.
    The next page is not requested until both callbacks have finished
    for the current one.

    :return: The last accumulator, or None without ``reduce``
    """
    accumulator: Optional[A] = None
    index = 0
    async for page in paginator:
        if reduce is not None:
            accumulator = await _resolve(reduce(accumulator, page, index))
        if await _resolve(should_stop(page)):
            paginator.stop()
            break
        index += 1
    return accumulator
