"""Web API client, events and pagination."""

from .events import EventEmitter, RateLimitedEvent, WebClientEvent
from .pagination import CursorPaginator, PaginationState, drive_pages
from .web_client import WebClient

__all__ = [
    "WebClient",
    "WebClientEvent",
    "RateLimitedEvent",
    "EventEmitter",
    "CursorPaginator",
    "PaginationState",
    "drive_pages",
]
