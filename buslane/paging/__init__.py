"""
Message paging: append-only page cache, forward cursor and the controller
that navigates pages for one browsing context.
"""

from buslane.paging.controller import PaginationController
from buslane.paging.page_cache import MessagePageCache, PaginationCursor
from buslane.paging.pagination_state import PaginationState

__all__ = [
    "MessagePageCache",
    "PaginationController",
    "PaginationCursor",
    "PaginationState",
]
