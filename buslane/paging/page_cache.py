"""
Page cache and pagination cursor.

Pages are numbered from 1, stored once and never mutated. The cache also
keeps the set of every cached sequence number so a freshly fetched page can
be checked for overlap without walking all pages.
"""

from dataclasses import dataclass

from buslane.core.exceptions.base import InvalidOperationError
from buslane.models.message import MessageRecord


@dataclass
class PaginationCursor:
    """Where the next forward fetch starts."""

    current_page: int = 0
    next_from_sequence_number: int | None = None
    has_more: bool = False
    cached_count: int = 0

    def reset(self) -> None:
        self.current_page = 0
        self.next_from_sequence_number = None
        self.has_more = False
        self.cached_count = 0


class MessagePageCache:
    """Append-only store of fetched pages."""

    def __init__(self):
        self._pages: dict[int, tuple[MessageRecord, ...]] = {}
        self._sequence_numbers: set[int] = set()

    def store_page(self, page_number: int, messages: list[MessageRecord]) -> None:
        """
        Store a page.

        Raises:
            InvalidOperationError: If the page is already stored or would
                leave a gap in the page numbering
        """
        expected = len(self._pages) + 1
        if page_number != expected:
            raise InvalidOperationError(
                "Pages must be stored contiguously",
                details={"page_number": page_number, "expected": expected},
            )
        self._pages[page_number] = tuple(messages)
        self._sequence_numbers.update(m.sequence_number for m in messages)

    def get_page(self, page_number: int) -> list[MessageRecord] | None:
        page = self._pages.get(page_number)
        return list(page) if page is not None else None

    def has_page(self, page_number: int) -> bool:
        return page_number in self._pages

    @property
    def page_count(self) -> int:
        return len(self._pages)

    def get_last_sequence_number(self, page_number: int) -> int | None:
        """Highest sequence number on a page (pages are not necessarily sorted)."""
        page = self._pages.get(page_number)
        if not page:
            return None
        return max(m.sequence_number for m in page)

    def get_max_sequence_number(self) -> int | None:
        return max(self._sequence_numbers) if self._sequence_numbers else None

    def get_cached_sequence_numbers(self) -> frozenset[int]:
        return frozenset(self._sequence_numbers)

    def contains(self, sequence_number: int) -> bool:
        return sequence_number in self._sequence_numbers

    def get_total_cached_messages(self) -> int:
        return sum(len(page) for page in self._pages.values())

    def clear(self) -> None:
        self._pages.clear()
        self._sequence_numbers.clear()
