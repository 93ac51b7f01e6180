"""
Pagination Controller.

Drives page navigation over an entity that can only be read forward: peek
from the start, or (non-session entities) peek from a sequence number.

STAGE-PG: Pagination
--------------------
PG.1: Load first page (reset cache and cursor, fetch page 1)
PG.2: Load next page (cache hit, or peek from the cursor)
PG.3: Dedup fallback (fetch returned only already-cached messages)
PG.4: Load previous page (cache only, never touches the broker)

Architectural Decision: sequence cursor only where order is global
- Non-session entities: the next fetch starts at (max sequence number of
  the last fetched page) + 1, so pages never overlap
- Session entities: sessions are enumerated in no stable order, so every
  fetch peeks from the start and progress is judged against the full set
  of cached sequence numbers instead
- has_more is optimistic: any non-empty page below the message cap
  assumes another page exists; the following fetch then comes back empty
  and ends pagination

Sort and filter are projections of the current page only. Changing them
never triggers a broker call.
"""

import uuid
from collections.abc import Callable

from buslane.core.config.constants import PaginationStatus, Stage
from buslane.core.config.settings import Settings, get_settings
from buslane.core.exceptions import InvalidOperationError, describe_failure
from buslane.core.interfaces.broker_operations import BrokerOperations
from buslane.core.logging.logger import clear_operation_id, get_logger, log_stage, set_operation_id
from buslane.models.context import PaginationContext
from buslane.models.message import MessageRecord
from buslane.paging.page_cache import MessagePageCache, PaginationCursor
from buslane.paging.pagination_state import PaginationState

logger = get_logger(__name__)

StatusCallback = Callable[[str], None]


def _sort_key(message: MessageRecord):
    enqueued = message.enqueued_time.timestamp() if message.enqueued_time else float("-inf")
    return (enqueued, message.sequence_number)


class PaginationController:
    """
    Page cache, cursor and view state for one browsing context.

    At most one load runs at a time: a load requested while another is in
    flight is dropped (returns None), not queued.
    """

    def __init__(
        self,
        operations: BrokerOperations,
        page_size: int | None = None,
        max_total_messages: int | None = None,
        sort_descending: bool | None = None,
        status_callback: StatusCallback | None = None,
        settings: Settings | None = None,
    ):
        paging = (settings or get_settings()).paging
        self.page_size = page_size or paging.MESSAGES_PER_PAGE
        self.max_total_messages = max_total_messages or paging.MAX_TOTAL_MESSAGES
        self._sort_descending = paging.SORT_DESCENDING if sort_descending is None else sort_descending

        if self.page_size <= 0:
            raise InvalidOperationError("page_size must be positive", details={"page_size": self.page_size})
        if self.max_total_messages < self.page_size:
            raise InvalidOperationError(
                "max_total_messages must be >= page_size",
                details={"page_size": self.page_size, "max_total_messages": self.max_total_messages},
            )

        self._operations = operations
        self._status_callback = status_callback

        self._context: PaginationContext | None = None
        self._cache = MessagePageCache()
        self._cursor = PaginationCursor()
        self.state = PaginationState()
        self.status = PaginationStatus.IDLE
        self.status_message: str | None = None
        self._busy = False
        self._generation = 0

        self._messages: list[MessageRecord] = []
        self._filtered: list[MessageRecord] = []
        self._filter_text = ""
        self._selected: dict[int, MessageRecord] = {}
        self.selection_version = 0

    # ------------------------------------------------------------------
    # Context
    # ------------------------------------------------------------------

    @property
    def context(self) -> PaginationContext | None:
        return self._context

    def set_context(self, context: PaginationContext) -> bool:
        """
        Switch to another entity / subscription / dead-letter / session view.

        Returns:
            bool: True if the context changed and the cache was reset
        """
        if context == self._context:
            return False
        self._context = context
        self.reset()
        return True

    def reset(self) -> None:
        """
        Discard cache, cursor, view and selection.

        A load still in flight belongs to the previous generation: its result
        is dropped when it returns, and it no longer blocks new loads.
        """
        self._generation += 1
        self._busy = False
        self._cache.clear()
        self._cursor.reset()
        self.state.reset()
        self._messages = []
        self._filtered = []
        self._filter_text = ""
        self._clear_selection()
        self.status = PaginationStatus.IDLE

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def cache(self) -> MessagePageCache:
        return self._cache

    @property
    def cursor(self) -> PaginationCursor:
        return self._cursor

    @property
    def has_more(self) -> bool:
        return self._cursor.has_more

    @property
    def current_page(self) -> int:
        return self._cursor.current_page

    @property
    def messages(self) -> list[MessageRecord]:
        """Current page, sorted."""
        return list(self._messages)

    @property
    def filtered_messages(self) -> list[MessageRecord]:
        return list(self._filtered)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load_first_page(self) -> list[MessageRecord] | None:
        """
        Reset the cache and fetch page 1.

        STAGE-PG.1

        Returns:
            The page, or None if the load was dropped or failed
        """
        context = self._require_context()
        if self._busy:
            logger.debug("Load dropped, another load is in flight", stage="PG.1.0")
            return None

        generation = self._begin_load("Loading messages...")
        try:
            self._cache.clear()
            self._cursor.reset()
            self._messages = []
            self._filtered = []
            self._clear_selection()

            fetched = await self._operations.peek_messages(
                context.entity_name,
                context.subscription,
                self.page_size,
                from_sequence_number=None,
                dead_letter=context.dead_letter,
                requires_session=context.requires_session,
            )
            if self._is_stale(generation, Stage.PAGE_FIRST):
                return None

            self._cache.store_page(1, fetched)
            self._advance_cursor(fetched)
            log_stage(
                logger,
                Stage.PAGE_FIRST,
                "First page loaded",
                entity=context.display_name,
                count=len(fetched),
                has_more=self._cursor.has_more,
            )
            return self._show_page(1)
        except Exception as e:
            if not self._is_stale(generation, Stage.PAGE_FIRST):
                self._fail(e, Stage.PAGE_FIRST)
            return None
        finally:
            self._end_load(generation)

    async def load_next_page(self) -> list[MessageRecord] | None:
        """
        Move to the next page, fetching it if it is not cached.

        STAGE-PG.2

        Returns:
            The new page, or None if the load was dropped, failed, or there
            are no more messages (the current page stays as it was)
        """
        context = self._require_context()
        if self._busy:
            logger.debug("Load dropped, another load is in flight", stage="PG.2.0")
            return None

        next_page = self._cursor.current_page + 1
        if self._cache.has_page(next_page):
            log_stage(logger, Stage.PAGE_NEXT, "Next page served from cache", level="debug", page=next_page)
            return self._show_page(next_page)
        if not self._cursor.has_more:
            return None

        generation = self._begin_load("Loading messages...")
        try:
            fetched = await self._operations.peek_messages(
                context.entity_name,
                context.subscription,
                self.page_size,
                from_sequence_number=None if context.requires_session else self._cursor.next_from_sequence_number,
                dead_letter=context.dead_letter,
                requires_session=context.requires_session,
            )
            if self._is_stale(generation, Stage.PAGE_NEXT):
                return None
            new_messages = [m for m in fetched if not self._cache.contains(m.sequence_number)]

            if fetched and not new_messages:
                new_messages = await self._dedup_fallback(context)
                if self._is_stale(generation, Stage.PAGE_NEXT):
                    return None

            if not new_messages:
                self._cursor.has_more = False
                self.status = PaginationStatus.LOADED
                log_stage(logger, Stage.PAGE_NEXT, "No more messages", page=self._cursor.current_page)
                self._refresh_state()
                self._set_status(f"{len(self._messages)} message(s)")
                return None

            self._cache.store_page(next_page, new_messages)
            self._advance_cursor(new_messages)
            log_stage(
                logger,
                Stage.PAGE_NEXT,
                "Next page loaded",
                entity=context.display_name,
                page=next_page,
                count=len(new_messages),
                next_from_sequence_number=self._cursor.next_from_sequence_number,
                has_more=self._cursor.has_more,
            )
            return self._show_page(next_page)
        except Exception as e:
            if not self._is_stale(generation, Stage.PAGE_NEXT):
                self._fail(e, Stage.PAGE_NEXT)
            return None
        finally:
            self._end_load(generation)

    async def _dedup_fallback(self, context: PaginationContext) -> list[MessageRecord]:
        """
        Re-peek from the start and keep the first page of unseen messages.

        STAGE-PG.3
        """
        cached_total = self._cache.get_total_cached_messages()
        fetched = await self._operations.peek_messages(
            context.entity_name,
            context.subscription,
            cached_total + self.page_size,
            from_sequence_number=None,
            dead_letter=context.dead_letter,
            requires_session=context.requires_session,
        )
        unseen = [m for m in fetched if not self._cache.contains(m.sequence_number)]
        log_stage(
            logger,
            Stage.PAGE_DEDUP,
            "Dedup fallback scan",
            cached=cached_total,
            scanned=len(fetched),
            unseen=len(unseen),
        )
        return unseen[: self.page_size]

    def load_previous_page(self) -> list[MessageRecord] | None:
        """
        Move to the previous page. Served from the cache only.

        STAGE-PG.4
        """
        if self._busy:
            return None
        previous = self._cursor.current_page - 1
        if previous < 1 or not self._cache.has_page(previous):
            return None
        log_stage(logger, Stage.PAGE_PREVIOUS, "Previous page served from cache", level="debug", page=previous)
        return self._show_page(previous)

    # ------------------------------------------------------------------
    # Sort / filter projection
    # ------------------------------------------------------------------

    @property
    def sort_descending(self) -> bool:
        return self._sort_descending

    def toggle_sort_order(self) -> None:
        self._sort_descending = not self._sort_descending
        self._messages = self._sorted(self._messages)
        self._apply_filter()

    @property
    def filter_text(self) -> str:
        return self._filter_text

    @filter_text.setter
    def filter_text(self, value: str | None) -> None:
        self._filter_text = value or ""
        self._apply_filter()

    def clear_filter(self) -> None:
        self.filter_text = ""

    def _sorted(self, messages: list[MessageRecord]) -> list[MessageRecord]:
        return sorted(messages, key=_sort_key, reverse=self._sort_descending)

    def _apply_filter(self) -> None:
        text = self._filter_text.strip()
        if not text:
            self._filtered = list(self._messages)
        else:
            self._filtered = [m for m in self._messages if m.matches(text)]

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @property
    def selected_messages(self) -> list[MessageRecord]:
        return list(self._selected.values())

    @property
    def selected_sequence_numbers(self) -> list[int]:
        return list(self._selected)

    def is_selected(self, message: MessageRecord) -> bool:
        return message.sequence_number in self._selected

    def toggle_selection(self, message: MessageRecord) -> None:
        if message.sequence_number in self._selected:
            del self._selected[message.sequence_number]
        else:
            self._selected[message.sequence_number] = message
        self.selection_version += 1

    def select_all(self) -> None:
        """Select every message of the filtered view."""
        self._selected = {m.sequence_number: m for m in self._filtered}
        self.selection_version += 1

    def deselect_all(self) -> None:
        self._clear_selection()

    def _clear_selection(self) -> None:
        self._selected.clear()
        self.selection_version += 1

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _require_context(self) -> PaginationContext:
        if self._context is None:
            raise InvalidOperationError("No entity selected")
        return self._context

    def _begin_load(self, status: str) -> int:
        """Mark a load in flight and return the generation it belongs to."""
        self._busy = True
        self.status = PaginationStatus.LOADING
        set_operation_id(uuid.uuid4().hex[:12])
        self._set_status(status)
        return self._generation

    def _end_load(self, generation: int) -> None:
        # After a reset the busy flag belongs to the new generation
        if generation == self._generation:
            self._busy = False
        clear_operation_id()

    def _is_stale(self, generation: int, stage: Stage) -> bool:
        """True if the context was changed or reset while the load was awaiting the broker."""
        if generation == self._generation:
            return False
        logger.debug("Discarding result of a superseded load", stage=f"{stage.value}.STALE")
        return True

    def _advance_cursor(self, fetched: list[MessageRecord]) -> None:
        cursor = self._cursor
        cursor.cached_count += len(fetched)
        if fetched and not self._context.requires_session:
            cursor.next_from_sequence_number = max(m.sequence_number for m in fetched) + 1
        cursor.has_more = bool(fetched) and cursor.cached_count < self.max_total_messages

    def _show_page(self, page_number: int) -> list[MessageRecord]:
        page = self._cache.get_page(page_number) or []
        self._cursor.current_page = page_number
        self._messages = self._sorted(page)
        self._apply_filter()
        self._clear_selection()
        self.status = PaginationStatus.LOADED
        self._refresh_state()
        self._set_status(f"{len(self._messages)} message(s)")
        return list(self._messages)

    def _refresh_state(self) -> None:
        page_number = self._cursor.current_page
        self.state.current_page = max(page_number, 1)
        self.state.can_go_previous = page_number > 1
        self.state.can_go_next = self._cache.has_page(page_number + 1) or self._cursor.has_more
        self.state.update_page_info(len(self._messages), self.page_size)

    def _fail(self, error: Exception, stage: Stage) -> None:
        entity = self._context.entity_name if self._context else None
        message = describe_failure(error, entity=entity)
        self.status = PaginationStatus.ERROR
        log_stage(
            logger,
            stage,
            "Page load failed",
            level="error",
            entity=entity,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._set_status(message)

    def _set_status(self, message: str) -> None:
        self.status_message = message
        if self._status_callback is not None:
            self._status_callback(message)
