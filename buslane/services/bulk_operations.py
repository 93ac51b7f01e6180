"""
Bulk Operation Service

Host-facing wrapper around the bulk mutations of a BrokerOperations facade
for the entity currently being browsed.

Responsibilities:
- Confirmation prompt text for each destructive action
- Progress and result status lines ("Deleting 3 message(s)...",
  "Successfully deleted 2 of 3 message(s)")
- Mapping broker faults and unexpected failures to a status line; these
  never propagate to the host
- One bulk operation at a time (busy flag) and cooperative cancellation

Partial completion is reported as "completed of requested"; it is not an
error and nothing is rolled back.
"""

import asyncio
import uuid
from collections.abc import Awaitable, Callable, Sequence

from buslane.core.config.constants import Stage
from buslane.core.exceptions import InvalidOperationError, describe_failure
from buslane.core.interfaces.broker_operations import BrokerOperations
from buslane.core.logging.logger import clear_operation_id, get_logger, log_stage, set_operation_id
from buslane.models.context import PaginationContext
from buslane.models.message import BulkOperationResult, MessageRecord

logger = get_logger(__name__)

StatusCallback = Callable[[str], None]


class BulkOperationService:
    """Runs purge, delete, resend and dead-letter resubmit for one context."""

    def __init__(
        self,
        operations: BrokerOperations,
        context: PaginationContext | None = None,
        status_callback: StatusCallback | None = None,
    ):
        self._operations = operations
        self.context = context
        self._status_callback = status_callback
        self._busy = False
        self._cancel_event: asyncio.Event | None = None
        self.status_message: str | None = None

    @property
    def is_busy(self) -> bool:
        return self._busy

    def cancel(self) -> None:
        """Stop the running operation after the current batch or message."""
        if self._cancel_event is not None:
            self._cancel_event.set()

    # ------------------------------------------------------------------
    # Confirmation prompts
    # ------------------------------------------------------------------

    def purge_confirmation_message(self) -> str:
        context = self._require_context()
        return (
            f"Are you sure you want to purge all messages from {context.queue_kind} "
            f"of '{context.display_name}'? This action cannot be undone."
        )

    def delete_confirmation_message(self, count: int) -> str:
        context = self._require_context()
        return (
            f"Are you sure you want to delete {count} message(s) from "
            f"'{context.display_name}'? This action cannot be undone."
        )

    def resend_confirmation_message(self, count: int) -> str:
        context = self._require_context()
        return f"Are you sure you want to resend {count} message(s) to '{context.entity_name}'?"

    def resubmit_confirmation_message(self, count: int) -> str:
        context = self._require_context()
        return (
            f"Are you sure you want to resubmit {count} message(s) from the dead letter "
            f"queue back to '{context.display_name}'?"
        )

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def purge(self) -> BulkOperationResult | None:
        context = self._require_context()
        return await self._run(
            Stage.BULK_PURGE,
            "Purging messages...",
            lambda cancel: self._operations.purge_messages(
                context.entity_name, context.subscription, context.dead_letter, cancel
            ),
            lambda result: f"Purge complete: {result.completed} message(s) removed",
        )

    async def delete(self, messages: Sequence[MessageRecord]) -> BulkOperationResult | None:
        context = self._require_context()
        if not messages:
            return None
        sequence_numbers = [m.sequence_number for m in messages]
        return await self._run(
            Stage.BULK_DELETE,
            f"Deleting {len(messages)} message(s)...",
            lambda cancel: self._operations.delete_messages(
                context.entity_name, context.subscription, sequence_numbers, context.dead_letter, cancel
            ),
            lambda result: result.summary("deleted"),
        )

    async def resend(self, messages: Sequence[MessageRecord]) -> BulkOperationResult | None:
        context = self._require_context()
        if not messages:
            return None
        return await self._run(
            Stage.BULK_RESEND,
            f"Resending {len(messages)} message(s)...",
            lambda cancel: self._operations.resend_messages(
                context.entity_name, context.subscription, list(messages), cancel
            ),
            lambda result: result.summary("resent"),
        )

    async def resubmit_dead_letters(self, messages: Sequence[MessageRecord]) -> BulkOperationResult | None:
        """Only available while the dead-letter sub-queue is shown."""
        context = self._require_context()
        if not messages or not context.dead_letter:
            return None
        sequence_numbers = [m.sequence_number for m in messages]
        return await self._run(
            Stage.BULK_RESUBMIT,
            f"Resubmitting {len(messages)} dead letter message(s)...",
            lambda cancel: self._operations.resubmit_dead_letter_messages(
                context.entity_name, context.subscription, sequence_numbers, cancel
            ),
            lambda result: result.summary("resubmitted"),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        stage: Stage,
        progress: str,
        action: Callable[[asyncio.Event], Awaitable[BulkOperationResult]],
        summarize: Callable[[BulkOperationResult], str],
    ) -> BulkOperationResult | None:
        if self._busy:
            logger.debug("Bulk operation dropped, another one is running", stage=f"{stage.value}.0")
            return None

        self._busy = True
        self._cancel_event = asyncio.Event()
        set_operation_id(uuid.uuid4().hex[:12])
        self._set_status(progress)
        try:
            result = await action(self._cancel_event)
            if self._cancel_event.is_set():
                self._set_status(f"Cancelled: {summarize(result)}")
            else:
                self._set_status(summarize(result))
            log_stage(
                logger,
                stage,
                "Bulk operation finished",
                completed=result.completed,
                requested=result.requested,
                cancelled=self._cancel_event.is_set(),
            )
            return result
        except Exception as e:
            entity = self.context.entity_name if self.context else None
            log_stage(
                logger,
                stage,
                "Bulk operation failed",
                level="error",
                entity=entity,
                error=str(e),
                error_type=type(e).__name__,
            )
            self._set_status(describe_failure(e, entity=entity))
            return None
        finally:
            self._busy = False
            self._cancel_event = None
            clear_operation_id()

    def _require_context(self) -> PaginationContext:
        if self.context is None:
            raise InvalidOperationError("No entity selected")
        return self.context

    def _set_status(self, message: str) -> None:
        self.status_message = message
        if self._status_callback is not None:
            self._status_callback(message)
