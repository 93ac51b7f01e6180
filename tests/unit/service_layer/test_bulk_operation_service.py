"""
Unit Tests for BulkOperationService

Tests confirmation prompts, progress/result status lines, failure mapping,
the busy guard and cancellation.
"""

import asyncio

import pytest
from azure.servicebus.exceptions import ServiceBusServerBusyError

from buslane.core.exceptions import InvalidOperationError
from buslane.models.message import BulkOperationResult
from buslane.services import BulkOperationService
from tests.test_fixtures import BrokerTestFactory


@pytest.fixture
def service(fake_operations, queue_context, status_log):
    return BulkOperationService(fake_operations, queue_context, status_callback=status_log.append)


@pytest.mark.unit
class TestConfirmationMessages:
    """Test the prompt texts shown before destructive actions."""

    def test_purge_confirmation(self, service):
        assert service.purge_confirmation_message() == (
            "Are you sure you want to purge all messages from queue of 'orders'? "
            "This action cannot be undone."
        )

    def test_purge_dead_letter_confirmation(self, fake_operations, dead_letter_context):
        service = BulkOperationService(fake_operations, dead_letter_context)

        assert "dead letter queue of 'events/audit'" in service.purge_confirmation_message()

    def test_delete_confirmation(self, service):
        assert service.delete_confirmation_message(3) == (
            "Are you sure you want to delete 3 message(s) from 'orders'? This action cannot be undone."
        )

    def test_resend_confirmation(self, service):
        assert service.resend_confirmation_message(2) == "Are you sure you want to resend 2 message(s) to 'orders'?"

    def test_resubmit_confirmation(self, fake_operations, dead_letter_context):
        service = BulkOperationService(fake_operations, dead_letter_context)

        assert service.resubmit_confirmation_message(4) == (
            "Are you sure you want to resubmit 4 message(s) from the dead letter queue back to 'events/audit'?"
        )

    def test_no_context_raises(self, fake_operations):
        service = BulkOperationService(fake_operations)

        with pytest.raises(InvalidOperationError):
            service.delete_confirmation_message(1)


@pytest.mark.unit
class TestBulkOperations:
    """Test the operations and their status lines."""

    @pytest.mark.asyncio
    async def test_delete_partial_completion(self, service, fake_operations, status_log):
        fake_operations.bulk_result = BulkOperationResult(completed=2, requested=3)

        result = await service.delete(BrokerTestFactory.records([1, 2, 3]))

        assert result.completed == 2
        assert status_log == ["Deleting 3 message(s)...", "Successfully deleted 2 of 3 message(s)"]
        assert fake_operations.bulk_calls == [("delete", "orders", None, [1, 2, 3], False)]

    @pytest.mark.asyncio
    async def test_purge(self, service, fake_operations, status_log):
        fake_operations.bulk_result = BulkOperationResult(completed=250, requested=250)

        await service.purge()

        assert status_log == ["Purging messages...", "Purge complete: 250 message(s) removed"]
        assert fake_operations.bulk_calls[0][:4] == ("purge", "orders", None, False)

    @pytest.mark.asyncio
    async def test_resend(self, service, fake_operations, status_log):
        records = BrokerTestFactory.records([1, 2])
        fake_operations.bulk_result = BulkOperationResult(completed=2, requested=2)

        await service.resend(records)

        assert status_log[-1] == "Successfully resent 2 of 2 message(s)"
        assert fake_operations.bulk_calls == [("resend", "orders", None, records)]

    @pytest.mark.asyncio
    async def test_resend_from_subscription_passes_subscription(self, fake_operations, dead_letter_context):
        service = BulkOperationService(fake_operations, dead_letter_context)
        records = BrokerTestFactory.records([4])
        fake_operations.bulk_result = BulkOperationResult(completed=1, requested=1)

        await service.resend(records)

        assert fake_operations.bulk_calls == [("resend", "events", "audit", records)]

    @pytest.mark.asyncio
    async def test_resubmit_from_dead_letter(self, fake_operations, dead_letter_context, status_log):
        service = BulkOperationService(fake_operations, dead_letter_context, status_callback=status_log.append)
        fake_operations.bulk_result = BulkOperationResult(completed=1, requested=1)

        await service.resubmit_dead_letters(BrokerTestFactory.records([8]))

        assert status_log == [
            "Resubmitting 1 dead letter message(s)...",
            "Successfully resubmitted 1 of 1 message(s)",
        ]
        assert fake_operations.bulk_calls == [("resubmit", "events", "audit", [8])]

    @pytest.mark.asyncio
    async def test_resubmit_refused_outside_dead_letter_view(self, service, fake_operations):
        assert await service.resubmit_dead_letters(BrokerTestFactory.records([1])) is None
        assert fake_operations.bulk_calls == []

    @pytest.mark.asyncio
    async def test_empty_selection_is_a_no_op(self, service, fake_operations, status_log):
        assert await service.delete([]) is None
        assert await service.resend([]) is None
        assert fake_operations.bulk_calls == []
        assert status_log == []

    @pytest.mark.asyncio
    async def test_broker_fault_becomes_status_line(self, service, fake_operations, status_log):
        fake_operations.bulk_error = ServiceBusServerBusyError(message="Namespace busy")

        result = await service.delete(BrokerTestFactory.records([1]))

        assert result is None
        assert status_log[-1].startswith("Error: ServiceBusy - ")
        assert not service.is_busy

    @pytest.mark.asyncio
    async def test_unexpected_error_becomes_status_line(self, service, fake_operations):
        fake_operations.bulk_error = RuntimeError("socket closed")

        assert await service.purge() is None
        assert service.status_message == "Error: socket closed"

    @pytest.mark.asyncio
    async def test_second_operation_is_dropped_while_busy(self, service, fake_operations):
        gate = asyncio.Event()
        original = fake_operations.purge_messages

        async def slow_purge(*args, **kwargs):
            await gate.wait()
            return await original(*args, **kwargs)

        fake_operations.purge_messages = slow_purge
        first = asyncio.create_task(service.purge())
        await asyncio.sleep(0)

        assert service.is_busy
        assert await service.delete(BrokerTestFactory.records([1])) is None

        gate.set()
        await first
        assert not service.is_busy
        assert [call[0] for call in fake_operations.bulk_calls] == ["purge"]

    @pytest.mark.asyncio
    async def test_cancel_marks_summary(self, service, fake_operations, status_log):
        started = asyncio.Event()
        gate = asyncio.Event()

        async def cancellable_delete(entity, subscription, sequence_numbers, dead_letter=False, cancel_event=None):
            started.set()
            await gate.wait()
            assert cancel_event.is_set()
            return BulkOperationResult(completed=1, requested=3)

        fake_operations.delete_messages = cancellable_delete
        task = asyncio.create_task(service.delete(BrokerTestFactory.records([1, 2, 3])))
        await started.wait()

        service.cancel()
        gate.set()
        await task

        assert status_log[-1] == "Cancelled: Successfully deleted 1 of 3 message(s)"

    def test_cancel_without_operation_is_harmless(self, service):
        service.cancel()
        assert not service.is_busy
