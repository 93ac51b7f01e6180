"""
Unit Tests for the Service Bus batching helpers

Drives peek, purge, delete, resend and resubmit against the in-memory
Service Bus fake and asserts on the exact broker traffic.
"""

import asyncio
from datetime import timedelta
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from buslane.infrastructure.servicebus import operations as ops
from buslane.models.message import SendConfiguration
from tests.test_fixtures import BrokerTestFactory, FakeEntity, FakeServiceBusClient, make_messages
from tests.test_fixtures.fake_servicebus import FakeReceivedMessage


def _client(**entities) -> FakeServiceBusClient:
    return FakeServiceBusClient(dict(entities))


@pytest.mark.unit
class TestMessageMapping:
    """Test SDK message to MessageRecord conversion."""

    def test_maps_metadata_and_body(self):
        message = FakeReceivedMessage(
            sequence_number=7,
            body_text="hello\nworld",
            correlation_id="corr",
            dead_letter_reason="MaxDeliveryCountExceeded",
            dead_letter_error_description="too many",
            application_properties={b"tenant": b"contoso", "retries": 2},
        )

        record = ops.map_to_message_record(message)

        assert record.sequence_number == 7
        assert record.message_id == "msg-7"
        assert record.body == "hello\nworld"
        assert record.body_preview == "hello world"
        assert record.correlation_id == "corr"
        assert record.dead_letter_description == "too many"
        assert record.application_properties == {"tenant": "contoso", "retries": 2}

    def test_preview_length_is_honoured(self):
        message = FakeReceivedMessage(sequence_number=1, body_text="y" * 50)
        assert ops.map_to_message_record(message, preview_length=10).body_preview == "y" * 10 + "..."


@pytest.mark.unit
class TestBuildMessage:
    """Test outgoing message construction."""

    def test_blank_fields_keep_transport_defaults(self):
        config = SendConfiguration(subject="   ", correlation_id="c1", message_id="")

        message = ops.build_service_bus_message("payload", config)

        assert message.subject is None
        assert message.correlation_id == "c1"
        assert message.message_id is None
        assert str(message) == "payload"

    def test_set_fields_are_applied(self):
        config = SendConfiguration(
            content_type="application/json",
            time_to_live=timedelta(minutes=1),
            application_properties={"tenant": "a"},
        )

        message = ops.build_service_bus_message("{}", config)

        assert message.content_type == "application/json"
        assert message.time_to_live == timedelta(minutes=1)
        assert message.application_properties == {"tenant": "a"}

    def test_republish_gets_fresh_message_id(self):
        record = BrokerTestFactory.record(3, correlation_id="corr", session_id="s1")

        message = ops.build_republish_message(record)

        assert message.message_id != record.message_id
        assert message.correlation_id == "corr"
        assert message.session_id == "s1"
        assert str(message) == "body 3"


@pytest.mark.unit
class TestPeekStandard:
    """Test non-session peeking."""

    @pytest.mark.asyncio
    async def test_peek_from_cursor(self):
        client = _client(orders=FakeEntity(make_messages(range(1, 11))))

        records = await ops.peek_standard(client, "orders", None, 3, from_sequence_number=4)

        assert [r.sequence_number for r in records] == [4, 5, 6]
        assert client.peek_calls == [("orders", 3, 4)]

    @pytest.mark.asyncio
    async def test_short_peeks_are_continued(self):
        """The broker may return fewer than asked; peeking continues after the last one."""
        client = _client(orders=FakeEntity(make_messages(range(1, 11))))
        client.peek_limit = 2

        records = await ops.peek_standard(client, "orders", None, 5)

        assert [r.sequence_number for r in records] == [1, 2, 3, 4, 5]
        assert client.peek_calls == [("orders", 5, 0), ("orders", 3, 3), ("orders", 1, 5)]

    @pytest.mark.asyncio
    async def test_stops_at_end_of_entity(self):
        client = _client(orders=FakeEntity(make_messages([1, 2, 3])))

        records = await ops.peek_standard(client, "orders", None, 10)

        assert len(records) == 3
        assert len(client.peek_calls) == 2

    @pytest.mark.asyncio
    async def test_dead_letter_subscription_peek(self):
        entity = FakeEntity(make_messages([1, 2]), dead_letter=make_messages([40, 41]))
        client = _client(**{"events/subscriptions/audit": entity})

        records = await ops.peek_standard(client, "events", "audit", 10, dead_letter=True)

        assert [r.sequence_number for r in records] == [40, 41]
        assert client.opened_receivers[0].sub_queue is not None


@pytest.mark.unit
class TestPeekSessions:
    """Test merged peeking across sessions."""

    @pytest.mark.asyncio
    async def test_stops_on_repeated_session(self):
        entity = FakeEntity(make_messages([1, 2], session_id="a") + make_messages([3], session_id="b"))
        entity.session_queue.extend(["a", "b", "a", "b"])
        client = _client(orders=entity)

        records = await ops.peek_sessions(client, "orders", None, 10)

        assert [r.sequence_number for r in records] == [1, 2, 3]
        assert len(client.opened_receivers) == 3

    @pytest.mark.asyncio
    async def test_no_session_available_ends_peek(self):
        entity = FakeEntity(make_messages([1, 2], session_id="a"))
        entity.session_queue.append("a")
        client = _client(orders=entity)

        records = await ops.peek_sessions(client, "orders", None, 10)

        assert [r.sequence_number for r in records] == [1, 2]

    @pytest.mark.asyncio
    async def test_max_sessions_caps_the_walk(self):
        entity = FakeEntity(make_messages([1], session_id="a") + make_messages([2], session_id="b"))
        entity.session_queue.extend(["a", "b"])
        client = _client(orders=entity)

        records = await ops.peek_sessions(client, "orders", None, 10, max_sessions=1)

        assert [r.sequence_number for r in records] == [1]

    @pytest.mark.asyncio
    async def test_stops_when_count_reached(self):
        entity = FakeEntity(make_messages([1, 2, 3], session_id="a") + make_messages([4], session_id="b"))
        entity.session_queue.extend(["a", "b"])
        client = _client(orders=entity)

        records = await ops.peek_sessions(client, "orders", None, 2)

        assert [r.sequence_number for r in records] == [1, 2]
        assert len(client.opened_receivers) == 1


@pytest.mark.unit
class TestSend:
    @pytest.mark.asyncio
    async def test_send_single(self):
        client = _client(orders=FakeEntity())

        await ops.send_single(client, "orders", "hello", SendConfiguration(subject="greeting"))

        sent = client.sent["orders"]
        assert len(sent) == 1
        assert sent[0].subject == "greeting"


@pytest.mark.unit
class TestPurge:
    """Test the receive-and-delete drain."""

    @pytest.mark.asyncio
    async def test_purge_drains_in_batches(self, bulk_settings):
        entity = FakeEntity(make_messages(range(1, 251)))
        client = _client(orders=entity)

        result = await ops.purge(client, "orders", None, False, bulk_settings)

        assert result.completed == 250
        assert result.requested == 250
        assert client.receive_calls == [100, 100, 50, 0]
        assert entity.active == []

    @pytest.mark.asyncio
    async def test_purge_dead_letter_only(self, bulk_settings):
        entity = FakeEntity(make_messages([1, 2]), dead_letter=make_messages([10, 11, 12]))
        client = _client(orders=entity)

        result = await ops.purge(client, "orders", None, True, bulk_settings)

        assert result.completed == 3
        assert len(entity.active) == 2
        assert entity.dead_letter == []

    @pytest.mark.asyncio
    async def test_purge_empty_entity(self, bulk_settings):
        client = _client(orders=FakeEntity())

        result = await ops.purge(client, "orders", None, False, bulk_settings)

        assert result.completed == 0
        assert client.receive_calls == [0]

    @pytest.mark.asyncio
    async def test_cancelled_purge_receives_nothing(self, bulk_settings):
        entity = FakeEntity(make_messages(range(1, 11)))
        client = _client(orders=entity)
        cancel = asyncio.Event()
        cancel.set()

        result = await ops.purge(client, "orders", None, False, bulk_settings, cancel)

        assert result.completed == 0
        assert client.receive_calls == []
        assert len(entity.active) == 10


@pytest.mark.unit
class TestDelete:
    """Test deleting selected messages by sequence number."""

    @pytest.mark.asyncio
    async def test_only_requested_messages_are_completed(self, bulk_settings):
        entity = FakeEntity(make_messages(range(1, 11)))
        client = _client(orders=entity)

        result = await ops.delete(client, "orders", None, [2, 5, 9], False, bulk_settings)

        assert result.completed == 3
        assert result.requested == 3
        assert client.completed == [2, 5, 9]
        assert client.abandoned == [1, 3, 4, 6, 7, 8]
        assert [m.sequence_number for m in entity.active] == [1, 3, 4, 6, 7, 8, 10]

    @pytest.mark.asyncio
    async def test_unreachable_sequence_numbers_end_after_empty_batches(self, bulk_settings):
        client = _client(orders=FakeEntity(make_messages(range(1, 6))))

        result = await ops.delete(client, "orders", None, [2, 99], False, bulk_settings)

        assert result.completed == 1
        assert result.requested == 2
        assert client.receive_calls == [3, 2, 0, 0, 0]
        assert sorted(client.abandoned) == [1, 3, 4, 5]

    @pytest.mark.asyncio
    async def test_complete_failure_counts_as_not_deleted(self, bulk_settings):
        client = _client(orders=FakeEntity(make_messages(range(1, 4))))
        client.fail_complete = {2}

        result = await ops.delete(client, "orders", None, [2, 3], False, bulk_settings)

        assert result.completed == 1
        assert result.requested == 2
        assert client.completed == [3]

    @pytest.mark.asyncio
    async def test_expired_held_locks_do_not_fail_delete(self, bulk_settings):
        entity = FakeEntity(make_messages(range(1, 6)))
        client = _client(orders=entity)
        client.fail_abandon = {1, 3}

        result = await ops.delete(client, "orders", None, [2, 4], False, bulk_settings)

        assert result.completed == 2
        assert client.completed == [2, 4]
        assert client.abandoned == [5]
        assert [m.sequence_number for m in entity.active] == [1, 3, 5]

    @pytest.mark.asyncio
    async def test_delete_from_dead_letter(self, bulk_settings):
        entity = FakeEntity(make_messages([1]), dead_letter=make_messages([20, 21]))
        client = _client(orders=entity)

        result = await ops.delete(client, "orders", None, [21], True, bulk_settings)

        assert result.completed == 1
        assert [m.sequence_number for m in entity.dead_letter] == [20]
        assert len(entity.active) == 1

    @pytest.mark.asyncio
    async def test_empty_request_does_not_open_receiver(self, bulk_settings):
        client = _client(orders=FakeEntity(make_messages([1])))

        result = await ops.delete(client, "orders", None, [], False, bulk_settings)

        assert result.requested == 0
        assert client.opened_receivers == []

    @pytest.mark.asyncio
    async def test_cancelled_delete_abandons_nothing_unexpected(self, bulk_settings):
        client = _client(orders=FakeEntity(make_messages(range(1, 6))))
        cancel = asyncio.Event()
        cancel.set()

        result = await ops.delete(client, "orders", None, [1], False, bulk_settings, cancel)

        assert result.completed == 0
        assert result.requested == 1
        assert client.receive_calls == []


@pytest.mark.unit
class TestResend:
    """Test batched republishing."""

    @pytest.mark.asyncio
    async def test_failed_batch_falls_back_to_single_sends(self, bulk_settings):
        client = _client(orders=FakeEntity())
        client.fail_send_calls = {1}
        records = BrokerTestFactory.records(range(1, 121))

        result = await ops.resend(client, "orders", records, bulk_settings)

        assert result.completed == 120
        assert result.requested == 120
        assert client.send_calls == [50, 50] + [1] * 50 + [20]
        assert len(client.sent["orders"]) == 120

    @pytest.mark.asyncio
    async def test_poison_message_is_skipped(self, bulk_settings):
        client = _client(orders=FakeEntity())
        client.poison_bodies = {"body 2"}
        records = BrokerTestFactory.records([1, 2, 3])

        result = await ops.resend(client, "orders", records, bulk_settings)

        assert result.completed == 2
        assert result.requested == 3
        assert [str(m) for m in client.sent["orders"]] == ["body 1", "body 3"]

    @pytest.mark.asyncio
    async def test_resent_messages_get_new_ids(self, bulk_settings):
        client = _client(orders=FakeEntity())
        records = BrokerTestFactory.records([1, 2])

        await ops.resend(client, "orders", records, bulk_settings)

        sent_ids = {m.message_id for m in client.sent["orders"]}
        assert sent_ids.isdisjoint({"msg-1", "msg-2"})
        assert len(sent_ids) == 2

    @pytest.mark.asyncio
    async def test_cancelled_resend_sends_nothing(self, bulk_settings):
        client = _client(orders=FakeEntity())
        cancel = asyncio.Event()
        cancel.set()

        result = await ops.resend(client, "orders", BrokerTestFactory.records([1]), bulk_settings, cancel)

        assert result.completed == 0
        assert client.send_calls == []


@pytest.mark.unit
class TestResubmit:
    """Test moving dead-lettered messages back."""

    @pytest.mark.asyncio
    async def test_queue_resubmit_skips_missing(self, bulk_settings):
        entity = FakeEntity(dead_letter=make_messages([3, 4]))
        client = _client(orders=entity)

        result = await ops.resubmit(client, "orders", None, [3, 4, 7], bulk_settings)

        assert result.completed == 2
        assert result.requested == 3
        assert entity.dead_letter == []
        assert [str(m) for m in client.sent["orders"]] == ["body 3", "body 4"]
        assert client.completed == [3, 4]

    @pytest.mark.asyncio
    async def test_subscription_resubmit_goes_to_topic(self, bulk_settings):
        entity = FakeEntity(dead_letter=make_messages([8], correlation_id="corr"))
        client = _client(**{"events/subscriptions/audit": entity})

        result = await ops.resubmit(client, "events", "audit", [8], bulk_settings)

        assert result.completed == 1
        sent = client.sent["events"]
        assert sent[0].correlation_id == "corr"
        assert sent[0].message_id != "msg-8"

    @pytest.mark.asyncio
    async def test_duplicate_sequence_numbers_are_resubmitted_once(self, bulk_settings):
        client = _client(orders=FakeEntity(dead_letter=make_messages([3])))

        result = await ops.resubmit(client, "orders", None, [3, 3], bulk_settings)

        assert result.requested == 1
        assert result.completed == 1

    @pytest.mark.asyncio
    async def test_send_failure_leaves_message_dead_lettered(self, bulk_settings):
        entity = FakeEntity(dead_letter=make_messages([3]))
        client = _client(orders=entity)
        client.fail_send_calls = {0}

        result = await ops.resubmit(client, "orders", None, [3], bulk_settings)

        assert result.completed == 0
        assert [m.sequence_number for m in entity.dead_letter] == [3]
        assert client.completed == []


@pytest.mark.unit
class TestDiscovery:
    """Test entity listing through the administration client."""

    @staticmethod
    def _pager(items):
        async def pager(*args, **kwargs):
            for item in items:
                yield item

        return pager

    @pytest.mark.asyncio
    async def test_list_queues_merges_runtime_properties(self):
        admin = MagicMock()
        admin.list_queues = self._pager(
            [SimpleNamespace(name="orders", requires_session=True,
                             default_message_time_to_live=None, lock_duration=timedelta(seconds=30))]
        )
        admin.get_queue_runtime_properties = AsyncMock(
            return_value=SimpleNamespace(
                total_message_count=12,
                active_message_count=10,
                dead_letter_message_count=2,
                scheduled_message_count=0,
                size_in_bytes=2048,
                accessed_at_utc=None,
            )
        )

        queues = await ops.list_queues(admin)

        assert len(queues) == 1
        assert queues[0].name == "orders"
        assert queues[0].message_count == 12
        assert queues[0].dead_letter_count == 2
        assert queues[0].requires_session is True
        admin.get_queue_runtime_properties.assert_awaited_once_with("orders")

    @pytest.mark.asyncio
    async def test_list_subscriptions(self):
        admin = MagicMock()
        admin.list_subscriptions = self._pager([SimpleNamespace(name="audit", requires_session=False)])
        admin.get_subscription_runtime_properties = AsyncMock(
            return_value=SimpleNamespace(
                total_message_count=5,
                active_message_count=4,
                dead_letter_message_count=1,
                accessed_at_utc=None,
            )
        )

        subscriptions = await ops.list_subscriptions(admin, "events")

        assert subscriptions[0].topic_name == "events"
        assert subscriptions[0].dead_letter_count == 1
        admin.get_subscription_runtime_properties.assert_awaited_once_with("events", "audit")
