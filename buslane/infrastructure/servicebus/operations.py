"""
Shared Service Bus batching and peek helpers.

Both broker facades (connection string and delegated credential) delegate
here; the only thing they differ in is how they obtain a ServiceBusClient.

STAGE-OPS / STAGE-BULK
----------------------
OPS.2: Peek (sequence cursor or merged across sessions)
OPS.3: Send
BULK.PURGE: receive-and-delete drain
BULK.DELETE: peek-lock scan, complete requested sequence numbers
BULK.RESEND: batched send with per-message fallback
BULK.RESUBMIT: dead-letter deferred receive, republish, complete

Error model:
- Broker faults raised by the SDK propagate to the caller (the facade
  translates them); the core never retries on its own.
- "No session available" and empty receive batches are end-of-data signals
  and never leave this module as exceptions.
- Per-message settle/send failures inside bulk loops are logged and counted
  as not completed; the loop carries on.
"""

import asyncio
import uuid
from collections.abc import Iterable, Sequence
from typing import Any

from azure.servicebus import (
    NEXT_AVAILABLE_SESSION,
    ServiceBusMessage,
    ServiceBusReceiveMode,
    ServiceBusReceivedMessage,
    ServiceBusSubQueue,
)
from azure.servicebus.aio import ServiceBusClient, ServiceBusReceiver, ServiceBusSender
from azure.servicebus.aio.management import ServiceBusAdministrationClient
from azure.servicebus.exceptions import MessageNotFoundError, OperationTimeoutError, ServiceBusError

from buslane.core.config.constants import BODY_PREVIEW_LENGTH, Stage
from buslane.core.config.settings import BulkOperationSettings
from buslane.core.logging.logger import get_logger, log_stage
from buslane.models.entities import QueueInfo, SubscriptionInfo, TopicInfo
from buslane.models.message import (
    BulkOperationResult,
    MessageRecord,
    SendConfiguration,
    build_body_preview,
)

logger = get_logger(__name__)

_OPTIONAL_STRING_FIELDS = (
    "content_type",
    "correlation_id",
    "message_id",
    "session_id",
    "subject",
    "to",
    "reply_to",
    "reply_to_session_id",
    "partition_key",
)


# ============================================================================
# Message mapping
# ============================================================================


def _decode(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


def _message_body(message: ServiceBusReceivedMessage) -> str:
    # str() decodes data bodies as UTF-8; value/sequence bodies fall back to repr
    try:
        return str(message)
    except UnicodeDecodeError:
        return "".join(repr(part) for part in message.body)


def map_to_message_record(
    message: ServiceBusReceivedMessage, preview_length: int = BODY_PREVIEW_LENGTH
) -> MessageRecord:
    """Convert an SDK message into an immutable MessageRecord."""
    body = _message_body(message)
    properties = {
        str(_decode(k)): _decode(v) for k, v in (message.application_properties or {}).items()
    }
    return MessageRecord(
        message_id=message.message_id,
        sequence_number=message.sequence_number,
        enqueued_time=message.enqueued_time_utc,
        delivery_count=message.delivery_count or 0,
        session_id=message.session_id,
        correlation_id=message.correlation_id,
        content_type=message.content_type,
        subject=message.subject,
        to=message.to,
        reply_to=message.reply_to,
        reply_to_session_id=message.reply_to_session_id,
        partition_key=message.partition_key,
        time_to_live=message.time_to_live,
        scheduled_enqueue_time=message.scheduled_enqueue_time_utc,
        expires_at=message.expires_at_utc,
        dead_letter_source=message.dead_letter_source,
        dead_letter_reason=message.dead_letter_reason,
        dead_letter_description=message.dead_letter_error_description,
        application_properties=properties,
        body=body,
        body_preview=build_body_preview(body, preview_length),
    )


def build_service_bus_message(
    body: str, configuration: SendConfiguration | None = None
) -> ServiceBusMessage:
    """
    Build an outgoing message, applying only the configuration fields that are set.

    Blank strings count as unset so the SDK keeps its defaults.
    """
    config = configuration or SendConfiguration()
    kwargs: dict[str, Any] = {}

    for name in _OPTIONAL_STRING_FIELDS:
        value = getattr(config, name)
        if value is not None and value.strip():
            kwargs[name] = value
    if config.time_to_live is not None:
        kwargs["time_to_live"] = config.time_to_live
    if config.scheduled_enqueue_time is not None:
        kwargs["scheduled_enqueue_time_utc"] = config.scheduled_enqueue_time
    if config.application_properties:
        kwargs["application_properties"] = dict(config.application_properties)

    return ServiceBusMessage(body, **kwargs)


def build_republish_message(record: MessageRecord) -> ServiceBusMessage:
    """Copy of a message with its metadata and a fresh message id."""
    config = SendConfiguration.from_record(record).model_copy(
        update={"message_id": str(uuid.uuid4())}
    )
    return build_service_bus_message(record.body, config)


# ============================================================================
# Receivers and senders
# ============================================================================


def create_receiver(
    client: ServiceBusClient,
    entity_name: str,
    subscription: str | None = None,
    dead_letter: bool = False,
    **kwargs,
) -> ServiceBusReceiver:
    """Queue or subscription receiver, optionally on the dead-letter sub-queue."""
    if dead_letter:
        kwargs["sub_queue"] = ServiceBusSubQueue.DEAD_LETTER
    if subscription:
        return client.get_subscription_receiver(
            topic_name=entity_name, subscription_name=subscription, **kwargs
        )
    return client.get_queue_receiver(queue_name=entity_name, **kwargs)


def create_sender(
    client: ServiceBusClient, entity_name: str, is_topic: bool = False
) -> ServiceBusSender:
    if is_topic:
        return client.get_topic_sender(topic_name=entity_name)
    return client.get_queue_sender(queue_name=entity_name)


def _is_cancelled(cancel_event: asyncio.Event | None) -> bool:
    return cancel_event is not None and cancel_event.is_set()


async def _receive_batch(
    receiver: ServiceBusReceiver, batch_size: int, timeout: float
) -> list[ServiceBusReceivedMessage]:
    # A receive timeout means the entity has nothing more to hand out
    try:
        return await receiver.receive_messages(max_message_count=batch_size, max_wait_time=timeout)
    except OperationTimeoutError:
        return []


# ============================================================================
# Peek
# ============================================================================


async def peek_standard(
    client: ServiceBusClient,
    entity_name: str,
    subscription: str | None,
    count: int,
    from_sequence_number: int | None = None,
    dead_letter: bool = False,
    preview_length: int = BODY_PREVIEW_LENGTH,
) -> list[MessageRecord]:
    """
    Peek up to ``count`` messages from a non-session entity.

    The broker may return fewer messages than asked per call, so peeking
    continues from the last seen sequence number until ``count`` is reached
    or a call comes back empty. Every record has
    sequence_number >= from_sequence_number when a cursor is given.
    """
    records: list[MessageRecord] = []
    cursor = from_sequence_number

    async with create_receiver(client, entity_name, subscription, dead_letter) as receiver:
        while len(records) < count:
            remaining = count - len(records)
            if cursor is None:
                batch = await receiver.peek_messages(max_message_count=remaining)
            else:
                batch = await receiver.peek_messages(
                    max_message_count=remaining, sequence_number=cursor
                )
            if not batch:
                break
            records.extend(map_to_message_record(m, preview_length) for m in batch)
            cursor = max(m.sequence_number for m in batch) + 1

    log_stage(
        logger,
        Stage.OPS_PEEK,
        "Peeked messages",
        level="debug",
        entity=entity_name,
        subscription=subscription,
        dead_letter=dead_letter,
        requested=count,
        returned=len(records),
        from_sequence_number=from_sequence_number,
    )
    return records


async def peek_sessions(
    client: ServiceBusClient,
    entity_name: str,
    subscription: str | None,
    count: int,
    dead_letter: bool = False,
    max_sessions: int = 10,
    accept_timeout: float = 5.0,
    preview_length: int = BODY_PREVIEW_LENGTH,
) -> list[MessageRecord]:
    """
    Peek a session-enabled entity by accepting the next available sessions in turn.

    Stops when ``count`` messages were gathered, ``max_sessions`` distinct
    sessions were visited, the broker hands back a session it already gave
    us, or no further session becomes available within ``accept_timeout``.
    Sessions are only locked for the duration of their peek.
    """
    records: list[MessageRecord] = []
    seen_sessions: set[str] = set()

    while len(records) < count and len(seen_sessions) < max_sessions:
        receiver = create_receiver(
            client,
            entity_name,
            subscription,
            dead_letter,
            session_id=NEXT_AVAILABLE_SESSION,
            max_wait_time=accept_timeout,
        )
        try:
            async with receiver:
                session_id = receiver.session.session_id
                if session_id in seen_sessions:
                    break
                seen_sessions.add(session_id)

                batch = await receiver.peek_messages(max_message_count=count - len(records))
                records.extend(map_to_message_record(m, preview_length) for m in batch)
        except OperationTimeoutError:
            logger.debug(
                "No more sessions available",
                stage="OPS.2.1",
                entity=entity_name,
                sessions_checked=len(seen_sessions),
            )
            break

    log_stage(
        logger,
        Stage.OPS_PEEK,
        "Peeked session messages",
        level="debug",
        entity=entity_name,
        subscription=subscription,
        dead_letter=dead_letter,
        sessions=len(seen_sessions),
        returned=len(records),
    )
    return records


# ============================================================================
# Send
# ============================================================================


async def send_single(
    client: ServiceBusClient,
    entity_name: str,
    body: str,
    configuration: SendConfiguration | None = None,
) -> None:
    message = build_service_bus_message(body, configuration)
    async with create_sender(client, entity_name) as sender:
        await sender.send_messages(message)
    log_stage(logger, Stage.OPS_SEND, "Message sent", entity=entity_name)


# ============================================================================
# Bulk mutations
# ============================================================================


async def purge(
    client: ServiceBusClient,
    entity_name: str,
    subscription: str | None,
    dead_letter: bool,
    settings: BulkOperationSettings,
    cancel_event: asyncio.Event | None = None,
) -> BulkOperationResult:
    """
    Drain an entity with receive-and-delete batches until one comes back empty.

    Returns the drained count as both completed and requested.
    """
    drained = 0
    log_stage(
        logger,
        Stage.BULK_PURGE,
        "Purge started",
        entity=entity_name,
        subscription=subscription,
        dead_letter=dead_letter,
    )

    async with create_receiver(
        client,
        entity_name,
        subscription,
        dead_letter,
        receive_mode=ServiceBusReceiveMode.RECEIVE_AND_DELETE,
    ) as receiver:
        while not _is_cancelled(cancel_event):
            batch = await _receive_batch(
                receiver, settings.PURGE_BATCH_SIZE, settings.PURGE_RECEIVE_TIMEOUT
            )
            if not batch:
                break
            drained += len(batch)
            logger.debug("Purge batch drained", stage="BULK.PURGE.1", batch=len(batch), drained=drained)

    logger.info(
        "Purge finished",
        stage="BULK.PURGE.2",
        entity=entity_name,
        drained=drained,
        cancelled=_is_cancelled(cancel_event),
    )
    return BulkOperationResult(completed=drained, requested=drained)


async def delete(
    client: ServiceBusClient,
    entity_name: str,
    subscription: str | None,
    sequence_numbers: Iterable[int],
    dead_letter: bool,
    settings: BulkOperationSettings,
    cancel_event: asyncio.Event | None = None,
) -> BulkOperationResult:
    """
    Complete the messages with the requested sequence numbers.

    Messages outside the requested set stay locked until the scan ends and
    are then abandoned, so the scan walks forward through the entity
    instead of receiving the same released messages again. The scan stops
    once every requested message was completed, or after
    MAX_EMPTY_BATCHES consecutive batches that produced nothing new.
    Requested messages that are never found (already consumed) are simply
    not counted.

    Held locks are bounded by the entity's lock duration, not by the scan:
    on a long scan the earliest ones can expire before the final abandon.
    An expired lock needs no abandon (the message is already visible
    again), so lock-lost failures there are logged and do not affect the
    result. Abandoning each message right away is not an alternative: the
    receiver would hand the head of the entity back on every batch and
    every abandon raises the delivery count.
    """
    pending = set(sequence_numbers)
    requested = len(pending)
    completed = 0
    held: list[ServiceBusReceivedMessage] = []
    seen: set[int] = set()

    log_stage(
        logger,
        Stage.BULK_DELETE,
        "Delete started",
        entity=entity_name,
        subscription=subscription,
        dead_letter=dead_letter,
        requested=requested,
    )
    if not pending:
        return BulkOperationResult(completed=0, requested=0)

    async with create_receiver(
        client,
        entity_name,
        subscription,
        dead_letter,
        receive_mode=ServiceBusReceiveMode.PEEK_LOCK,
    ) as receiver:
        try:
            empty_batches = 0
            while pending and empty_batches < settings.MAX_EMPTY_BATCHES:
                if _is_cancelled(cancel_event):
                    break

                batch = await _receive_batch(
                    receiver, settings.DELETE_BATCH_SIZE, settings.DELETE_RECEIVE_TIMEOUT
                )
                new_messages = [m for m in batch if m.sequence_number not in seen]
                if not new_messages:
                    empty_batches += 1
                    held.extend(batch)
                    continue
                empty_batches = 0

                for message in batch:
                    seen.add(message.sequence_number)
                    if message.sequence_number not in pending:
                        held.append(message)
                        continue
                    try:
                        await receiver.complete_message(message)
                        pending.discard(message.sequence_number)
                        completed += 1
                    except ServiceBusError as e:
                        logger.warning(
                            "Failed to complete message",
                            stage="BULK.DELETE.ERROR",
                            sequence_number=message.sequence_number,
                            error=str(e),
                        )
        finally:
            await _abandon_all(receiver, held)

    logger.info(
        "Delete finished",
        stage="BULK.DELETE.2",
        entity=entity_name,
        completed=completed,
        requested=requested,
        not_found=len(pending),
    )
    return BulkOperationResult(completed=completed, requested=requested)


async def _abandon_all(receiver: ServiceBusReceiver, messages: list[ServiceBusReceivedMessage]) -> None:
    for message in messages:
        try:
            await receiver.abandon_message(message)
        except ServiceBusError as e:
            # Lock already expired: the message is visible again either way
            logger.debug(
                "Failed to abandon message",
                stage="BULK.DELETE.1",
                sequence_number=message.sequence_number,
                error=str(e),
            )


async def resend(
    client: ServiceBusClient,
    entity_name: str,
    messages: Sequence[MessageRecord],
    settings: BulkOperationSettings,
    cancel_event: asyncio.Event | None = None,
    is_topic: bool = False,
) -> BulkOperationResult:
    """
    Republish messages in batches of RESEND_BATCH_SIZE.

    A failed batch falls back to one send per message, so one bad message
    does not cost the whole batch. Returns the number actually sent.
    """
    requested = len(messages)
    sent = 0
    batch_size = settings.RESEND_BATCH_SIZE

    log_stage(logger, Stage.BULK_RESEND, "Resend started", entity=entity_name, requested=requested)

    async with create_sender(client, entity_name, is_topic) as sender:
        for start in range(0, requested, batch_size):
            if _is_cancelled(cancel_event):
                break

            chunk = messages[start:start + batch_size]
            try:
                await sender.send_messages([build_republish_message(r) for r in chunk])
                sent += len(chunk)
                continue
            except ServiceBusError as e:
                logger.warning(
                    "Batch send failed, falling back to individual sends",
                    stage="BULK.RESEND.1",
                    batch_start=start,
                    batch_size=len(chunk),
                    error=str(e),
                )

            for record in chunk:
                if _is_cancelled(cancel_event):
                    break
                try:
                    await sender.send_messages(build_republish_message(record))
                    sent += 1
                except ServiceBusError as e:
                    logger.warning(
                        "Failed to resend message",
                        stage="BULK.RESEND.ERROR",
                        sequence_number=record.sequence_number,
                        error=str(e),
                    )

    logger.info("Resend finished", stage="BULK.RESEND.2", entity=entity_name, sent=sent, requested=requested)
    return BulkOperationResult(completed=sent, requested=requested)


async def resubmit(
    client: ServiceBusClient,
    entity_name: str,
    subscription: str | None,
    sequence_numbers: Iterable[int],
    settings: BulkOperationSettings,
    cancel_event: asyncio.Event | None = None,
) -> BulkOperationResult:
    """
    Move dead-lettered messages back to their entity, one at a time.

    Each message is received by sequence number from the dead-letter
    sub-queue, republished (to the topic for subscriptions) with its
    metadata, and only then completed. Messages that cannot be found or
    fail are skipped.
    """
    targets = list(dict.fromkeys(sequence_numbers))
    resubmitted = 0

    log_stage(
        logger,
        Stage.BULK_RESUBMIT,
        "Resubmit started",
        entity=entity_name,
        subscription=subscription,
        requested=len(targets),
    )

    async with create_receiver(
        client,
        entity_name,
        subscription,
        dead_letter=True,
        receive_mode=ServiceBusReceiveMode.PEEK_LOCK,
    ) as receiver, create_sender(client, entity_name, is_topic=subscription is not None) as sender:
        for sequence_number in targets:
            if _is_cancelled(cancel_event):
                break
            try:
                found = await receiver.receive_deferred_messages(
                    [sequence_number], timeout=settings.RESUBMIT_RECEIVE_TIMEOUT
                )
                if not found:
                    raise MessageNotFoundError(message=f"Sequence number {sequence_number} not found")

                dead_lettered = found[0]
                await sender.send_messages(build_republish_message(map_to_message_record(dead_lettered)))
                await receiver.complete_message(dead_lettered)
                resubmitted += 1
            except MessageNotFoundError:
                logger.debug(
                    "Dead-letter message not found",
                    stage="BULK.RESUBMIT.1",
                    sequence_number=sequence_number,
                )
            except ServiceBusError as e:
                logger.warning(
                    "Failed to resubmit message",
                    stage="BULK.RESUBMIT.ERROR",
                    sequence_number=sequence_number,
                    error=str(e),
                )

    logger.info(
        "Resubmit finished",
        stage="BULK.RESUBMIT.2",
        entity=entity_name,
        resubmitted=resubmitted,
        requested=len(targets),
    )
    return BulkOperationResult(completed=resubmitted, requested=len(targets))


# ============================================================================
# Entity discovery (administration client)
# ============================================================================


async def list_queues(admin: ServiceBusAdministrationClient) -> list[QueueInfo]:
    queues = [q async for q in admin.list_queues()]
    runtime = await asyncio.gather(*(admin.get_queue_runtime_properties(q.name) for q in queues))
    return [_queue_info(q, r) for q, r in zip(queues, runtime)]


async def get_queue(admin: ServiceBusAdministrationClient, queue_name: str) -> QueueInfo:
    properties, runtime = await asyncio.gather(
        admin.get_queue(queue_name), admin.get_queue_runtime_properties(queue_name)
    )
    return _queue_info(properties, runtime)


async def list_topics(admin: ServiceBusAdministrationClient) -> list[TopicInfo]:
    topics = [t async for t in admin.list_topics()]
    runtime = await asyncio.gather(*(admin.get_topic_runtime_properties(t.name) for t in topics))
    return [_topic_info(t, r) for t, r in zip(topics, runtime)]


async def get_topic(admin: ServiceBusAdministrationClient, topic_name: str) -> TopicInfo:
    properties, runtime = await asyncio.gather(
        admin.get_topic(topic_name), admin.get_topic_runtime_properties(topic_name)
    )
    return _topic_info(properties, runtime)


async def list_subscriptions(
    admin: ServiceBusAdministrationClient, topic_name: str
) -> list[SubscriptionInfo]:
    subscriptions = [s async for s in admin.list_subscriptions(topic_name)]
    runtime = await asyncio.gather(
        *(admin.get_subscription_runtime_properties(topic_name, s.name) for s in subscriptions)
    )
    return [
        SubscriptionInfo(
            name=s.name,
            topic_name=topic_name,
            message_count=r.total_message_count or 0,
            active_message_count=r.active_message_count or 0,
            dead_letter_count=r.dead_letter_message_count or 0,
            accessed_at=r.accessed_at_utc,
            requires_session=bool(s.requires_session),
        )
        for s, r in zip(subscriptions, runtime)
    ]


def _queue_info(properties, runtime) -> QueueInfo:
    return QueueInfo(
        name=properties.name,
        message_count=runtime.total_message_count or 0,
        active_message_count=runtime.active_message_count or 0,
        dead_letter_count=runtime.dead_letter_message_count or 0,
        scheduled_count=runtime.scheduled_message_count or 0,
        size_in_bytes=runtime.size_in_bytes or 0,
        accessed_at=runtime.accessed_at_utc,
        requires_session=bool(properties.requires_session),
        default_message_ttl=properties.default_message_time_to_live,
        lock_duration=properties.lock_duration,
    )


def _topic_info(properties, runtime) -> TopicInfo:
    return TopicInfo(
        name=properties.name,
        size_in_bytes=runtime.size_in_bytes or 0,
        subscription_count=runtime.subscription_count or 0,
        accessed_at=runtime.accessed_at_utc,
        default_message_ttl=properties.default_message_time_to_live,
    )
