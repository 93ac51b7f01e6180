"""
Broker operations interface.

One capability surface for everything the browser does against a namespace.
There are two implementations, one per authentication mode (connection
string vs. delegated credential); both delegate to the same batching and peek
helpers, so the pagination and bulk engines never see which one they got.
"""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterable, Sequence

from buslane.core.config.constants import AuthMode
from buslane.models.entities import QueueInfo, SubscriptionInfo, TopicInfo
from buslane.models.message import BulkOperationResult, MessageRecord, SendConfiguration


class BrokerOperations(ABC):
    """
    Abstract base class for broker operation facades.

    Facades are async context managers; leaving the block releases the
    underlying broker client.
    """

    auth_mode: AuthMode

    # Entity discovery

    @abstractmethod
    async def get_queues(self) -> list[QueueInfo]:
        """List queues with runtime counts."""

    @abstractmethod
    async def get_queue_info(self, queue_name: str) -> QueueInfo | None:
        """Single queue with runtime counts, or None if it cannot be read."""

    @abstractmethod
    async def get_topics(self) -> list[TopicInfo]:
        """List topics with runtime properties."""

    @abstractmethod
    async def get_topic_info(self, topic_name: str) -> TopicInfo | None:
        """Single topic, or None if it cannot be read."""

    @abstractmethod
    async def get_subscriptions(self, topic_name: str) -> list[SubscriptionInfo]:
        """List subscriptions of a topic with runtime counts."""

    # Message operations

    @abstractmethod
    async def peek_messages(
        self,
        entity_name: str,
        subscription: str | None,
        count: int,
        from_sequence_number: int | None = None,
        dead_letter: bool = False,
        requires_session: bool = False,
    ) -> list[MessageRecord]:
        """
        Non-destructive read of up to ``count`` messages.

        Args:
            entity_name: Queue or topic name
            subscription: Subscription name for topics
            count: Maximum messages to return
            from_sequence_number: Inclusive lower bound (ignored for session entities)
            dead_letter: Read the dead-letter sub-queue
            requires_session: Merge peeks across the next available sessions

        Returns:
            List[MessageRecord]: Peeked messages
        """

    @abstractmethod
    async def send_message(
        self,
        entity_name: str,
        body: str,
        configuration: SendConfiguration | None = None,
    ) -> None:
        """Send one message; only the configuration fields that are set are applied."""

    @abstractmethod
    async def purge_messages(
        self,
        entity_name: str,
        subscription: str | None,
        dead_letter: bool,
        cancel_event: asyncio.Event | None = None,
    ) -> BulkOperationResult:
        """Drain the entity (or its dead-letter sub-queue). Irreversible."""

    @abstractmethod
    async def delete_messages(
        self,
        entity_name: str,
        subscription: str | None,
        sequence_numbers: Iterable[int],
        dead_letter: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> BulkOperationResult:
        """Complete the messages with the given sequence numbers."""

    @abstractmethod
    async def resend_messages(
        self,
        entity_name: str,
        subscription: str | None,
        messages: Sequence[MessageRecord],
        cancel_event: asyncio.Event | None = None,
    ) -> BulkOperationResult:
        """
        Republish copies of the given messages with fresh message ids.

        Messages read from a subscription go back to its topic.
        """

    @abstractmethod
    async def resubmit_dead_letter_messages(
        self,
        entity_name: str,
        subscription: str | None,
        sequence_numbers: Iterable[int],
        cancel_event: asyncio.Event | None = None,
    ) -> BulkOperationResult:
        """Move dead-lettered messages back to the main entity."""

    @abstractmethod
    async def close(self) -> None:
        """Release the broker client(s) held by this facade."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
