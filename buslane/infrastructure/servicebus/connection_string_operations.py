"""
Broker operations over a shared-access connection string.

The ServiceBusClient comes from the pool, acquired on first use and handed
back exactly once on close(). Metadata queries go through an unpooled
administration client owned by this facade.
"""

import asyncio
from collections.abc import Iterable, Sequence
from urllib.parse import urlparse

from azure.servicebus.aio import ServiceBusClient
from azure.servicebus.aio.management import ServiceBusAdministrationClient

from buslane.core.config.constants import AuthMode, Stage
from buslane.core.config.settings import Settings, get_settings
from buslane.core.exceptions import (
    ConfigurationError,
    InvalidOperationError,
    broker_errors,
    describe_failure,
)
from buslane.core.interfaces.broker_operations import BrokerOperations
from buslane.core.logging.logger import get_logger, log_stage
from buslane.infrastructure.servicebus import operations as ops
from buslane.infrastructure.servicebus.client_pool import ServiceBusClientPool
from buslane.models.entities import ConnectionValidation, NamespaceInfo, QueueInfo, SubscriptionInfo, TopicInfo
from buslane.models.message import BulkOperationResult, MessageRecord, SendConfiguration

logger = get_logger(__name__)


def parse_connection_string(connection_string: str) -> dict[str, str]:
    """
    Split ``Key=Value;Key=Value`` into a dict.

    Keys keep their original casing; values may themselves contain ``=``
    (base64 keys), so only the first ``=`` separates key from value.
    """
    parts: dict[str, str] = {}
    for segment in connection_string.split(";"):
        segment = segment.strip()
        if not segment:
            continue
        key, sep, value = segment.partition("=")
        if not sep:
            raise ConfigurationError(
                "Malformed connection string segment",
                details={"segment": key},
            )
        parts[key.strip()] = value.strip()
    return parts


def _get_part(parts: dict[str, str], name: str) -> str | None:
    for key, value in parts.items():
        if key.lower() == name.lower():
            return value or None
    return None


def extract_namespace(connection_string: str) -> str | None:
    """Namespace name from the Endpoint segment (``sb://<ns>.servicebus.windows.net/``)."""
    try:
        endpoint = _get_part(parse_connection_string(connection_string), "Endpoint")
    except ConfigurationError:
        return None
    if not endpoint:
        return None
    host = urlparse(endpoint).hostname
    return host.split(".")[0] if host else None


class ConnectionStringOperations(BrokerOperations):
    """Facade for a namespace or entity reached with a connection string."""

    auth_mode = AuthMode.CONNECTION_STRING

    def __init__(
        self,
        connection_string: str,
        pool: ServiceBusClientPool,
        settings: Settings | None = None,
    ):
        if not connection_string or not connection_string.strip():
            raise InvalidOperationError("Connection string must not be empty")

        self._connection_string = connection_string
        self._pool = pool
        self._settings = settings or get_settings()
        self._client: ServiceBusClient | None = None
        self._admin_client: ServiceBusAdministrationClient | None = None
        self._closed = False

        log_stage(
            logger,
            Stage.OPS_CREATE,
            "Connection string operations created",
            namespace=extract_namespace(connection_string),
        )

    @property
    def client(self) -> ServiceBusClient:
        if self._closed:
            raise InvalidOperationError("Operations facade has been closed")
        if self._client is None:
            self._client = self._pool.get_client(self._connection_string)
        return self._client

    @property
    def admin_client(self) -> ServiceBusAdministrationClient:
        if self._closed:
            raise InvalidOperationError("Operations facade has been closed")
        if self._admin_client is None:
            self._admin_client = self._pool.get_admin_client(self._connection_string)
        return self._admin_client

    # Entity discovery

    async def get_queues(self) -> list[QueueInfo]:
        with broker_errors():
            return await ops.list_queues(self.admin_client)

    async def get_queue_info(self, queue_name: str) -> QueueInfo | None:
        try:
            return await ops.get_queue(self.admin_client, queue_name)
        except Exception as e:
            logger.debug("Could not read queue", stage="OPS.1.1", queue=queue_name, error=str(e))
            return None

    async def get_topics(self) -> list[TopicInfo]:
        with broker_errors():
            return await ops.list_topics(self.admin_client)

    async def get_topic_info(self, topic_name: str) -> TopicInfo | None:
        try:
            return await ops.get_topic(self.admin_client, topic_name)
        except Exception as e:
            logger.debug("Could not read topic", stage="OPS.1.2", topic=topic_name, error=str(e))
            return None

    async def get_subscriptions(self, topic_name: str) -> list[SubscriptionInfo]:
        with broker_errors(topic_name):
            return await ops.list_subscriptions(self.admin_client, topic_name)

    async def get_namespace_info(self) -> NamespaceInfo | None:
        """Queue and topic names of the namespace, or None if they cannot be listed."""
        try:
            queues, topics = await asyncio.gather(
                self._collect_names(self.admin_client.list_queues()),
                self._collect_names(self.admin_client.list_topics()),
            )
        except Exception as e:
            logger.warning(
                "Could not read namespace info",
                stage="OPS.1.ERROR",
                status=describe_failure(e),
            )
            return None

        log_stage(logger, Stage.OPS_DISCOVERY, "Namespace info read", queues=len(queues), topics=len(topics))
        return NamespaceInfo(
            name=extract_namespace(self._connection_string),
            queue_count=len(queues),
            topic_count=len(topics),
            queue_names=tuple(queues),
            topic_names=tuple(topics),
        )

    @staticmethod
    async def _collect_names(pager) -> list[str]:
        return [item.name async for item in pager]

    async def validate(self) -> ConnectionValidation:
        """
        Check that the connection string is usable.

        Entity-scoped strings (with EntityPath) are accepted as-is: their
        SAS policy usually cannot list the namespace. Namespace-scoped
        strings are checked by listing queues.
        """
        try:
            parts = parse_connection_string(self._connection_string)
        except ConfigurationError as e:
            return ConnectionValidation(is_valid=False, error_message=e.message)

        endpoint = _get_part(parts, "Endpoint")
        entity_name = _get_part(parts, "EntityPath")
        if not endpoint:
            return ConnectionValidation(is_valid=False, error_message="Connection string has no Endpoint")
        if entity_name:
            return ConnectionValidation(is_valid=True, entity_name=entity_name, endpoint=endpoint)

        try:
            async for _ in self.admin_client.list_queues():
                break
        except Exception as e:
            return ConnectionValidation(
                is_valid=False,
                endpoint=endpoint,
                error_message=describe_failure(e),
            )
        return ConnectionValidation(is_valid=True, endpoint=endpoint)

    # Message operations

    async def peek_messages(
        self,
        entity_name: str,
        subscription: str | None,
        count: int,
        from_sequence_number: int | None = None,
        dead_letter: bool = False,
        requires_session: bool = False,
    ) -> list[MessageRecord]:
        bulk = self._settings.bulk
        preview_length = self._settings.BODY_PREVIEW_LENGTH
        with broker_errors(entity_name):
            if requires_session:
                return await ops.peek_sessions(
                    self.client,
                    entity_name,
                    subscription,
                    count,
                    dead_letter=dead_letter,
                    max_sessions=bulk.MAX_SESSIONS_TO_CHECK,
                    accept_timeout=bulk.SESSION_ACCEPT_TIMEOUT,
                    preview_length=preview_length,
                )
            return await ops.peek_standard(
                self.client,
                entity_name,
                subscription,
                count,
                from_sequence_number=from_sequence_number,
                dead_letter=dead_letter,
                preview_length=preview_length,
            )

    async def send_message(
        self,
        entity_name: str,
        body: str,
        configuration: SendConfiguration | None = None,
    ) -> None:
        with broker_errors(entity_name):
            await ops.send_single(self.client, entity_name, body, configuration)

    async def purge_messages(
        self,
        entity_name: str,
        subscription: str | None,
        dead_letter: bool,
        cancel_event: asyncio.Event | None = None,
    ) -> BulkOperationResult:
        with broker_errors(entity_name):
            return await ops.purge(
                self.client, entity_name, subscription, dead_letter, self._settings.bulk, cancel_event
            )

    async def delete_messages(
        self,
        entity_name: str,
        subscription: str | None,
        sequence_numbers: Iterable[int],
        dead_letter: bool = False,
        cancel_event: asyncio.Event | None = None,
    ) -> BulkOperationResult:
        with broker_errors(entity_name):
            return await ops.delete(
                self.client,
                entity_name,
                subscription,
                sequence_numbers,
                dead_letter,
                self._settings.bulk,
                cancel_event,
            )

    async def resend_messages(
        self,
        entity_name: str,
        subscription: str | None,
        messages: Sequence[MessageRecord],
        cancel_event: asyncio.Event | None = None,
    ) -> BulkOperationResult:
        with broker_errors(entity_name):
            return await ops.resend(
                self.client,
                entity_name,
                messages,
                self._settings.bulk,
                cancel_event,
                is_topic=subscription is not None,
            )

    async def resubmit_dead_letter_messages(
        self,
        entity_name: str,
        subscription: str | None,
        sequence_numbers: Iterable[int],
        cancel_event: asyncio.Event | None = None,
    ) -> BulkOperationResult:
        with broker_errors(entity_name):
            return await ops.resubmit(
                self.client, entity_name, subscription, sequence_numbers, self._settings.bulk, cancel_event
            )

    async def close(self) -> None:
        """Hand the pooled client back (once) and close the admin client."""
        if self._closed:
            return
        self._closed = True

        client, self._client = self._client, None
        admin_client, self._admin_client = self._admin_client, None

        if client is not None:
            await self._pool.return_client(self._connection_string, client)
        if admin_client is not None:
            await admin_client.close()
