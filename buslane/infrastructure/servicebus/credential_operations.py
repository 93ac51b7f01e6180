"""
Broker operations over a delegated (Entra ID) credential.

There is no shared secret to key a pool entry on, so every operation opens
its own ServiceBusClient and closes it when done. The administration client
is created lazily and lives as long as the facade.
"""

import asyncio
from collections.abc import AsyncIterator, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from urllib.parse import urlparse

from azure.core.credentials_async import AsyncTokenCredential
from azure.servicebus.aio import ServiceBusClient
from azure.servicebus.aio.management import ServiceBusAdministrationClient

from buslane.core.config.constants import AuthMode, Stage
from buslane.core.config.settings import Settings, get_settings
from buslane.core.exceptions import InvalidOperationError, broker_errors
from buslane.core.interfaces.broker_operations import BrokerOperations
from buslane.core.logging.logger import get_logger, log_stage
from buslane.infrastructure.servicebus import operations as ops
from buslane.models.entities import QueueInfo, SubscriptionInfo, TopicInfo
from buslane.models.message import BulkOperationResult, MessageRecord, SendConfiguration

logger = get_logger(__name__)

CredentialClientFactory = Callable[[str, AsyncTokenCredential], ServiceBusClient]


def normalize_namespace(endpoint: str) -> str:
    """
    Fully qualified namespace host from an endpoint.

    Accepts ``sb://ns.servicebus.windows.net/``, ``https://...`` or a bare host.
    """
    value = (endpoint or "").strip()
    if "://" in value:
        value = urlparse(value).hostname or ""
    value = value.strip("/")
    if not value:
        raise InvalidOperationError("A namespace endpoint is required", details={"endpoint": endpoint})
    return value


def _default_client_factory(namespace: str, credential: AsyncTokenCredential) -> ServiceBusClient:
    return ServiceBusClient(fully_qualified_namespace=namespace, credential=credential)


class CredentialOperations(BrokerOperations):
    """Facade for a namespace reached with a token credential."""

    auth_mode = AuthMode.CREDENTIAL

    def __init__(
        self,
        endpoint: str,
        credential: AsyncTokenCredential,
        settings: Settings | None = None,
        client_factory: CredentialClientFactory | None = None,
    ):
        self.namespace = normalize_namespace(endpoint)
        self._credential = credential
        self._settings = settings or get_settings()
        self._client_factory = client_factory or _default_client_factory
        self._admin_client: ServiceBusAdministrationClient | None = None
        self._closed = False

        log_stage(logger, Stage.OPS_CREATE, "Credential operations created", namespace=self.namespace)

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[ServiceBusClient]:
        if self._closed:
            raise InvalidOperationError("Operations facade has been closed")
        client = self._client_factory(self.namespace, self._credential)
        try:
            yield client
        finally:
            await client.close()

    @property
    def admin_client(self) -> ServiceBusAdministrationClient:
        if self._closed:
            raise InvalidOperationError("Operations facade has been closed")
        if self._admin_client is None:
            self._admin_client = ServiceBusAdministrationClient(
                fully_qualified_namespace=self.namespace, credential=self._credential
            )
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
            async with self._client() as client:
                if requires_session:
                    return await ops.peek_sessions(
                        client,
                        entity_name,
                        subscription,
                        count,
                        dead_letter=dead_letter,
                        max_sessions=bulk.MAX_SESSIONS_TO_CHECK,
                        accept_timeout=bulk.SESSION_ACCEPT_TIMEOUT,
                        preview_length=preview_length,
                    )
                return await ops.peek_standard(
                    client,
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
            async with self._client() as client:
                await ops.send_single(client, entity_name, body, configuration)

    async def purge_messages(
        self,
        entity_name: str,
        subscription: str | None,
        dead_letter: bool,
        cancel_event: asyncio.Event | None = None,
    ) -> BulkOperationResult:
        with broker_errors(entity_name):
            async with self._client() as client:
                return await ops.purge(
                    client, entity_name, subscription, dead_letter, self._settings.bulk, cancel_event
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
            async with self._client() as client:
                return await ops.delete(
                    client,
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
            async with self._client() as client:
                return await ops.resend(
                    client,
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
            async with self._client() as client:
                return await ops.resubmit(
                    client, entity_name, subscription, sequence_numbers, self._settings.bulk, cancel_event
                )

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        admin_client, self._admin_client = self._admin_client, None
        if admin_client is not None:
            await admin_client.close()
