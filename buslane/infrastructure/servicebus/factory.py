"""
Broker Operations Factory

Builds the broker facade for the chosen authentication mode. The caller
picks the mode once at connect time; everything downstream only sees the
BrokerOperations interface.

Usage:
    async with BrokerOperationsFactory() as factory:
        async with factory.create_from_connection_string(conn_str) as operations:
            messages = await operations.peek_messages("orders", None, 50)
"""

from azure.core.credentials_async import AsyncTokenCredential
from azure.identity.aio import DefaultAzureCredential

from buslane.core.config.settings import Settings, get_settings
from buslane.core.interfaces.broker_operations import BrokerOperations
from buslane.core.logging.logger import get_logger
from buslane.infrastructure.servicebus.client_pool import ServiceBusClientPool
from buslane.infrastructure.servicebus.connection_string_operations import ConnectionStringOperations
from buslane.infrastructure.servicebus.credential_operations import CredentialOperations

logger = get_logger(__name__)


class BrokerOperationsFactory:
    """
    Factory for BrokerOperations facades.

    Connection string facades share clients through a ServiceBusClientPool.
    A pool passed in is borrowed; a pool the factory had to create itself is
    owned, and closed with the factory.
    """

    def __init__(self, pool: ServiceBusClientPool | None = None, settings: Settings | None = None):
        self._owns_pool = pool is None
        self.pool = pool or ServiceBusClientPool()
        self._settings = settings or get_settings()

    def create_from_connection_string(self, connection_string: str) -> BrokerOperations:
        return ConnectionStringOperations(connection_string, self.pool, self._settings)

    def create_from_credential(
        self, endpoint: str, credential: AsyncTokenCredential | None = None
    ) -> BrokerOperations:
        """
        Facade for a namespace endpoint and token credential.

        Falls back to DefaultAzureCredential when no credential is given;
        the caller remains responsible for closing the credential.
        """
        if credential is None:
            logger.info("Using DefaultAzureCredential", stage="OPS.0.1", endpoint=endpoint)
            credential = DefaultAzureCredential()
        return CredentialOperations(endpoint, credential, self._settings)

    async def close(self) -> None:
        if self._owns_pool:
            await self.pool.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
