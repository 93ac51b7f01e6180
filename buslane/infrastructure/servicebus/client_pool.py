"""
Service Bus Client Pool.

This module provides a reference-counted cache of ServiceBusClient instances
keyed by a one-way hash of the connection string. AMQP connections are
expensive to open, and several browser contexts (message list, bulk actions,
live stream) commonly hold the same namespace at once.

STAGE-CP: Client Pool Management
--------------------------------
CP.1: Client acquisition (get-or-create, reference increment)
CP.2: Client release (reference decrement, teardown at zero)
CP.3: Full pool teardown

Architectural Decision: explicit pool object, injected by the owner
- No module-level singleton; the factory that builds facades owns the pool
- The secret itself is never stored: only its SHA-256 digest is used as key,
  and only the first characters of the digest are ever logged
- Administration clients are NOT pooled: they are HTTP based, stateless and
  cheap, so reference counting them adds bookkeeping for nothing
"""

import hashlib
import threading
from collections.abc import Callable
from dataclasses import dataclass

from azure.servicebus.aio import ServiceBusClient
from azure.servicebus.aio.management import ServiceBusAdministrationClient

from buslane.core.config.constants import POOL_KEY_LOG_PREFIX, Stage
from buslane.core.exceptions.connection_pool import ConnectionPoolClosedError
from buslane.core.logging.logger import get_logger, log_stage

logger = get_logger(__name__)

ClientFactory = Callable[[str], ServiceBusClient]
AdminClientFactory = Callable[[str], ServiceBusAdministrationClient]


def compute_connection_key(secret: str) -> str:
    """SHA-256 hex digest of a connection string."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def _short(key: str) -> str:
    return key[:POOL_KEY_LOG_PREFIX]


@dataclass
class PooledClient:
    """A pooled client and the number of holders currently using it."""

    key: str
    client: ServiceBusClient
    reference_count: int = 0


@dataclass(frozen=True)
class PoolStatistics:
    client_count: int
    total_references: int


class ServiceBusClientPool:
    """
    Reference-counted pool of ServiceBusClient instances.

    get_client/return_client bookkeeping happens under a threading lock so
    two contexts asking for the same secret can never create two clients,
    and a client is closed exactly once, by the holder whose return drops
    the count to zero. Closing the client is awaited outside the lock.
    """

    def __init__(
        self,
        client_factory: ClientFactory | None = None,
        admin_client_factory: AdminClientFactory | None = None,
    ):
        """
        Initialize the pool.

        Args:
            client_factory: Builds a client from a connection string
                (defaults to ServiceBusClient.from_connection_string)
            admin_client_factory: Builds an administration client from a
                connection string
        """
        self._client_factory = client_factory or ServiceBusClient.from_connection_string
        self._admin_client_factory = (
            admin_client_factory or ServiceBusAdministrationClient.from_connection_string
        )
        self._clients: dict[str, PooledClient] = {}
        self._lock = threading.Lock()
        self._closed = False

        logger.info("Service Bus client pool initialized", stage="CP.0")

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get_client(self, secret: str) -> ServiceBusClient:
        """
        Return the pooled client for a connection string, creating it if needed.

        STAGE-CP.1: Client Acquisition

        Args:
            secret: Service Bus connection string

        Returns:
            ServiceBusClient: Shared client; hand it back with return_client

        Raises:
            ConnectionPoolClosedError: If the pool was already torn down
        """
        key = compute_connection_key(secret)

        with self._lock:
            if self._closed:
                raise ConnectionPoolClosedError(details={"key": _short(key)})

            entry = self._clients.get(key)
            created = entry is None
            if created:
                entry = PooledClient(key=key, client=self._client_factory(secret))
                self._clients[key] = entry
            entry.reference_count += 1
            reference_count = entry.reference_count

        log_stage(
            logger,
            Stage.POOL_ACQUIRE,
            "Created new pooled client" if created else "Reusing pooled client",
            level="info" if created else "debug",
            key=_short(key),
            reference_count=reference_count,
        )
        return entry.client

    async def return_client(self, secret: str, client: ServiceBusClient) -> None:
        """
        Release one reference; close the client when the last holder returns it.

        STAGE-CP.2: Client Release

        Returning a client that is not the pooled one for this secret (or
        returning after the entry was already torn down) is ignored.
        Failures while closing are logged, never raised.

        Args:
            secret: Connection string the client was acquired with
            client: The client returned by get_client
        """
        key = compute_connection_key(secret)
        to_close = None

        with self._lock:
            entry = self._clients.get(key)
            if entry is None or entry.client is not client:
                logger.debug(
                    "Ignoring return of unknown client",
                    stage="CP.2.1",
                    key=_short(key),
                )
                return

            entry.reference_count -= 1
            reference_count = entry.reference_count
            if reference_count <= 0:
                del self._clients[key]
                to_close = entry.client

        log_stage(
            logger,
            Stage.POOL_RELEASE,
            "Returned pooled client",
            level="debug",
            key=_short(key),
            reference_count=max(reference_count, 0),
        )

        if to_close is not None:
            await self._close_client(key, to_close)

    def get_admin_client(self, secret: str) -> ServiceBusAdministrationClient:
        """
        Create an administration client for metadata queries.

        Not pooled: the caller owns it and must close it.
        """
        return self._admin_client_factory(secret)

    def reference_count(self, secret: str) -> int:
        """Current reference count for a secret (0 when not pooled)."""
        with self._lock:
            entry = self._clients.get(compute_connection_key(secret))
            return entry.reference_count if entry else 0

    def get_statistics(self) -> PoolStatistics:
        with self._lock:
            return PoolStatistics(
                client_count=len(self._clients),
                total_references=sum(e.reference_count for e in self._clients.values()),
            )

    async def close(self) -> None:
        """
        Close every pooled client regardless of reference counts.

        STAGE-CP.3: Pool Teardown

        Individual close failures are logged and do not stop the teardown.
        After this, get_client raises ConnectionPoolClosedError.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            entries = list(self._clients.values())
            self._clients.clear()

        log_stage(logger, Stage.POOL_TEARDOWN, "Tearing down client pool", client_count=len(entries))

        for entry in entries:
            await self._close_client(entry.key, entry.client)

    async def _close_client(self, key: str, client: ServiceBusClient) -> None:
        try:
            await client.close()
            logger.info("Closed pooled client", stage="CP.3.1", key=_short(key))
        except Exception as e:
            logger.warning(
                "Error closing pooled client",
                stage="CP.3.ERROR",
                key=_short(key),
                error=str(e),
                error_type=type(e).__name__,
            )

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()
