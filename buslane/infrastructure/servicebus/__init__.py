"""
Azure Service Bus adapters: client pool, shared batching helpers and the
two BrokerOperations facades.
"""

from buslane.infrastructure.servicebus.client_pool import (
    PoolStatistics,
    ServiceBusClientPool,
    compute_connection_key,
)
from buslane.infrastructure.servicebus.connection_string_operations import (
    ConnectionStringOperations,
    parse_connection_string,
)
from buslane.infrastructure.servicebus.credential_operations import CredentialOperations, normalize_namespace
from buslane.infrastructure.servicebus.factory import BrokerOperationsFactory

__all__ = [
    "BrokerOperationsFactory",
    "ConnectionStringOperations",
    "CredentialOperations",
    "PoolStatistics",
    "ServiceBusClientPool",
    "compute_connection_key",
    "normalize_namespace",
    "parse_connection_string",
]
