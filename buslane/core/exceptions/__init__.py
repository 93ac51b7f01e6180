"""
Exception Module

Structured exception hierarchy for the BusLane core.

Module Structure:
-----------------
- **base.py**: BusLaneError base class, ConfigurationError, InvalidOperationError
- **broker.py**: Broker-reported faults and SDK exception translation
- **connection_pool.py**: Client pool exceptions

Usage:
------
```python
from buslane.core.exceptions import EntityNotFoundError, describe_failure

try:
    await operations.peek_messages("orders", None, 10)
except Exception as e:
    set_status(describe_failure(e, entity="orders"))
```
"""

from buslane.core.exceptions.base import BusLaneError, ConfigurationError, InvalidOperationError
from buslane.core.exceptions.broker import (
    BrokerConnectionError,
    BrokerError,
    BrokerThrottledError,
    BrokerUnauthorizedError,
    EntityNotFoundError,
    MessageLockLostError,
    broker_errors,
    describe_failure,
    translate_broker_error,
)
from buslane.core.exceptions.connection_pool import ConnectionPoolClosedError, ConnectionPoolError

__all__ = [
    # Base
    "BusLaneError",
    "ConfigurationError",
    "InvalidOperationError",
    # Broker
    "BrokerError",
    "BrokerConnectionError",
    "BrokerThrottledError",
    "BrokerUnauthorizedError",
    "EntityNotFoundError",
    "MessageLockLostError",
    "broker_errors",
    "describe_failure",
    "translate_broker_error",
    # Connection Pool
    "ConnectionPoolError",
    "ConnectionPoolClosedError",
]
