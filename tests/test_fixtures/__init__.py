"""
Test Fixtures Package

Shared test utilities and helpers for consistent testing across all modules.
"""

from .broker_factory import BrokerTestFactory, FakeBrokerOperations
from .fake_servicebus import FakeEntity, FakeReceivedMessage, FakeServiceBusClient, make_messages

__all__ = [
    "BrokerTestFactory",
    "FakeBrokerOperations",
    "FakeEntity",
    "FakeReceivedMessage",
    "FakeServiceBusClient",
    "make_messages",
]
