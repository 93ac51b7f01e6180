"""
Pytest Configuration and Shared Test Fixtures

This module provides pytest configuration and reusable fixtures for all tests.
All fixtures defined here are automatically available to all test files.
"""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to sys.path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))


# ============================================================================
# Pytest Configuration
# ============================================================================

# pytest-asyncio runs in auto mode (see pyproject.toml)


# ============================================================================
# Configuration Fixtures
# ============================================================================


@pytest.fixture
def test_settings():
    """
    Settings with small batch sizes and short timeouts.

    Built directly rather than through get_settings() so a developer's .env
    cannot leak into the tests.
    """
    from buslane.core.config.settings import Settings

    return Settings(
        _env_file=None,
        MESSAGES_PER_PAGE=3,
        MAX_TOTAL_MESSAGES=500,
        PURGE_BATCH_SIZE=100,
        PURGE_RECEIVE_TIMEOUT=0.1,
        DELETE_BATCH_SIZE=3,
        DELETE_RECEIVE_TIMEOUT=0.1,
        MAX_EMPTY_BATCHES=3,
        RESEND_BATCH_SIZE=50,
        RESUBMIT_RECEIVE_TIMEOUT=0.1,
        MAX_SESSIONS_TO_CHECK=10,
        SESSION_ACCEPT_TIMEOUT=0.1,
    )


@pytest.fixture
def bulk_settings(test_settings):
    return test_settings.bulk


@pytest.fixture(autouse=True)
def reset_global_settings():
    """Drop the cached settings singleton between tests."""
    import buslane.core.config.settings as settings_module

    settings_module._settings = None
    yield
    settings_module._settings = None


# ============================================================================
# Service Bus Fakes
# ============================================================================


@pytest.fixture
def fake_client():
    """Empty in-memory Service Bus client; tests add entities as needed."""
    from tests.test_fixtures.fake_servicebus import FakeServiceBusClient

    return FakeServiceBusClient()


@pytest.fixture
def mock_sb_client():
    """Bare AsyncMock standing in for azure.servicebus.aio.ServiceBusClient."""
    client = MagicMock()
    client.close = AsyncMock()
    return client


@pytest.fixture
def client_pool():
    """
    ServiceBusClientPool whose factory hands out a fresh mock client per
    connection string.
    """
    from buslane.infrastructure.servicebus.client_pool import ServiceBusClientPool

    def make_client(secret):
        client = MagicMock(name=f"client-{secret[-6:]}")
        client.close = AsyncMock()
        return client

    def make_admin_client(secret):
        admin = MagicMock(name="admin")
        admin.close = AsyncMock()
        return admin

    factory = MagicMock(side_effect=make_client)
    return ServiceBusClientPool(client_factory=factory, admin_client_factory=make_admin_client)


@pytest.fixture
def connection_string():
    return (
        "Endpoint=sb://contoso.servicebus.windows.net/;"
        "SharedAccessKeyName=RootManageSharedAccessKey;"
        "SharedAccessKey=c2VjcmV0LWtleS12YWx1ZQ=="
    )


# ============================================================================
# Broker Operations Fixtures
# ============================================================================


@pytest.fixture
def fake_operations():
    """In-memory BrokerOperations with no messages."""
    from tests.test_fixtures.broker_factory import FakeBrokerOperations

    return FakeBrokerOperations()


@pytest.fixture
def status_log():
    """Collects every status line passed to a status callback."""
    return []


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def queue_context():
    from buslane.models.context import PaginationContext

    return PaginationContext(entity_name="orders")


@pytest.fixture
def session_context():
    from buslane.models.context import PaginationContext

    return PaginationContext(entity_name="orders-sessions", requires_session=True)


@pytest.fixture
def dead_letter_context():
    from buslane.models.context import PaginationContext

    return PaginationContext(entity_name="events", subscription="audit", dead_letter=True)
