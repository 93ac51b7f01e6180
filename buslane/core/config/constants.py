"""
System Constants and Enumerations

This module defines the constants and enumerations shared by the pagination
engine, the bulk mutation engine and the Service Bus client pool.

Architectural Decision: Centralized constants for maintainability
- Single source of truth for batch sizes and receive timeouts
- Type-safe enums for state management
- Settings classes take their defaults from here
"""

from enum import Enum

# ============================================================================
# Stage Identifiers (for structured logging)
# ============================================================================


class Stage(str, Enum):
    """
    Processing stages used as the ``stage=`` field of every log entry.

    Format: {PREFIX}.{STEP}_{DESCRIPTIVE_NAME}
    - CP: connection pool
    - OPS: broker operations facade
    - PG: pagination controller
    - BULK: bulk mutation engine
    """

    POOL_ACQUIRE = "CP.1_CLIENT_ACQUIRE"
    POOL_RELEASE = "CP.2_CLIENT_RELEASE"
    POOL_TEARDOWN = "CP.3_POOL_TEARDOWN"

    OPS_CREATE = "OPS.0_FACADE_CREATE"
    OPS_DISCOVERY = "OPS.1_ENTITY_DISCOVERY"
    OPS_PEEK = "OPS.2_PEEK"
    OPS_SEND = "OPS.3_SEND"

    PAGE_FIRST = "PG.1_LOAD_FIRST_PAGE"
    PAGE_NEXT = "PG.2_LOAD_NEXT_PAGE"
    PAGE_DEDUP = "PG.3_DEDUP_FALLBACK"
    PAGE_PREVIOUS = "PG.4_LOAD_PREVIOUS_PAGE"

    BULK_PURGE = "BULK.PURGE"
    BULK_DELETE = "BULK.DELETE"
    BULK_RESEND = "BULK.RESEND"
    BULK_RESUBMIT = "BULK.RESUBMIT"


# ============================================================================
# Pagination State Machine
# ============================================================================


class PaginationStatus(str, Enum):
    """
    Lifecycle of a pagination context.

    IDLE: nothing loaded yet (or context just reset)
    LOADING: a broker fetch is in flight
    LOADED: the current page is materialized
    ERROR: the last fetch failed; a reload is user-initiated
    """

    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    ERROR = "error"


class AuthMode(str, Enum):
    """Authentication mode a broker facade was built for."""

    CONNECTION_STRING = "connection_string"
    CREDENTIAL = "credential"


# ============================================================================
# Paging Defaults
# ============================================================================

DEFAULT_MESSAGES_PER_PAGE = 100
DEFAULT_MAX_TOTAL_MESSAGES = 500
BODY_PREVIEW_LENGTH = 120  # characters kept in the list-view preview

# ============================================================================
# Broker Batching Defaults
# ============================================================================

MAX_SESSIONS_TO_CHECK = 10  # distinct sessions merged into one session peek
SESSION_ACCEPT_TIMEOUT = 5.0  # seconds to wait for the next available session

PURGE_BATCH_SIZE = 100
PURGE_RECEIVE_TIMEOUT = 5.0

DELETE_BATCH_SIZE = 100
DELETE_RECEIVE_TIMEOUT = 5.0
MAX_EMPTY_BATCHES = 3  # consecutive empty receives before delete gives up

RESEND_BATCH_SIZE = 50

RESUBMIT_RECEIVE_TIMEOUT = 5.0

# ============================================================================
# Logging
# ============================================================================

LOG_SINK_MAX_ENTRIES = 1000
POOL_KEY_LOG_PREFIX = 8  # hex characters of a pool key that may be logged
