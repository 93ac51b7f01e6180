"""
Entity metadata returned by the discovery operations.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta


@dataclass(frozen=True)
class QueueInfo:
    name: str
    message_count: int = 0
    active_message_count: int = 0
    dead_letter_count: int = 0
    scheduled_count: int = 0
    size_in_bytes: int = 0
    accessed_at: datetime | None = None
    requires_session: bool = False
    default_message_ttl: timedelta | None = None
    lock_duration: timedelta | None = None


@dataclass(frozen=True)
class TopicInfo:
    name: str
    size_in_bytes: int = 0
    subscription_count: int = 0
    accessed_at: datetime | None = None
    default_message_ttl: timedelta | None = None


@dataclass(frozen=True)
class SubscriptionInfo:
    name: str
    topic_name: str
    message_count: int = 0
    active_message_count: int = 0
    dead_letter_count: int = 0
    accessed_at: datetime | None = None
    requires_session: bool = False


@dataclass(frozen=True)
class NamespaceInfo:
    name: str | None
    queue_count: int
    topic_count: int
    queue_names: tuple[str, ...] = field(default_factory=tuple)
    topic_names: tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class ConnectionValidation:
    """Result of validating a connection string against the namespace."""

    is_valid: bool
    entity_name: str | None = None
    endpoint: str | None = None
    error_message: str | None = None
