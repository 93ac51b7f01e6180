from buslane.models.context import PaginationContext
from buslane.models.entities import (
    ConnectionValidation,
    NamespaceInfo,
    QueueInfo,
    SubscriptionInfo,
    TopicInfo,
)
from buslane.models.message import (
    BulkOperationResult,
    MessageRecord,
    SendConfiguration,
    build_body_preview,
)

__all__ = [
    "BulkOperationResult",
    "ConnectionValidation",
    "MessageRecord",
    "NamespaceInfo",
    "PaginationContext",
    "QueueInfo",
    "SendConfiguration",
    "SubscriptionInfo",
    "TopicInfo",
    "build_body_preview",
]
