"""
Configuration Module

Components:
-----------
- **settings.py**: Pydantic-based configuration with environment variable loading
- **constants.py**: Batch sizes, timeouts, log stages and state enums

Usage:
------
```python
from buslane.core.config import get_settings
from buslane.core.config.constants import Stage

settings = get_settings()
page_size = settings.paging.MESSAGES_PER_PAGE
```

Environment Variables:
---------------------
```bash
MESSAGES_PER_PAGE=100
MAX_TOTAL_MESSAGES=500
DELETE_BATCH_SIZE=100
RESEND_BATCH_SIZE=50
LOG_LEVEL=INFO
LOG_FORMAT=console
```
"""

from buslane.core.config.constants import (
    BODY_PREVIEW_LENGTH,
    DEFAULT_MAX_TOTAL_MESSAGES,
    DEFAULT_MESSAGES_PER_PAGE,
    DELETE_BATCH_SIZE,
    DELETE_RECEIVE_TIMEOUT,
    MAX_EMPTY_BATCHES,
    MAX_SESSIONS_TO_CHECK,
    PURGE_BATCH_SIZE,
    PURGE_RECEIVE_TIMEOUT,
    RESEND_BATCH_SIZE,
    RESUBMIT_RECEIVE_TIMEOUT,
    SESSION_ACCEPT_TIMEOUT,
    AuthMode,
    PaginationStatus,
    Stage,
)
from buslane.core.config.settings import get_settings, reload_settings

__all__ = [
    # Settings
    "get_settings",
    "reload_settings",
    # Enums
    "AuthMode",
    "PaginationStatus",
    "Stage",
    # Paging
    "BODY_PREVIEW_LENGTH",
    "DEFAULT_MAX_TOTAL_MESSAGES",
    "DEFAULT_MESSAGES_PER_PAGE",
    # Batching
    "DELETE_BATCH_SIZE",
    "DELETE_RECEIVE_TIMEOUT",
    "MAX_EMPTY_BATCHES",
    "MAX_SESSIONS_TO_CHECK",
    "PURGE_BATCH_SIZE",
    "PURGE_RECEIVE_TIMEOUT",
    "RESEND_BATCH_SIZE",
    "RESUBMIT_RECEIVE_TIMEOUT",
    "SESSION_ACCEPT_TIMEOUT",
]
