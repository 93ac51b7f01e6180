"""
Message models.

MessageRecord is the immutable, UI-ready view of a broker message. The body
preview is computed once at construction so list rendering never touches the
full body.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

import orjson
from pydantic import BaseModel, Field, model_validator

from buslane.core.config.constants import BODY_PREVIEW_LENGTH

_WHITESPACE_RUN = re.compile(r"\s*[\r\n]+\s*")


def build_body_preview(body: str, max_length: int = BODY_PREVIEW_LENGTH) -> str:
    """Collapse line breaks to single spaces and cap the length."""
    collapsed = _WHITESPACE_RUN.sub(" ", body).strip()
    if len(collapsed) <= max_length:
        return collapsed
    return collapsed[:max_length] + "..."


class MessageRecord(BaseModel):
    """
    A peeked or received message, as shown in the message list.

    sequence_number is broker-assigned and unique within one entity; it is
    the identity used by the page cache, selection and bulk operations.
    """

    model_config = {"frozen": True}

    message_id: str | None = None
    sequence_number: int
    enqueued_time: datetime | None = None
    delivery_count: int = 0
    session_id: str | None = None

    correlation_id: str | None = None
    content_type: str | None = None
    subject: str | None = None
    to: str | None = None
    reply_to: str | None = None
    reply_to_session_id: str | None = None
    partition_key: str | None = None
    time_to_live: timedelta | None = None
    scheduled_enqueue_time: datetime | None = None
    expires_at: datetime | None = None

    dead_letter_source: str | None = None
    dead_letter_reason: str | None = None
    dead_letter_description: str | None = None

    application_properties: dict[str, Any] = Field(default_factory=dict)
    body: str = ""
    body_preview: str = ""

    @model_validator(mode="before")
    @classmethod
    def fill_body_preview(cls, data: Any) -> Any:
        if isinstance(data, dict) and not data.get("body_preview"):
            data = dict(data)
            data["body_preview"] = build_body_preview(data.get("body") or "")
        return data

    def __hash__(self):
        # application_properties is a dict, so hash on identity fields only
        return hash((self.sequence_number, self.message_id, self.session_id))

    @property
    def is_json_body(self) -> bool:
        trimmed = self.body.strip()
        return (trimmed.startswith("{") and trimmed.endswith("}")) or (
            trimmed.startswith("[") and trimmed.endswith("]")
        )

    @property
    def is_xml_body(self) -> bool:
        trimmed = self.body.strip()
        return trimmed.startswith("<") and trimmed.endswith(">")

    def formatted_body(self) -> str:
        """Pretty-printed body when it is JSON, otherwise the raw body."""
        if not self.is_json_body:
            return self.body
        try:
            return orjson.dumps(orjson.loads(self.body), option=orjson.OPT_INDENT_2).decode()
        except orjson.JSONDecodeError:
            return self.body

    def formatted_application_properties(self) -> str | None:
        if not self.application_properties:
            return None
        return orjson.dumps(
            self.application_properties, option=orjson.OPT_INDENT_2, default=str
        ).decode()

    def matches(self, text: str) -> bool:
        """
        Case-insensitive free-text match used by the message filter.

        Searches message id, body, correlation id, subject, dead-letter reason
        and the stringified sequence number.
        """
        needle = text.casefold()
        candidates = (
            self.message_id,
            self.body,
            self.correlation_id,
            self.subject,
            self.dead_letter_reason,
            str(self.sequence_number),
        )
        return any(c is not None and needle in c.casefold() for c in candidates)


class SendConfiguration(BaseModel):
    """
    Optional fields applied to an outgoing message.

    Unset (None or blank) fields keep the transport default; set fields
    overwrite it.
    """

    content_type: str | None = None
    correlation_id: str | None = None
    message_id: str | None = None
    session_id: str | None = None
    subject: str | None = None
    to: str | None = None
    reply_to: str | None = None
    reply_to_session_id: str | None = None
    partition_key: str | None = None
    time_to_live: timedelta | None = None
    scheduled_enqueue_time: datetime | None = None
    application_properties: dict[str, Any] | None = None

    @classmethod
    def from_record(cls, record: MessageRecord) -> "SendConfiguration":
        """
        Copy the metadata of an existing message for republishing.

        message_id and scheduled_enqueue_time are intentionally left unset so
        the copy gets a fresh identity and is delivered immediately.
        """
        return cls(
            content_type=record.content_type,
            correlation_id=record.correlation_id,
            session_id=record.session_id,
            subject=record.subject,
            to=record.to,
            reply_to=record.reply_to,
            reply_to_session_id=record.reply_to_session_id,
            partition_key=record.partition_key,
            time_to_live=record.time_to_live,
            application_properties=dict(record.application_properties),
        )


@dataclass(frozen=True)
class BulkOperationResult:
    """
    Outcome of a bulk mutation.

    Partial completion (completed < requested) is a normal outcome, not an
    error: nothing is rolled back.
    """

    completed: int
    requested: int

    @property
    def failed(self) -> int:
        return max(self.requested - self.completed, 0)

    @property
    def is_complete(self) -> bool:
        return self.completed >= self.requested

    def summary(self, verb: str) -> str:
        """e.g. summary("deleted") -> "Successfully deleted 2 of 3 message(s)"."""
        return f"Successfully {verb} {self.completed} of {self.requested} message(s)"
