"""
Email Models

Types flowing through the ingestion pipeline: the unit of work resolved from
a queue record, the decoded multipart sections, and the two published
representations (the full record saved as email.json and the reduced
notification sent to SNS).
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Extracted fields copied into the notification; keeps SNS messages small
NOTIFICATION_FIELDS = ("to", "from", "subject", "attachments")


class SourceKind(str, Enum):
    """Route by which a unit of work reached the queue."""

    DIRECT = "direct"  # API -> SQS, body is the webhook payload
    FORWARDED = "forwarded"  # API -> Lambda -> S3 -> SQS, body is an S3 event


@dataclass(frozen=True)
class InboundUnit:
    """One email to process, resolved from a single SQS record."""

    message_id: str
    received_timestamp: int | None
    source_kind: SourceKind
    raw_body: bytes  # transport decoding already applied
    boundary: str


@dataclass(frozen=True)
class DecodedPart:
    """A single multipart/form-data section."""

    field_name: str | None
    filename: str | None
    content_type: str
    payload: bytes
    charset: str | None = None

    @property
    def is_attachment(self) -> bool:
        return self.filename is not None


class NotificationPayload(BaseModel):
    """
    Reduced email summary published to the notification topic.

    Never carries attachment bytes or headers. Consumers use messageId to
    fetch {messageId}/email.json for everything else.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    message_id: str = Field(..., alias="messageId")
    received_timestamp: int | None = Field(default=None, alias="receivedTimestamp")
    to: str | None = None
    from_: str | None = Field(default=None, alias="from")
    subject: str | None = None
    attachments: str | None = None

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)


class NormalizedEmailRecord(BaseModel):
    """
    Full email record persisted as {messageId}/email.json.

    Every named, non-attachment form field is stored as an extra key under
    its lower-cased name; ``headers`` is expanded into a mapping.
    """

    model_config = ConfigDict(extra="allow")

    message_id: str = Field(..., alias="messageId")
    received_timestamp: int | None = Field(default=None, alias="receivedTimestamp")
    headers: dict[str, str] | None = None
    notification_payload: NotificationPayload = Field(..., alias="notificationPayload")

    @property
    def fields(self) -> dict[str, Any]:
        """Extracted form fields (everything except the fixed attributes)."""
        return dict(self.model_extra or {})

    def get_field(self, name: str) -> Any:
        return self.fields.get(name)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True)
