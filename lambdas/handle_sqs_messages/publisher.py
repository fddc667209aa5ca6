"""
Persistence & Notification Publisher

Saves the full record as {messageId}/email.json and publishes the reduced
notification to SNS. The two writes are independent: each is best-effort
and neither rolls back the other.
"""

from dataclasses import dataclass

import structlog

from inbound_parse.config import get_settings
from inbound_parse.exceptions import PublishError, StorageWriteError
from inbound_parse.keys import email_record_key
from inbound_parse.models import NormalizedEmailRecord, NotificationPayload
from inbound_parse.tools.s3 import put_json
from inbound_parse.tools.sns import publish_message

log = structlog.get_logger()


@dataclass(frozen=True)
class PublishOutcome:
    """Result of persisting and publishing one record."""

    record_key: str | None = None
    notification_id: str | None = None
    errors: tuple[str, ...] = ()

    @property
    def record_saved(self) -> bool:
        return self.record_key is not None

    @property
    def notification_published(self) -> bool:
        return self.notification_id is not None


def save_email_record(
    record: NormalizedEmailRecord,
    *,
    bucket: str | None = None,
    client=None,
) -> str:
    """
    Write the record to ``{messageId}/email.json``.

    Returns:
        The object key

    Raises:
        StorageWriteError: If the put fails
    """
    s3_bucket = bucket or get_settings().processed_email_bucket
    key = email_record_key(record.message_id)
    put_json(record.to_json(), s3_bucket, key, client=client)
    return key


def publish_notification(
    payload: NotificationPayload,
    *,
    topic_arn: str | None = None,
    client=None,
) -> str:
    """
    Publish the notification payload JSON to the notification topic.

    Raises:
        PublishError: If the publish fails
    """
    return publish_message(payload.to_json(), topic_arn=topic_arn, client=client)


def persist_and_publish(
    record: NormalizedEmailRecord,
    *,
    s3_client=None,
    sns_client=None,
) -> PublishOutcome:
    """Save the record and publish its notification; failures are logged and reported."""
    record_key: str | None = None
    notification_id: str | None = None
    errors: list[str] = []

    try:
        record_key = save_email_record(record, client=s3_client)
    except StorageWriteError as e:
        log.error("email_record_save_failed", message_id=record.message_id, error=str(e))
        errors.append(str(e))

    try:
        notification_id = publish_notification(record.notification_payload, client=sns_client)
    except PublishError as e:
        log.error("notification_publish_failed", message_id=record.message_id, error=str(e))
        errors.append(str(e))

    return PublishOutcome(
        record_key=record_key,
        notification_id=notification_id,
        errors=tuple(errors),
    )
