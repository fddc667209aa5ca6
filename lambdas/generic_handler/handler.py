"""
GenericInboundEmailHandler Lambda Handler

Subscriber on the notification topic. Starting point for business-specific
handling of processed emails.

Trigger: SNS topic receiving NotificationPayload messages
Output: whatever route_notification does (logging only by default)

The notification carries messageId, receivedTimestamp and the to / from /
subject / attachments fields. Everything else, headers and attachment
objects included, lives under {messageId}/ in the processed email bucket.
"""

import json
from typing import Any

import structlog
from pydantic import ValidationError

from inbound_parse.log_config import configure_logging
from inbound_parse.models import NotificationPayload

configure_logging()

log = structlog.get_logger()


def route_notification(payload: NotificationPayload) -> None:
    """
    Extension point for processed emails.

    Forward or notify the right person, update a CRM or datastore, hand
    off to a chatbot.
    """
    log.info(
        "notification_received",
        message_id=payload.message_id,
        received_timestamp=payload.received_timestamp,
        to=payload.to,
        from_address=payload.from_,
        subject=payload.subject,
    )


def _parse_record(record: dict[str, Any]) -> NotificationPayload | None:
    message = (record.get("Sns") or {}).get("Message", "")
    try:
        return NotificationPayload.model_validate_json(message)
    except ValidationError as e:
        log.error(
            "notification_parse_failed",
            sns_message_id=(record.get("Sns") or {}).get("MessageId"),
            error=str(e),
        )
        return None


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda handler for notification topic messages.

    Args:
        event: SNS event
        context: Lambda context

    Returns:
        Count of routed and skipped notifications
    """
    records = event.get("Records") or []
    log.debug("sns_event_received", event=json.dumps(event, default=str))

    routed = 0
    skipped = 0
    for record in records:
        payload = _parse_record(record)
        if payload is None:
            skipped += 1
            continue
        route_notification(payload)
        routed += 1

    return {"routed": routed, "skipped": skipped}
