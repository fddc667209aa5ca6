"""
HandleSqsMessages Lambda Handler

Main entry point for processing queued inbound parse emails.

Trigger: SQS queue fed by the S3 raw intake bucket notification
         (and, optionally, by a direct API Gateway -> SQS integration)
Output: {messageId}/email.json and attachments in the processed email bucket,
        reduced notification on the SNS topic

Flow:
1. Work out where each record came from (S3 event or direct webhook body)
2. Fetch/authenticate the payload and recover the multipart boundary
3. Decode the multipart form, storing attachments to S3
4. Save email.json and publish the notification

Every record in the batch is processed concurrently; the handler returns
once all of them have settled. Failures are logged and reported in the
returned summary, never raised, so no record is redelivered.
"""

from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Literal

import structlog

from inbound_parse.auth import alert_auth_failure
from inbound_parse.config import Settings, get_settings
from inbound_parse.exceptions import (
    AuthenticationFailedError,
    DecodeFailedError,
    StorageReadError,
)
from inbound_parse.log_config import configure_logging
from lambdas.handle_sqs_messages.attachment_handler import AttachmentInfo
from lambdas.handle_sqs_messages.multipart_parser import process_email
from lambdas.handle_sqs_messages.publisher import persist_and_publish
from lambdas.handle_sqs_messages.source import resolve_inbound_unit

configure_logging()

log = structlog.get_logger()


@dataclass
class UnitResult:
    """Outcome for one SQS record."""

    message_id: str
    status: Literal["processed", "skipped", "unauthorized", "failed"]
    source: str | None = None
    attachments_stored: int = 0
    attachments_failed: int = 0
    record_saved: bool = False
    notification_published: bool = False
    attachments: list[AttachmentInfo] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "message_id": self.message_id,
            "status": self.status,
            "source": self.source,
            "attachments_stored": self.attachments_stored,
            "attachments_failed": self.attachments_failed,
            "record_saved": self.record_saved,
            "notification_published": self.notification_published,
            "attachments": [attachment.to_dict() for attachment in self.attachments],
            "errors": self.errors,
        }


@dataclass
class BatchResult:
    """Summary of one SQS batch."""

    units: list[UnitResult] = field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        return dict(Counter(unit.status for unit in self.units))

    @property
    def error_count(self) -> int:
        return sum(len(unit.errors) for unit in self.units)

    def to_dict(self) -> dict[str, Any]:
        return {
            "records": len(self.units),
            "counts": self.counts,
            "error_count": self.error_count,
            "units": [unit.to_dict() for unit in self.units],
        }


def process_record(record: dict[str, Any], settings: Settings) -> UnitResult:
    """Run the full pipeline for one SQS record."""
    message_id = record.get("messageId", "unknown")

    try:
        unit = resolve_inbound_unit(record, settings)
    except AuthenticationFailedError as e:
        log.warning("basic_auth_failed", message_id=message_id, error=str(e))
        alert_auth_failure(settings, source="sqs", reference=message_id)
        return UnitResult(message_id=message_id, status="unauthorized", errors=[str(e)])
    except (DecodeFailedError, StorageReadError) as e:
        log.error("inbound_unit_resolve_failed", message_id=message_id, error=str(e))
        return UnitResult(message_id=message_id, status="failed", errors=[str(e)])

    if unit is None:
        return UnitResult(message_id=message_id, status="skipped")

    try:
        processed = process_email(unit, max_workers=settings.max_workers)
    except DecodeFailedError as e:
        log.error("multipart_decode_failed", message_id=message_id, error=str(e))
        return UnitResult(
            message_id=message_id,
            status="failed",
            source=unit.source_kind.value,
            errors=[str(e)],
        )

    outcome = persist_and_publish(processed.record)

    log.info(
        "email_processed",
        message_id=message_id,
        source=unit.source_kind.value,
        field_count=len(processed.record.fields),
        attachments_stored=len(processed.stored_attachments),
        attachments_failed=len(processed.failed_attachments),
        record_saved=outcome.record_saved,
        notification_published=outcome.notification_published,
    )

    return UnitResult(
        message_id=message_id,
        status="processed",
        source=unit.source_kind.value,
        attachments_stored=len(processed.stored_attachments),
        attachments_failed=len(processed.failed_attachments),
        record_saved=outcome.record_saved,
        notification_published=outcome.notification_published,
        attachments=processed.stored_attachments,
        errors=[f"{name}: {error}" for name, error in processed.failed_attachments]
        + list(outcome.errors),
    )


def _settle(record: dict[str, Any], settings: Settings) -> UnitResult:
    try:
        return process_record(record, settings)
    except Exception as e:
        log.error(
            "record_processing_failed",
            message_id=record.get("messageId"),
            error=str(e),
            exc_info=True,
        )
        return UnitResult(
            message_id=record.get("messageId", "unknown"),
            status="failed",
            errors=[str(e)],
        )


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda handler for the inbound email queue.

    Args:
        event: SQS event (batch of records)
        context: Lambda context

    Returns:
        Batch summary with one entry per record
    """
    settings = get_settings()
    records = event.get("Records") or []

    log.info(
        "processing_sqs_batch",
        request_id=getattr(context, "aws_request_id", "local"),
        record_count=len(records),
    )

    result = BatchResult()
    if records:
        with ThreadPoolExecutor(max_workers=min(settings.max_workers, len(records))) as pool:
            futures = [pool.submit(_settle, record, settings) for record in records]
            result.units = [future.result() for future in futures]

    log.info("sqs_batch_processed", counts=result.counts, error_count=result.error_count)

    return result.to_dict()
