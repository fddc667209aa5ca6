"""
Multipart Parser Module

Decodes the inbound parse multipart/form-data body and builds the
normalized email record.

Form fields become record keys (lower-cased), the ``headers`` field is
expanded into a mapping, and parts carrying a filename are streamed to S3
as attachments. Parts are handled concurrently; each task returns its own
contribution and the record is assembled in a single join step, in part
order, so a repeated field name resolves to its last occurrence.
"""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.parser import BytesParser
from email.policy import default as default_policy
from email.utils import collapse_rfc2231_value
from typing import Callable, Literal

import structlog

from inbound_parse.exceptions import DecodeFailedError
from inbound_parse.models import (
    NOTIFICATION_FIELDS,
    DecodedPart,
    InboundUnit,
    NormalizedEmailRecord,
    NotificationPayload,
)
from lambdas.handle_sqs_messages.attachment_handler import AttachmentInfo, store_attachment

log = structlog.get_logger()

HEADERS_FIELD = "headers"

AttachmentSink = Callable[[str, str, str | None, bytes], AttachmentInfo]


@dataclass(frozen=True)
class PartContribution:
    """What one part adds to the record."""

    kind: Literal["field", "headers", "attachment"]
    name: str
    value: str | dict[str, str] | None = None
    attachment: AttachmentInfo | None = None
    error: str | None = None


@dataclass
class ProcessedEmail:
    """Normalized record plus the attachment outcomes for one email."""

    record: NormalizedEmailRecord
    stored_attachments: list[AttachmentInfo] = field(default_factory=list)
    failed_attachments: list[tuple[str, str]] = field(default_factory=list)

    @property
    def notification(self) -> NotificationPayload:
        return self.record.notification_payload


def _param(part: EmailMessage, name: str) -> str | None:
    value = part.get_param(name, header="content-disposition")
    if value is None:
        return None
    return collapse_rfc2231_value(value)


def decode_parts(body: bytes, boundary: str) -> list[DecodedPart]:
    """
    Split a multipart/form-data body into its parts.

    Parts without a ``name`` or without a single-part payload are dropped.

    Raises:
        DecodeFailedError: If the body has no multipart structure for the boundary
    """
    envelope = f'Content-Type: multipart/form-data; boundary="{boundary}"\r\n\r\n'
    message = BytesParser(policy=default_policy).parsebytes(envelope.encode("utf-8") + body)

    if not message.is_multipart():
        raise DecodeFailedError(
            "boundary not found in body",
            boundary=boundary,
            defects=[type(d).__name__ for d in message.defects],
        )

    parts: list[DecodedPart] = []
    for part in message.get_payload():
        name = _param(part, "name")
        payload = part.get_payload(decode=True)
        if name is None or payload is None:
            log.debug("multipart_part_dropped", has_name=name is not None)
            continue

        parts.append(
            DecodedPart(
                field_name=name,
                filename=_param(part, "filename"),
                content_type=part.get_content_type(),
                payload=payload,
                charset=part.get_content_charset(),
            )
        )

    return parts


def decode_text(part: DecodedPart) -> str:
    """Decode a field's bytes, falling back to UTF-8 for unknown charsets."""
    charset = part.charset or "utf-8"
    try:
        return part.payload.decode(charset, errors="replace")
    except LookupError:
        return part.payload.decode("utf-8", errors="replace")


def parse_headers_field(text: str) -> dict[str, str]:
    """
    Expand the raw ``headers`` field into a mapping.

    Each line is split on its first colon; single quotes and surrounding
    whitespace are removed. Lines without a colon, or with an empty name or
    value, are skipped.
    """
    headers: dict[str, str] = {}
    for line in text.split("\n"):
        name, sep, value = line.partition(":")
        if not sep:
            continue
        name = name.replace("'", "").strip()
        value = value.replace("'", "").strip()
        if name and value:
            headers[name] = value
    return headers


def _process_part(
    unit: InboundUnit,
    part: DecodedPart,
    attachment_sink: AttachmentSink,
) -> PartContribution:
    if part.is_attachment:
        try:
            info = attachment_sink(unit.message_id, part.filename, part.content_type, part.payload)
        except Exception as e:
            # One failed attachment must not stop the record or the other attachments
            log.error(
                "attachment_processing_failed",
                message_id=unit.message_id,
                filename=part.filename,
                error=str(e),
            )
            return PartContribution(kind="attachment", name=part.filename, error=str(e))
        return PartContribution(kind="attachment", name=part.filename, attachment=info)

    name = part.field_name.lower()
    text = decode_text(part)

    if name == HEADERS_FIELD:
        return PartContribution(kind="headers", name=name, value=parse_headers_field(text))
    return PartContribution(kind="field", name=name, value=text)


def build_record(
    unit: InboundUnit,
    contributions: list[PartContribution],
) -> ProcessedEmail:
    """Merge part contributions, in order, into the normalized record."""
    fields: dict[str, str] = {}
    headers: dict[str, str] | None = None
    notification: dict[str, object] = {
        "messageId": unit.message_id,
        "receivedTimestamp": unit.received_timestamp,
    }
    stored: list[AttachmentInfo] = []
    failed: list[tuple[str, str]] = []

    for contribution in contributions:
        if contribution.kind == "attachment":
            if contribution.attachment is not None:
                stored.append(contribution.attachment)
            else:
                failed.append((contribution.name, contribution.error or "unknown error"))
        elif contribution.kind == "headers":
            headers = contribution.value
        else:
            fields[contribution.name] = contribution.value
            if contribution.name in NOTIFICATION_FIELDS:
                notification[contribution.name] = contribution.value

    record = NormalizedEmailRecord.model_validate(
        {
            **fields,
            "messageId": unit.message_id,
            "receivedTimestamp": unit.received_timestamp,
            "headers": headers,
            "notificationPayload": NotificationPayload.model_validate(notification),
        }
    )
    return ProcessedEmail(record=record, stored_attachments=stored, failed_attachments=failed)


def process_email(
    unit: InboundUnit,
    *,
    attachment_sink: AttachmentSink | None = None,
    max_workers: int = 8,
) -> ProcessedEmail:
    """
    Decode an inbound unit and build its record, storing attachments.

    Returns once every part (field extraction or attachment upload) has
    settled.

    Raises:
        DecodeFailedError: If the body is not multipart for the unit's boundary
    """
    sink = attachment_sink or store_attachment
    parts = decode_parts(unit.raw_body, unit.boundary)

    log.info(
        "multipart_decoded",
        message_id=unit.message_id,
        part_count=len(parts),
        attachment_count=sum(1 for p in parts if p.is_attachment),
    )

    contributions: list[PartContribution] = []
    if parts:
        with ThreadPoolExecutor(max_workers=min(max_workers, len(parts))) as pool:
            futures = [pool.submit(_process_part, unit, part, sink) for part in parts]
            contributions = [future.result() for future in futures]

    processed = build_record(unit, contributions)

    if processed.failed_attachments:
        log.warning(
            "some_attachments_failed",
            message_id=unit.message_id,
            failed_count=len(processed.failed_attachments),
            failed_files=[name for name, _ in processed.failed_attachments],
        )

    return processed
