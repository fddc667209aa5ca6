"""
Source Disambiguator

SQS messages reach the worker by two routes:

- direct:    API Gateway -> SQS. The body is the webhook payload and the
             original headers ride along as ``authorization`` and
             ``contentType`` message attributes.
- forwarded: API Gateway -> inbound_email_to_s3 -> S3 -> SQS. The body is an
             S3 event notification pointing at the raw (base64) object; the
             boundary is embedded in the object key.
"""

import base64
import binascii
import json
from email.message import Message
from typing import Any
from urllib.parse import unquote_plus

import structlog

from inbound_parse.auth import require_authorized
from inbound_parse.config import Settings
from inbound_parse.exceptions import DecodeFailedError
from inbound_parse.keys import boundary_from_raw_email_key
from inbound_parse.models import InboundUnit, SourceKind
from inbound_parse.tools.s3 import get_object_bytes

log = structlog.get_logger()

S3_TEST_EVENT = "s3:TestEvent"


def _message_attribute(record: dict[str, Any], name: str) -> str | None:
    attribute = (record.get("messageAttributes") or {}).get(name) or {}
    return attribute.get("stringValue")


def _parse_json_object(body: str | None) -> dict[str, Any] | None:
    if not body:
        return None
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def classify_source(record: dict[str, Any]) -> SourceKind:
    """
    Decide which route a record came through.

    The direct API -> SQS integration always attaches a ``contentType``
    attribute, so its presence wins over sniffing the body. Otherwise a JSON
    object body is taken to be an S3 event notification.
    """
    if _message_attribute(record, "contentType") is not None:
        return SourceKind.DIRECT
    if _parse_json_object(record.get("body")) is not None:
        return SourceKind.FORWARDED
    return SourceKind.DIRECT


def received_timestamp(record: dict[str, Any]) -> int | None:
    """ApproximateFirstReceiveTimestamp (epoch millis) of the SQS record, if present."""
    value = (record.get("attributes") or {}).get("ApproximateFirstReceiveTimestamp")
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        log.warning("invalid_receive_timestamp", value=value)
        return None


def is_s3_test_event(envelope: dict[str, Any]) -> bool:
    """S3 sends this once when the bucket notification to SQS is configured."""
    return envelope.get("Event") == S3_TEST_EVENT


def parse_boundary(content_type: str | None) -> str | None:
    """Read the boundary parameter from a multipart Content-Type value."""
    if not content_type:
        return None
    header = Message()
    header["Content-Type"] = content_type
    return header.get_boundary()


def _s3_location(envelope: dict[str, Any]) -> tuple[str, str]:
    try:
        s3_entity = envelope["Records"][0]["s3"]
        bucket = s3_entity["bucket"]["name"]
        key = unquote_plus(s3_entity["object"]["key"])
    except (KeyError, IndexError, TypeError) as e:
        raise DecodeFailedError("not an S3 event notification", missing=str(e)) from e
    return bucket, key


def _decode_raw_object(content: bytes, bucket: str, key: str) -> bytes:
    """The raw object holds base64 text as delivered by API Gateway."""
    try:
        text = content.decode("utf-8")
        return base64.b64decode(text.strip(), validate=True)
    except (UnicodeDecodeError, binascii.Error) as e:
        raise DecodeFailedError("raw object is not valid base64 text", bucket=bucket, key=key) from e


def _resolve_forwarded(
    record: dict[str, Any],
    envelope: dict[str, Any],
    *,
    s3_client=None,
) -> InboundUnit | None:
    if is_s3_test_event(envelope):
        log.info("s3_test_event_skipped", message_id=record.get("messageId"))
        return None

    bucket, key = _s3_location(envelope)
    boundary = boundary_from_raw_email_key(key)
    if not boundary:
        raise DecodeFailedError("no boundary in object key", bucket=bucket, key=key)

    content = get_object_bytes(bucket, key, client=s3_client)

    log.info("forwarded_email_fetched", bucket=bucket, key=key, size_bytes=len(content))

    return InboundUnit(
        message_id=record["messageId"],
        received_timestamp=received_timestamp(record),
        source_kind=SourceKind.FORWARDED,
        raw_body=_decode_raw_object(content, bucket, key),
        boundary=boundary,
    )


def _resolve_direct(record: dict[str, Any], settings: Settings) -> InboundUnit:
    # Nothing authenticated this payload on the way in
    require_authorized(_message_attribute(record, "authorization"), settings, source="sqs")

    content_type = _message_attribute(record, "contentType")
    boundary = parse_boundary(content_type)
    if not boundary:
        raise DecodeFailedError("no multipart boundary", content_type=content_type)

    return InboundUnit(
        message_id=record["messageId"],
        received_timestamp=received_timestamp(record),
        source_kind=SourceKind.DIRECT,
        raw_body=(record.get("body") or "").encode("utf-8"),
        boundary=boundary,
    )


def resolve_inbound_unit(
    record: dict[str, Any],
    settings: Settings,
    *,
    s3_client=None,
) -> InboundUnit | None:
    """
    Turn one SQS record into an InboundUnit.

    Returns:
        The unit to process, or None for the S3 test event

    Raises:
        AuthenticationFailedError: Direct record with a bad credential
        DecodeFailedError: Malformed envelope, key or raw object
        StorageReadError: Raw object could not be fetched
    """
    source = classify_source(record)

    log.debug("record_source_classified", message_id=record.get("messageId"), source=source.value)

    if source is SourceKind.FORWARDED:
        envelope = _parse_json_object(record.get("body")) or {}
        return _resolve_forwarded(record, envelope, s3_client=s3_client)

    return _resolve_direct(record, settings)
