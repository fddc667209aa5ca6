"""
Raw Intake Writer

Persists the webhook payload untouched to the raw intake bucket. The
multipart boundary from the Content-Type header travels in the object key,
where the queue worker picks it up after the S3 event reaches SQS.
"""

import base64
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Literal

import structlog

from inbound_parse.config import Settings
from inbound_parse.exceptions import StorageWriteError
from inbound_parse.keys import build_raw_email_key
from inbound_parse.tools.s3 import upload_stream

log = structlog.get_logger()

# e.g. "multipart/form-data; boundary=xYzZY" -> "xYzZY"
_UP_TO_BOUNDARY = re.compile(r"^.*boundary=")


@dataclass(frozen=True)
class IntakeResult:
    """Outcome of one webhook request."""

    status: Literal["stored", "unauthorized", "failed"]
    key: str | None = None
    size_bytes: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"status": self.status}
        if self.key:
            result["key"] = self.key
            result["size_bytes"] = self.size_bytes
        if self.error:
            result["error"] = self.error
        return result


def get_header(headers: dict[str, str] | None, name: str) -> str | None:
    """Case-insensitive header lookup (REST APIs keep the sender's casing)."""
    if not headers:
        return None
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def extract_boundary_from_header(content_type: str | None) -> str | None:
    """
    Strip everything up to and including ``boundary=`` from a Content-Type value.

    One pair of surrounding double quotes is removed, so a quoted boundary
    yields the same token the worker reads for the direct route.
    """
    if not content_type or "boundary=" not in content_type:
        return None
    boundary = _UP_TO_BOUNDARY.sub("", content_type).strip()
    if len(boundary) >= 2 and boundary[0] == boundary[-1] == '"':
        boundary = boundary[1:-1]
    return boundary or None


def _payload_bytes(body: str | None, is_base64_encoded: bool | None) -> bytes:
    """
    Bytes to store under the .b64 key.

    API Gateway hands binary webhook bodies over base64 encoded; that text is
    kept as-is. A body explicitly flagged as not encoded is encoded here so
    the worker can always base64-decode the object.
    """
    raw = (body or "").encode("utf-8")
    if is_base64_encoded is False:
        return base64.b64encode(raw)
    return raw


def store_raw_email(
    body: str | None,
    content_type: str | None,
    request_id: str,
    settings: Settings,
    *,
    is_base64_encoded: bool | None = None,
    now: datetime | None = None,
    client=None,
) -> IntakeResult:
    """
    Write one authenticated webhook payload to the raw intake bucket.

    Upload errors are logged and reported in the result, never raised.
    """
    boundary = extract_boundary_from_header(content_type)
    if boundary is None:
        log.error("missing_multipart_boundary", request_id=request_id, content_type=content_type)
        return IntakeResult(status="failed", error="missing multipart boundary")

    key = build_raw_email_key(request_id, boundary, now)
    payload = _payload_bytes(body, is_base64_encoded)

    try:
        size = upload_stream(
            payload,
            settings.raw_inbound_email_bucket,
            key,
            client=client,
        )
    except StorageWriteError as e:
        log.error("raw_email_store_failed", request_id=request_id, key=key, error=str(e))
        return IntakeResult(status="failed", key=key, error=str(e))

    log.info(
        "raw_email_stored",
        request_id=request_id,
        bucket=settings.raw_inbound_email_bucket,
        key=key,
        size_bytes=size,
    )
    return IntakeResult(status="stored", key=key, size_bytes=size)
