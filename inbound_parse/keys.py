"""
S3 Key Formats

Raw webhook payloads:   {YYYY-MM-DD}/{requestId}-boundary-{boundary}-email.b64
Normalized record:      {messageId}/email.json
Attachments:            {messageId}/{filename}

The raw key is the only channel carrying the multipart boundary from the
intake Lambda to the queue worker, so both sides go through this module.
"""

import re
from datetime import datetime, timezone
from pathlib import PurePosixPath

BOUNDARY_MARKER = "boundary-"
RAW_EMAIL_SUFFIX = "-email.b64"
EMAIL_RECORD_FILENAME = "email.json"

_BOUNDARY_PREFIX = re.compile(r"^.*" + re.escape(BOUNDARY_MARKER))


def build_raw_email_key(
    request_id: str,
    boundary: str,
    now: datetime | None = None,
) -> str:
    """
    Build the raw intake key, sorted by UTC date then request id.

    Every '=' is stripped from the request id.
    """
    when = now or datetime.now(timezone.utc)
    date_prefix = when.astimezone(timezone.utc).strftime("%Y-%m-%d")
    safe_request_id = request_id.replace("=", "")
    return f"{date_prefix}/{safe_request_id}-{BOUNDARY_MARKER}{boundary}{RAW_EMAIL_SUFFIX}"


def boundary_from_raw_email_key(key: str) -> str | None:
    """Recover the multipart boundary embedded by build_raw_email_key."""
    if BOUNDARY_MARKER not in key:
        return None
    boundary = _BOUNDARY_PREFIX.sub("", key)
    if boundary.endswith(RAW_EMAIL_SUFFIX):
        boundary = boundary[: -len(RAW_EMAIL_SUFFIX)]
    return boundary or None


def email_record_key(message_id: str) -> str:
    return f"{message_id}/{EMAIL_RECORD_FILENAME}"


def attachment_key(message_id: str, filename: str) -> str:
    """
    Key for an attachment, inside the message's prefix.

    Directory components are dropped from the filename (Windows separators
    included) so the object cannot land outside {messageId}/.
    """
    name = PurePosixPath(filename.replace("\\", "/")).name or "attachment"
    return f"{message_id}/{name}"
