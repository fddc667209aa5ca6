"""
Attachment Handler Module

Streams attachment parts to the processed email bucket under the
message's prefix, next to its email.json.
"""

from dataclasses import dataclass

import structlog

from inbound_parse.config import get_settings
from inbound_parse.keys import attachment_key
from inbound_parse.tools.s3 import upload_stream

log = structlog.get_logger()

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class AttachmentInfo:
    """Where an attachment ended up."""

    filename: str  # As sent in the form part
    bucket: str
    key: str
    content_type: str
    size_bytes: int

    @property
    def s3_path(self) -> str:
        return f"s3://{self.bucket}/{self.key}"

    def to_dict(self) -> dict:
        """Convert to dictionary for the batch handler result."""
        return {
            "filename": self.filename,
            "s3_path": self.s3_path,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
        }


def store_attachment(
    message_id: str,
    filename: str,
    content_type: str | None,
    payload: bytes,
    *,
    bucket: str | None = None,
    client=None,
) -> AttachmentInfo:
    """
    Upload one attachment to ``{message_id}/{filename}``.

    Uses the managed transfer so large files go up as multipart uploads.

    Args:
        message_id: SQS message id namespacing the email's objects
        filename: Filename from the form part
        content_type: MIME type from the form part
        payload: Attachment bytes
        bucket: Override bucket (default: processed email bucket)
        client: S3 client override

    Returns:
        AttachmentInfo for the stored object

    Raises:
        StorageWriteError: If the upload fails
    """
    s3_bucket = bucket or get_settings().processed_email_bucket
    key = attachment_key(message_id, filename)
    object_type = content_type or DEFAULT_CONTENT_TYPE

    log.info(
        "storing_attachment",
        message_id=message_id,
        filename=filename,
        bucket=s3_bucket,
        key=key,
        content_type=object_type,
        size_bytes=len(payload),
    )

    size = upload_stream(payload, s3_bucket, key, content_type=object_type, client=client)

    return AttachmentInfo(
        filename=filename,
        bucket=s3_bucket,
        key=key,
        content_type=object_type,
        size_bytes=size,
    )
