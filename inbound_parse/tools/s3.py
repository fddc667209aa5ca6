"""
S3 Tools

Object storage helpers for raw webhook payloads, normalized email records
and attachments. Large payloads go through the S3 managed transfer, which
switches to multipart uploads above the configured threshold.
"""

import io
import threading
from functools import lru_cache

import boto3
from boto3.exceptions import S3UploadFailedError
from boto3.s3.transfer import TransferConfig
from botocore.exceptions import ClientError
import structlog

from inbound_parse.config import get_settings
from inbound_parse.exceptions import StorageReadError, StorageWriteError

log = structlog.get_logger()

_client_lock = threading.Lock()


@lru_cache(maxsize=1)
def _create_client():
    settings = get_settings()
    return boto3.session.Session().client("s3", **settings.s3_config)


def _get_client():
    """
    Get the process-wide S3 client.

    The lock makes concurrent first calls share one client; boto3 clients are
    thread-safe once built.
    """
    with _client_lock:
        return _create_client()


def _get_transfer_config() -> TransferConfig:
    settings = get_settings()
    return TransferConfig(
        multipart_threshold=settings.multipart_threshold_bytes,
        multipart_chunksize=settings.multipart_chunksize_bytes,
        max_concurrency=settings.transfer_max_concurrency,
    )


class _UploadProgress:
    """Transfer callback logging upload progress for one object."""

    def __init__(self, bucket: str, key: str, total_bytes: int) -> None:
        self._bucket = bucket
        self._key = key
        self._total = total_bytes
        self._seen = 0
        self._lock = threading.Lock()

    def __call__(self, bytes_amount: int) -> None:
        with self._lock:
            self._seen += bytes_amount
            seen = self._seen
        log.debug(
            "upload_progress",
            bucket=self._bucket,
            key=self._key,
            loaded=seen,
            total=self._total,
        )


def upload_stream(
    body: bytes,
    bucket: str,
    key: str,
    *,
    content_type: str | None = None,
    client=None,
) -> int:
    """
    Stream bytes to S3 with the managed transfer.

    Args:
        body: Object content, written unchanged
        bucket: Target bucket
        key: Target key
        content_type: Optional ContentType for the object
        client: S3 client override (defaults to the process-wide client)

    Returns:
        Number of bytes written

    Raises:
        StorageWriteError: If the upload fails
    """
    s3 = client or _get_client()
    extra_args = {"ContentType": content_type} if content_type else None
    progress = _UploadProgress(bucket, key, len(body))

    log.info("uploading_object", bucket=bucket, key=key, size_bytes=len(body))

    try:
        s3.upload_fileobj(
            io.BytesIO(body),
            bucket,
            key,
            ExtraArgs=extra_args,
            Callback=progress,
            Config=_get_transfer_config(),
        )
    except (ClientError, S3UploadFailedError) as e:
        log.error("s3_upload_failed", bucket=bucket, key=key, error=str(e))
        raise StorageWriteError(bucket=bucket, key=key, error_message=str(e)) from e

    log.info("object_uploaded", bucket=bucket, key=key, size_bytes=len(body))
    return len(body)


def put_json(document: str, bucket: str, key: str, *, client=None) -> None:
    """
    Write a serialized JSON document to S3 as application/json.

    Raises:
        StorageWriteError: If the put fails
    """
    s3 = client or _get_client()

    try:
        s3.put_object(
            Bucket=bucket,
            Key=key,
            Body=document.encode("utf-8"),
            ContentType="application/json",
        )
    except ClientError as e:
        log.error("s3_put_failed", bucket=bucket, key=key, error=str(e))
        raise StorageWriteError(bucket=bucket, key=key, error_message=str(e)) from e

    log.info("json_document_saved", bucket=bucket, key=key)


def get_object_bytes(bucket: str, key: str, *, client=None) -> bytes:
    """
    Fetch an object's content from S3.

    Raises:
        StorageReadError: If the get fails
    """
    log.info("fetching_object", bucket=bucket, key=key)

    s3 = client or _get_client()

    try:
        response = s3.get_object(Bucket=bucket, Key=key)
        content = response["Body"].read()
    except ClientError as e:
        log.error("s3_fetch_failed", bucket=bucket, key=key, error=str(e))
        raise StorageReadError(bucket=bucket, key=key, error_message=str(e)) from e

    log.debug("object_fetched", bucket=bucket, key=key, size_bytes=len(content))
    return content
