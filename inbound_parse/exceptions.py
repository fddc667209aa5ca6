"""
Custom Exceptions for the Inbound Parse Pipeline

All exceptions carry the context needed for structured logging.
None of them is meant to escape a Lambda handler: each one is caught at
the unit-of-work boundary, logged, and reported in the handler result.
"""

from typing import Any


class InboundParseError(Exception):
    """Base exception for the inbound parse pipeline."""

    def __init__(self, message: str, **context: Any) -> None:
        self.message = message
        self.context = context
        super().__init__(message)

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class AuthenticationFailedError(InboundParseError):
    """Presented Basic Auth credential does not match the configured one."""

    def __init__(self, source: str) -> None:
        self.source = source
        super().__init__("Basic authentication failed", source=source)


class DecodeFailedError(InboundParseError):
    """Envelope, transport encoding or multipart body could not be decoded."""

    def __init__(self, reason: str, **context: Any) -> None:
        self.reason = reason
        super().__init__(f"Decode failed: {reason}", **context)


class StorageWriteError(InboundParseError):
    """Writing an object to S3 failed."""

    def __init__(
        self,
        bucket: str,
        key: str,
        error_message: str | None = None,
    ) -> None:
        self.bucket = bucket
        self.key = key
        super().__init__(
            f"S3 write failed for 's3://{bucket}/{key}': {error_message or 'Unknown error'}",
            bucket=bucket,
            key=key,
        )


class StorageReadError(InboundParseError):
    """Reading an object from S3 failed."""

    def __init__(
        self,
        bucket: str,
        key: str,
        error_message: str | None = None,
    ) -> None:
        self.bucket = bucket
        self.key = key
        super().__init__(
            f"S3 read failed for 's3://{bucket}/{key}': {error_message or 'Unknown error'}",
            bucket=bucket,
            key=key,
        )


class PublishError(InboundParseError):
    """Publishing to an SNS topic failed."""

    def __init__(
        self,
        topic_arn: str | None,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        self.topic_arn = topic_arn
        self.error_code = error_code
        self.error_message = error_message
        super().__init__(
            f"Failed to publish to topic '{topic_arn}': {error_message or 'Unknown error'}",
            topic_arn=topic_arn,
            error_code=error_code,
        )
