# Shared Infrastructure for the Inbound Parse Lambdas
"""
Shared infrastructure for the inbound parse email pipeline.

This package provides:
- Configuration management
- Custom exceptions
- Webhook Basic Auth checks
- Pydantic models for the email record and notification payload
- S3 key formats
- Tool implementations for S3 and SNS
"""

from inbound_parse.config import Settings, get_settings
from inbound_parse.exceptions import (
    AuthenticationFailedError,
    DecodeFailedError,
    InboundParseError,
    PublishError,
    StorageReadError,
    StorageWriteError,
)
from inbound_parse.models import (
    DecodedPart,
    InboundUnit,
    NormalizedEmailRecord,
    NotificationPayload,
    SourceKind,
)

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Exceptions
    "InboundParseError",
    "AuthenticationFailedError",
    "DecodeFailedError",
    "StorageReadError",
    "StorageWriteError",
    "PublishError",
    # Models
    "DecodedPart",
    "InboundUnit",
    "NormalizedEmailRecord",
    "NotificationPayload",
    "SourceKind",
]
