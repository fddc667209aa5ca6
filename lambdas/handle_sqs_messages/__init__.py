"""
HandleSqsMessages Lambda

Processes inbound parse emails queued in SQS: decodes the multipart form,
stores attachments and the full email.json to S3 and publishes a reduced
notification to SNS.

Flow:
    S3 raw intake object (or direct API → SQS)
    → SQS Queue
    → This Lambda
    → S3: {messageId}/email.json, {messageId}/{attachment}
    → SNS: notification payload
"""

from lambdas.handle_sqs_messages.attachment_handler import AttachmentInfo, store_attachment
from lambdas.handle_sqs_messages.handler import BatchResult, UnitResult, lambda_handler
from lambdas.handle_sqs_messages.multipart_parser import (
    ProcessedEmail,
    decode_parts,
    parse_headers_field,
    process_email,
)
from lambdas.handle_sqs_messages.publisher import PublishOutcome, persist_and_publish
from lambdas.handle_sqs_messages.source import classify_source, resolve_inbound_unit

__all__ = [
    "AttachmentInfo",
    "BatchResult",
    "ProcessedEmail",
    "PublishOutcome",
    "UnitResult",
    "classify_source",
    "decode_parts",
    "lambda_handler",
    "parse_headers_field",
    "persist_and_publish",
    "process_email",
    "resolve_inbound_unit",
    "store_attachment",
]
