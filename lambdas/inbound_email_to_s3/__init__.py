"""
InboundEmailToS3 Lambda

Receives the inbound parse webhook through API Gateway, checks Basic Auth
and stores the raw payload in S3 for asynchronous processing.

Flow:
    Inbound Parse webhook
    → API Gateway
    → This Lambda
    → S3 (raw intake bucket)
    → SQS (S3 event notification)
"""

from lambdas.inbound_email_to_s3.handler import lambda_handler
from lambdas.inbound_email_to_s3.intake import (
    IntakeResult,
    extract_boundary_from_header,
    store_raw_email,
)

__all__ = [
    "IntakeResult",
    "extract_boundary_from_header",
    "lambda_handler",
    "store_raw_email",
]
