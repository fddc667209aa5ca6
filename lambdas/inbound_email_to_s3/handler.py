"""
InboundEmailToS3 Lambda Handler

Webhook endpoint for the inbound parse provider.

Trigger: API Gateway POST (proxy integration)
Output: raw payload object in the raw intake bucket (S3 -> SQS notification
        then triggers handle_sqs_messages)

Flow:
1. Check the Basic Auth header against configured credentials
2. Pull the multipart boundary out of the Content-Type header
3. Write the body, still base64 encoded, under a key embedding the boundary
"""

import json
from typing import Any
from uuid import uuid4

import structlog

from inbound_parse.auth import alert_auth_failure, require_authorized
from inbound_parse.config import get_settings
from inbound_parse.exceptions import AuthenticationFailedError
from inbound_parse.log_config import configure_logging
from lambdas.inbound_email_to_s3.intake import IntakeResult, get_header, store_raw_email

configure_logging()

log = structlog.get_logger()


def _request_id(event: dict[str, Any], context: Any) -> str:
    request_context = event.get("requestContext") or {}
    return (
        request_context.get("requestId")
        or getattr(context, "aws_request_id", None)
        or uuid4().hex
    )


def _response(result: IntakeResult) -> dict[str, Any]:
    # Always 200: the webhook sender gets no signal about rejected or failed payloads
    return {
        "statusCode": 200,
        "headers": {"Content-Type": "application/json"},
        "body": json.dumps(result.to_dict()),
    }


def lambda_handler(event: dict[str, Any], context: Any) -> dict[str, Any]:
    """
    AWS Lambda handler for the inbound parse webhook.

    Args:
        event: API Gateway proxy event
        context: Lambda context

    Returns:
        API Gateway proxy response
    """
    settings = get_settings()
    headers = event.get("headers") or {}
    request_id = _request_id(event, context)

    log.info("webhook_received", request_id=request_id)

    try:
        require_authorized(get_header(headers, "authorization"), settings, source="webhook")
    except AuthenticationFailedError as e:
        log.warning("basic_auth_failed", request_id=request_id, error=str(e))
        alert_auth_failure(settings, source="webhook", reference=request_id)
        return _response(IntakeResult(status="unauthorized"))

    result = store_raw_email(
        event.get("body"),
        get_header(headers, "content-type"),
        request_id,
        settings,
        is_base64_encoded=event.get("isBase64Encoded"),
    )
    return _response(result)
