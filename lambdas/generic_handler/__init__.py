"""
GenericInboundEmailHandler Lambda

Consumes notification payloads published by handle_sqs_messages.

Flow:
    SNS Topic
    → This Lambda
    → route_notification (business-specific extension)
"""

from lambdas.generic_handler.handler import lambda_handler, route_notification

__all__ = [
    "lambda_handler",
    "route_notification",
]
