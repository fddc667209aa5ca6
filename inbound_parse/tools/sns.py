"""
SNS Tools

Publishing helpers for the notification topic that fans processed emails
out to downstream consumers.
"""

import threading
from functools import lru_cache

import boto3
from botocore.exceptions import ClientError
import structlog

from inbound_parse.config import get_settings
from inbound_parse.exceptions import PublishError

log = structlog.get_logger()

_client_lock = threading.Lock()


@lru_cache(maxsize=1)
def _create_client():
    settings = get_settings()
    return boto3.session.Session().client("sns", **settings.sns_config)


def _get_client():
    """Get the process-wide SNS client (one per process, even on concurrent first calls)."""
    with _client_lock:
        return _create_client()


def publish_message(
    message: str,
    *,
    topic_arn: str | None = None,
    client=None,
) -> str:
    """
    Publish a message to an SNS topic.

    Args:
        message: Message body (already serialized)
        topic_arn: Override topic (default: configured notification topic)
        client: SNS client override

    Returns:
        SNS message ID

    Raises:
        PublishError: If no topic is configured or the publish fails
    """
    target = topic_arn or get_settings().sns_topic_arn
    if not target:
        raise PublishError(topic_arn=None, error_message="No topic configured")

    sns = client or _get_client()

    try:
        response = sns.publish(TopicArn=target, Message=message)
    except ClientError as e:
        log.error("sns_publish_failed", topic_arn=target, error=str(e))
        raise PublishError(
            topic_arn=target,
            error_code=e.response["Error"]["Code"],
            error_message=e.response["Error"]["Message"],
        ) from e

    message_id = response["MessageId"]
    log.info("message_published", topic_arn=target, sns_message_id=message_id)
    return message_id
