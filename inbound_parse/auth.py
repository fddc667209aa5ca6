"""
Webhook Basic Authentication

The inbound parse webhook is secured with a username/password entered in the
provider's settings, which arrives as an ``Authorization: Basic ...`` header
(or, on the direct API -> SQS route, as an ``authorization`` message attribute).
"""

import base64
import hmac
import json

import structlog

from inbound_parse.config import Settings
from inbound_parse.exceptions import AuthenticationFailedError, PublishError
from inbound_parse.tools.sns import publish_message

log = structlog.get_logger()


def build_basic_auth_header(username: str, password: str) -> str:
    """Build the ``Basic <base64(username:password)>`` value the webhook must present."""
    token = base64.b64encode(f"{username}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def is_authorized(presented: str | None, username: str, password: str) -> bool:
    """
    Compare a presented Authorization value against the expected credential.

    Uses a constant-time comparison. A missing or empty value never matches.
    """
    if not presented:
        return False
    expected = build_basic_auth_header(username, password)
    return hmac.compare_digest(presented.encode("utf-8"), expected.encode("utf-8"))


def require_authorized(presented: str | None, settings: Settings, *, source: str) -> None:
    """
    Raise AuthenticationFailedError unless the presented value matches settings.

    Args:
        presented: Authorization header / attribute value
        settings: Settings carrying the expected user and password
        source: Where the credential came from (for logging)
    """
    if not is_authorized(presented, settings.user, settings.password.get_secret_value()):
        raise AuthenticationFailedError(source=source)


def alert_auth_failure(settings: Settings, *, source: str, reference: str | None = None) -> bool:
    """
    Notify operators of a failed webhook authentication.

    Only sends when an alert topic is configured. Alert failures are logged
    and never raised.

    Returns:
        True if an alert was published
    """
    if not settings.auth_alert_topic_arn:
        return False

    alert = {
        "alert": "basic_auth_failed",
        "source": source,
        "reference": reference,
    }
    try:
        publish_message(json.dumps(alert), topic_arn=settings.auth_alert_topic_arn)
    except PublishError as e:
        log.error("auth_alert_publish_failed", source=source, error=str(e))
        return False
    return True
