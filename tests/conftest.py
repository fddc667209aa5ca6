"""
Pytest Configuration and Shared Fixtures

Provides moto AWS mocking, sample payloads, and test utilities.
"""

import os
from typing import Generator

import boto3
import pytest
from moto import mock_aws

# Set test environment before importing application modules
os.environ["INBOUND_PARSE_USER"] = "parse-user"
os.environ["INBOUND_PARSE_PASSWORD"] = "parse-secret"
os.environ["INBOUND_PARSE_RAW_INBOUND_EMAIL_BUCKET"] = "test-raw-inbound-email"
os.environ["INBOUND_PARSE_PROCESSED_EMAIL_BUCKET"] = "test-inbound-parse"
os.environ["INBOUND_PARSE_SNS_TOPIC_ARN"] = (
    "arn:aws:sns:us-east-1:123456789012:test-inbound-email-notifications"
)
os.environ["INBOUND_PARSE_AWS_REGION"] = "us-east-1"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"

from inbound_parse.config import Settings, get_settings  # noqa: E402
from inbound_parse.tools import s3 as s3_tools  # noqa: E402
from inbound_parse.tools import sns as sns_tools  # noqa: E402
from tests.utils.aws_helpers import PROCESSED_BUCKET, RAW_BUCKET, TOPIC_NAME  # noqa: E402
from tests.utils.event_generator import MockEventGenerator  # noqa: E402


@pytest.fixture(autouse=True)
def reset_cached_clients() -> Generator[None, None, None]:
    """Drop cached settings and boto3 clients so each test sees its own mocks."""
    get_settings.cache_clear()
    s3_tools._create_client.cache_clear()
    sns_tools._create_client.cache_clear()
    yield
    get_settings.cache_clear()
    s3_tools._create_client.cache_clear()
    sns_tools._create_client.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings built from the test environment."""
    return get_settings()


@pytest.fixture
def generator() -> MockEventGenerator:
    """Seeded event generator."""
    return MockEventGenerator(seed=42)


@pytest.fixture
def valid_authorization(settings: Settings) -> str:
    """Authorization value matching the configured credentials."""
    from inbound_parse.auth import build_basic_auth_header

    return build_basic_auth_header(settings.user, settings.password.get_secret_value())


# --- AWS Mocking Fixtures ---


@pytest.fixture
def aws_credentials():
    """Mock AWS credentials for moto."""
    return {
        "aws_access_key_id": "testing",
        "aws_secret_access_key": "testing",
        "region_name": "us-east-1",
    }


@pytest.fixture
def mock_s3(aws_credentials):
    """Create mocked raw intake and processed email buckets."""
    with mock_aws():
        s3 = boto3.client("s3", **aws_credentials)
        s3.create_bucket(Bucket=RAW_BUCKET)
        s3.create_bucket(Bucket=PROCESSED_BUCKET)
        yield s3


@pytest.fixture
def mock_aws_all(aws_credentials):
    """
    Mock every AWS service the pipeline touches.

    The notification topic is subscribed to an SQS queue so tests can read
    back what was published.
    """
    with mock_aws():
        s3 = boto3.client("s3", **aws_credentials)
        s3.create_bucket(Bucket=RAW_BUCKET)
        s3.create_bucket(Bucket=PROCESSED_BUCKET)

        sns = boto3.client("sns", **aws_credentials)
        topic_arn = sns.create_topic(Name=TOPIC_NAME)["TopicArn"]

        sqs = boto3.client("sqs", **aws_credentials)
        queue_url = sqs.create_queue(QueueName="notification-capture")["QueueUrl"]
        queue_arn = sqs.get_queue_attributes(
            QueueUrl=queue_url, AttributeNames=["QueueArn"]
        )["Attributes"]["QueueArn"]
        sns.subscribe(TopicArn=topic_arn, Protocol="sqs", Endpoint=queue_arn)

        yield {
            "s3": s3,
            "sns": sns,
            "sqs": sqs,
            "topic_arn": topic_arn,
            "queue_url": queue_url,
        }


# --- Payload Fixtures ---


@pytest.fixture
def sample_fields() -> dict[str, str]:
    """Fixed form fields of an inbound parse email."""
    return {
        "to": "inbound@parse.example.com",
        "from": "Jane Doe <jane@example.org>",
        "subject": "Quarterly report",
        "text": "Report attached.",
        "headers": "X-Test: value\n'Foo': 'Bar'\nMIME-Version: 1.0\n",
        "attachments": "1",
        "customfield": "X",
    }


@pytest.fixture
def sample_attachment() -> tuple[str, str, str, bytes]:
    """Single PDF attachment part."""
    return ("attachment1", "report.pdf", "application/pdf", b"%PDF-1.4 quarterly numbers")


@pytest.fixture
def sample_body(
    generator: MockEventGenerator,
    sample_fields: dict[str, str],
    sample_attachment: tuple[str, str, str, bytes],
) -> bytes:
    """Multipart body with the sample fields and attachment."""
    return generator.build_multipart_body(sample_fields, [sample_attachment])
