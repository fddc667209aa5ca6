#!/usr/bin/env python3
"""
Local Pipeline Runner

Pushes one inbound parse email through all three Lambdas against moto-mocked
S3, SNS and SQS, and prints what each stage produced.

Usage:
    # Sample email with no attachments
    python scripts/run_local_pipeline.py

    # Attach local files and pick the subject
    python scripts/run_local_pipeline.py --subject "Invoice" --attach invoice.pdf --attach logo.png

    # Route through the direct API -> SQS path instead of S3
    python scripts/run_local_pipeline.py --direct

    # Show the failed-auth behaviour
    python scripts/run_local_pipeline.py --bad-password
"""

import argparse
import base64
import json
import mimetypes
import os
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any
from urllib.parse import quote_plus
from uuid import uuid4

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Set environment for local mode BEFORE any other imports
os.environ.setdefault("INBOUND_PARSE_USER", "local-user")
os.environ.setdefault("INBOUND_PARSE_PASSWORD", "local-password")
os.environ["INBOUND_PARSE_RAW_INBOUND_EMAIL_BUCKET"] = "raw-inbound-email-local"
os.environ["INBOUND_PARSE_PROCESSED_EMAIL_BUCKET"] = "inbound-parse-local"
os.environ["INBOUND_PARSE_AWS_REGION"] = "us-east-1"
os.environ["INBOUND_PARSE_LOG_LEVEL"] = "DEBUG"
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

from moto import mock_aws

mock = mock_aws()
mock.start()

import boto3
import structlog

from inbound_parse.auth import build_basic_auth_header
from inbound_parse.config import get_settings
from lambdas.generic_handler.handler import lambda_handler as generic_handler
from lambdas.handle_sqs_messages.handler import lambda_handler as handle_sqs_messages
from lambdas.inbound_email_to_s3.handler import lambda_handler as inbound_email_to_s3

# The handlers configure JSON logging on import; switch to console output
structlog.configure(
    processors=[
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

log = structlog.get_logger()

BOUNDARY = "xYzZY"
CONTEXT = SimpleNamespace(aws_request_id="local")


def setup_local_aws() -> dict[str, Any]:
    """Create buckets, the notification topic and a queue capturing it."""
    settings = get_settings()
    s3 = boto3.client("s3", region_name=settings.aws_region)
    s3.create_bucket(Bucket=settings.raw_inbound_email_bucket)
    s3.create_bucket(Bucket=settings.processed_email_bucket)

    sns = boto3.client("sns", region_name=settings.aws_region)
    topic_arn = sns.create_topic(Name="inbound-email-notifications-local")["TopicArn"]

    sqs = boto3.client("sqs", region_name=settings.aws_region)
    queue_url = sqs.create_queue(QueueName="notification-capture-local")["QueueUrl"]
    queue_arn = sqs.get_queue_attributes(QueueUrl=queue_url, AttributeNames=["QueueArn"])[
        "Attributes"
    ]["QueueArn"]
    sns.subscribe(TopicArn=topic_arn, Protocol="sqs", Endpoint=queue_arn)

    os.environ["INBOUND_PARSE_SNS_TOPIC_ARN"] = topic_arn
    get_settings.cache_clear()

    log.info("local_aws_ready", topic_arn=topic_arn)
    return {"s3": s3, "sqs": sqs, "queue_url": queue_url}


def build_body(args: argparse.Namespace) -> bytes:
    """Encode the email as the provider's multipart/form-data POST."""
    fields = {
        "to": args.to,
        "from": args.sender,
        "subject": args.subject,
        "text": args.text,
        "headers": f"From: {args.sender}\nTo: {args.to}\nSubject: {args.subject}\nMIME-Version: 1.0\n",
        "attachments": str(len(args.attach)),
    }
    chunks = [
        f'--{BOUNDARY}\r\nContent-Disposition: form-data; name="{name}"\r\n\r\n{value}\r\n'.encode()
        for name, value in fields.items()
    ]
    for index, path in enumerate(args.attach, start=1):
        content_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
        chunks.append(
            (
                f"--{BOUNDARY}\r\n"
                f'Content-Disposition: form-data; name="attachment{index}"; filename="{path.name}"\r\n'
                f"Content-Type: {content_type}\r\n\r\n"
            ).encode()
            + path.read_bytes()
            + b"\r\n"
        )
    chunks.append(f"--{BOUNDARY}--\r\n".encode())
    return b"".join(chunks)


def _print_header(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def _sqs_record(body: str, message_id: str, attributes: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "messageId": message_id,
        "body": body,
        "attributes": {"ApproximateFirstReceiveTimestamp": "1738800000000"},
        "messageAttributes": attributes or {},
    }


def run(args: argparse.Namespace) -> int:
    """Execute the pipeline once; returns a process exit code."""
    aws = setup_local_aws()
    settings = get_settings()
    body = build_body(args)
    password = "wrong" if args.bad_password else settings.password.get_secret_value()
    authorization = build_basic_auth_header(settings.user, password)
    message_id = str(uuid4())

    if args.direct:
        _print_header("DIRECT: API -> SQS")
        record = _sqs_record(
            body.decode("utf-8", errors="replace"),
            message_id,
            {
                "contentType": {"stringValue": f"multipart/form-data; boundary={BOUNDARY}"},
                "authorization": {"stringValue": authorization},
            },
        )
    else:
        _print_header("STEP 1: Webhook -> raw intake bucket")
        response = inbound_email_to_s3(
            {
                "headers": {
                    "Authorization": authorization,
                    "Content-Type": f"multipart/form-data; boundary={BOUNDARY}",
                },
                "requestContext": {"requestId": f"{uuid4().hex[:16]}="},
                "body": base64.b64encode(body).decode("ascii"),
                "isBase64Encoded": True,
            },
            CONTEXT,
        )
        intake = json.loads(response["body"])
        print(json.dumps(intake, indent=2))
        if intake["status"] != "stored":
            return 1

        s3_event = {
            "Records": [
                {
                    "eventSource": "aws:s3",
                    "s3": {
                        "bucket": {"name": settings.raw_inbound_email_bucket},
                        "object": {"key": quote_plus(intake["key"], safe="/")},
                    },
                }
            ]
        }
        record = _sqs_record(json.dumps(s3_event), message_id)

    _print_header("STEP 2: SQS worker")
    result = handle_sqs_messages({"Records": [record]}, CONTEXT)
    print(json.dumps(result, indent=2))

    listing = aws["s3"].list_objects_v2(Bucket=settings.processed_email_bucket)
    for obj in listing.get("Contents", []):
        print(f"  s3://{settings.processed_email_bucket}/{obj['Key']} ({obj['Size']} bytes)")

    _print_header("STEP 3: Notification -> generic handler")
    messages = aws["sqs"].receive_message(QueueUrl=aws["queue_url"], MaxNumberOfMessages=10)
    notifications = [json.loads(m["Body"])["Message"] for m in messages.get("Messages", [])]
    for notification in notifications:
        print(json.dumps(json.loads(notification), indent=2))
    routed = generic_handler(
        {"Records": [{"Sns": {"MessageId": str(uuid4()), "Message": n}} for n in notifications]},
        CONTEXT,
    )
    print(json.dumps(routed, indent=2))

    return 0 if result["counts"].get("processed") == 1 else 1


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Run one inbound email through the pipeline against mocked AWS",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--to", default="inbound@parse.example.com", help="Recipient address")
    parser.add_argument("--from", dest="sender", default="Jane Doe <jane@example.org>", help="Sender")
    parser.add_argument("--subject", default="Local pipeline test", help="Subject line")
    parser.add_argument("--text", default="Hello from the local runner.", help="Plain text body")
    parser.add_argument(
        "--attach",
        type=Path,
        action="append",
        default=[],
        help="File to attach (repeatable)",
    )
    parser.add_argument("--direct", action="store_true", help="Use the direct API -> SQS route")
    parser.add_argument("--bad-password", action="store_true", help="Send a wrong Basic Auth password")

    args = parser.parse_args()

    try:
        sys.exit(run(args))
    finally:
        mock.stop()


if __name__ == "__main__":
    main()
