"""
Unit tests for the HandleSqsMessages Lambda handler.

Tests cover:
- Attachment handler: attachment_handler.py
- Publisher: publisher.py
- Batch handler: handler.py (moto-backed S3 and SNS)
"""

import base64
from unittest.mock import MagicMock, patch

from botocore.exceptions import ClientError

from tests.utils.aws_helpers import (
    PROCESSED_BUCKET,
    RAW_BUCKET,
    list_keys,
    published_messages,
    read_json,
)

RAW_KEY = "2025-02-06/req-boundary-xYzZY-email.b64"


def _stage_raw_email(s3, body: bytes, key: str = RAW_KEY) -> str:
    s3.put_object(Bucket=RAW_BUCKET, Key=key, Body=base64.b64encode(body))
    return key


def _record(**extra):
    from inbound_parse.models import NormalizedEmailRecord, NotificationPayload

    return NormalizedEmailRecord.model_validate(
        {
            "messageId": "msg-pub",
            "receivedTimestamp": 1738800000000,
            "headers": None,
            "notificationPayload": NotificationPayload(message_id="msg-pub", subject="Hi"),
            "subject": "Hi",
            **extra,
        }
    )


# ============================================================================
# Attachment Handler Tests
# ============================================================================

class TestStoreAttachment:
    """Tests for store_attachment."""

    def test_stored_under_message_prefix(self, mock_s3):
        """Test the attachment is written beside email.json with its type."""
        from lambdas.handle_sqs_messages.attachment_handler import store_attachment

        info = store_attachment("msg-1", "scan.png", "image/png", b"\x89PNG data")

        assert info.key == "msg-1/scan.png"
        assert info.s3_path == f"s3://{PROCESSED_BUCKET}/msg-1/scan.png"
        assert info.size_bytes == 9
        head = mock_s3.head_object(Bucket=PROCESSED_BUCKET, Key="msg-1/scan.png")
        assert head["ContentType"] == "image/png"

    def test_default_content_type(self, mock_s3):
        """Test a part without a type is stored as octet-stream."""
        from lambdas.handle_sqs_messages.attachment_handler import store_attachment

        info = store_attachment("msg-1", "blob", None, b"\x00\x01")

        assert info.content_type == "application/octet-stream"


# ============================================================================
# Publisher Tests
# ============================================================================

class TestPersistAndPublish:
    """Tests for persist_and_publish."""

    def test_both_succeed(self, mock_aws_all):
        """Test email.json is saved and the notification published."""
        from lambdas.handle_sqs_messages.publisher import persist_and_publish

        outcome = persist_and_publish(_record(text="body"))

        assert outcome.record_key == "msg-pub/email.json"
        assert outcome.record_saved and outcome.notification_published
        assert outcome.errors == ()
        saved = read_json(mock_aws_all["s3"], PROCESSED_BUCKET, "msg-pub/email.json")
        assert saved["text"] == "body"
        assert published_messages(mock_aws_all) == [{"messageId": "msg-pub", "subject": "Hi"}]

    def test_publish_failure_keeps_record(self, mock_aws_all):
        """Test a failed publish does not roll back the saved record."""
        from lambdas.handle_sqs_messages.publisher import persist_and_publish

        sns_client = MagicMock()
        sns_client.publish.side_effect = ClientError(
            {"Error": {"Code": "NotFound", "Message": "Topic does not exist"}},
            "Publish",
        )

        outcome = persist_and_publish(_record(), sns_client=sns_client)

        assert outcome.record_saved is True
        assert outcome.notification_published is False
        assert len(outcome.errors) == 1
        assert "msg-pub/email.json" in list_keys(mock_aws_all["s3"], PROCESSED_BUCKET)

    def test_save_failure_still_publishes(self, mock_aws_all):
        """Test the notification goes out even when email.json cannot be written."""
        from lambdas.handle_sqs_messages.publisher import persist_and_publish

        s3_client = MagicMock()
        s3_client.put_object.side_effect = ClientError(
            {"Error": {"Code": "AccessDenied", "Message": "Access Denied"}},
            "PutObject",
        )

        outcome = persist_and_publish(_record(), s3_client=s3_client)

        assert outcome.record_saved is False
        assert outcome.notification_published is True
        assert len(published_messages(mock_aws_all)) == 1


# ============================================================================
# Handler Tests
# ============================================================================

class TestLambdaHandler:
    """Tests for the SQS lambda_handler."""

    def test_forwarded_email_end_to_end(self, mock_aws_all, generator, sample_body):
        """Test an S3-event record produces email.json, attachment and notification."""
        from lambdas.handle_sqs_messages.handler import lambda_handler

        s3 = mock_aws_all["s3"]
        key = _stage_raw_email(s3, sample_body)
        event = {"Records": [generator.s3_event_record(RAW_BUCKET, key, message_id="msg-100")]}

        result = lambda_handler(event, MagicMock())

        assert result["counts"] == {"processed": 1}
        unit = result["units"][0]
        assert unit["source"] == "forwarded"
        assert unit["attachments_stored"] == 1
        assert unit["record_saved"] and unit["notification_published"]

        assert list_keys(s3, PROCESSED_BUCKET) == ["msg-100/email.json", "msg-100/report.pdf"]
        attachment = s3.get_object(Bucket=PROCESSED_BUCKET, Key="msg-100/report.pdf")["Body"].read()
        assert attachment == b"%PDF-1.4 quarterly numbers"

        record = read_json(s3, PROCESSED_BUCKET, "msg-100/email.json")
        assert record["messageId"] == "msg-100"
        assert record["receivedTimestamp"] == 1738800000000
        assert record["subject"] == "Quarterly report"
        assert record["customfield"] == "X"
        assert record["headers"] == {"X-Test": "value", "Foo": "Bar", "MIME-Version": "1.0"}

        notifications = published_messages(mock_aws_all)
        assert notifications == [
            {
                "messageId": "msg-100",
                "receivedTimestamp": 1738800000000,
                "to": "inbound@parse.example.com",
                "from": "Jane Doe <jane@example.org>",
                "subject": "Quarterly report",
                "attachments": "1",
            }
        ]
        assert record["notificationPayload"] == notifications[0]

    def test_direct_email_end_to_end(self, mock_aws_all, generator, sample_body, valid_authorization):
        """Test an authenticated direct record is processed without the raw bucket."""
        from lambdas.handle_sqs_messages.handler import lambda_handler

        record = generator.direct_record(sample_body, authorization=valid_authorization, message_id="msg-200")

        result = lambda_handler({"Records": [record]}, MagicMock())

        assert result["units"][0]["status"] == "processed"
        assert result["units"][0]["source"] == "direct"
        assert "msg-200/email.json" in list_keys(mock_aws_all["s3"], PROCESSED_BUCKET)
        assert list_keys(mock_aws_all["s3"], RAW_BUCKET) == []

    def test_test_event_skipped(self, mock_aws_all, generator):
        """Test the S3 test notification produces no writes or publishes."""
        from lambdas.handle_sqs_messages.handler import lambda_handler

        result = lambda_handler({"Records": [generator.s3_test_event_record()]}, MagicMock())

        assert result["counts"] == {"skipped": 1}
        assert list_keys(mock_aws_all["s3"], PROCESSED_BUCKET) == []
        assert published_messages(mock_aws_all) == []

    def test_bad_auth_no_side_effects(self, mock_aws_all, generator, sample_body):
        """Test a direct record with the wrong credential is dropped."""
        from inbound_parse.auth import build_basic_auth_header
        from lambdas.handle_sqs_messages.handler import lambda_handler

        record = generator.direct_record(
            sample_body, authorization=build_basic_auth_header("parse-user", "wrong")
        )

        result = lambda_handler({"Records": [record]}, MagicMock())

        assert result["counts"] == {"unauthorized": 1}
        assert list_keys(mock_aws_all["s3"], PROCESSED_BUCKET) == []
        assert published_messages(mock_aws_all) == []

    def test_reprocessing_overwrites(self, mock_aws_all, generator, sample_body):
        """Test a redelivered record rewrites the same keys."""
        from lambdas.handle_sqs_messages.handler import lambda_handler

        s3 = mock_aws_all["s3"]
        key = _stage_raw_email(s3, sample_body)
        record = generator.s3_event_record(RAW_BUCKET, key, message_id="msg-300")

        lambda_handler({"Records": [record]}, MagicMock())
        first = read_json(s3, PROCESSED_BUCKET, "msg-300/email.json")
        lambda_handler({"Records": [record]}, MagicMock())
        second = read_json(s3, PROCESSED_BUCKET, "msg-300/email.json")

        assert list_keys(s3, PROCESSED_BUCKET) == ["msg-300/email.json", "msg-300/report.pdf"]
        assert first == second

    def test_one_failure_does_not_stop_batch(self, mock_aws_all, generator, sample_body):
        """Test sibling records still complete when one fails."""
        from lambdas.handle_sqs_messages.handler import lambda_handler

        s3 = mock_aws_all["s3"]
        key = _stage_raw_email(s3, sample_body)
        good = generator.s3_event_record(RAW_BUCKET, key, message_id="msg-ok")
        missing = generator.s3_event_record(
            RAW_BUCKET, "2025-02-06/gone-boundary-xYzZY-email.b64", message_id="msg-missing"
        )

        result = lambda_handler({"Records": [missing, good]}, MagicMock())

        statuses = {unit["message_id"]: unit["status"] for unit in result["units"]}
        assert statuses == {"msg-missing": "failed", "msg-ok": "processed"}
        assert result["error_count"] == 1
        assert "msg-ok/email.json" in list_keys(s3, PROCESSED_BUCKET)

    def test_failed_attachment_reported(self, mock_aws_all, generator, sample_body):
        """Test a failing attachment upload leaves the record and notification intact."""
        from inbound_parse.exceptions import StorageWriteError
        from lambdas.handle_sqs_messages.handler import lambda_handler

        s3 = mock_aws_all["s3"]
        key = _stage_raw_email(s3, sample_body)
        record = generator.s3_event_record(RAW_BUCKET, key, message_id="msg-400")

        with patch(
            "lambdas.handle_sqs_messages.multipart_parser.store_attachment",
            side_effect=StorageWriteError(PROCESSED_BUCKET, "msg-400/report.pdf", "boom"),
        ):
            result = lambda_handler({"Records": [record]}, MagicMock())

        unit = result["units"][0]
        assert unit["status"] == "processed"
        assert unit["attachments_failed"] == 1
        assert unit["errors"][0].startswith("report.pdf:")
        assert list_keys(s3, PROCESSED_BUCKET) == ["msg-400/email.json"]
        assert len(published_messages(mock_aws_all)) == 1

    def test_undecodable_body_fails(self, mock_aws_all, generator, valid_authorization):
        """Test a direct body without the boundary is a failed unit."""
        from lambdas.handle_sqs_messages.handler import lambda_handler

        record = generator.direct_record(b"no multipart here", authorization=valid_authorization)

        result = lambda_handler({"Records": [record]}, MagicMock())

        assert result["counts"] == {"failed": 1}
        assert list_keys(mock_aws_all["s3"], PROCESSED_BUCKET) == []

    def test_empty_batch(self):
        """Test an event without records returns an empty summary."""
        from lambdas.handle_sqs_messages.handler import lambda_handler

        result = lambda_handler({"Records": []}, MagicMock())

        assert result == {"records": 0, "counts": {}, "error_count": 0, "units": []}

    def test_result_lists_stored_attachments(self, mock_aws_all, generator, sample_body):
        """Test the unit result names each stored attachment object."""
        from lambdas.handle_sqs_messages.handler import lambda_handler

        key = _stage_raw_email(mock_aws_all["s3"], sample_body)
        record = generator.s3_event_record(RAW_BUCKET, key, message_id="msg-500")

        result = lambda_handler({"Records": [record]}, MagicMock())

        assert result["units"][0]["attachments"] == [
            {
                "filename": "report.pdf",
                "s3_path": f"s3://{PROCESSED_BUCKET}/msg-500/report.pdf",
                "content_type": "application/pdf",
                "size_bytes": len(b"%PDF-1.4 quarterly numbers"),
            }
        ]


class TestBatchConcurrency:
    """Tests that records of one batch are processed in parallel."""

    def test_records_processed_concurrently(self, generator):
        """Test two records are in flight at the same time."""
        import threading

        from lambdas.handle_sqs_messages.handler import UnitResult, lambda_handler

        barrier = threading.Barrier(2, timeout=2)

        def gated_process_record(record, settings):
            barrier.wait()
            return UnitResult(message_id=record["messageId"], status="processed")

        records = [
            generator.s3_event_record(RAW_BUCKET, "k1", message_id="msg-a"),
            generator.s3_event_record(RAW_BUCKET, "k2", message_id="msg-b"),
        ]

        with patch("lambdas.handle_sqs_messages.handler.process_record", side_effect=gated_process_record):
            result = lambda_handler({"Records": records}, MagicMock())

        # A sequential run breaks the barrier and both units settle as failed
        assert result["counts"] == {"processed": 2}
        assert [unit["message_id"] for unit in result["units"]] == ["msg-a", "msg-b"]
        assert barrier.broken is False

    def test_unit_exception_is_contained(self, generator):
        """Test an unexpected error in one record settles as failed without raising."""
        from lambdas.handle_sqs_messages.handler import UnitResult, lambda_handler

        def flaky_process_record(record, settings):
            if record["messageId"] == "msg-bad":
                raise RuntimeError("boom")
            return UnitResult(message_id=record["messageId"], status="processed")

        records = [
            generator.s3_event_record(RAW_BUCKET, "k1", message_id="msg-bad"),
            generator.s3_event_record(RAW_BUCKET, "k2", message_id="msg-good"),
        ]

        with patch("lambdas.handle_sqs_messages.handler.process_record", side_effect=flaky_process_record):
            result = lambda_handler({"Records": records}, MagicMock())

        statuses = {unit["message_id"]: unit["status"] for unit in result["units"]}
        assert statuses == {"msg-bad": "failed", "msg-good": "processed"}
        assert result["units"][0]["errors"] == ["boom"]
