"""
AWS tool implementations shared by the Lambda functions.
"""

from inbound_parse.tools.s3 import get_object_bytes, put_json, upload_stream
from inbound_parse.tools.sns import publish_message

__all__ = [
    "get_object_bytes",
    "publish_message",
    "put_json",
    "upload_stream",
]
