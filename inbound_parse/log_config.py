"""
Structured logging setup shared by the Lambda entry points.

Lambda ships stdlib log records to CloudWatch; structlog renders them as
one JSON object per line.
"""

import logging

import structlog

from inbound_parse.config import get_settings


def configure_logging(level: str | None = None) -> None:
    """Configure structlog JSON output at the configured log level."""
    logging.basicConfig(format="%(message)s")
    logging.getLogger().setLevel(level or get_settings().log_level)

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
