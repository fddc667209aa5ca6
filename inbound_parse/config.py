"""
Configuration Management

Pydantic-settings based configuration for the inbound parse pipeline.
All settings can be overridden via environment variables.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with INBOUND_PARSE_ and are case-insensitive.
    Example: INBOUND_PARSE_PROCESSED_EMAIL_BUCKET=my-bucket
    """

    model_config = SettingsConfigDict(
        env_prefix="INBOUND_PARSE_",
        env_file=[".env.local", ".env"],  # Try .env.local first
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Webhook Basic Auth (entered in the provider's Inbound Parse settings)
    user: str = Field(
        default="",
        description="Expected Basic Auth username for the webhook",
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Expected Basic Auth password for the webhook",
    )

    # S3 Configuration
    raw_inbound_email_bucket: str = Field(
        default="raw-inbound-email",
        description="Bucket receiving the untouched webhook payloads",
    )
    processed_email_bucket: str = Field(
        default="sendgrid-inbound-parse",
        description="Bucket for email.json records and attachments",
    )
    s3_endpoint_url: str | None = Field(
        default=None,
        description="S3 endpoint URL (for local development)",
    )
    multipart_threshold_bytes: int = Field(
        default=8 * 1024 * 1024,
        ge=5 * 1024 * 1024,
        description="Payload size above which uploads switch to multipart",
    )
    multipart_chunksize_bytes: int = Field(
        default=8 * 1024 * 1024,
        ge=5 * 1024 * 1024,
        description="Part size for multipart uploads",
    )
    transfer_max_concurrency: int = Field(
        default=2,
        ge=1,
        description="Threads per managed upload (runs inside the batch and part pools)",
    )

    # SNS Configuration
    sns_topic_arn: str | None = Field(
        default=None,
        description="Topic receiving the reduced notification payload",
    )
    auth_alert_topic_arn: str | None = Field(
        default=None,
        description="Optional topic alerted when webhook authentication fails",
    )
    sns_endpoint_url: str | None = Field(
        default=None,
        description="SNS endpoint URL (for local development)",
    )

    # AWS Configuration
    aws_region: str = Field(
        default="us-east-1",
        description="AWS region",
    )

    # Application Configuration
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )
    max_workers: int = Field(
        default=8,
        ge=1,
        description="Thread pool size for batch records and multipart parts",
    )

    @property
    def s3_config(self) -> dict:
        """S3 client configuration."""
        config = {"region_name": self.aws_region}
        if self.s3_endpoint_url:
            config["endpoint_url"] = self.s3_endpoint_url
        return config

    @property
    def sns_config(self) -> dict:
        """SNS client configuration."""
        config = {"region_name": self.aws_region}
        if self.sns_endpoint_url:
            config["endpoint_url"] = self.sns_endpoint_url
        return config


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Get cached application settings.

    Uses lru_cache to ensure settings are loaded only once.
    Call get_settings.cache_clear() in tests after changing the environment.
    """
    return Settings()
