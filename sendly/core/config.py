from __future__ import annotations

import re
from typing import Literal

from pydantic import Field, PostgresDsn, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class MissingRequiredSettingsError(Exception):
    """Raised when required settings are missing."""

    def __init__(self, missing_fields: list[str]) -> None:
        """Initialize with list of missing field names."""
        self.missing_fields = missing_fields
        super().__init__(f"Missing required environment variables: {', '.join(missing_fields)}")


class InvalidSettingsError(Exception):
    """Raised when settings are invalid."""

    def __init__(self, invalid_fields: list[tuple[str, str]]) -> None:
        """Initialize with list of invalid field names and messages."""
        self.invalid_fields = invalid_fields
        summary = ", ".join(f"{field}: {message}" for field, message in invalid_fields)
        super().__init__(f"Invalid environment variables: {summary}")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Required environment variables
    postgres_user: str = Field(..., description="Postgres user (required)")
    postgres_password: str = Field(..., description="Postgres password (required)")
    postgres_host: str = Field(..., description="Postgres host (required)")
    postgres_port: int = Field(..., description="Postgres port (required)")
    postgres_db: str = Field(..., description="Postgres database name (required)")
    redis_host: str = Field(..., description="Redis host (required)")
    redis_port: int = Field(..., description="Redis port (required)")
    redis_db: int = Field(..., description="Redis database number (required)")
    jwt_secret_key: str = Field(
        ..., description="Shared secret of the hosted auth provider's JWTs (required)"
    )

    # Database/Redis urls built from components
    database_url: PostgresDsn | str | None = Field(
        default=None,
        description="Database connection URL",
    )
    rate_limit_storage_url: str | None = Field(
        default=None,
        description="Rate limit storage URL",
    )
    celery_broker_url: str | None = Field(
        default=None,
        description="Celery broker URL",
    )

    @model_validator(mode="after")
    def build_derived_urls(self) -> Settings:
        """Build URLs from components when missing."""
        if self.database_url is None:
            self.database_url = PostgresDsn.build(
                scheme="postgresql+asyncpg",
                username=self.postgres_user,
                password=self.postgres_password,
                host=self.postgres_host,
                port=self.postgres_port,
                path=self.postgres_db,
            )
        redis_url = f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"
        if self.rate_limit_storage_url is None:
            self.rate_limit_storage_url = redis_url
        if self.celery_broker_url is None:
            self.celery_broker_url = redis_url
        return self

    # Adapter credentials. Checked by each adapter at construction time.
    news_api_key: str | None = None
    news_api_base_url: str = "https://newsapi.org/v2/everything"
    resend_api_key: str | None = None
    resend_api_base_url: str = "https://api.resend.com"
    email_from: str = "Sendly <onboarding@resend.dev>"
    openai_api_key: str | None = None
    openai_model: str = "gpt-4o-mini"
    stripe_webhook_secret: str | None = None
    stripe_pro_price_id: str | None = None
    stripe_premium_price_id: str | None = None

    # Article fetching
    articles_per_topic: int = Field(default=5, ge=1, le=20)
    max_concurrent_fetches: int = Field(default=3, ge=1, le=5)
    fetch_pacing_seconds: float = Field(default=0.2, ge=0)
    rate_limit_backoff_seconds: float = Field(default=60.0, ge=0)
    article_cache_ttl_seconds: float = Field(default=300.0, ge=0)
    article_lookback_days: int = Field(default=7, ge=1)
    article_language: str = "en"
    filter_low_value_articles: bool = True
    news_request_timeout_seconds: float = 15.0

    # Content and scheduling
    max_articles_per_section: int = Field(default=5, ge=2, le=5)
    content_strategy: Literal["template", "ai"] = "template"
    delivery_hour: int = Field(default=9, ge=0, le=23)
    schedule_timezone: str = "UTC"
    reactivation_delay_minutes: int = Field(default=5, ge=0)
    dispatch_batch_size: int = Field(default=100, ge=1)
    # Longer than a run can stay in flight: every attempt at the task time limit plus backoff.
    dispatch_stale_after_minutes: int = Field(default=180, ge=1)

    # Optional environment variables (defaults provided)
    app_name: str = "sendly"
    environment: str = "local"
    log_level: str = "INFO"
    jwt_algorithm: str = "HS256"
    jwt_audience: str = "authenticated"

    @staticmethod
    def _is_strong_jwt_secret(secret: str) -> bool:
        if len(secret) < 32:
            return False
        has_lower = re.search(r"[a-z]", secret) is not None
        has_upper = re.search(r"[A-Z]", secret) is not None
        has_digit = re.search(r"\d", secret) is not None
        has_symbol = re.search(r"[^\w\s]", secret) is not None
        return has_lower and has_upper and has_digit and has_symbol

    @model_validator(mode="after")
    def validate_jwt_secret_strength(self) -> Settings:
        if not self._is_strong_jwt_secret(self.jwt_secret_key):
            raise ValueError(
                "JWT secret key must be at least 32 characters and include upper, lower, "
                "number, and symbol characters."
            )
        return self


def validate_settings() -> Settings:
    """Validate settings and raise exception for missing required fields.

    Raises:
        MissingRequiredSettingsError: If required environment variables are missing
        InvalidSettingsError: If environment variables fail validation
    """
    try:
        return Settings()  # type: ignore[call-arg]
    except ValidationError as e:
        missing_fields: list[str] = []
        for error in e.errors():
            if error["type"] == "missing":
                field_name = error["loc"][0] if error["loc"] else "unknown"
                missing_fields.append(str(field_name).upper())

        if missing_fields:
            raise MissingRequiredSettingsError(missing_fields) from e

        invalid_fields: list[tuple[str, str]] = []
        for error in e.errors():
            field_path = ".".join(str(part) for part in error.get("loc", []))
            message = error.get("msg", "Invalid value")
            invalid_fields.append((field_path or "unknown", message))

        if invalid_fields:
            raise InvalidSettingsError(invalid_fields) from e

        raise


# Validate settings at import time.
# Exceptions will propagate to the importing module (e.g., sendly/main.py)
settings = validate_settings()
