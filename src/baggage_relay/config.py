"""Settings - environment-driven process configuration."""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Process settings.

    Priority chain: init kwargs > env vars > .env file > defaults
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    rabbitmq_url: str = "amqp://localhost:5672"
    queue_name: str = "otel-baggage-demo"
    api_service_url: str = "http://localhost:3000"

    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=3000, ge=1, le=65535)

    connect_max_attempts: int = Field(default=10, ge=1)
    connect_retry_delay: float = Field(default=2.0, ge=0)

    message_count: int = Field(default=5, ge=0)
    publish_delay: float = Field(default=2.0, ge=0)
    request_source: str = "api-gateway"

    # None keeps the downstream call unbounded.
    downstream_timeout: float | None = Field(default=None, gt=0)
    prefetch_count: int = Field(default=10, ge=1)

    log_level: str = "INFO"

    @field_validator("downstream_timeout", mode="before")
    @classmethod
    def blank_timeout_is_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
