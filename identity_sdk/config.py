"""SDK settings and logging configuration."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from functools import lru_cache
from typing import Any, Literal

import structlog
from pydantic import AnyHttpUrl, BaseModel, Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_LOG_CONTEXT: dict[str, str] = {"environment": "development", "service": "identity-sdk"}


class APIKeySettings(BaseModel):
    """API key pair used for service authentication and ID Site signing."""

    id: str = Field(min_length=1)
    secret: SecretStr


class ClientSettings(BaseModel):
    """Identity service endpoint and runtime settings."""

    application_href: str = Field(description="Href of the application users log in to.")
    timeout_seconds: float = Field(default=5.0, gt=0)
    environment: Literal["development", "staging", "production"] = "development"
    service: str = "identity-sdk"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"

    @field_validator("application_href")
    @classmethod
    def validate_application_href(cls, value: str) -> str:
        """Ensure the application is addressed by an absolute href."""
        if not value.startswith(("http://", "https://")) or "/applications/" not in value:
            raise ValueError("client.application_href must be an absolute application href.")
        return value.rstrip("/")


class IdSiteSettings(BaseModel):
    """Hosted login (ID Site) settings."""

    sso_base_url: AnyHttpUrl | None = None
    clock_skew_seconds: int = Field(default=60, ge=0)


class Settings(BaseSettings):
    """Root SDK settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: APIKeySettings
    client: ClientSettings
    id_site: IdSiteSettings = Field(default_factory=IdSiteSettings)


def _standard_log_fields(_: Any, __: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Inject required structured logging fields."""
    context_vars = structlog.contextvars.get_contextvars()
    event_dict.setdefault("correlation_id", str(context_vars.get("correlation_id", "unknown")))
    event_dict.setdefault("environment", _LOG_CONTEXT["environment"])
    event_dict.setdefault("service", _LOG_CONTEXT["service"])
    event_dict.setdefault("timestamp", datetime.now(UTC).isoformat())
    return event_dict


def configure_structlog(settings: Settings) -> None:
    """Configure structlog for JSON output with required fields."""
    _LOG_CONTEXT["environment"] = settings.client.environment
    _LOG_CONTEXT["service"] = settings.client.service

    log_level = getattr(logging, settings.client.log_level, logging.INFO)
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            _standard_log_fields,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        context_class=dict,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


@lru_cache
def get_settings() -> Settings:
    """Load and cache SDK settings from environment variables."""
    return Settings()
