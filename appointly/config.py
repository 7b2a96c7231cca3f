"""Appointly configuration loaded from environment variables."""

from __future__ import annotations

import json
from pydantic_settings import BaseSettings
from pydantic import Field, AliasChoices


class Settings(BaseSettings):
    """Application settings loaded from .env file."""

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./appointly.db",
        alias="DATABASE_URL",
    )
    auto_create_schema: bool = Field(default=True, alias="AUTO_CREATE_SCHEMA")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8080, validation_alias=AliasChoices("PORT", "SERVER_PORT"))
    cors_origins: str = Field(default='["http://localhost:3000"]', alias="CORS_ORIGINS")
    app_env: str = Field(default="development", alias="APP_ENV")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    strict_startup_validation: bool = Field(default=False, alias="STRICT_STARTUP_VALIDATION")
    rate_limit_default: str = Field(default="100/minute", alias="RATE_LIMIT_DEFAULT")

    # Tenancy
    tenant_cache_refresh_seconds: int = Field(default=300, alias="TENANT_CACHE_REFRESH_SECONDS")
    default_schema: str = Field(default="public", alias="DEFAULT_SCHEMA")
    auto_provision_schemas: bool = Field(default=True, alias="AUTO_PROVISION_SCHEMAS")

    # Platform API (tenant registry + cache admin)
    platform_api_key: str = Field(default="", alias="PLATFORM_API_KEY")

    # Booking
    default_appointment_duration: int = Field(default=60, alias="DEFAULT_APPOINTMENT_DURATION")
    max_appointment_duration: int = Field(default=480, alias="MAX_APPOINTMENT_DURATION")

    @property
    def is_production(self) -> bool:
        return self.app_env.lower() in {"production", "prod"}

    @property
    def is_postgres(self) -> bool:
        return "postgresql" in self.database_url

    @property
    def cors_origins_list(self) -> list[str]:
        raw = (self.cors_origins or "").strip()
        if not raw:
            return []

        # Supports JSON list format and comma-separated format.
        if raw.startswith("["):
            try:
                parsed = json.loads(raw)
                if isinstance(parsed, list):
                    return [str(origin).strip() for origin in parsed if str(origin).strip()]
            except json.JSONDecodeError:
                pass

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}


settings = Settings()
