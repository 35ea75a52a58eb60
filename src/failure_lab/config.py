"""Runtime configuration for the failure lab service."""

from __future__ import annotations

import logging
from functools import lru_cache
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration sourced from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FAILURE_LAB_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    service_name: str = Field(default="failure-lab")
    service_version: str = Field(default="0.1.0")
    # Bare HOST/PORT are honoured so the bind address and the loopback URL agree
    api_host: str = Field(default="127.0.0.1", validation_alias=AliasChoices("FAILURE_LAB_API_HOST", "HOST"))
    api_port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        validation_alias=AliasChoices("FAILURE_LAB_API_PORT", "PORT"),
    )
    log_level: str = Field(default="INFO", description="Python logging level.")
    log_json: bool = Field(default=True, description="Render JSON lines instead of console output.")

    # Bounded request pool shared by sync endpoints and simulator work
    worker_threads: int = Field(default=5, ge=1)

    fanout_enabled: bool = Field(default=True)
    fanout_mode: Literal["http", "local"] = Field(default="http")
    fanout_base_url: str | None = Field(
        default=None,
        description="Base URL for loopback fan-out calls. Defaults to the local API address.",
    )

    database_url: str = Field(default="sqlite+pysqlite:///:memory:")

    scheduled_logging_enabled: bool = Field(default=True)
    heartbeat_interval_seconds: float = Field(default=30.0, gt=0)
    system_status_interval_seconds: float = Field(default=60.0, gt=0)
    database_status_interval_seconds: float = Field(default=120.0, gt=0)
    detailed_status_interval_seconds: float = Field(default=300.0, gt=0)

    otel_enabled: bool = Field(default=False)
    otel_exporter_otlp_endpoint: str = Field(default="http://localhost:4318/v1/traces")

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        """Normalise configured log level to uppercase.

        Args:
            value: The log level string to normalize.

        Returns:
            The uppercase log level string.

        """
        return str(value or "").upper() or "INFO"

    @property
    def log_level_value(self) -> int:
        """Return the numeric logging level for configured log level."""
        level_names = logging.getLevelNamesMapping()
        return level_names.get(self.log_level, logging.INFO)

    @property
    def loopback_url(self) -> str:
        """Return the base URL used for fan-out calls back into this service."""
        if self.fanout_base_url:
            return self.fanout_base_url.rstrip("/")
        host = "127.0.0.1" if self.api_host in {"0.0.0.0", "::"} else self.api_host  # noqa: S104
        return f"http://{host}:{self.api_port}"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance.

    Returns:
        The cached Settings instance.

    """
    return Settings()
