"""
Configuration settings for the cascade pipeline.

Uses Pydantic Settings to load environment variables for per-tier pacing,
retry policy, cache lifetime, logging and the audit store connection.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Tier pacing (minimum seconds between two dispatches of the same tier)
    vehicle_delay_seconds: float = Field(30.0, ge=0, alias="VEHICLE_DELAY_SECONDS")
    plate_delay_seconds: float = Field(30.0, ge=0, alias="PLATE_DELAY_SECONDS")
    person_delay_seconds: float = Field(30.0, ge=0, alias="PERSON_DELAY_SECONDS")
    poll_interval_seconds: float = Field(5.0, gt=0, alias="POLL_INTERVAL_SECONDS")

    # Retry policy
    max_attempts: int = Field(3, ge=1, le=20, alias="MAX_ATTEMPTS")
    retry_backoff_seconds: float = Field(60.0, ge=0, alias="RETRY_BACKOFF_SECONDS")
    agent_timeout_seconds: float = Field(120.0, gt=0, alias="AGENT_TIMEOUT_SECONDS")

    # Result cache; None keeps entries for the lifetime of the process
    cache_ttl_seconds: Optional[float] = Field(None, gt=0, alias="CACHE_TTL_SECONDS")

    # Application
    app_env: str = Field("development", alias="APP_ENV")
    log_level: str = Field("INFO", alias="LOG_LEVEL")
    log_json: bool = Field(False, alias="LOG_JSON")

    # Audit store
    audit_backend: Literal["memory", "postgres"] = Field("memory", alias="AUDIT_BACKEND")
    db_host: str = Field("localhost", alias="DB_HOST")
    db_port: int = Field(5432, alias="DB_PORT")
    db_user: str = Field("postgres", alias="DB_USER")
    db_password: str = Field("postgres", alias="DB_PASSWORD")
    db_name: str = Field("plate_cascade", alias="DB_NAME")
    audit_table: str = Field("cascade_audit", pattern=r"^[a-z_][a-z0-9_]*$", alias="AUDIT_TABLE")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Retrieve a cached instance of Settings to avoid repeated env parsing.
    """
    return Settings()


__all__ = ["Settings", "get_settings"]
