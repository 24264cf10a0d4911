from __future__ import annotations

import os
from datetime import timedelta
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from chirpauth.logging import get_logger

logger = get_logger(__name__)


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Runtime settings for the credential service."""

    token_secret: str = env_field(
        None,
        "TOKEN_SECRET",
        description="HMAC secret used to sign and verify access tokens",
        validate_default=True,
    )
    jwt_issuer: str = env_field("chirpy", "JWT_ISSUER")
    access_token_ttl_seconds: int = env_field(
        3600,
        "ACCESS_TOKEN_TTL_SECONDS",
        description="Lifetime of issued access tokens in seconds",
    )
    refresh_token_ttl_days: int = env_field(
        60,
        "REFRESH_TOKEN_TTL_DAYS",
        description="Lifetime of issued refresh tokens in days",
    )
    clock_skew_leeway_seconds: int = env_field(
        0,
        "CLOCK_SKEW_LEEWAY_SECONDS",
        description="Grace period added to access token expiry during verification",
    )
    # argon2id cost parameters; defaults match argon2-cffi's RFC 9106 low-memory profile
    password_time_cost: int = env_field(3, "PASSWORD_TIME_COST")
    password_memory_cost: int = env_field(65536, "PASSWORD_MEMORY_COST")
    password_parallelism: int = env_field(4, "PASSWORD_PARALLELISM")

    database_url: str = env_field("postgresql://localhost:5432/chirpy", "DB_URL")
    use_memory_store: bool = env_field(False, "USE_MEMORY_STORE")
    shared_fs_root: str | None = env_field(
        None,
        "SHARED_FS_ROOT",
        description="Directory for memory store snapshots; unset keeps state in-process only",
    )
    platform: str = env_field(
        "prod",
        "PLATFORM",
        description="Deployment platform; admin reset is only allowed on 'dev'",
    )

    model_config = ConfigDict(extra="ignore")

    @classmethod
    def from_env(cls) -> "Settings":
        env_file_values = dotenv_values(".env")
        merged: dict[str, str] = {}
        for name, field in cls.model_fields.items():
            extra = field.json_schema_extra or {}
            env_key = extra.get("env") if isinstance(extra, dict) else None
            env_name = env_key or name.upper()
            if env_name in os.environ:
                merged[name] = os.environ[env_name]
            elif env_name in env_file_values:
                merged[name] = env_file_values[env_name]
        return cls(**merged)

    @field_validator("token_secret", mode="before")
    @classmethod
    def _require_token_secret(cls, value: str | None) -> str:
        if value is None or not str(value).strip():
            logger.error("token_secret_missing")
            raise ValueError("TOKEN_SECRET must be set to a non-empty value")
        return str(value)

    @field_validator(
        "access_token_ttl_seconds",
        "refresh_token_ttl_days",
        "password_time_cost",
        "password_memory_cost",
        "password_parallelism",
    )
    @classmethod
    def _require_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("clock_skew_leeway_seconds")
    @classmethod
    def _require_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("leeway cannot be negative")
        return value

    @field_validator("platform")
    @classmethod
    def _normalize_platform(cls, value: str) -> str:
        return value.strip().lower()

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(seconds=self.access_token_ttl_seconds)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.refresh_token_ttl_days)

    @property
    def clock_skew_leeway(self) -> timedelta:
        return timedelta(seconds=self.clock_skew_leeway_seconds)

    @property
    def is_dev(self) -> bool:
        return self.platform == "dev"


def get_settings() -> Settings:
    global _settings_cache
    if _settings_cache is None:
        _settings_cache = Settings.from_env()
    return _settings_cache


_settings_cache: Settings | None = None


def reset_settings_cache() -> None:
    """Clear cached settings so future calls re-read the environment."""

    global _settings_cache
    _settings_cache = None
