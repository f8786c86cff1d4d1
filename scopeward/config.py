from __future__ import annotations

import os
from typing import Any

from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, Field, field_validator

from scopeward.logging import get_logger

logger = get_logger(__name__)

SECONDS_PER_DAY = 24 * 60 * 60

DEFAULT_ACCESS_TOKEN_TTL = 7 * SECONDS_PER_DAY
DEFAULT_REFRESH_TOKEN_TTL = 14 * SECONDS_PER_DAY


def env_field(default: Any, env: str, **kwargs):
    extra = kwargs.pop("json_schema_extra", {}) or {}
    extra = {**extra, "env": env}
    return Field(default, json_schema_extra=extra, **kwargs)


class Settings(BaseModel):
    """Process settings for the token store and token minting."""

    redis_url: str | None = env_field("redis://localhost:6379/0", "REDIS_URL")
    redis_provider: str | None = env_field(
        None,
        "REDIS_PROVIDER",
        description="Name of the environment variable that holds the Redis URL (e.g. REDISTOGO_URL)",
    )
    redis_namespace: str | None = env_field(
        None, "REDIS_NAMESPACE", description="Prefix applied to every store key"
    )
    redis_pool_size: int = env_field(5, "REDIS_POOL_SIZE")
    redis_pool_timeout: float = env_field(
        1.0,
        "REDIS_POOL_TIMEOUT",
        description="Seconds to wait for a pooled connection before failing",
    )
    redis_socket_timeout: float = env_field(5.0, "REDIS_SOCKET_TIMEOUT")
    redis_reconnect_attempts: int = env_field(1, "REDIS_RECONNECT_ATTEMPTS")
    use_memory_store: bool = env_field(
        False,
        "USE_MEMORY_STORE",
        description="Keep tokens in process memory instead of Redis (tests/local dev only)",
    )
    access_token_length: int = env_field(20, "ACCESS_TOKEN_LENGTH")
    refresh_token_length: int = env_field(30, "REFRESH_TOKEN_LENGTH")
    default_access_token_ttl: int = env_field(
        DEFAULT_ACCESS_TOKEN_TTL,
        "DEFAULT_ACCESS_TOKEN_TTL",
        description="Access token TTL in seconds for scopes that do not set one",
    )
    default_refresh_token_ttl: int = env_field(
        DEFAULT_REFRESH_TOKEN_TTL,
        "DEFAULT_REFRESH_TOKEN_TTL",
        description="Refresh token TTL in seconds for scopes that do not set one",
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

    @field_validator(
        "redis_pool_size",
        "access_token_length",
        "refresh_token_length",
        "default_access_token_ttl",
        "default_refresh_token_ttl",
    )
    @classmethod
    def _ensure_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be a positive integer")
        return value

    @field_validator("redis_pool_timeout", "redis_socket_timeout")
    @classmethod
    def _ensure_positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be a positive number of seconds")
        return value

    @field_validator("redis_reconnect_attempts")
    @classmethod
    def _ensure_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    def resolved_redis_url(self) -> str | None:
        """Return the Redis URL, following the REDIS_PROVIDER indirection when set.

        ``REDIS_PROVIDER=REDISTOGO_URL`` means "read the URL from $REDISTOGO_URL".
        """
        if self.redis_provider:
            provided = os.environ.get(self.redis_provider)
            if provided is None:
                provided = dotenv_values(".env").get(self.redis_provider)
            if provided:
                return provided
            logger.warning(
                "redis_provider_unset",
                provider=self.redis_provider,
                fallback="REDIS_URL",
            )
        return self.redis_url


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
