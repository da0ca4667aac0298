"""Settings for the Textly chat backend and sync engine."""

from __future__ import annotations

from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
    postgres_url: Optional[str] = _env_field(None, "POSTGRES_URL", "DATABASE_URL")
    postgres_min_pool_size: int = _env_field(0, "POSTGRES_MIN_POOL_SIZE")
    postgres_max_pool_size: int = _env_field(10, "POSTGRES_MAX_POOL_SIZE")
    secret_key: str = _env_field("dev-insecure-secret", "SECRET_KEY")

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    obs_enabled: bool = _env_field(True, "OBS_ENABLED")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(0.1, "LOG_SAMPLING_RATE_INFO")
    service_name: str = _env_field("textly-api", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

    # Durable client cache (Redis-backed envelopes)
    cache_enabled: bool = _env_field(True, "CACHE_ENABLED")
    cache_prefix: str = _env_field("textly", "CACHE_PREFIX")
    rooms_cache_ttl_seconds: int = _env_field(6 * 3600, "ROOMS_CACHE_TTL_SECONDS")
    profile_cache_ttl_seconds: int = _env_field(6 * 3600, "PROFILE_CACHE_TTL_SECONDS")
    # In-memory freshness of a resolved profile before it may be fetched again
    profile_ttl_seconds: int = _env_field(3600, "PROFILE_TTL_SECONDS")
    messages_cache_limit: int = _env_field(200, "MESSAGES_CACHE_LIMIT")
    messages_cache_ttl_seconds: int = _env_field(24 * 3600, "MESSAGES_CACHE_TTL_SECONDS")
    # A message cache younger than this skips the network fetch on room switch
    messages_cache_fresh_seconds: float = _env_field(15.0, "MESSAGES_CACHE_FRESH_SECONDS")

    # Endpoint rate limits (sliding window, per user + hashed IP)
    rate_limit_enabled: bool = _env_field(True, "RATE_LIMIT_ENABLED")
    rate_limit_prefix: str = _env_field("textly-chat", "RATE_LIMIT_PREFIX")
    rate_limit_improve_max: int = _env_field(20, "RATE_LIMIT_IMPROVE_MAX")
    rate_limit_meta_max: int = _env_field(60, "RATE_LIMIT_META_MAX")
    rate_limit_window_seconds: int = _env_field(300, "RATE_LIMIT_WINDOW_SECONDS")

    # Language model behind /api/improve
    gemini_api_key: Optional[str] = _env_field(None, "GEMINI_API_KEY")
    gemini_model: str = _env_field("gemini-2.5-flash", "GEMINI_MODEL")
    gemini_base_url: str = _env_field("https://generativelanguage.googleapis.com/v1beta", "GEMINI_BASE_URL")
    gemini_timeout_seconds: float = _env_field(20.0, "GEMINI_TIMEOUT_SECONDS")

    # Where a client session reaches the API
    api_base_url: str = _env_field("http://localhost:8000", "API_BASE_URL")
    api_timeout_seconds: float = _env_field(10.0, "API_TIMEOUT_SECONDS")

    # Environment helpers
    def is_prod(self) -> bool:
        return self.environment.lower() in ("prod", "production", "live")

    def is_dev(self) -> bool:
        return self.environment.lower() in ("dev", "development")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
        extra="ignore",
    )


def _normalise_level(level: str) -> str:
    return level.upper()


settings = Settings()
settings.obs_log_level = _normalise_level(settings.obs_log_level)
