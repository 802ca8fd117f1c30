"""
Shared configuration management for the caching proxy.
"""

from datetime import timedelta
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from shared.logging import get_logger


DEFAULT_CACHE_TTL_SECONDS = 3600
DEFAULT_SWEEP_INTERVAL_SECONDS = 600
DEFAULT_PORT = 8080

logger = get_logger("proxy.config")


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROXY_",
        env_file=".env",
        case_sensitive=False,
        extra="allow",
    )

    # Environment
    env: str = "local"
    log_level: str = "info"

    # Listener
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT


class ProxyConfig(BaseConfig):
    """Caching proxy configuration."""

    service_name: str = "proxy"

    # Cache
    cache_ttl_seconds: int = Field(
        default=DEFAULT_CACHE_TTL_SECONDS,
        validation_alias=AliasChoices("CACHE_TTL_SECONDS", "cache_ttl_seconds"),
    )
    cache_dir: str = "./cache"
    sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS
    cache_key_headers: str = ""
    cache_error_responses: bool = False

    # Upstream
    forward_methods: str = "GET"
    upstream_timeout_seconds: float = 30.0
    upstream_verify_tls: bool = True

    @field_validator("cache_ttl_seconds", mode="before")
    @classmethod
    def _fallback_invalid_ttl(cls, value):
        try:
            ttl = int(str(value))
        except (TypeError, ValueError):
            ttl = 0
        if ttl <= 0:
            logger.warning(
                "Invalid CACHE_TTL_SECONDS value, falling back to default",
                value=value,
                default=DEFAULT_CACHE_TTL_SECONDS,
            )
            return DEFAULT_CACHE_TTL_SECONDS
        return ttl

    @field_validator("sweep_interval_seconds")
    @classmethod
    def _positive_interval(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("sweep interval must be positive")
        return value

    @property
    def cache_ttl(self) -> timedelta:
        return timedelta(seconds=self.cache_ttl_seconds)

    @property
    def vary_headers(self) -> List[str]:
        """Request headers folded into the cache key, lowercased."""
        return _split_csv(self.cache_key_headers, str.lower)

    @property
    def forward_method_list(self) -> List[str]:
        return _split_csv(self.forward_methods, str.upper) or ["GET"]


def _split_csv(raw: Optional[str], transform) -> List[str]:
    if not raw:
        return []
    return [transform(part.strip()) for part in raw.split(",") if part.strip()]


def get_config(service_name: str = "proxy", **overrides) -> ProxyConfig:
    """Get configuration for the proxy service."""
    return ProxyConfig(service_name=service_name, **overrides)
