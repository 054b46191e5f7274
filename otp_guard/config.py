"""
OTP Guard Configuration
=======================
Environment-based settings, validated on load.
"""

import os
from dataclasses import dataclass, field
from typing import List, Mapping, Optional

DEFAULT_ENVIRONMENT = "development"
DEFAULT_RATE_LIMIT_REQUESTS_PER_MINUTE = 5
DEFAULT_RATE_LIMIT_CLEANUP_INTERVAL_MINUTES = 10
DEFAULT_RATE_LIMIT_SHARDS = 16
DEFAULT_STORE_CAS_RETRIES = 3


class ConfigError(ValueError):
    """Raised when an environment variable is missing or invalid."""


def _get_positive_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key, "")
    if raw == "":
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ConfigError(f"environment variable must be a valid integer: {key}") from None
    if value <= 0:
        raise ConfigError(f"environment variable must be positive: {key}")
    return value


def _get_bool(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = env.get(key, "")
    if raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Runtime settings for the OTP service."""
    environment: str = DEFAULT_ENVIRONMENT
    allowed_origins: List[str] = field(default_factory=list)

    # Rate limiting
    rate_limit_requests_per_minute: int = DEFAULT_RATE_LIMIT_REQUESTS_PER_MINUTE
    rate_limit_burst: int = DEFAULT_RATE_LIMIT_REQUESTS_PER_MINUTE
    rate_limit_cleanup_interval_minutes: int = DEFAULT_RATE_LIMIT_CLEANUP_INTERVAL_MINUTES
    rate_limit_shards: int = DEFAULT_RATE_LIMIT_SHARDS

    # Storage
    redis_url: Optional[str] = None
    store_cas_retries: int = DEFAULT_STORE_CAS_RETRIES

    address_hash_pepper: str = ""

    # Logging
    log_level: str = "INFO"
    log_json: bool = False

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def rate_limit_cleanup_interval_seconds(self) -> float:
        return self.rate_limit_cleanup_interval_minutes * 60.0

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Load and validate settings from environment variables.

        Args:
            env: Mapping to read instead of ``os.environ`` (tests)

        Raises:
            ConfigError: ALLOWED_ORIGINS missing in production, or a numeric
                variable that is not a positive integer
        """
        env = os.environ if env is None else env
        environment = env.get("ENV", "") or DEFAULT_ENVIRONMENT

        allowed_origins: List[str] = []
        if environment == "production":
            raw_origins = env.get("ALLOWED_ORIGINS", "")
            if not raw_origins:
                raise ConfigError("ALLOWED_ORIGINS environment variable is required in production")
            allowed_origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

        requests_per_minute = _get_positive_int(
            env, "RATE_LIMIT_REQUESTS_PER_MINUTE", DEFAULT_RATE_LIMIT_REQUESTS_PER_MINUTE
        )

        return cls(
            environment=environment,
            allowed_origins=allowed_origins,
            rate_limit_requests_per_minute=requests_per_minute,
            rate_limit_burst=_get_positive_int(env, "RATE_LIMIT_BURST", requests_per_minute),
            rate_limit_cleanup_interval_minutes=_get_positive_int(
                env, "RATE_LIMIT_CLEANUP_INTERVAL_MINUTES", DEFAULT_RATE_LIMIT_CLEANUP_INTERVAL_MINUTES
            ),
            rate_limit_shards=_get_positive_int(env, "RATE_LIMIT_SHARDS", DEFAULT_RATE_LIMIT_SHARDS),
            redis_url=env.get("REDIS_URL") or None,
            store_cas_retries=_get_positive_int(env, "STORE_CAS_RETRIES", DEFAULT_STORE_CAS_RETRIES),
            address_hash_pepper=env.get("ADDRESS_HASH_PEPPER", ""),
            log_level=env.get("LOG_LEVEL", "") or "INFO",
            log_json=_get_bool(env, "LOG_JSON", environment == "production"),
        )
