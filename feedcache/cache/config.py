"""
Cache Configuration

Centralized configuration for the SWR cache layer.
All settings can be overridden via environment variables.

Freshness TTLs only ever apply to the freshness marker; payload records
are written without expiry so stale data stays available.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class CacheTTL:
    """
    Freshness windows for the feed queries.

    Feeds are cheap to serve stale and expensive to rebuild, so every
    route shares the one-minute default unless it passes its own
    max_age_seconds.
    """

    DEFAULT: int = 60


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - REDIS_URL: Redis connection URL
    - SWR_MAX_AGE_SECONDS: Default freshness window
    - SWR_KEY_PREFIX: Prefix for all cache keys
    - SWR_USER_INDEX_ENABLED: Track per-user keys for user invalidation
    - CACHE_CIRCUIT_BREAKER_*: Fail-fast settings while Redis is down
    """

    # Redis connection
    redis_url: str = field(default_factory=lambda: os.getenv(
        "REDIS_URL",
        "redis://localhost:6379/0"
    ))
    redis_max_connections: int = field(default_factory=lambda: int(os.getenv(
        "REDIS_MAX_CONNECTIONS",
        "50"
    )))
    redis_socket_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_SOCKET_TIMEOUT",
        "5.0"
    )))
    redis_connect_timeout: float = field(default_factory=lambda: float(os.getenv(
        "REDIS_CONNECT_TIMEOUT",
        "5.0"
    )))

    # SWR behaviour
    default_max_age_seconds: int = field(default_factory=lambda: int(os.getenv(
        "SWR_MAX_AGE_SECONDS",
        str(CacheTTL.DEFAULT)
    )))
    key_prefix: str = field(default_factory=lambda: os.getenv(
        "SWR_KEY_PREFIX",
        "swr"
    ))
    user_index_enabled: bool = field(default_factory=lambda: _env_bool(
        "SWR_USER_INDEX_ENABLED",
        "true"
    ))

    # Circuit breaker
    circuit_breaker_enabled: bool = field(default_factory=lambda: _env_bool(
        "CACHE_CIRCUIT_BREAKER_ENABLED",
        "true"
    ))
    circuit_breaker_threshold: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_THRESHOLD",
        "5"
    )))
    circuit_breaker_timeout: int = field(default_factory=lambda: int(os.getenv(
        "CACHE_CIRCUIT_BREAKER_TIMEOUT",
        "30"
    )))


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get singleton cache configuration."""
    return CacheConfig()
