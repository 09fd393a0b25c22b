"""
Feedcache Caching Layer

Stale-while-revalidate cache between the feed routes and PostgreSQL:
- Keys: deterministic freshness/payload key pairs per query text
- RedisCache: explicitly connected Redis client with circuit breaker
- SWRCache: serves cached rows, revalidates stale ones in the background
- CacheInvalidator: write-path refresh and expiry
- BackgroundTasks: supervised fire-and-forget revalidation
- CacheMonitor: health checks and counters

Usage:
    rows = await swr.get(query, max_age_seconds=60, identity=uid)

    # After a write
    await invalidator.invalidate(query)
    await invalidator.expire_user(uid)
"""

from feedcache.cache.config import CacheConfig, CacheTTL, get_cache_config
from feedcache.cache.exceptions import (
    CacheError,
    CacheUnavailableError,
    PayloadDecodeError,
)
from feedcache.cache.keys import CacheKeys, derive_keys, query_preview, user_index_key
from feedcache.cache.redis_cache import RedisCache
from feedcache.cache.tasks import BackgroundTasks
from feedcache.cache.swr import SWRCache
from feedcache.cache.invalidation import (
    CacheEvent,
    CacheInvalidator,
    InvalidationResult,
)
from feedcache.cache.monitoring import CacheMonitor, HealthStatus

__all__ = [
    # Config
    "CacheConfig",
    "CacheTTL",
    "get_cache_config",
    # Errors
    "CacheError",
    "CacheUnavailableError",
    "PayloadDecodeError",
    # Keys
    "CacheKeys",
    "derive_keys",
    "query_preview",
    "user_index_key",
    # Redis
    "RedisCache",
    # SWR
    "BackgroundTasks",
    "SWRCache",
    # Invalidation
    "CacheEvent",
    "CacheInvalidator",
    "InvalidationResult",
    # Monitoring
    "CacheMonitor",
    "HealthStatus",
]
