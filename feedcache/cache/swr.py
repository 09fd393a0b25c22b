"""
Stale-While-Revalidate Cache

Serves query results from Redis and keeps them fresh from PostgreSQL.

Each query has two records (see feedcache.cache.keys):
- freshness marker: no payload, expires after max_age seconds
- payload record: serialized rows, never expires

Read path:
- fresh hit  -> cached rows
- stale hit  -> cached rows now, revalidation in the background
- miss       -> query PostgreSQL, cache, return

Any Redis failure degrades to the miss path. Only executor errors reach
the caller.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

from feedcache.cache.config import CacheConfig, get_cache_config
from feedcache.cache.keys import CacheKeys, derive_keys, query_preview, user_index_key
from feedcache.cache.redis_cache import RedisCache
from feedcache.cache.serialization import deserialize_rows, serialize_rows
from feedcache.cache.tasks import BackgroundTasks


logger = logging.getLogger(__name__)

Rows = List[Dict[str, Any]]

FRESHNESS_VALUE = "true"

# Covers the executor run between indexing a key and writing its marker
USER_INDEX_GRACE_SECONDS = 30


class Executor(Protocol):
    """Source of truth consumed by the cache."""

    async def execute(self, query_text: str) -> Rows:
        ...


@dataclass
class SWRStats:
    """Read path counters."""
    fresh_hits: int = 0
    stale_hits: int = 0
    misses: int = 0
    degraded_reads: int = 0
    revalidations: int = 0
    revalidation_failures: int = 0
    write_failures: int = 0

    def as_dict(self) -> Dict[str, int]:
        total = self.fresh_hits + self.stale_hits + self.misses
        return {
            "fresh_hits": self.fresh_hits,
            "stale_hits": self.stale_hits,
            "misses": self.misses,
            "degraded_reads": self.degraded_reads,
            "revalidations": self.revalidations,
            "revalidation_failures": self.revalidation_failures,
            "write_failures": self.write_failures,
            "hit_rate_percent": round(
                (self.fresh_hits + self.stale_hits) / total * 100, 2
            ) if total else 0.0,
        }


class SWRCache:
    """
    Stale-while-revalidate cache over a query executor.

    Usage:
        swr = SWRCache(redis_cache, executor, background_tasks)
        rows = await swr.get(query, max_age_seconds=60, identity=uid)
    """

    def __init__(
        self,
        cache: RedisCache,
        executor: Executor,
        tasks: Optional[BackgroundTasks] = None,
        config: Optional[CacheConfig] = None,
    ):
        self.cache = cache
        self.executor = executor
        self.tasks = tasks or BackgroundTasks()
        self.config = config or get_cache_config()
        self.stats = SWRStats()

    def keys(self, query_text: str) -> CacheKeys:
        return derive_keys(query_text, prefix=self.config.key_prefix)

    def _max_age(self, max_age_seconds: Optional[int]) -> int:
        if max_age_seconds is None:
            max_age_seconds = self.config.default_max_age_seconds
        # SETEX rejects non-positive TTLs
        return max(1, int(max_age_seconds))

    # =========================================================================
    # Read Path
    # =========================================================================

    async def _is_fresh(self, keys: CacheKeys) -> bool:
        # Errors count as stale so a broken marker never pins old data
        try:
            return await self.cache.exists(keys.freshness_key)
        except Exception as e:
            logger.debug(f"Freshness check failed for ({keys.freshness_key}): {e}")
            return False

    async def _read_payload(self, keys: CacheKeys) -> Optional[Rows]:
        try:
            return deserialize_rows(await self.cache.get(keys.payload_key))
        except Exception as e:
            self.stats.degraded_reads += 1
            logger.warning(f"Redis cache unreadable for ({keys.payload_key}): {e}")
            return None

    async def get(
        self,
        query_text: str,
        max_age_seconds: Optional[int] = None,
        identity: Optional[Any] = None,
    ) -> Rows:
        """
        Return rows for a query, serving cached data whenever it exists.

        Args:
            query_text: Fully rendered SQL.
            max_age_seconds: Freshness window; defaults to the configured
                default (60s).
            identity: Optional user the query runs for. Used for logging
                and the per-user key index.

        Returns:
            Result rows, possibly stale by up to one revalidation.

        Raises:
            Whatever the executor raises on a cache miss.
        """
        keys = self.keys(query_text)
        max_age = self._max_age(max_age_seconds)

        is_fresh, cached, _ = await asyncio.gather(
            self._is_fresh(keys),
            self._read_payload(keys),
            self._index_for_user(identity, keys, max_age),
        )

        if cached is not None:
            if is_fresh:
                self.stats.fresh_hits += 1
                logger.debug(f"Redis cache hit for ({keys.payload_key}), returning...")
            else:
                self.stats.stale_hits += 1
                logger.debug(
                    f"Redis cache stale for ({keys.payload_key}), revalidating..."
                )
                self.tasks.spawn(
                    self._background_revalidate(query_text, max_age),
                    name=f"swr-revalidate:{keys.payload_key}",
                )
            return cached

        self.stats.misses += 1
        logger.debug(f"Redis cache miss for ({keys.payload_key}), querying...")
        try:
            rows = await self.executor.execute(query_text)
        except Exception:
            logger.error(
                f"Query failed on cache miss ( {query_preview(query_text)} ), "
                f"user={identity}"
            )
            raise

        return await self._store(keys, rows, max_age)

    # =========================================================================
    # Revalidation
    # =========================================================================

    async def revalidate(
        self,
        query_text: str,
        max_age_seconds: Optional[int] = None,
    ) -> Rows:
        """
        Execute the query now and overwrite the cached entry.

        Executor errors propagate. Redis write failures are logged only.
        """
        keys = self.keys(query_text)
        max_age = self._max_age(max_age_seconds)
        self.stats.revalidations += 1
        rows = await self.executor.execute(query_text)
        return await self._store(keys, rows, max_age)

    async def _background_revalidate(self, query_text: str, max_age: int):
        # Logged by BackgroundTasks; the triggering request already returned
        try:
            await self.revalidate(query_text, max_age)
        except Exception:
            self.stats.revalidation_failures += 1
            logger.debug(f"Revalidation failed ( {query_preview(query_text)} )")
            raise

    async def _store(self, keys: CacheKeys, rows: Rows, max_age: int) -> Rows:
        """
        Write payload then freshness marker. Failures are logged, not raised.

        Returns the rows decoded from the written payload, so a miss hands
        back exactly what later hits will read.
        """
        payload = serialize_rows(rows)
        try:
            await self.cache.set(keys.payload_key, payload)
            await self.cache.set_with_expiry(
                keys.freshness_key, FRESHNESS_VALUE, max_age
            )
        except Exception as e:
            self.stats.write_failures += 1
            logger.warning(f"Failed to seed cache for ({keys.payload_key}): {e}")
        return deserialize_rows(payload)

    async def _index_for_user(self, identity: Any, keys: CacheKeys, max_age: int):
        # Expires shortly after the longest-lived marker it points at
        if identity is None or not self.config.user_index_enabled:
            return
        try:
            await self.cache.add_to_set_with_expiry(
                user_index_key(identity, prefix=self.config.key_prefix),
                keys.freshness_key,
                ttl_seconds=max_age + USER_INDEX_GRACE_SECONDS,
            )
        except Exception as e:
            logger.debug(f"Failed to index ({keys.freshness_key}) for user ({identity}): {e}")
