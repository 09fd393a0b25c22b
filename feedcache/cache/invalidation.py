"""
Cache Invalidation Service

Explicit entry points for the write path:
- invalidate: re-run a query now and overwrite its entry (force refresh)
- expire: drop only the freshness marker; the next read revalidates lazily
- expire_user: expire every query read on behalf of a user
- invalidate_many: force-refresh a known set of queries

Write-path events map onto these with the narrowest scope that keeps
reads correct:
- TWEETS_SYNCED, TWEET_LIKED, TWEET_RETWEETED: expire the user's queries
- LISTS_SYNCED, ARTICLE_METADATA_UPDATED: force-refresh the given queries
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Optional

from feedcache.cache.keys import query_preview, user_index_key
from feedcache.cache.swr import Rows, SWRCache


logger = logging.getLogger(__name__)


class CacheEvent(Enum):
    """Write-path events that trigger cache invalidation."""

    TWEETS_SYNCED = "tweets_synced"
    TWEET_LIKED = "tweet_liked"
    TWEET_RETWEETED = "tweet_retweeted"
    LISTS_SYNCED = "lists_synced"
    ARTICLE_METADATA_UPDATED = "article_metadata_updated"


@dataclass
class InvalidationResult:
    """Result of a cache invalidation operation."""
    success: bool = True
    queries_refreshed: int = 0
    keys_expired: int = 0
    duration_ms: float = 0.0
    errors: List[str] = field(default_factory=list)
    event: Optional[CacheEvent] = None


class CacheInvalidator:
    """
    Invalidation on top of an SWRCache.

    All operations are idempotent: running them against a query that was
    never cached succeeds (invalidate creates the entry, expire does
    nothing).
    """

    def __init__(self, swr: SWRCache):
        self.swr = swr

    @property
    def _prefix(self) -> str:
        return self.swr.config.key_prefix

    async def invalidate(
        self,
        query_text: str,
        max_age_seconds: Optional[int] = None,
    ) -> Rows:
        """
        Force refresh: execute the query and reset its entry.

        Executor errors propagate so the write path knows the refresh
        did not happen.
        """
        logger.info(f"Invalidating cache for ( {query_preview(query_text)} )")
        return await self.swr.revalidate(query_text, max_age_seconds)

    async def expire(self, query_text: str) -> bool:
        """
        Drop the freshness marker, leaving the stale payload in place.

        Returns:
            True if the store accepted the delete (whether or not a marker
            existed), False if Redis was unavailable.
        """
        keys = self.swr.keys(query_text)
        try:
            await self.swr.cache.delete(keys.freshness_key)
        except Exception as e:
            logger.warning(f"Failed to expire ({keys.freshness_key}): {e}")
            return False
        logger.debug(f"Expired ({keys.freshness_key})")
        return True

    async def expire_user(self, identity: Any) -> int:
        """
        Expire every query read on behalf of a user.

        Returns:
            Number of freshness markers removed (0 if Redis was unavailable).
        """
        index_key = user_index_key(identity, prefix=self._prefix)
        try:
            freshness_keys = await self.swr.cache.set_members(index_key)
            removed = await self.swr.cache.delete(*freshness_keys, index_key)
        except Exception as e:
            logger.warning(f"Failed to expire cache for user ({identity}): {e}")
            return 0

        # The index key itself is counted by DEL when it existed
        expired = max(0, removed - 1) if freshness_keys else 0
        logger.info(f"Expired {expired} cached queries for user ({identity})")
        return expired

    async def invalidate_many(
        self,
        queries: Iterable[str],
        max_age_seconds: Optional[int] = None,
    ) -> InvalidationResult:
        """Force-refresh each query, collecting errors instead of stopping."""
        start_time = time.time()
        result = InvalidationResult()

        for query_text in queries:
            try:
                await self.swr.revalidate(query_text, max_age_seconds)
                result.queries_refreshed += 1
            except Exception as e:
                result.errors.append(f"{query_preview(query_text)}: {e}")
                logger.error(
                    f"Cache invalidation error for ( {query_preview(query_text)} ): {e}"
                )

        result.success = not result.errors
        result.duration_ms = (time.time() - start_time) * 1000
        return result

    async def handle_event(
        self,
        event: CacheEvent,
        identity: Optional[Any] = None,
        queries: Optional[List[str]] = None,
    ) -> InvalidationResult:
        """
        Handle cache invalidation for a write-path event.

        Args:
            event: What changed.
            identity: User the change belongs to (sync, like, retweet).
            queries: Queries known to be affected (list sync, link metadata).
        """
        start_time = time.time()
        logger.info(
            f"Cache invalidation event: {event.value}, "
            f"user={identity}, queries={len(queries or [])}"
        )

        if event in (
            CacheEvent.TWEETS_SYNCED,
            CacheEvent.TWEET_LIKED,
            CacheEvent.TWEET_RETWEETED,
        ):
            result = InvalidationResult()
            if identity is not None:
                result.keys_expired = await self.expire_user(identity)
            for query_text in queries or []:
                if await self.expire(query_text):
                    result.keys_expired += 1

        elif event in (
            CacheEvent.LISTS_SYNCED,
            CacheEvent.ARTICLE_METADATA_UPDATED,
        ):
            result = await self.invalidate_many(queries or [])

        else:
            raise ValueError(f"Unhandled cache event: {event}")

        result.event = event
        result.duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"Invalidation complete: {result.queries_refreshed} refreshed, "
            f"{result.keys_expired} expired, duration: {result.duration_ms:.2f}ms"
        )
        return result
