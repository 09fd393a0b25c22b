"""
Redis Client

Thin async wrapper over redis.asyncio used by the SWR cache:
- Explicit connect()/close() owned by application startup/shutdown
- Constructor injection of a Redis instance for tests
- Circuit breaker so a dead Redis fails fast instead of timing out per call
- Latency and error statistics

Store failures are raised as CacheUnavailableError. Deciding whether to
degrade is the caller's job (see feedcache.cache.swr).
"""

import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from feedcache.cache.config import CacheConfig, get_cache_config
from feedcache.cache.exceptions import CacheUnavailableError


logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Redis operation statistics."""
    hits: int = 0
    misses: int = 0
    errors: int = 0
    bytes_written: int = 0
    bytes_read: int = 0
    latency_samples: List[float] = field(default_factory=list)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def avg_latency_ms(self) -> float:
        if not self.latency_samples:
            return 0.0
        recent = self.latency_samples[-100:]
        return sum(recent) / len(recent) * 1000

    def record_latency(self, seconds: float):
        """Record a latency sample."""
        self.latency_samples.append(seconds)
        # Keep only last 1000 samples
        if len(self.latency_samples) > 1000:
            self.latency_samples = self.latency_samples[-1000:]


@dataclass
class CircuitBreakerState:
    """Circuit breaker state tracking."""
    failures: int = 0
    last_failure: float = 0.0
    is_open: bool = False
    opened_at: float = 0.0


class CircuitBreaker:
    """
    Circuit breaker for the Redis connection.

    After `threshold` consecutive failures every call fails fast for
    `timeout` seconds, then one call is let through to probe recovery.
    """

    def __init__(
        self,
        threshold: int = 5,
        timeout: int = 30,
    ):
        self.threshold = threshold
        self.timeout = timeout
        self.state = CircuitBreakerState()
        self._lock = asyncio.Lock()

    async def is_available(self) -> bool:
        """Check if circuit allows requests."""
        if not self.state.is_open:
            return True

        if time.time() - self.state.opened_at >= self.timeout:
            async with self._lock:
                # Half-open: let the next request probe Redis
                self.state.is_open = False
                self.state.failures = self.threshold - 1
                logger.info("Circuit breaker half-open, probing Redis")
            return True

        return False

    async def record_success(self):
        """Record successful operation."""
        if self.state.failures == 0 and not self.state.is_open:
            return
        async with self._lock:
            self.state.failures = 0
            self.state.is_open = False

    async def record_failure(self):
        """Record failed operation."""
        async with self._lock:
            self.state.failures += 1
            self.state.last_failure = time.time()

            if self.state.failures >= self.threshold and not self.state.is_open:
                self.state.is_open = True
                self.state.opened_at = time.time()
                logger.warning(
                    f"Circuit breaker opened after {self.state.failures} failures. "
                    f"Will retry in {self.timeout} seconds."
                )


class RedisCache:
    """
    Async Redis client for the SWR cache.

    Usage:
        cache = RedisCache()
        await cache.connect()      # application startup
        ...
        await cache.close()        # application shutdown
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        redis_client: Optional[Redis] = None,
    ):
        """
        Args:
            config: Cache configuration (defaults to environment).
            redis_client: Pre-built client, for tests or DI. When given,
                connect() only pings it and close() leaves it open.
        """
        self.config = config or get_cache_config()
        self._redis: Optional[Redis] = redis_client
        self._owns_client = redis_client is None
        self._pool: Optional[ConnectionPool] = None
        self._circuit_breaker = CircuitBreaker(
            threshold=self.config.circuit_breaker_threshold,
            timeout=self.config.circuit_breaker_timeout,
        ) if self.config.circuit_breaker_enabled else None
        self._stats = CacheStats()
        self._connected = False

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def connect(self) -> bool:
        """
        Create the connection pool and verify it with PING.

        A failed ping is logged, not raised: the application starts with
        the cache degraded and redis-py reconnects on later commands.

        Returns:
            True if Redis answered the ping.
        """
        if self._redis is None:
            self._pool = ConnectionPool.from_url(
                self.config.redis_url,
                max_connections=self.config.redis_max_connections,
                socket_timeout=self.config.redis_socket_timeout,
                socket_connect_timeout=self.config.redis_connect_timeout,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)

        try:
            await self._redis.ping()
            self._connected = True
            logger.info(f"Redis cache connected: {self.config.redis_url}")
        except (RedisError, OSError) as e:
            self._connected = False
            logger.warning(f"Redis connection failed: {e}. Cache degraded.")

        return self._connected

    async def close(self):
        """Close the connection pool if this instance created it."""
        if self._redis is not None and self._owns_client:
            await self._redis.aclose()
            if self._pool is not None:
                await self._pool.disconnect()
            self._redis = None
            self._pool = None
        self._connected = False
        logger.info("Redis cache closed")

    @property
    def is_connected(self) -> bool:
        return self._connected

    # =========================================================================
    # Internals
    # =========================================================================

    @asynccontextmanager
    async def _with_circuit_breaker(self):
        """Context manager for circuit breaker pattern."""
        if self._circuit_breaker and not await self._circuit_breaker.is_available():
            raise CacheUnavailableError("Circuit breaker is open")

        try:
            yield
        except (RedisError, OSError) as e:
            if self._circuit_breaker:
                await self._circuit_breaker.record_failure()
            raise CacheUnavailableError(str(e)) from e

        if self._circuit_breaker:
            await self._circuit_breaker.record_success()

    async def _execute(
        self,
        operation: str,
        key: str,
        call: Callable[[Redis], Awaitable[Any]],
    ) -> Any:
        """Run one Redis command with breaker, latency and error tracking."""
        if self._redis is None:
            self._stats.errors += 1
            raise CacheUnavailableError("Redis client is not connected")

        start_time = time.time()
        try:
            async with self._with_circuit_breaker():
                result = await call(self._redis)
        except CacheUnavailableError as e:
            self._stats.errors += 1
            logger.debug(f"Redis {operation} failed for {key}: {e}")
            raise

        self._stats.record_latency(time.time() - start_time)
        return result

    # =========================================================================
    # Core Operations
    # =========================================================================

    async def get(self, key: str) -> Optional[str]:
        """Get a string value. Returns None if the key does not exist."""
        value = await self._execute("GET", key, lambda r: r.get(key))

        if value is None:
            self._stats.misses += 1
            return None

        self._stats.hits += 1
        self._stats.bytes_read += len(value)
        return value

    async def set(self, key: str, value: str) -> None:
        """Set a value with no expiry."""
        await self._execute("SET", key, lambda r: r.set(key, value))
        self._stats.bytes_written += len(value)

    async def set_with_expiry(self, key: str, value: str, ttl_seconds: int) -> None:
        """Set a value that expires after ttl_seconds."""
        await self._execute(
            "SETEX", key, lambda r: r.setex(key, ttl_seconds, value)
        )
        self._stats.bytes_written += len(value)

    async def exists(self, key: str) -> bool:
        """Check if key exists."""
        count = await self._execute("EXISTS", key, lambda r: r.exists(key))
        return count > 0

    async def delete(self, *keys: str) -> int:
        """Delete keys. Returns the number of keys removed."""
        if not keys:
            return 0
        return await self._execute(
            "DEL", ",".join(keys), lambda r: r.delete(*keys)
        )

    async def add_to_set_with_expiry(
        self,
        key: str,
        *members: str,
        ttl_seconds: int,
    ) -> int:
        """
        Add members to a Redis set and extend its expiry to ttl_seconds.

        The expiry only ever grows: NX sets it on a new set, GT raises it on
        an existing one. Requires Redis 7.0+.
        """
        added = await self._execute("SADD", key, lambda r: r.sadd(key, *members))
        await self._execute(
            "EXPIRE", key, lambda r: r.expire(key, ttl_seconds, nx=True)
        )
        await self._execute(
            "EXPIRE", key, lambda r: r.expire(key, ttl_seconds, gt=True)
        )
        return added

    async def set_members(self, key: str) -> Set[str]:
        """Return all members of a Redis set (empty if absent)."""
        members = await self._execute("SMEMBERS", key, lambda r: r.smembers(key))
        return set(members or ())

    async def ping(self) -> bool:
        """PING Redis. Returns False instead of raising."""
        try:
            await self._execute("PING", "-", lambda r: r.ping())
        except CacheUnavailableError:
            self._connected = False
            return False
        self._connected = True
        return True

    # =========================================================================
    # Statistics and Health
    # =========================================================================

    def get_stats(self) -> Dict:
        """Get client statistics."""
        return {
            "connected": self._connected,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "errors": self._stats.errors,
            "hit_rate_percent": round(self._stats.hit_rate * 100, 2),
            "avg_latency_ms": round(self._stats.avg_latency_ms, 2),
            "bytes_written": self._stats.bytes_written,
            "bytes_read": self._stats.bytes_read,
            "circuit_breaker_open": (
                self._circuit_breaker.state.is_open
                if self._circuit_breaker else False
            ),
        }
