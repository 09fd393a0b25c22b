"""
Pytest Configuration and Shared Fixtures

Provides an in-memory async Redis double, a counting query executor and
wired-up cache objects for all test modules.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Set

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from feedcache.cache import (
    BackgroundTasks,
    CacheConfig,
    CacheInvalidator,
    RedisCache,
    SWRCache,
)


# ============================================================================
# Test Doubles
# ============================================================================

class FakeRedis:
    """
    In-memory stand-in for redis.asyncio.Redis.

    Implements only the commands RedisCache issues. TTLs use a clock that
    tests can move forward with advance(). Set `fail = True` to make every
    command raise a connection error.
    """

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._expiry: Dict[str, float] = {}
        self._offset = 0.0
        self.fail = False
        self.commands: List[str] = []

    def _now(self) -> float:
        return time.monotonic() + self._offset

    def advance(self, seconds: float):
        self._offset += seconds

    def _check(self, command: str):
        self.commands.append(command)
        if self.fail:
            raise RedisConnectionError("Connection refused")

    def _purge(self, key: str):
        expires_at = self._expiry.get(key)
        if expires_at is not None and expires_at <= self._now():
            self._data.pop(key, None)
            self._expiry.pop(key, None)

    def ttl_of(self, key: str) -> Optional[float]:
        self._purge(key)
        expires_at = self._expiry.get(key)
        return None if expires_at is None else expires_at - self._now()

    def raw(self, key: str) -> Any:
        self._purge(key)
        return self._data.get(key)

    async def ping(self):
        self._check("PING")
        return True

    async def get(self, key: str):
        self._check("GET")
        self._purge(key)
        value = self._data.get(key)
        return value if isinstance(value, str) else None

    async def set(self, key: str, value: str):
        self._check("SET")
        self._data[key] = value
        self._expiry.pop(key, None)
        return True

    async def setex(self, key: str, ttl: int, value: str):
        self._check("SETEX")
        if ttl <= 0:
            raise ValueError("invalid expire time in 'setex' command")
        self._data[key] = value
        self._expiry[key] = self._now() + ttl
        return True

    async def exists(self, *keys: str) -> int:
        self._check("EXISTS")
        count = 0
        for key in keys:
            self._purge(key)
            count += key in self._data
        return count

    async def delete(self, *keys: str) -> int:
        self._check("DEL")
        count = 0
        for key in keys:
            self._purge(key)
            if key in self._data:
                del self._data[key]
                self._expiry.pop(key, None)
                count += 1
        return count

    async def sadd(self, key: str, *members: str) -> int:
        self._check("SADD")
        self._purge(key)
        current: Set[str] = self._data.setdefault(key, set())
        added = len(set(members) - current)
        current.update(members)
        return added

    async def expire(self, key: str, time: int, nx: bool = False, gt: bool = False) -> bool:
        self._check("EXPIRE")
        self._purge(key)
        if key not in self._data:
            return False
        current = self._expiry.get(key)
        new_expiry = self._now() + time
        if nx and current is not None:
            return False
        # GT treats a key without expiry as infinite
        if gt and (current is None or new_expiry <= current):
            return False
        self._expiry[key] = new_expiry
        return True

    async def smembers(self, key: str) -> Set[str]:
        self._check("SMEMBERS")
        self._purge(key)
        return set(self._data.get(key, set()))

    async def aclose(self):
        pass


class FakeExecutor:
    """Counts executions and returns whatever `rows` currently holds."""

    def __init__(self, rows: Optional[List[Dict[str, Any]]] = None):
        self.rows = rows if rows is not None else [{"n": 1}]
        self.executions = 0
        self.queries: List[str] = []
        self.error: Optional[Exception] = None
        self.delay = 0.0

    async def execute(self, query_text: str) -> List[Dict[str, Any]]:
        self.executions += 1
        self.queries.append(query_text)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return [dict(row) for row in self.rows]

    async def ping(self) -> bool:
        return self.error is None


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def cache_config() -> CacheConfig:
    """Config with the circuit breaker off so fault tests stay deterministic."""
    return CacheConfig(
        redis_url="redis://test:6379/0",
        default_max_age_seconds=60,
        key_prefix="swr",
        user_index_enabled=True,
        circuit_breaker_enabled=False,
    )


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
async def redis_cache(fake_redis, cache_config) -> RedisCache:
    cache = RedisCache(cache_config, redis_client=fake_redis)
    await cache.connect()
    yield cache
    await cache.close()


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
async def background_tasks() -> BackgroundTasks:
    tasks = BackgroundTasks()
    yield tasks
    await tasks.close()


@pytest.fixture
def swr(redis_cache, executor, background_tasks, cache_config) -> SWRCache:
    return SWRCache(redis_cache, executor, background_tasks, cache_config)


@pytest.fixture
def invalidator(swr) -> CacheInvalidator:
    return CacheInvalidator(swr)
