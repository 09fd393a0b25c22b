"""
Cache Monitoring

Health checks and counters for the SWR cache and its two backends.

A dead Redis only degrades the cache (every read goes to PostgreSQL),
so it reports DEGRADED. A dead database is UNHEALTHY.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List

from feedcache.cache.swr import SWRCache


logger = logging.getLogger(__name__)


class HealthStatus(Enum):
    """Health check status."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


@dataclass
class HealthCheckResult:
    """Result of a health check."""
    status: HealthStatus
    latency_ms: float
    checks: Dict[str, bool]
    issues: List[str]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class CacheMonitor:
    """Reports health and statistics for an SWRCache."""

    def __init__(self, swr: SWRCache):
        self.swr = swr

    async def health_check(self) -> HealthCheckResult:
        """Ping Redis and the database."""
        start_time = time.time()
        issues = []

        redis_ok = await self.swr.cache.ping()
        if not redis_ok:
            issues.append("Redis unreachable; serving from PostgreSQL")

        db_ok = await self._ping_database()
        if not db_ok:
            issues.append("Database unreachable")

        if not db_ok:
            status = HealthStatus.UNHEALTHY
        elif not redis_ok:
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        if issues:
            logger.warning(f"Cache health {status.value}: {'; '.join(issues)}")

        return HealthCheckResult(
            status=status,
            latency_ms=round((time.time() - start_time) * 1000, 2),
            checks={"redis": redis_ok, "database": db_ok},
            issues=issues,
        )

    async def _ping_database(self) -> bool:
        ping = getattr(self.swr.executor, "ping", None)
        if ping is None:
            return True
        return await ping()

    def get_stats(self) -> Dict[str, Any]:
        """Combined SWR, Redis and background task counters."""
        tasks = self.swr.tasks
        return {
            "swr": self.swr.stats.as_dict(),
            "redis": self.swr.cache.get_stats(),
            "background": {
                "pending": tasks.pending,
                "spawned": tasks.spawned,
                "failed": tasks.failed,
            },
        }

