"""
Cache Management API

Provides endpoints for cache monitoring and manual operations.

Endpoints:
- Health check for monitoring/alerting
- Statistics for cache insights
- Manual expiry and force refresh of a query
- Expiry of everything cached for a user
"""

import logging
import time
from datetime import datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError

from feedcache.cache import CacheInvalidator, CacheMonitor, SWRCache


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/cache", tags=["Cache Management"])


# =============================================================================
# DEPENDENCIES
# =============================================================================

def get_swr(request: Request) -> SWRCache:
    """SWR cache created by the application lifespan."""
    return request.app.state.swr


def get_invalidator(request: Request) -> CacheInvalidator:
    """Invalidator created by the application lifespan."""
    return request.app.state.invalidator


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class QueryRequest(BaseModel):
    """A fully rendered query to act on."""
    query: str = Field(..., description="Fully rendered SQL text")
    max_age_seconds: Optional[int] = Field(
        default=None,
        ge=1,
        description="Freshness window for the refreshed entry",
    )


class CacheHealthResponse(BaseModel):
    """Cache health check response."""
    status: str = Field(..., description="healthy, degraded or unhealthy")
    checks: Dict[str, bool]
    issues: List[str] = []
    latency_ms: float
    timestamp: datetime


class ExpireResponse(BaseModel):
    """Freshness marker expiry response."""
    success: bool
    keys_expired: int
    duration_ms: float


class InvalidationResponse(BaseModel):
    """Force refresh response."""
    success: bool
    rows: int
    duration_ms: float


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.get("/health", response_model=CacheHealthResponse)
async def cache_health_check(swr: SWRCache = Depends(get_swr)):
    """
    Check Redis and database connectivity.

    A Redis outage reports "degraded": reads still work, straight from
    PostgreSQL.
    """
    health = await CacheMonitor(swr).health_check()

    return CacheHealthResponse(
        status=health.status.value,
        checks=health.checks,
        issues=health.issues,
        latency_ms=health.latency_ms,
        timestamp=health.timestamp,
    )


@router.get("/stats")
async def get_cache_stats(swr: SWRCache = Depends(get_swr)):
    """
    Get current cache statistics.

    Note: Stats are reset on application restart.
    """
    return CacheMonitor(swr).get_stats()


@router.post("/expire", response_model=ExpireResponse)
async def expire_query(
    body: QueryRequest,
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    """Expire a query's freshness marker; the next read revalidates it."""
    start = time.time()
    success = await invalidator.expire(body.query)

    return ExpireResponse(
        success=success,
        keys_expired=1 if success else 0,
        duration_ms=(time.time() - start) * 1000,
    )


@router.post("/invalidate", response_model=InvalidationResponse)
async def invalidate_query(
    body: QueryRequest,
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    """
    Re-run a query now and overwrite its cached entry.

    Use this after a write that is known to change the query's result.
    """
    start = time.time()
    try:
        rows = await invalidator.invalidate(body.query, body.max_age_seconds)
    except SQLAlchemyError as e:
        logger.error(f"Failed to refresh query: {e}")
        raise HTTPException(status_code=502, detail="Query execution failed")

    return InvalidationResponse(
        success=True,
        rows=len(rows),
        duration_ms=(time.time() - start) * 1000,
    )


@router.post("/invalidate/user/{identity}", response_model=ExpireResponse)
async def invalidate_user_cache(
    identity: str,
    invalidator: CacheInvalidator = Depends(get_invalidator),
):
    """Expire every query cached on behalf of a user."""
    start = time.time()
    count = await invalidator.expire_user(identity)

    return ExpireResponse(
        success=True,
        keys_expired=count,
        duration_ms=(time.time() - start) * 1000,
    )
