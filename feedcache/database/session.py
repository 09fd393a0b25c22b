"""
Database Engine Management

Creates the async SQLAlchemy engine the query executor runs on.
The engine is created and disposed by the application lifespan and
injected where needed; there is no module-level global.
"""

import os
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

logger = logging.getLogger(__name__)

ASYNC_DRIVER = "postgresql+asyncpg://"


# =============================================================================
# DATABASE URL CONFIGURATION
# =============================================================================

def _to_async_url(url: str) -> str:
    """Rewrite postgres:// and postgresql:// URLs for the asyncpg driver."""
    for scheme in ("postgres://", "postgresql://"):
        if url.startswith(scheme):
            return url.replace(scheme, ASYNC_DRIVER, 1)
    return url


def get_database_url() -> str:
    """
    Get database URL from environment.

    Priority:
    1. DATABASE_URL
    2. POSTGRES_URL (alternative)

    Raises:
        RuntimeError: If neither variable is set.
    """
    for name in ("DATABASE_URL", "POSTGRES_URL"):
        url = os.getenv(name)
        if url:
            logger.info(f"Using PostgreSQL database from {name}")
            return _to_async_url(url)

    raise RuntimeError("DATABASE_URL env var not set")


# =============================================================================
# ENGINE CONFIGURATION
# =============================================================================

def create_db_engine(url: Optional[str] = None) -> AsyncEngine:
    """
    Create the async engine with connection pooling.

    Args:
        url: Database URL; read from the environment when omitted.
    """
    url = _to_async_url(url) if url else get_database_url()

    kwargs = {"echo": os.getenv("SQL_DEBUG", "false").lower() == "true"}
    if url.startswith(ASYNC_DRIVER):
        kwargs.update(
            pool_size=5,                # Base connections
            max_overflow=10,            # Additional connections under load
            pool_timeout=30,            # Wait for connection
            pool_recycle=1800,          # Recycle connections after 30 min
            pool_pre_ping=True,         # Verify connections before use
        )

    engine = create_async_engine(url, **kwargs)
    logger.info("Created async database engine")
    return engine


async def dispose_engine(engine: Optional[AsyncEngine]):
    """Dispose of the engine's pool. Call on application shutdown."""
    if engine is not None:
        await engine.dispose()
        logger.info("Database engine disposed")
