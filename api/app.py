"""
Feedcache API Application

Owns the lifecycle of everything the cache shares process-wide:
1. Opens the database engine and the Redis connection on startup
2. Wires SWRCache, CacheInvalidator and the background task supervisor
3. Cancels outstanding revalidations and closes connections on shutdown
"""

import logging
import os
import sys
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI

from feedcache import __version__
from feedcache.cache import (
    BackgroundTasks,
    CacheInvalidator,
    RedisCache,
    SWRCache,
    get_cache_config,
)
from feedcache.database import QueryExecutor, create_db_engine, dispose_engine

from api.cache import router as cache_router

load_dotenv()

# Configure logging to stdout
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stdout,
    force=True,
)
logger = logging.getLogger(__name__)

# Quiet down chatty loggers
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
logging.getLogger("httpx").setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create shared clients on startup, release them on shutdown."""
    config = get_cache_config()

    logger.info("Initializing database engine and Redis cache...")
    engine = create_db_engine()
    redis_cache = RedisCache(config)
    await redis_cache.connect()

    tasks = BackgroundTasks()
    swr = SWRCache(redis_cache, QueryExecutor(engine), tasks, config)
    app.state.swr = swr
    app.state.invalidator = CacheInvalidator(swr)

    try:
        yield
    finally:
        logger.info("Shutting down cache...")
        await tasks.close()
        await redis_cache.close()
        await dispose_engine(engine)


app = FastAPI(
    title="Feedcache",
    description="Stale-while-revalidate query cache for cluster, list and topic feeds",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(cache_router)
