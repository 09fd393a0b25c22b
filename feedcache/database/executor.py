"""
Source-of-Truth Query Executor

Runs fully rendered SQL against PostgreSQL and returns plain dict rows.
Errors are not wrapped: SQLAlchemyError propagates to the caller.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from feedcache.cache.keys import query_preview

logger = logging.getLogger(__name__)


class QueryExecutor:
    """Executes raw query text on an async engine."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine
        self.executions = 0

    async def execute(self, query_text: str) -> List[Dict[str, Any]]:
        """Run a query and return its rows as dicts."""
        self.executions += 1
        logger.debug(f"Executing PostgreSQL query ( {query_preview(query_text)} )...")
        async with self.engine.connect() as conn:
            result = await conn.execute(text(query_text))
            if not result.returns_rows:
                return []
            return [dict(row._mapping) for row in result]

    async def ping(self) -> bool:
        """Run SELECT 1. Returns False instead of raising."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.warning(f"Database ping failed: {e}")
            return False
