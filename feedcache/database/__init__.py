"""
Database Module

Async SQLAlchemy engine and the raw-query executor the cache reads through.
"""

from .session import create_db_engine, dispose_engine, get_database_url
from .executor import QueryExecutor

__all__ = [
    "create_db_engine",
    "dispose_engine",
    "get_database_url",
    "QueryExecutor",
]
