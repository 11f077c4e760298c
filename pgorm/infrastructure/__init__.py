"""
Infrastructure package for pgorm.

Centralizes database connectivity concerns (pool factory, statement execution).
Keep this layer focused on I/O and resource management, decoupled from
query construction and ORM logic.
"""

from pgorm.infrastructure.db_factory import PoolManager, create_async_pool, get_pool_manager, get_sync_connection
from pgorm.infrastructure.executor import QueryExecutor, QueryResult, SQLExecutor

__all__ = [
    "PoolManager",
    "QueryExecutor",
    "QueryResult",
    "SQLExecutor",
    "create_async_pool",
    "get_pool_manager",
    "get_sync_connection",
]
