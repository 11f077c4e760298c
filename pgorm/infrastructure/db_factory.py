"""
Database connection factory utilities for pgorm.

Provides centralized management of the asyncpg pool used by the query executor
and of the plain psycopg connections used by the migration runner. The
PoolManager keeps one pool per database target and closes it on demand;
get_pool_manager hands out one manager per target for the whole process.

Includes retry logic for transient connection failures using tenacity.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

import asyncpg
import psycopg
from psycopg import Connection
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from pgorm.config import Settings, build_dsn, get_settings
from pgorm.exceptions import DatabaseConnectionError
from pgorm.utils.logging import get_logger

log = get_logger(__name__)

_TRANSIENT_ASYNC_ERRORS = (OSError, asyncpg.CannotConnectNowError, asyncpg.TooManyConnectionsError)


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type(_TRANSIENT_ASYNC_ERRORS),
    reraise=True,
)
async def _create_pool_with_retry(dsn: str, settings: Settings) -> asyncpg.Pool:
    return await asyncpg.create_pool(
        dsn=dsn,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
        command_timeout=settings.command_timeout,
    )


async def create_async_pool(
    dsn: Optional[str] = None, settings: Optional[Settings] = None
) -> asyncpg.Pool:
    """
    Create an asyncpg pool, retrying transient connection errors.

    Parameters
    ----------
    dsn : str, optional
        Connection string; composed from settings when omitted.
    settings : Settings, optional
        Pool sizing and timeout source; defaults to the cached settings.

    Returns
    -------
    asyncpg.Pool
        A ready-to-use pool.

    Raises
    ------
    DatabaseConnectionError
        If the pool cannot be created after all retry attempts.
    """
    settings = settings or get_settings()
    dsn = dsn or build_dsn(settings)
    try:
        pool = await _create_pool_with_retry(dsn, settings)
    except (*_TRANSIENT_ASYNC_ERRORS, asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
        log.error("connection pool unavailable: %s", exc)
        raise DatabaseConnectionError(f"Unable to create connection pool: {exc}") from exc
    log.debug(
        "connection pool created",
        extra={"min_size": settings.pool_min_size, "max_size": settings.pool_max_size},
    )
    return pool


class PoolManager:
    """
    Per-process holder for the shared asyncpg pool.

    The pool is created lazily on first use; concurrent first callers share a
    single creation attempt.
    """

    def __init__(self, dsn: Optional[str] = None, settings: Optional[Settings] = None) -> None:
        self._dsn = dsn
        self._settings = settings
        self._pool: Optional[asyncpg.Pool] = None
        self._lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._pool is not None

    async def get_pool(self) -> asyncpg.Pool:
        """
        Get or create the managed pool.

        Returns
        -------
        asyncpg.Pool
            The managed pool instance.
        """
        async with self._lock:
            if self._pool is None:
                self._pool = await create_async_pool(self._dsn, self._settings)
            return self._pool

    async def close(self) -> None:
        """Close the managed pool and release its connections."""
        async with self._lock:
            if self._pool is not None:
                pool, self._pool = self._pool, None
                await pool.close()


_managers: Dict[str, PoolManager] = {}


def get_pool_manager(dsn: Optional[str] = None, settings: Optional[Settings] = None) -> PoolManager:
    """
    Return the process-wide PoolManager for a connection target.

    Managers are keyed by the resolved DSN, so every caller aiming at the same
    database shares one pool.
    """
    settings = settings or get_settings()
    dsn = dsn or build_dsn(settings)
    manager = _managers.get(dsn)
    if manager is None:
        manager = _managers[dsn] = PoolManager(dsn, settings)
    return manager


@retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=1, max=10),
    retry=retry_if_exception_type((psycopg.OperationalError, psycopg.InterfaceError)),
    reraise=True,
)
def get_sync_connection(dsn: Optional[str] = None) -> Connection:
    """
    Acquire a dedicated synchronous connection with automatic retry.

    Retries up to 3 times with exponential backoff for transient connection errors.
    Used by the migration runner, which executes DDL outside the async engine.

    Returns
    -------
    Connection
        A new psycopg connection instance.

    Raises
    ------
    psycopg.OperationalError
        If connection fails after all retry attempts.
    """
    return psycopg.connect(dsn or build_dsn())


__all__ = [
    "PoolManager",
    "create_async_pool",
    "get_pool_manager",
    "get_sync_connection",
]
