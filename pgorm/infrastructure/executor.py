"""
Parameterized statement execution over the shared asyncpg pool.

The executor is the only component that touches connections. A plain executor
acquires a connection for exactly one statement round trip; the executor
yielded by ``transaction()`` is pinned to one connection until the block ends.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence, runtime_checkable

import asyncpg

from pgorm.config import Settings
from pgorm.exceptions import DatabaseConnectionError, QueryBuilderError, QueryExecutionError
from pgorm.infrastructure.db_factory import PoolManager, get_pool_manager
from pgorm.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class QueryResult:
    """Rows returned by a statement plus the number of rows it affected."""

    rows: List[Dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    status: str = ""

    def first(self) -> Optional[Dict[str, Any]]:
        return self.rows[0] if self.rows else None


@runtime_checkable
class SQLExecutor(Protocol):
    """Interface the query builder, the validator and the ORM execute through."""

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        ...

    def transaction(self) -> Any:
        ...


def _parse_row_count(status: Optional[str]) -> int:
    """Extract the trailing row count from a command tag such as ``UPDATE 3``."""
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


class QueryExecutor:
    """
    Thin parameterized-execution wrapper around an asyncpg pool.

    Parameters
    ----------
    pool : asyncpg.Pool
        Pool connections are acquired from.
    connection : asyncpg.Connection, optional
        When given, every statement runs on this connection instead of the pool.
    manager : PoolManager, optional
        Owner of ``pool``; closing the executor closes through it.
    """

    def __init__(self, pool: Any, connection: Any = None, manager: Optional[PoolManager] = None) -> None:
        if pool is None:
            raise DatabaseConnectionError("A connection pool is required to execute queries")
        self._pool = pool
        self._connection = connection
        self._manager = manager

    @classmethod
    async def connect(
        cls, dsn: Optional[str] = None, settings: Optional[Settings] = None
    ) -> "QueryExecutor":
        """
        Wrap the process-wide managed pool for ``dsn``.

        Executors connected to the same target share one pool, created on the
        first call. Raises DatabaseConnectionError when the database is unreachable.
        """
        manager = get_pool_manager(dsn, settings)
        return cls(await manager.get_pool(), manager=manager)

    @property
    def pool(self) -> Any:
        return self._pool

    async def _run(self, conn: Any, sql: str, params: Sequence[Any]) -> QueryResult:
        statement = await conn.prepare(sql)
        records = await statement.fetch(*params)
        status = statement.get_statusmsg()
        return QueryResult(
            rows=[dict(record) for record in records],
            row_count=_parse_row_count(status),
            status=status or "",
        )

    async def execute(self, sql: str, params: Optional[Sequence[Any]] = None) -> QueryResult:
        """
        Run one statement with out-of-band bound parameters.

        Raises
        ------
        QueryBuilderError
            If the statement text is empty.
        QueryExecutionError
            If the backend rejects or fails to run the statement.
        """
        if not sql or not sql.strip():
            raise QueryBuilderError("It seems the SQL query is empty and can not be executed")
        params = list(params or [])
        log.debug("executing statement: %s", sql, extra={"param_count": len(params)})
        try:
            if self._connection is not None:
                return await self._run(self._connection, sql, params)
            async with self._pool.acquire() as conn:
                return await self._run(conn, sql, params)
        except (asyncpg.PostgresError, asyncpg.InterfaceError) as exc:
            log.warning("statement failed: %s", exc, extra={"sql": sql})
            raise QueryExecutionError(str(exc), sql=sql) from exc

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["QueryExecutor"]:
        """
        Yield an executor pinned to one connection inside a transaction.

        The transaction commits when the block exits normally and rolls back
        when it raises. Nested calls reuse the pinned connection.
        """
        if self._connection is not None:
            async with self._connection.transaction():
                yield self
            return
        async with self._pool.acquire() as conn:
            async with conn.transaction():
                yield QueryExecutor(self._pool, connection=conn)

    async def close(self) -> None:
        """Close the pool; a managed pool is reopened by the next ``connect``."""
        if self._manager is not None:
            await self._manager.close()
        else:
            await self._pool.close()


def interpolate(sql: str, params: Sequence[Any]) -> str:
    """
    Render a statement with its parameters inlined, for logs and debugging only.

    Placeholders are replaced from the highest index down so ``$1`` never
    clobbers the prefix of ``$10``.
    """
    rendered = sql
    for index in range(len(params), 0, -1):
        value = params[index - 1]
        literal = "NULL" if value is None else repr(value) if isinstance(value, str) else str(value)
        rendered = rendered.replace(f"${index}", literal)
    return rendered


__all__ = ["QueryExecutor", "QueryResult", "SQLExecutor", "interpolate"]
