"""
Postgres Engine: Connection Management for the Backup Tier

Provides async connection pooling with:
- Health check with configurable timeout
- Query timing statistics
- Result-typed execution (no exceptions cross this boundary)

Design:
- Uses asyncpg for async PostgreSQL access
- Connection pool with min/max bounds
- $1, $2 placeholders, as asyncpg expects
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional

import asyncpg

from backedsession.core.config import PostgresConfig
from backedsession.core.errors import BackendError
from backedsession.core.types import Result, Ok, Err, Timestamp

logger = logging.getLogger(__name__)


@dataclass
class ConnectionStats:
    """Connection pool statistics for observability."""

    total_connections: int = 0
    idle_connections: int = 0
    active_connections: int = 0
    total_queries: int = 0
    failed_queries: int = 0
    avg_query_time_ns: float = 0.0


@dataclass
class QueryResult:
    """Wrapper for query results with metadata."""

    rows: list[dict[str, Any]]
    row_count: int
    execution_time_ns: int

    @property
    def execution_time_ms(self) -> float:
        return self.execution_time_ns / 1_000_000


def _statement_name(query: str) -> str:
    """First keyword of a statement, for error context."""
    words = query.split()
    return words[0].upper() if words else ""


class PostgresEngine:
    """
    PostgreSQL connection manager for the backup tier.

    Usage:
        result = await PostgresEngine.create(config.postgres)
        async with result.unwrap() as engine:
            rows = (await engine.execute("SELECT session_id, data FROM sessions")).unwrap().rows
    """

    __slots__ = ("_config", "_pool", "_stats", "_closed")

    def __init__(self, config: PostgresConfig) -> None:
        self._config = config
        self._pool: Optional[asyncpg.Pool] = None
        self._stats = ConnectionStats()
        self._closed = False

    @classmethod
    async def create(cls, config: PostgresConfig) -> Result[PostgresEngine, BackendError]:
        """
        Factory method to create and initialize engine.

        Establishes connection pool and validates connectivity.
        """
        engine = cls(config)
        result = await engine._initialize_pool()
        if result.is_err():
            return result
        return Ok(engine)

    async def _initialize_pool(self) -> Result[None, BackendError]:
        try:
            self._pool = await asyncpg.create_pool(
                host=self._config.host,
                port=self._config.port,
                database=self._config.database,
                user=self._config.user,
                password=self._config.password or None,
                ssl=self._config.ssl_mode,
                min_size=self._config.pool_min,
                max_size=self._config.pool_max,
                timeout=self._config.conn_timeout_ms / 1000,
                command_timeout=self._config.query_timeout_ms / 1000,
            )

            async with self._pool.acquire() as conn:
                await conn.execute("SELECT 1")

            logger.info(
                "Postgres engine initialized",
                extra={
                    "host": self._config.host,
                    "port": self._config.port,
                    "pool_size": f"{self._config.pool_min}-{self._config.pool_max}",
                },
            )
            return Ok(None)

        except (OSError, asyncio.TimeoutError, asyncpg.PostgresError) as e:
            return Err(BackendError.connection_failed(
                host=self._config.host,
                port=self._config.port,
                cause=e,
            ))

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        """
        Acquire connection from pool.

        Raises:
            RuntimeError: If the engine is closed or was never initialized
        """
        if self._closed or self._pool is None:
            raise RuntimeError("Engine is closed")

        start = Timestamp.now()
        try:
            async with self._pool.acquire() as conn:
                self._stats.active_connections += 1
                yield conn
        finally:
            self._stats.active_connections -= 1
            self._update_stats(Timestamp.now() - start)

    async def execute(
        self,
        query: str,
        *args: Any,
    ) -> Result[QueryResult, BackendError]:
        """
        Execute query and return results.

        Args:
            query: SQL query string with $1, $2 placeholders
            *args: Query parameters
        """
        start = Timestamp.now()

        try:
            async with self.connection() as conn:
                rows = await conn.fetch(query, *args)

            elapsed = Timestamp.now() - start
            self._stats.total_queries += 1

            return Ok(QueryResult(
                rows=[dict(r) for r in rows],
                row_count=len(rows),
                execution_time_ns=elapsed,
            ))

        except asyncio.TimeoutError as e:
            self._stats.failed_queries += 1
            return Err(BackendError.timeout(
                operation=_statement_name(query),
                duration_ms=int((Timestamp.now() - start) / 1_000_000),
                cause=e,
            ))
        except (OSError, asyncpg.InterfaceError) as e:
            self._stats.failed_queries += 1
            return Err(BackendError.connection_failed(
                host=self._config.host,
                port=self._config.port,
                cause=e,
            ))
        except (asyncpg.PostgresError, RuntimeError) as e:
            self._stats.failed_queries += 1
            return Err(BackendError.query_failed(_statement_name(query), cause=e))

    def _update_stats(self, elapsed_ns: int) -> None:
        # Exponential moving average for query time
        alpha = 0.1
        self._stats.avg_query_time_ns = (
            alpha * elapsed_ns +
            (1 - alpha) * self._stats.avg_query_time_ns
        )

    @property
    def stats(self) -> ConnectionStats:
        """Get current connection pool statistics."""
        if self._pool is not None:
            self._stats.total_connections = self._pool.get_size()
            self._stats.idle_connections = self._pool.get_idle_size()
        return self._stats

    async def health_check(self) -> Result[bool, BackendError]:
        try:
            async with asyncio.timeout(5):
                result = await self.execute("SELECT 1")
                return Ok(result.is_ok())
        except asyncio.TimeoutError:
            return Err(BackendError.timeout(
                operation="health_check",
                duration_ms=5000,
            ))

    async def close(self) -> None:
        """Close connection pool and release resources."""
        if self._closed:
            return

        self._closed = True
        if self._pool is not None:
            await self._pool.close()
            logger.info("Postgres engine closed")

    async def __aenter__(self) -> PostgresEngine:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()
