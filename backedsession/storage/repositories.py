"""
Session Repository: Data Access for the Backup Table

All methods return Result types. The repository knows the statements; the
executor (PostgresEngine or any QueryExecutor) knows the connection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from backedsession.core.errors import BackendError
from backedsession.core.types import Result, Ok, Err
from backedsession.storage.protocols import QueryExecutor
from backedsession.storage.schema import SessionTableSchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BackupRow:
    """One row of the backup table."""

    session_id: str
    data: Optional[str]
    expires: Optional[int] = None


class SessionRepository:
    """
    Repository for the session backup table.

    Provides:
    - Idempotent table bootstrap
    - Full scan for cold-start materialization
    - Batched delete
    - Per-key upsert
    """

    __slots__ = ("_executor", "_schema")

    def __init__(self, executor: QueryExecutor, schema: SessionTableSchema) -> None:
        self._executor = executor
        self._schema = schema

    @property
    def table(self) -> str:
        return self._schema.table

    async def bootstrap(self) -> Result[None, BackendError]:
        """Create the table if absent. Safe to call multiple times."""
        result = await self._executor.execute(self._schema.create_table)
        if result.is_err():
            return result
        logger.info(f"Backup table '{self.table}' ready")
        return Ok(None)

    async def fetch_all(self) -> Result[list[BackupRow], BackendError]:
        result = await self._executor.execute(self._schema.select_all)
        if result.is_err():
            return result

        return Ok([
            BackupRow(session_id=row["session_id"], data=row["data"])
            for row in result.unwrap().rows
        ])

    async def delete_many(self, keys: Iterable[str]) -> Result[int, BackendError]:
        """Delete all given keys in one statement; returns how many were requested."""
        ordered = sorted(set(keys))
        if not ordered:
            return Ok(0)

        result = await self._executor.execute(self._schema.delete_in(len(ordered)), *ordered)
        if result.is_err():
            return result
        return Ok(len(ordered))

    async def upsert(self, row: BackupRow) -> Result[None, BackendError]:
        """Insert or update one session keyed by session_id."""
        if row.data is None:
            return Err(BackendError.query_failed(
                "INSERT",
                cause=ValueError(f"no payload for session '{row.session_id}'"),
            ))

        result = await self._executor.execute(
            self._schema.upsert,
            row.session_id,
            row.expires,
            row.data,
        )
        if result.is_err():
            return result
        return Ok(None)
