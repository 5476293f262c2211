"""
Session Cache: Write-Behind Session Store

Reads and writes hit local files immediately; the backup table catches up
in batches.

Synchronous path:
    caller → SessionCache → LocalRecordStore (+ three-way merge on set)
Asynchronous path:
    SessionCache → PendingOpsLog → BackupFlusher → PostgreSQL

Lifecycle:
    cache = (await SessionCache.create(config, engine)).unwrap()
    ...
    await cache.close()

At cold start the backup table is the source of truth: every row is
materialized as a local record. From then on the local directory is the
source of truth and the table trails it by at most one flush interval.

Expiry is lazy: ``all()`` (and therefore every flush) destroys records
whose cookie has expired. There is no separate sweeper.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Optional

from backedsession.core.config import SessionStoreConfig
from backedsession.core.errors import ErrorCode, SessionStoreError, StorageError
from backedsession.core.record import SessionRecord, is_expired, refresh_expiry
from backedsession.core.types import Result, Ok, Err
from backedsession.session.flusher import BackupFlusher, FlushReport
from backedsession.session.merge import merge
from backedsession.storage.decoder import decode_payload
from backedsession.storage.local import LocalRecordStore
from backedsession.storage.pending import PendingOpsLog
from backedsession.storage.protocols import QueryExecutor
from backedsession.storage.repositories import SessionRepository
from backedsession.storage.schema import SessionTableSchema

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SessionCache:
    """
    File-backed session store replicated to PostgreSQL.

    Conforms to SessionStoreProtocol: get / set / touch / destroy / all /
    clear / length, each a coroutine returning a Result.

    Usage:
        async with (await SessionCache.create(config, engine)).unwrap() as cache:
            record = (await cache.get(sid)).unwrap() or SessionRecord()
            record["views"] = record.get("views", 0) + 1
            await cache.set(sid, record)
    """

    __slots__ = (
        "_config", "_store", "_pending", "_repository",
        "_flusher", "_clock",
    )

    def __init__(
        self,
        config: SessionStoreConfig,
        executor: QueryExecutor,
        clock: Optional[Clock] = None,
    ) -> None:
        self._config = config
        self._clock = clock or _utcnow
        self._store = LocalRecordStore(
            config.dir,
            retry_limit=config.retry_limit,
            retry_wait_ms=config.retry_wait_ms,
        )
        self._pending = PendingOpsLog(self._store.keyspace)
        self._repository = SessionRepository(executor, SessionTableSchema(config.table))
        self._flusher = BackupFlusher(
            self._pending,
            self._repository,
            self.all,
            interval_s=config.backup_interval_s,
        )

    @classmethod
    async def create(
        cls,
        config: SessionStoreConfig,
        executor: QueryExecutor,
        clock: Optional[Clock] = None,
    ) -> Result[SessionCache, SessionStoreError]:
        """
        Validate config, bootstrap and materialize from the backup table,
        then start the periodic flusher.
        """
        validation = config.validate()
        if validation.is_err():
            return Err(SessionStoreError(
                code=ErrorCode.INTERNAL_CONFIGURATION_ERROR,
                message=validation.error,
            ))

        cache = cls(config, executor, clock)
        initialized = await cache.initialize()
        if initialized.is_err():
            return initialized

        cache.start()
        return Ok(cache)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def initialize(self) -> Result[int, SessionStoreError]:
        """
        Bootstrap the table (if configured) and materialize every backup
        row as a local record. Returns the number of records materialized.

        Keys still in the pending log are left alone: their local state is
        newer than the backup (modified) or must stay gone (removed).
        """
        pending_result = await self._pending.peek()
        if pending_result.is_err():
            return pending_result
        pending = pending_result.unwrap()

        if self._config.create_table:
            bootstrapped = await self._repository.bootstrap()
            if bootstrapped.is_err():
                return bootstrapped

        rows_result = await self._repository.fetch_all()
        if rows_result.is_err():
            return rows_result

        materialized = 0
        for row in rows_result.unwrap():
            if row.session_id in pending.modified or row.session_id in pending.removed:
                logger.debug(
                    f"Keeping local state of pending session '{row.session_id}'",
                    extra={"key": row.session_id},
                )
                continue

            if not row.data:
                logger.warning(f"Skipping backup row '{row.session_id}' with no data")
                continue

            decoded = decode_payload(row.session_id, row.data.encode("utf-8"))
            if decoded.is_err():
                logger.warning(
                    f"Skipping undecodable backup row '{row.session_id}'",
                    extra={"key": row.session_id, "error": str(decoded.error)},
                )
                continue

            stored = await self._store.put(row.session_id, decoded.unwrap())
            if stored.is_err():
                return stored
            materialized += 1

        logger.info(
            f"Materialized {materialized} sessions from backup",
            extra={"table": self._repository.table, "dir": str(self._config.dir)},
        )
        return Ok(materialized)

    def start(self) -> None:
        """Start the periodic flusher (needs a running event loop)."""
        self._flusher.start()

    async def flush(self) -> Result[FlushReport, StorageError]:
        """Replicate pending changes now instead of waiting for the next tick."""
        return await self._flusher.flush_once()

    async def close(self, flush: bool = True) -> Result[Optional[FlushReport], StorageError]:
        """
        Stop the periodic flusher; by default replicate what is still
        pending before returning.
        """
        await self._flusher.stop()
        if not flush:
            return Ok(None)
        return await self._flusher.flush_once()

    @property
    def flusher_running(self) -> bool:
        return self._flusher.running

    @property
    def pending(self) -> PendingOpsLog:
        return self._pending

    async def __aenter__(self) -> SessionCache:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Session store contract
    # ------------------------------------------------------------------
    async def get(self, key: str) -> Result[Optional[SessionRecord], StorageError]:
        """Read a record and remember its current content as the merge base."""
        result = await self._store.get(key)
        if result.is_err():
            return result

        record = result.unwrap()
        if record is not None:
            record.take_snapshot()
        return Ok(record)

    async def set(self, key: str, record: Mapping[str, Any]) -> Result[None, StorageError]:
        """
        Write the caller's changes, merged onto whatever is on disk now.

        Only the difference between the record's snapshot and the record is
        applied, so concurrent changes to other fields survive. A mapping
        without a snapshot is a first write: all of its fields are applied.
        """
        snapshot = getattr(record, "snapshot", None)

        current_result = await self._store.get(key)
        if current_result.is_err():
            return current_result

        merged = merge(snapshot, record, current_result.unwrap())

        stored = await self._store.put(key, merged)
        if stored.is_err():
            return stored

        if isinstance(record, SessionRecord):
            record.take_snapshot()

        return await self._pending.record_modified(key)

    async def touch(
        self,
        key: str,
        record: Optional[Mapping[str, Any]] = None,
    ) -> Result[None, StorageError]:
        """
        Extend a session: cookie.expires = now + cookie.originalMaxAge.

        The stored record is the one extended; ``record`` is accepted for
        contract compatibility and ignored. Unknown keys are a no-op.
        """
        current_result = await self._store.get(key)
        if current_result.is_err():
            return current_result

        current = current_result.unwrap()
        if current is None:
            return Ok(None)

        refresh_expiry(current, self._clock())

        stored = await self._store.put(key, current)
        if stored.is_err():
            return stored

        return await self._pending.record_modified(key)

    async def destroy(self, key: str) -> Result[None, StorageError]:
        removed = await self._store.remove(key)
        if removed.is_err():
            return removed

        # The backup may hold the key even when the local file is already gone.
        return await self._pending.record_removed(key)

    async def all(self) -> Result[dict[str, SessionRecord], StorageError]:
        """Every live record by key; expired records are destroyed on the way."""
        keys_result = await self._store.list_keys()
        if keys_result.is_err():
            return keys_result

        now = self._clock()
        records: dict[str, SessionRecord] = {}
        for key in keys_result.unwrap():
            got = await self.get(key)
            if got.is_err():
                return got

            record = got.unwrap()
            if record is None:
                continue

            if is_expired(record, now):
                destroyed = await self.destroy(key)
                if destroyed.is_err():
                    return destroyed
                logger.debug(f"Reaped expired session '{key}'", extra={"key": key})
                continue

            records[key] = record

        return Ok(records)

    async def clear(self) -> Result[None, StorageError]:
        keys_result = await self._store.list_keys()
        if keys_result.is_err():
            return keys_result

        for key in keys_result.unwrap():
            destroyed = await self.destroy(key)
            if destroyed.is_err():
                return destroyed
        return Ok(None)

    async def length(self) -> Result[int, StorageError]:
        return await self._store.count()
