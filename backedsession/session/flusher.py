"""
Backup Flusher: Write-Behind Replication to PostgreSQL

On each tick:
    1. Nothing pending → nothing to do.
    2. Drain the pending log (ownership of the intents moves here).
    3. One batched DELETE for every removed key.
    4. Re-enumerate live records (expired ones are reaped on the way) and
       upsert each modified key that still exists, with its freshest value.

Backend failures are logged per key and never re-queued: a record whose
upsert failed waits for its next local mutation. A failure to enumerate the
local records is different: it is local, so the modified keys go back into
the pending log for the next tick.

The periodic task is owned by the cache: start() creates it, stop() cancels
and awaits it. A tick already in progress is shielded from cancellation so
drained intents are not dropped halfway, and stop() returns only once that
tick has finished.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, Optional
from uuid import uuid4

from backedsession.core.errors import StorageError
from backedsession.core.record import encode_payload, expires_epoch_seconds
from backedsession.core.types import Result, Ok
from backedsession.observability.logging import StructuredLogger
from backedsession.storage.pending import PendingOpsLog
from backedsession.storage.repositories import BackupRow, SessionRepository

RecordEnumerator = Callable[
    [],
    Awaitable[Result[Mapping[str, Mapping[str, Any]], StorageError]],
]


@dataclass
class FlushReport:
    """Outcome of one flush."""

    flush_id: str = ""
    deleted: int = 0
    delete_failed: bool = False
    upserted: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    requeued: list[str] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not (
            self.deleted or self.delete_failed or self.upserted
            or self.failed or self.skipped or self.requeued
        )


class BackupFlusher:
    """
    Drains the pending log into the backup table.

    Usage:
        flusher = BackupFlusher(pending, repository, cache.all, interval_s=60)
        flusher.start()
        ...
        await flusher.stop()
    """

    __slots__ = (
        "_pending", "_repository", "_enumerate", "_interval_s",
        "_task", "_flush_lock", "_log",
    )

    def __init__(
        self,
        pending: PendingOpsLog,
        repository: SessionRepository,
        enumerate_records: RecordEnumerator,
        interval_s: float,
    ) -> None:
        self._pending = pending
        self._repository = repository
        self._enumerate = enumerate_records
        self._interval_s = interval_s
        self._task: Optional[asyncio.Task[None]] = None
        self._flush_lock = asyncio.Lock()
        self._log = StructuredLogger(__name__).with_extra(table=repository.table)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            self._log.warning("Backup flusher already running")
            return
        self._task = asyncio.create_task(self._run(), name=f"backup-flusher:{self._repository.table}")
        self._log.info("Backup flusher started", interval_s=self._interval_s)

    async def stop(self) -> None:
        if self._task is None:
            return

        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        # A shielded tick outlives the cancelled task; wait for it to release the lock
        async with self._flush_lock:
            pass
        self._log.info("Backup flusher stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self._interval_s)
            try:
                result = await asyncio.shield(self.flush_once())
            except asyncio.CancelledError:
                raise
            except Exception:
                self._log.exception("Backup flush tick crashed")
                continue

            if result.is_err():
                self._log.error("Backup flush failed", error=str(result.error))

    # ------------------------------------------------------------------
    # Flush
    # ------------------------------------------------------------------
    async def flush_once(self) -> Result[FlushReport, StorageError]:
        """Run one flush; concurrent calls are serialized."""
        async with self._flush_lock:
            return await self._flush()

    async def _flush(self) -> Result[FlushReport, StorageError]:
        empty = await self._pending.is_empty()
        if empty.is_err():
            return empty
        if empty.unwrap():
            return Ok(FlushReport())

        drained = await self._pending.drain_and_reset()
        if drained.is_err():
            return drained
        ops = drained.unwrap()

        report = FlushReport(flush_id=uuid4().hex[:8])
        with self._log.context(flush_id=report.flush_id):
            if ops.removed:
                await self._delete_removed(ops.removed, report)

            if ops.modified:
                upserted = await self._upsert_modified(ops.modified, report)
                if upserted.is_err():
                    return upserted

            self._log.info(
                "Backup flush complete",
                deleted=report.deleted,
                upserted=len(report.upserted),
                failed=len(report.failed),
                skipped=len(report.skipped),
            )
        return Ok(report)

    async def _delete_removed(self, keys: frozenset[str], report: FlushReport) -> None:
        result = await self._repository.delete_many(keys)
        if result.is_err():
            report.delete_failed = True
            self._log.error(
                "Batched backup delete failed",
                keys=len(keys),
                error=str(result.error),
            )
            return
        report.deleted = result.unwrap()

    async def _upsert_modified(
        self,
        keys: frozenset[str],
        report: FlushReport,
    ) -> Result[None, StorageError]:
        records_result = await self._enumerate()
        if records_result.is_err():
            for key in sorted(keys):
                requeued = await self._pending.record_modified(key)
                if requeued.is_err():
                    return requeued
                report.requeued.append(key)
            failed_key = records_result.error.context.get("key") or records_result.error.context.get("path")
            self._log.warning(
                f"Local enumeration failed at session '{failed_key}'; modified sessions requeued",
                failed_key=failed_key,
                keys=len(keys),
                error=str(records_result.error),
            )
            return Ok(None)

        records = records_result.unwrap()
        rows = []
        for key in sorted(keys):
            record = records.get(key)
            if record is None:
                report.skipped.append(key)
                continue
            rows.append(BackupRow(
                session_id=key,
                data=encode_payload(record),
                expires=expires_epoch_seconds(record),
            ))

        outcomes = await asyncio.gather(
            *(self._repository.upsert(row) for row in rows),
            return_exceptions=True,
        )
        for row, outcome in zip(rows, outcomes):
            if isinstance(outcome, BaseException):
                error: Any = outcome
            elif outcome.is_err():
                error = outcome.error
            else:
                report.upserted.append(row.session_id)
                self._log.debug("Session replicated", key=row.session_id)
                continue

            report.failed.append(row.session_id)
            self._log.error(
                "Backup upsert failed",
                key=row.session_id,
                error=str(error),
            )
        return Ok(None)
