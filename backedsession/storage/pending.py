"""
Pending-Operations Log: Durable Replication Intents

Tracks which session keys still need to reach the backup table, split into
``modified`` (upsert) and ``removed`` (delete). Only identifiers are kept;
the flusher re-reads the freshest record at flush time.

Durability:
    Every change rewrites the log file atomically before the call returns,
    so a crash right after a local mutation cannot lose its intent.

Atomic drain:
    record_* and drain_and_reset share one asyncio.Lock. A mutation racing a
    drain lands either in the drained snapshot or in the fresh log.

Invariant:
    A key is in at most one of the two sets.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Optional

from backedsession.core import constants as C
from backedsession.core.errors import StorageError
from backedsession.core.types import Result, Ok, Err
from backedsession.storage.keyspace import KeySpace

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PendingOps:
    """Snapshot of keys awaiting replication."""

    modified: frozenset[str] = field(default_factory=frozenset)
    removed: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not self.modified and not self.removed

    def __len__(self) -> int:
        return len(self.modified) + len(self.removed)


class PendingOpsLog:
    """
    Durable queue of keys awaiting replication.

    The on-disk document is ``{"modified": [...], "removed": [...]}``.
    A missing file means nothing is pending.
    """

    __slots__ = ("_keyspace", "_path", "_modified", "_removed", "_loaded", "_lock")

    def __init__(self, keyspace: KeySpace, name: str = C.PENDING_LOG_NAME) -> None:
        self._keyspace = keyspace
        self._path = keyspace.reserved_path(name)
        self._modified: set[str] = set()
        self._removed: set[str] = set()
        self._loaded = False
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    async def record_modified(self, key: str) -> Result[None, StorageError]:
        async with self._lock:
            return self._mutate(add_to=self._modified, discard_from=self._removed, key=key)

    async def record_removed(self, key: str) -> Result[None, StorageError]:
        async with self._lock:
            return self._mutate(add_to=self._removed, discard_from=self._modified, key=key)

    async def drain_and_reset(self) -> Result[PendingOps, StorageError]:
        """Take everything pending and leave an empty durable log behind."""
        async with self._lock:
            loaded = self._ensure_loaded()
            if loaded.is_err():
                return loaded

            snapshot = PendingOps(
                modified=frozenset(self._modified),
                removed=frozenset(self._removed),
            )
            if snapshot.is_empty:
                return Ok(snapshot)

            persisted = self._persist(set(), set())
            if persisted.is_err():
                return persisted

            self._modified.clear()
            self._removed.clear()
            logger.debug(
                "Drained pending log",
                extra={"modified": len(snapshot.modified), "removed": len(snapshot.removed)},
            )
            return Ok(snapshot)

    async def peek(self) -> Result[PendingOps, StorageError]:
        async with self._lock:
            loaded = self._ensure_loaded()
            if loaded.is_err():
                return loaded
            return Ok(PendingOps(
                modified=frozenset(self._modified),
                removed=frozenset(self._removed),
            ))

    async def is_empty(self) -> Result[bool, StorageError]:
        return (await self.peek()).map(lambda ops: ops.is_empty)

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------
    def _mutate(
        self,
        add_to: set[str],
        discard_from: set[str],
        key: str,
    ) -> Result[None, StorageError]:
        loaded = self._ensure_loaded()
        if loaded.is_err():
            return loaded

        if key in add_to and key not in discard_from:
            return Ok(None)

        new_add = add_to | {key}
        new_discard = discard_from - {key}

        if add_to is self._modified:
            persisted = self._persist(new_add, new_discard)
        else:
            persisted = self._persist(new_discard, new_add)
        if persisted.is_err():
            return persisted

        add_to.add(key)
        discard_from.discard(key)
        return Ok(None)

    def _ensure_loaded(self) -> Result[None, StorageError]:
        """Load the durable state once; later calls use the in-memory mirror."""
        if self._loaded:
            return Ok(None)

        raw_result = self._keyspace.read_file(self._path)
        if raw_result.is_err():
            return raw_result

        raw: Optional[bytes] = raw_result.unwrap()
        if raw:
            try:
                doc = json.loads(raw.decode("utf-8"))
                modified = set(doc.get("modified", []))
                removed = set(doc.get("removed", []))
            except (UnicodeDecodeError, json.JSONDecodeError, AttributeError, TypeError) as e:
                return Err(StorageError.decode_failed(self._path.name, "unreadable pending log", cause=e))

            # A key in both sets can only come from an older writer; the delete wins.
            self._modified.update(modified - removed)
            self._removed.update(removed)
            if self._modified or self._removed:
                logger.info(
                    "Recovered pending replication intents",
                    extra={"modified": len(self._modified), "removed": len(self._removed)},
                )

        self._loaded = True
        return Ok(None)

    def _persist(self, modified: set[str], removed: set[str]) -> Result[None, StorageError]:
        doc = {"modified": sorted(modified), "removed": sorted(removed)}
        return self._keyspace.write_file(self._path, json.dumps(doc).encode("utf-8"))
