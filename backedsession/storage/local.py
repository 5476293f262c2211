"""
Local Record Store: One JSON File per Session

Reads go through the RetryingDecoder; writes replace the whole record.
There is no partial update at this layer: merging happens above it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

from backedsession.core.errors import StorageError
from backedsession.core.record import SessionRecord, encode_record
from backedsession.core.types import Result, Ok, Err
from backedsession.storage.decoder import RetryingDecoder
from backedsession.storage.keyspace import KeySpace

logger = logging.getLogger(__name__)


class LocalRecordStore:
    """
    Durable per-key record storage on local media.

    Usage:
        store = LocalRecordStore(Path("sessions"), retry_limit=100, retry_wait_ms=100)
        await store.put("sid", {"cookie": {...}, "user": 7})
        record = (await store.get("sid")).unwrap()
    """

    __slots__ = ("_keyspace", "_decoder")

    def __init__(
        self,
        root: Path,
        retry_limit: int,
        retry_wait_ms: int,
    ) -> None:
        self._keyspace = KeySpace(root)
        self._decoder = RetryingDecoder(self._keyspace, retry_limit, retry_wait_ms)

    @property
    def keyspace(self) -> KeySpace:
        return self._keyspace

    async def get(self, key: str) -> Result[Optional[SessionRecord], StorageError]:
        return await self._decoder.read(key)

    async def put(
        self,
        key: str,
        record: Mapping[str, Any],
    ) -> Result[None, StorageError]:
        """Replace the record for ``key``."""
        path_result = self._keyspace.path_for(key)
        if path_result.is_err():
            return path_result

        try:
            data = encode_record(record)
        except (TypeError, ValueError) as e:
            return Err(StorageError.encode_failed(key, cause=e))

        return self._keyspace.write_file(path_result.unwrap(), data)

    async def remove(self, key: str) -> Result[bool, StorageError]:
        """Delete the record; Ok(False) if it did not exist."""
        path_result = self._keyspace.path_for(key)
        if path_result.is_err():
            return path_result
        return self._keyspace.delete_file(path_result.unwrap())

    async def list_keys(self) -> Result[list[str], StorageError]:
        return self._keyspace.keys()

    async def count(self) -> Result[int, StorageError]:
        return self._keyspace.keys().map(len)
