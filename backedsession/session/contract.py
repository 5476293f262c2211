"""
Session Store Contract

SessionStoreProtocol is the coroutine surface session middleware talks to.
CallbackSessionStore adapts it to the ``callback(error, result)`` style used
by middleware that predates asyncio: each call schedules the operation on
the running loop and returns the task.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping, Optional, Protocol, runtime_checkable

from backedsession.core.errors import StorageError
from backedsession.core.record import SessionRecord
from backedsession.core.types import Result

logger = logging.getLogger(__name__)

Callback = Callable[[Optional[Exception], Any], None]


@runtime_checkable
class SessionStoreProtocol(Protocol):
    """Operations every session store offers."""

    async def get(self, key: str) -> Result[Optional[SessionRecord], StorageError]:
        ...

    async def set(self, key: str, record: Mapping[str, Any]) -> Result[None, StorageError]:
        ...

    async def touch(
        self,
        key: str,
        record: Optional[Mapping[str, Any]] = None,
    ) -> Result[None, StorageError]:
        ...

    async def destroy(self, key: str) -> Result[None, StorageError]:
        ...

    async def all(self) -> Result[dict[str, SessionRecord], StorageError]:
        ...

    async def clear(self) -> Result[None, StorageError]:
        ...

    async def length(self) -> Result[int, StorageError]:
        ...


class CallbackSessionStore:
    """
    Callback adapter over a SessionStoreProtocol.

    Usage:
        store = CallbackSessionStore(cache)
        store.get(sid, lambda err, record: ...)

    The callback receives ``(error, None)`` on failure and ``(None, value)``
    on success. An exception raised by the callback is logged, not
    propagated into the store.
    """

    __slots__ = ("_store",)

    def __init__(self, store: SessionStoreProtocol) -> None:
        self._store = store

    def _dispatch(
        self,
        operation: Awaitable[Result[Any, StorageError]],
        callback: Optional[Callback],
    ) -> asyncio.Task[None]:
        async def run() -> None:
            result = await operation
            if callback is None:
                if result.is_err():
                    logger.warning(f"Session store operation failed: {result.error}")
                return
            try:
                if result.is_err():
                    callback(result.error, None)
                else:
                    callback(None, result.unwrap())
            except Exception:
                logger.exception("Session store callback raised")

        return asyncio.ensure_future(run())

    def get(self, key: str, callback: Optional[Callback] = None) -> asyncio.Task[None]:
        return self._dispatch(self._store.get(key), callback)

    def set(
        self,
        key: str,
        record: Mapping[str, Any],
        callback: Optional[Callback] = None,
    ) -> asyncio.Task[None]:
        return self._dispatch(self._store.set(key, record), callback)

    def touch(
        self,
        key: str,
        record: Optional[Mapping[str, Any]] = None,
        callback: Optional[Callback] = None,
    ) -> asyncio.Task[None]:
        return self._dispatch(self._store.touch(key, record), callback)

    def destroy(self, key: str, callback: Optional[Callback] = None) -> asyncio.Task[None]:
        return self._dispatch(self._store.destroy(key), callback)

    def all(self, callback: Optional[Callback] = None) -> asyncio.Task[None]:
        return self._dispatch(self._store.all(), callback)

    def clear(self, callback: Optional[Callback] = None) -> asyncio.Task[None]:
        return self._dispatch(self._store.clear(), callback)

    def length(self, callback: Optional[Callback] = None) -> asyncio.Task[None]:
        return self._dispatch(self._store.length(), callback)
