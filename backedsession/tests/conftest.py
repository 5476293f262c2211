"""
Shared fixtures: an in-memory stand-in for the backup table, a controllable
clock, and helpers that build a cache against them.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Optional

import pytest

from backedsession.core.config import SessionStoreConfig
from backedsession.core.errors import BackendError
from backedsession.core.types import Result, Ok, Err
from backedsession.session.cache import SessionCache
from backedsession.storage.engine import QueryResult


class FakeBackend:
    """
    QueryExecutor that records every statement and emulates the session
    table well enough for the statements the repository issues.
    """

    def __init__(self) -> None:
        self.table: dict[str, dict[str, Any]] = {}
        self.statements: list[tuple[str, tuple[Any, ...]]] = []
        self.fail_keys: set[str] = set()
        self.fail_verbs: set[str] = set()

    def seed(self, session_id: str, data: Optional[str], expires: Optional[int] = None) -> None:
        self.table[session_id] = {"data": data, "expires": expires}

    def verbs(self) -> list[str]:
        return [query.split()[0].upper() for query, _ in self.statements]

    def upserted_keys(self) -> list[str]:
        return [args[0] for query, args in self.statements if query.split()[0].upper() == "INSERT"]

    async def execute(self, query: str, *args: Any) -> Result[QueryResult, BackendError]:
        verb = query.split()[0].upper()
        self.statements.append((query, args))

        if verb in self.fail_verbs:
            return Err(BackendError.query_failed(verb, cause=RuntimeError("backend down")))

        if verb == "CREATE":
            return Ok(QueryResult(rows=[], row_count=0, execution_time_ns=0))

        if verb == "SELECT":
            rows = [
                {"session_id": key, "data": row["data"]}
                for key, row in sorted(self.table.items())
            ]
            return Ok(QueryResult(rows=rows, row_count=len(rows), execution_time_ns=0))

        if verb == "DELETE":
            for key in args:
                self.table.pop(key, None)
            return Ok(QueryResult(rows=[], row_count=len(args), execution_time_ns=0))

        if verb == "INSERT":
            session_id, expires, data = args
            if session_id in self.fail_keys:
                return Err(BackendError.query_failed(verb, cause=RuntimeError(f"rejected {session_id}")))
            self.table[session_id] = {"data": data, "expires": expires}
            return Ok(QueryResult(rows=[], row_count=1, execution_time_ns=0))

        raise AssertionError(f"Unexpected statement: {query}")


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += timedelta(milliseconds=ms)


def make_config(root: Path, **overrides: Any) -> SessionStoreConfig:
    options: dict[str, Any] = {
        "dir": root / "sessions",
        "retry_limit": 3,
        "retry_wait_ms": 0,
        "backup_interval_ms": 50,
    }
    options.update(overrides)
    return SessionStoreConfig(**options)


async def open_cache(
    root: Path,
    backend: FakeBackend,
    clock: Optional[FakeClock] = None,
    **overrides: Any,
) -> SessionCache:
    """Build and materialize a cache without starting its flusher."""
    cache = SessionCache(make_config(root, **overrides), backend, clock=clock)
    initialized = await cache.initialize()
    assert initialized.is_ok(), initialized
    return cache


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
