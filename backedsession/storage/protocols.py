"""
Backend Protocol Definitions

Structural subtyping (PEP 544) for the relational collaborator. Anything
with a matching ``execute`` coroutine can back the session table:
PostgresEngine in production, a recording fake in tests.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from backedsession.core.errors import BackendError
from backedsession.core.types import Result
from backedsession.storage.engine import QueryResult


@runtime_checkable
class QueryExecutor(Protocol):
    """Executes one SQL statement with positional ($n) parameters."""

    async def execute(
        self,
        query: str,
        *args: Any,
    ) -> Result[QueryResult, BackendError]:
        ...
