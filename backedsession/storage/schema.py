"""
Session Table Schema: DDL and Statements for the Backup Relation

Table:
    session_id  VARCHAR(128) PRIMARY KEY   session key
    expires     NUMERIC(11, 0)             epoch seconds, NULL if none
    data        TEXT                       JSON payload

The table name is configurable, so it is validated as a plain SQL
identifier before being interpolated into statements.
"""

from __future__ import annotations

import re

from backedsession.core import constants as C

_IDENTIFIER = re.compile(C.TABLE_NAME_PATTERN)


class SessionTableSchema:
    """Renders the statements the store issues against the backup table."""

    __slots__ = ("_table",)

    def __init__(self, table: str = C.DEFAULT_TABLE) -> None:
        if not _IDENTIFIER.match(table):
            raise ValueError(f"Invalid table name: {table!r}")
        self._table = table

    @property
    def table(self) -> str:
        return self._table

    @property
    def create_table(self) -> str:
        return f"""
            CREATE TABLE IF NOT EXISTS {self._table} (
                session_id VARCHAR({C.SESSION_ID_MAX_LENGTH}) PRIMARY KEY NOT NULL,
                expires NUMERIC(11, 0),
                data TEXT
            );
        """

    @property
    def select_all(self) -> str:
        return f"SELECT session_id, data FROM {self._table};"

    def delete_in(self, count: int) -> str:
        """Batched delete for ``count`` keys: WHERE session_id IN ($1, ..., $count)."""
        if count < 1:
            raise ValueError("delete_in needs at least one key")
        placeholders = ", ".join(f"${i}" for i in range(1, count + 1))
        return f"DELETE FROM {self._table} WHERE session_id IN ({placeholders});"

    @property
    def upsert(self) -> str:
        return f"""
            INSERT INTO {self._table} (session_id, expires, data) VALUES ($1, $2, $3)
            ON CONFLICT (session_id) DO UPDATE SET expires = $2, data = $3;
        """
