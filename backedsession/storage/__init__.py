"""
Storage module: local record files, the pending-operations log, and the
PostgreSQL backup tier.

Local tier:
- KeySpace: key ↔ file mapping, reserved files outside the key namespace
- RetryingDecoder: bounded retry over torn reads
- LocalRecordStore: whole-record get/put/remove/list/count
- PendingOpsLog: durable modified/removed key sets

Backup tier:
- PostgresEngine: asyncpg pool with Result-typed execute
- SessionTableSchema / SessionRepository: statements and data access
"""

from backedsession.storage.keyspace import KeySpace
from backedsession.storage.decoder import RetryingDecoder, decode_payload
from backedsession.storage.local import LocalRecordStore
from backedsession.storage.pending import PendingOps, PendingOpsLog
from backedsession.storage.engine import PostgresEngine, QueryResult, ConnectionStats
from backedsession.storage.protocols import QueryExecutor
from backedsession.storage.schema import SessionTableSchema
from backedsession.storage.repositories import BackupRow, SessionRepository

__all__ = [
    "KeySpace",
    "RetryingDecoder",
    "decode_payload",
    "LocalRecordStore",
    "PendingOps",
    "PendingOpsLog",
    "PostgresEngine",
    "QueryResult",
    "ConnectionStats",
    "QueryExecutor",
    "SessionTableSchema",
    "BackupRow",
    "SessionRepository",
]
