"""
Backed Session Store

A session store for web middleware that keeps every session as a JSON file
on local disk and replicates it, write-behind, to a PostgreSQL table:

- Local Tier: one atomically replaced file per session, torn-read tolerant
- Backup Tier: PostgreSQL table, batched delete + per-key upsert
- Merge: concurrent writers only overwrite the fields they changed
- Recovery: the backup table repopulates an empty disk at startup

License: MIT
"""

__version__ = "1.0.0"

# =============================================================================
# PUBLIC API EXPORTS
# =============================================================================
from backedsession.core.types import (
    Result,
    Ok,
    Err,
)
from backedsession.core.errors import (
    ErrorCode,
    SessionStoreError,
    StorageError,
    BackendError,
)
from backedsession.core.config import SessionStoreConfig, PostgresConfig
from backedsession.core.record import SessionRecord

from backedsession.session import (
    SessionCache,
    BackupFlusher,
    FlushReport,
    SessionStoreProtocol,
    CallbackSessionStore,
)
from backedsession.storage import PostgresEngine

__all__ = [
    # Core
    "Result",
    "Ok",
    "Err",
    "ErrorCode",
    "SessionStoreError",
    "StorageError",
    "BackendError",
    "SessionStoreConfig",
    "PostgresConfig",
    "SessionRecord",
    # Session store
    "SessionCache",
    "BackupFlusher",
    "FlushReport",
    "SessionStoreProtocol",
    "CallbackSessionStore",
    # Backup tier
    "PostgresEngine",
]
