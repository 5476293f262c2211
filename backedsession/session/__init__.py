"""
Session Module: Write-Behind Session Store

Provides:
- SessionCache: local-first store with periodic PostgreSQL backup
- BackupFlusher: drains pending intents into the backup table
- merge / diff / apply_changes: three-way merge of session payloads
- SessionStoreProtocol / CallbackSessionStore: store contract and adapter

Architecture:
- Hot Path: one JSON file per session, atomic replace
- Backup Path: batched delete + per-key upsert every interval
"""

from backedsession.session.merge import (
    Change,
    ChangeKind,
    diff,
    apply_changes,
    merge,
)
from backedsession.session.flusher import (
    BackupFlusher,
    FlushReport,
)
from backedsession.session.cache import SessionCache
from backedsession.session.contract import (
    SessionStoreProtocol,
    CallbackSessionStore,
)

__all__ = [
    # Merge
    "Change",
    "ChangeKind",
    "diff",
    "apply_changes",
    "merge",
    # Flusher
    "BackupFlusher",
    "FlushReport",
    # Cache
    "SessionCache",
    # Contract
    "SessionStoreProtocol",
    "CallbackSessionStore",
]
