"""
Error Hierarchy for the Backed-Up Session Store

Two failure domains:

- StorageError: local record store and pending-operations log. Surfaced
  synchronously to the operation that triggered it.
- BackendError: the relational backup. Logged by the flusher and never
  surfaced to callers of local mutating operations.

Each error carries:
- Unique error code for programmatic handling
- Human-readable message for logging
- Optional cause for root cause analysis
- Timestamp for correlation with logs

Usage:
    result = await cache.get(key)
    match result:
        case Ok(None):
            start_new_session()
        case Ok(record):
            use(record)
        case Err(error) if error.code is ErrorCode.STORAGE_PERMANENT_CORRUPT_READ:
            start_new_session()
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from backedsession.core.types import Timestamp


# =============================================================================
# ERROR CODE ENUMERATION
# =============================================================================
class ErrorCode(Enum):
    """
    Unique error codes for programmatic error handling.

    Codes are grouped by subsystem:
    - 1xxx: Local storage errors
    - 2xxx: Backend (PostgreSQL) errors
    - 9xxx: Internal/configuration errors
    """

    # Local storage errors (1xxx)
    STORAGE_IO_FAILED = 1001
    STORAGE_INVALID_KEY = 1002
    STORAGE_TRANSIENT_CORRUPT_READ = 1003
    STORAGE_PERMANENT_CORRUPT_READ = 1004
    STORAGE_DECODE_FAILED = 1005
    STORAGE_ENCODE_FAILED = 1006

    # Backend errors (2xxx)
    BACKEND_CONNECTION_FAILED = 2001
    BACKEND_QUERY_FAILED = 2002
    BACKEND_TIMEOUT = 2003

    # Internal errors (9xxx)
    INTERNAL_CONFIGURATION_ERROR = 9002


# =============================================================================
# BASE ERROR CLASS
# =============================================================================
@dataclass
class SessionStoreError(Exception):
    """
    Base class for all session store errors.

    Provides:
    - Unique error ID for log correlation
    - Error code for programmatic handling
    - Cause chain for root cause analysis
    """

    code: ErrorCode
    message: str
    error_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: Timestamp = field(default_factory=Timestamp.now)
    cause: Optional[Exception] = None
    context: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize error to dictionary for structured logging."""
        return {
            "error_id": self.error_id,
            "code": self.code.name,
            "code_value": self.code.value,
            "message": self.message,
            "timestamp_nanos": self.timestamp.nanos,
            "context": self.context,
        }

    def __str__(self) -> str:
        return f"[{self.code.name}] {self.message} (id={self.error_id[:8]})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"code={self.code.name}, "
            f"message={self.message!r}, "
            f"error_id={self.error_id!r})"
        )


# =============================================================================
# LOCAL STORAGE ERRORS
# =============================================================================
@dataclass
class StorageError(SessionStoreError):
    """
    Errors from the local record directory and the pending-operations log.
    """

    @property
    def is_transient(self) -> bool:
        """True for torn reads that a later attempt may resolve."""
        return self.code is ErrorCode.STORAGE_TRANSIENT_CORRUPT_READ

    @classmethod
    def io_failed(
        cls,
        operation: str,
        path: str,
        cause: Optional[Exception] = None,
    ) -> StorageError:
        """Filesystem operation failed."""
        return cls(
            code=ErrorCode.STORAGE_IO_FAILED,
            message=f"Local storage '{operation}' failed at {path}: {cause}",
            cause=cause,
            context={"operation": operation, "path": path},
        )

    @classmethod
    def invalid_key(cls, key: str, reason: str) -> StorageError:
        return cls(
            code=ErrorCode.STORAGE_INVALID_KEY,
            message=f"Invalid session key {key!r}: {reason}",
            context={"key": key, "reason": reason},
        )

    @classmethod
    def transient_corrupt_read(
        cls,
        key: str,
        attempt: int,
        cause: Optional[Exception] = None,
    ) -> StorageError:
        """Record looked partially written; a retry may succeed."""
        return cls(
            code=ErrorCode.STORAGE_TRANSIENT_CORRUPT_READ,
            message=f"Torn read of session '{key}' on attempt {attempt}",
            cause=cause,
            context={"key": key, "attempt": attempt},
        )

    @classmethod
    def permanent_corrupt_read(
        cls,
        key: str,
        attempts: int,
        cause: Optional[Exception] = None,
    ) -> StorageError:
        """Record stayed malformed for every attempt and was deleted."""
        return cls(
            code=ErrorCode.STORAGE_PERMANENT_CORRUPT_READ,
            message=(
                f"Session '{key}' still malformed after {attempts} attempts; "
                f"record deleted"
            ),
            cause=cause,
            context={"key": key, "attempts": attempts},
        )

    @classmethod
    def decode_failed(
        cls,
        key: str,
        reason: str,
        cause: Optional[Exception] = None,
    ) -> StorageError:
        """Stored content is malformed in a way retries cannot fix."""
        return cls(
            code=ErrorCode.STORAGE_DECODE_FAILED,
            message=f"Cannot decode '{key}': {reason}",
            cause=cause,
            context={"key": key, "reason": reason},
        )

    @classmethod
    def encode_failed(
        cls,
        key: str,
        cause: Optional[Exception] = None,
    ) -> StorageError:
        """Payload cannot be serialized to JSON."""
        return cls(
            code=ErrorCode.STORAGE_ENCODE_FAILED,
            message=f"Cannot serialize session '{key}': {cause}",
            cause=cause,
            context={"key": key},
        )


# =============================================================================
# BACKEND ERRORS (POSTGRESQL BACKUP)
# =============================================================================
@dataclass
class BackendError(SessionStoreError):
    """
    Errors from the relational backup tier.

    Replication is best-effort: these are logged by the flusher and never
    re-queued.
    """

    @classmethod
    def connection_failed(
        cls,
        host: str,
        port: int,
        cause: Optional[Exception] = None,
    ) -> BackendError:
        return cls(
            code=ErrorCode.BACKEND_CONNECTION_FAILED,
            message=f"Failed to connect to database at {host}:{port}",
            cause=cause,
            context={"host": host, "port": port},
        )

    @classmethod
    def query_failed(
        cls,
        statement: str,
        cause: Optional[Exception] = None,
    ) -> BackendError:
        """Statement execution failed."""
        return cls(
            code=ErrorCode.BACKEND_QUERY_FAILED,
            message=f"Backend statement '{statement}' failed: {cause}",
            cause=cause,
            context={"statement": statement},
        )

    @classmethod
    def timeout(
        cls,
        operation: str,
        duration_ms: int,
        cause: Optional[Exception] = None,
    ) -> BackendError:
        return cls(
            code=ErrorCode.BACKEND_TIMEOUT,
            message=f"Operation '{operation}' timed out after {duration_ms}ms",
            cause=cause,
            context={"operation": operation, "duration_ms": duration_ms},
        )
