"""
Core module: Type definitions, error hierarchy, and configuration.

This module provides the foundational abstractions for the session store:
- Result/Either monads for zero-exception control flow
- Error hierarchy split into local storage and backend failures
- Configuration management with validation
"""

from backedsession.core.types import (
    Result,
    Ok,
    Err,
    Timestamp,
)
from backedsession.core.errors import (
    ErrorCode,
    SessionStoreError,
    StorageError,
    BackendError,
)
from backedsession.core.config import (
    SessionStoreConfig,
    PostgresConfig,
    ObservabilityConfig,
)

__all__ = [
    "Result",
    "Ok",
    "Err",
    "Timestamp",
    "ErrorCode",
    "SessionStoreError",
    "StorageError",
    "BackendError",
    "SessionStoreConfig",
    "PostgresConfig",
    "ObservabilityConfig",
]
