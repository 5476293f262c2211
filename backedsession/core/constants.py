"""
System-Wide Constants for the Backed-Up Session Store

All defaults and reserved names centralized here.
"""

from typing import Final

# =============================================================================
# TIME UNITS
# =============================================================================
SECOND_MS: Final[int] = 1000
MINUTE_MS: Final[int] = 60 * SECOND_MS

# =============================================================================
# LOCAL STORE
# =============================================================================
DEFAULT_DIR: Final[str] = "sessions"
RECORD_SUFFIX: Final[str] = ".json"
PENDING_LOG_NAME: Final[str] = "pending-ops.log"
TEMP_PREFIX: Final[str] = "."
TEMP_SUFFIX: Final[str] = ".tmp"

# =============================================================================
# TORN-READ RETRY
# =============================================================================
DEFAULT_RETRY_LIMIT: Final[int] = 100
DEFAULT_RETRY_WAIT_MS: Final[int] = 100

# =============================================================================
# BACKUP (POSTGRESQL)
# =============================================================================
DEFAULT_TABLE: Final[str] = "sessions"
DEFAULT_BACKUP_INTERVAL_MS: Final[int] = MINUTE_MS
SESSION_ID_MAX_LENGTH: Final[int] = 128

PG_POOL_MIN: Final[int] = 1
PG_POOL_MAX: Final[int] = 10
PG_CONN_TIMEOUT_MS: Final[int] = 5 * SECOND_MS
PG_QUERY_TIMEOUT_MS: Final[int] = 30 * SECOND_MS

# =============================================================================
# ENVIRONMENT
# =============================================================================
ENV_PREFIX: Final[str] = "BACKEDSESSION_"

# Unquoted SQL identifier, optionally schema-qualified
TABLE_NAME_PATTERN: Final[str] = r"^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)?$"
