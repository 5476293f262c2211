"""
Configuration Management for the Backed-Up Session Store

Provides validated configuration with sensible defaults.
Supports environment variable overrides.

Design:
- Immutable after construction
- Fail-fast on invalid configuration
- Type-safe with dataclasses
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path

from backedsession.core.types import Result, Ok, Err
from backedsession.core import constants as C


_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def _env(name: str, default: str) -> str:
    return os.getenv(f"{C.ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(f"{C.ENV_PREFIX}{name}")
    if raw is None:
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"{C.ENV_PREFIX}{name} must be a boolean, got {raw!r}")


@dataclass(frozen=True)
class PostgresConfig:
    """Backup tier (PostgreSQL) connection configuration."""

    host: str = "localhost"
    port: int = 5432
    database: str = "sessions"
    user: str = "postgres"
    password: str = ""
    pool_min: int = C.PG_POOL_MIN
    pool_max: int = C.PG_POOL_MAX
    conn_timeout_ms: int = C.PG_CONN_TIMEOUT_MS
    query_timeout_ms: int = C.PG_QUERY_TIMEOUT_MS
    ssl_mode: str = "prefer"

    @property
    def dsn(self) -> str:
        """PostgreSQL connection string."""
        return (
            f"postgresql://{self.user}:{self.password}@"
            f"{self.host}:{self.port}/{self.database}"
            f"?sslmode={self.ssl_mode}"
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration."""

    log_level: str = "INFO"
    log_json: bool = True


@dataclass(frozen=True)
class SessionStoreConfig:
    """
    Root configuration for the session store.

    Attributes:
        dir: Local storage root (one file per session)
        create_table: Bootstrap the backup table on startup
        table: Backup relation name
        backup_interval_ms: Flush period
        retry_limit: Total read attempts for a torn record
        retry_wait_ms: Fixed delay between torn-read attempts
    """

    dir: Path = field(default_factory=lambda: Path(C.DEFAULT_DIR))
    create_table: bool = True
    table: str = C.DEFAULT_TABLE
    backup_interval_ms: int = C.DEFAULT_BACKUP_INTERVAL_MS
    retry_limit: int = C.DEFAULT_RETRY_LIMIT
    retry_wait_ms: int = C.DEFAULT_RETRY_WAIT_MS
    postgres: PostgresConfig = field(default_factory=PostgresConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @property
    def backup_interval_s(self) -> float:
        return self.backup_interval_ms / C.SECOND_MS

    @classmethod
    def from_env(cls) -> Result[SessionStoreConfig, str]:
        """
        Load configuration from environment variables.

        Environment variables are prefixed with BACKEDSESSION_.
        Example: BACKEDSESSION_DIR, BACKEDSESSION_PG_HOST
        """
        try:
            postgres = PostgresConfig(
                host=_env("PG_HOST", "localhost"),
                port=int(_env("PG_PORT", "5432")),
                database=_env("PG_DATABASE", "sessions"),
                user=_env("PG_USER", "postgres"),
                password=_env("PG_PASSWORD", ""),
                pool_min=int(_env("PG_POOL_MIN", str(C.PG_POOL_MIN))),
                pool_max=int(_env("PG_POOL_MAX", str(C.PG_POOL_MAX))),
                ssl_mode=_env("PG_SSL_MODE", "prefer"),
            )

            observability = ObservabilityConfig(
                log_level=_env("LOG_LEVEL", "INFO").upper(),
                log_json=_env_bool("LOG_JSON", True),
            )

            return Ok(cls(
                dir=Path(_env("DIR", C.DEFAULT_DIR)),
                create_table=_env_bool("CREATE_TABLE", True),
                table=_env("TABLE", C.DEFAULT_TABLE),
                backup_interval_ms=int(
                    _env("BACKUP_INTERVAL_MS", str(C.DEFAULT_BACKUP_INTERVAL_MS))
                ),
                retry_limit=int(_env("RETRY_LIMIT", str(C.DEFAULT_RETRY_LIMIT))),
                retry_wait_ms=int(_env("RETRY_WAIT_MS", str(C.DEFAULT_RETRY_WAIT_MS))),
                postgres=postgres,
                observability=observability,
            ))
        except (ValueError, TypeError) as e:
            return Err(f"Configuration error: {e}")

    def validate(self) -> Result[None, str]:
        """Validate configuration invariants."""
        if self.backup_interval_ms <= 0:
            return Err("backup_interval_ms must be positive")
        if self.retry_limit < 1:
            return Err("retry_limit must be >= 1")
        if self.retry_wait_ms < 0:
            return Err("retry_wait_ms cannot be negative")
        if not re.match(C.TABLE_NAME_PATTERN, self.table):
            return Err(f"table {self.table!r} is not a valid SQL identifier")
        if self.postgres.pool_min > self.postgres.pool_max:
            return Err("PostgreSQL pool_min cannot exceed pool_max")
        if self.observability.log_level not in _LOG_LEVELS:
            return Err(f"Unknown log level: {self.observability.log_level!r}")
        return Ok(None)
