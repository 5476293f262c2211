"""
Session Record Model

A session record is a JSON-compatible nested mapping keyed by session id.
Two fields under ``cookie`` are reserved:

    cookie.expires         ISO-8601 UTC string, or None (never expires)
    cookie.originalMaxAge  lifetime in milliseconds, or None

``SessionRecord.snapshot`` holds the payload as it was when the record was
last read. It is an attribute, not a key, so it never reaches disk or the
backup table.
"""

from __future__ import annotations

import copy
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)


class SessionRecord(dict):
    """Session payload with an optional read-time snapshot."""

    __slots__ = ("snapshot",)

    def __init__(
        self,
        data: Mapping[str, Any] = (),
        snapshot: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(data)
        self.snapshot = snapshot

    def to_payload(self) -> dict[str, Any]:
        """Deep copy of the payload as a plain dict (no snapshot)."""
        return copy.deepcopy(dict(self))

    def take_snapshot(self) -> None:
        """Remember the current payload as the merge base for the next write."""
        self.snapshot = self.to_payload()

    def __repr__(self) -> str:
        return f"SessionRecord({dict.__repr__(self)})"


# =============================================================================
# COOKIE / EXPIRY HELPERS
# =============================================================================
def _cookie(record: Mapping[str, Any]) -> Optional[Mapping[str, Any]]:
    cookie = record.get("cookie")
    return cookie if isinstance(cookie, Mapping) else None


def format_expires(moment: datetime) -> str:
    """Render an expiry the way browsers and session middleware emit it."""
    utc = moment.astimezone(timezone.utc)
    return utc.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def expires_at(record: Mapping[str, Any]) -> Optional[datetime]:
    """
    Absolute expiry of a record, or None when it never expires.

    Accepts ISO-8601 strings (naive values are read as UTC) and numbers
    (epoch seconds).
    """
    cookie = _cookie(record)
    if cookie is None:
        return None

    raw = cookie.get("expires")
    if raw is None or isinstance(raw, bool):
        return None

    if isinstance(raw, (int, float)):
        return datetime.fromtimestamp(raw, tz=timezone.utc)

    if isinstance(raw, str):
        try:
            parsed = datetime.fromisoformat(raw)
        except ValueError:
            logger.warning(f"Ignoring unparseable cookie.expires {raw!r}")
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    return None


def is_expired(record: Mapping[str, Any], now: datetime) -> bool:
    moment = expires_at(record)
    return moment is not None and moment <= now


def expires_epoch_seconds(record: Mapping[str, Any]) -> Optional[int]:
    """Expiry as whole epoch seconds for the backup table."""
    moment = expires_at(record)
    if moment is None:
        return None
    return int(round(moment.timestamp()))


def refresh_expiry(record: dict[str, Any], now: datetime) -> bool:
    """
    Set cookie.expires to now + cookie.originalMaxAge.

    Returns False (and leaves the record alone) when there is no cookie or
    no numeric originalMaxAge.
    """
    cookie = record.get("cookie")
    if not isinstance(cookie, dict):
        return False

    max_age = cookie.get("originalMaxAge")
    if isinstance(max_age, bool) or not isinstance(max_age, (int, float)):
        return False

    cookie["expires"] = format_expires(now + timedelta(milliseconds=max_age))
    return True


# =============================================================================
# SERIALIZATION
# =============================================================================
def encode_payload(record: Mapping[str, Any]) -> str:
    """Serialize a payload to JSON text (the snapshot attribute is never included)."""
    return json.dumps(dict(record), ensure_ascii=False, separators=(",", ":"))


def encode_record(record: Mapping[str, Any]) -> bytes:
    return encode_payload(record).encode("utf-8")
