"""
KeySpace: Session Keys to Files

Layout under the storage root:

    <dir>/<percent-encoded key>.json   one file per session
    <dir>/pending-ops.log              pending-operations log (reserved)
    <dir>/.<name>.tmp                  in-flight atomic writes

Only ``*.json`` entries are keys, so reserved and temporary files are outside
the key namespace by construction: enumeration never has to filter names.

Writes go to a temp file that is then renamed over the target, so a reader in
this process never sees a half-written record. Other writers sharing the
directory may not be so careful; the decoder copes with that.
"""

from __future__ import annotations

import contextlib
import os
from pathlib import Path
from typing import Optional
from urllib.parse import quote, unquote

from backedsession.core import constants as C
from backedsession.core.errors import StorageError
from backedsession.core.types import Result, Ok, Err


class KeySpace:
    """Maps session keys to record files and owns reserved internal files."""

    __slots__ = ("_root",)

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------
    def path_for(self, key: str) -> Result[Path, StorageError]:
        """Record file for a key. Keys are percent-encoded, so '/' cannot escape root."""
        if not key:
            return Err(StorageError.invalid_key(key, "key must be non-empty"))
        return Ok(self._root / f"{quote(key, safe='')}{C.RECORD_SUFFIX}")

    def reserved_path(self, name: str) -> Path:
        """Internal file; never ends with the record suffix."""
        if name.endswith(C.RECORD_SUFFIX):
            raise ValueError(f"Reserved name {name!r} collides with record files")
        return self._root / name

    @staticmethod
    def _key_from_name(name: str) -> Optional[str]:
        if not name.endswith(C.RECORD_SUFFIX):
            return None
        return unquote(name[: -len(C.RECORD_SUFFIX)])

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------
    def keys(self) -> Result[list[str], StorageError]:
        try:
            names = os.listdir(self._root)
        except OSError as e:
            return Err(StorageError.io_failed("list", str(self._root), cause=e))

        keys = []
        for name in sorted(names):
            key = self._key_from_name(name)
            if key is not None:
                keys.append(key)
        return Ok(keys)

    # ------------------------------------------------------------------
    # File primitives
    # ------------------------------------------------------------------
    @staticmethod
    def read_file(path: Path) -> Result[Optional[bytes], StorageError]:
        """Read a whole file; Ok(None) when it does not exist."""
        try:
            return Ok(path.read_bytes())
        except FileNotFoundError:
            return Ok(None)
        except OSError as e:
            return Err(StorageError.io_failed("read", str(path), cause=e))

    def write_file(self, path: Path, data: bytes) -> Result[None, StorageError]:
        """Replace a file atomically (temp file + rename)."""
        tmp = self._root / f"{C.TEMP_PREFIX}{path.name}{C.TEMP_SUFFIX}"
        try:
            with open(tmp, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, path)
            return Ok(None)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp.unlink(missing_ok=True)
            return Err(StorageError.io_failed("write", str(path), cause=e))

    @staticmethod
    def delete_file(path: Path) -> Result[bool, StorageError]:
        """Delete a file; Ok(False) when it was already gone."""
        try:
            path.unlink()
            return Ok(True)
        except FileNotFoundError:
            return Ok(False)
        except OSError as e:
            return Err(StorageError.io_failed("delete", str(path), cause=e))
