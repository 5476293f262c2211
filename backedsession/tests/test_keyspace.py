"""
Unit Tests: KeySpace

Tests:
    - Key to file naming and escaping
    - Enumeration ignores reserved and temporary files
    - Atomic write and delete primitives
"""

import os

import pytest

from backedsession.core.errors import ErrorCode
from backedsession.storage.keyspace import KeySpace


@pytest.fixture
def keyspace(tmp_path):
    return KeySpace(tmp_path / "sessions")


class TestNaming:
    """Tests for key ↔ path mapping."""

    def test_creates_root(self, tmp_path):
        root = tmp_path / "nested" / "dir"
        KeySpace(root)
        assert root.is_dir()

    def test_path_stays_under_root(self, keyspace):
        path = keyspace.path_for("../etc/passwd").unwrap()
        assert path.parent == keyspace.root
        assert path.name == "..%2Fetc%2Fpasswd.json"

    def test_empty_key_rejected(self, keyspace):
        result = keyspace.path_for("")
        assert result.is_err()
        assert result.error.code is ErrorCode.STORAGE_INVALID_KEY

    def test_reserved_name_cannot_look_like_record(self, keyspace):
        with pytest.raises(ValueError):
            keyspace.reserved_path("sneaky.json")


class TestEnumeration:
    """Tests for keys()."""

    def test_only_records_are_keys(self, keyspace):
        for key in ("b", "a/1", ".dotted"):
            keyspace.write_file(keyspace.path_for(key).unwrap(), b"{}").unwrap()
        keyspace.write_file(keyspace.reserved_path("pending-ops.log"), b"{}").unwrap()
        (keyspace.root / ".b.json.tmp").write_bytes(b"{")

        assert keyspace.keys().unwrap() == sorted([".dotted", "a/1", "b"])

    def test_empty_directory(self, keyspace):
        assert keyspace.keys().unwrap() == []


class TestFilePrimitives:
    """Tests for read/write/delete."""

    def test_read_missing_is_none(self, keyspace):
        assert keyspace.read_file(keyspace.root / "nope.json").unwrap() is None

    def test_write_replaces_and_leaves_no_temp(self, keyspace):
        path = keyspace.path_for("sid").unwrap()
        keyspace.write_file(path, b'{"v": 1}').unwrap()
        keyspace.write_file(path, b'{"v": 2}').unwrap()

        assert keyspace.read_file(path).unwrap() == b'{"v": 2}'
        assert os.listdir(keyspace.root) == ["sid.json"]

    def test_delete_reports_existence(self, keyspace):
        path = keyspace.path_for("sid").unwrap()
        keyspace.write_file(path, b"{}").unwrap()

        assert keyspace.delete_file(path).unwrap() is True
        assert keyspace.delete_file(path).unwrap() is False
