"""
Unit Tests: Session Record Model and Expiry Helpers
"""

from datetime import datetime, timezone

import pytest

from backedsession.core.record import (
    SessionRecord,
    encode_payload,
    expires_at,
    expires_epoch_seconds,
    format_expires,
    is_expired,
    refresh_expiry,
)

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestSessionRecord:
    """Tests for SessionRecord."""

    def test_snapshot_is_deep_copy(self):
        record = SessionRecord({"cart": [1]})
        record.take_snapshot()
        record["cart"].append(2)
        assert record.snapshot == {"cart": [1]}

    def test_snapshot_not_serialized(self):
        record = SessionRecord({"a": 1}, snapshot={"a": 0})
        assert encode_payload(record) == '{"a":1}'


class TestExpiry:
    """Tests for cookie expiry helpers."""

    def test_format(self):
        assert format_expires(NOW) == "2024-01-01T00:00:00.000Z"

    @pytest.mark.parametrize("expires", [
        "2024-01-01T00:00:00.000Z",
        "2024-01-01T00:00:00",
        1704067200,
    ])
    def test_parse(self, expires):
        assert expires_at({"cookie": {"expires": expires}}) == NOW

    @pytest.mark.parametrize("record", [
        {},
        {"cookie": None},
        {"cookie": {"expires": None}},
        {"cookie": {"expires": "next tuesday"}},
    ])
    def test_never_expires(self, record):
        assert expires_at(record) is None
        assert not is_expired(record, NOW)
        assert expires_epoch_seconds(record) is None

    def test_epoch_seconds(self):
        assert expires_epoch_seconds({"cookie": {"expires": "2024-01-01T00:00:01.600Z"}}) == 1704067202

    def test_refresh(self):
        record = {"cookie": {"originalMaxAge": 1500}}
        assert refresh_expiry(record, NOW)
        assert record["cookie"]["expires"] == "2024-01-01T00:00:01.500Z"

    @pytest.mark.parametrize("cookie", [None, {"originalMaxAge": None}, {"originalMaxAge": True}])
    def test_refresh_without_max_age(self, cookie):
        record = {"cookie": cookie}
        assert not refresh_expiry(record, NOW)
        assert record == {"cookie": cookie}
