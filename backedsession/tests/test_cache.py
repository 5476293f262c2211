"""
Integration Tests: SessionCache

Tests:
    - Store contract: get / set / touch / destroy / all / clear / length
    - Merge on set preserves concurrent changes
    - Lazy expiry through all()
    - Cold-start materialization from the backup table
    - create() / close() lifecycle
"""

import json

import pytest

from backedsession.core.errors import ErrorCode
from backedsession.core.record import SessionRecord
from backedsession.session.cache import SessionCache
from backedsession.tests.conftest import make_config, open_cache


def _cookie(max_age=60000, expires=None):
    return {"originalMaxAge": max_age, "expires": expires, "httpOnly": True, "path": "/"}


class TestStoreContract:
    """Tests for the basic store operations."""

    @pytest.mark.asyncio
    async def test_round_trip(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        payload = {"cookie": _cookie(), "user": {"id": 7, "roles": ["admin"]}}

        (await cache.set("sid", payload)).unwrap()
        record = (await cache.get("sid")).unwrap()

        assert record == payload
        assert record.snapshot == payload

    @pytest.mark.asyncio
    async def test_get_missing(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        assert (await cache.get("nope")).unwrap() is None

    @pytest.mark.asyncio
    async def test_first_write_stores_full_payload(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        payload = {"cookie": _cookie(), "cart": [1, 2]}

        (await cache.set("sid", dict(payload))).unwrap()

        raw = (tmp_path / "sessions" / "sid.json").read_text()
        assert json.loads(raw) == payload

    @pytest.mark.asyncio
    async def test_set_refreshes_snapshot(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        record = SessionRecord({"views": 1})

        (await cache.set("sid", record)).unwrap()
        record["views"] = 2
        (await cache.set("sid", record)).unwrap()

        assert record.snapshot == {"views": 2}
        assert (await cache.get("sid")).unwrap() == {"views": 2}

    @pytest.mark.asyncio
    async def test_set_marks_modified(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        (await cache.set("sid", {"a": 1})).unwrap()

        ops = (await cache.pending.peek()).unwrap()
        assert ops.modified == frozenset({"sid"})

    @pytest.mark.asyncio
    async def test_destroy(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        (await cache.set("sid", {"a": 1})).unwrap()

        (await cache.destroy("sid")).unwrap()

        assert (await cache.get("sid")).unwrap() is None
        ops = (await cache.pending.peek()).unwrap()
        assert ops.removed == frozenset({"sid"})
        assert ops.modified == frozenset()

    @pytest.mark.asyncio
    async def test_destroy_unknown_key_still_queues_delete(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)

        (await cache.destroy("only-in-backup")).unwrap()

        ops = (await cache.pending.peek()).unwrap()
        assert ops.removed == frozenset({"only-in-backup"})

    @pytest.mark.asyncio
    async def test_length_and_clear(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        for key in ("a", "b", "c"):
            (await cache.set(key, {"k": key})).unwrap()

        assert (await cache.length()).unwrap() == 3

        (await cache.clear()).unwrap()

        assert (await cache.length()).unwrap() == 0
        ops = (await cache.pending.peek()).unwrap()
        assert ops.removed == frozenset({"a", "b", "c"})

    @pytest.mark.asyncio
    async def test_invalid_key(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        result = await cache.set("", {"a": 1})
        assert result.error.code is ErrorCode.STORAGE_INVALID_KEY


class TestMergeOnSet:
    """Tests for concurrent modification handling."""

    @pytest.mark.asyncio
    async def test_preserves_concurrent_touch(self, tmp_path, backend, clock):
        cache = await open_cache(tmp_path, backend, clock)
        (await cache.set("sid", {"cookie": _cookie(max_age=60000), "views": 1})).unwrap()
        (await cache.touch("sid")).unwrap()

        record = (await cache.get("sid")).unwrap()
        touched_expiry = record["cookie"]["expires"]

        clock.advance(30000)
        (await cache.touch("sid")).unwrap()

        record["views"] = 2
        (await cache.set("sid", record)).unwrap()

        stored = (await cache.get("sid")).unwrap()
        assert stored["views"] == 2
        assert stored["cookie"]["expires"] == "2024-01-01T00:01:30.000Z"
        assert stored["cookie"]["expires"] != touched_expiry

    @pytest.mark.asyncio
    async def test_concurrent_writers_touch_different_fields(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        (await cache.set("sid", {"a": 1, "b": 1})).unwrap()

        first = (await cache.get("sid")).unwrap()
        second = (await cache.get("sid")).unwrap()

        first["a"] = 2
        second["b"] = 2
        (await cache.set("sid", first)).unwrap()
        (await cache.set("sid", second)).unwrap()

        assert (await cache.get("sid")).unwrap() == {"a": 2, "b": 2}


class TestTouch:
    """Tests for touch()."""

    @pytest.mark.asyncio
    async def test_extends_expiry(self, tmp_path, backend, clock):
        cache = await open_cache(tmp_path, backend, clock)
        (await cache.set("sid", {"cookie": _cookie(max_age=3600000)})).unwrap()

        (await cache.touch("sid", {"ignored": True})).unwrap()

        stored = (await cache.get("sid")).unwrap()
        assert stored["cookie"]["expires"] == "2024-01-01T01:00:00.000Z"
        assert "ignored" not in stored

    @pytest.mark.asyncio
    async def test_unknown_key_is_noop(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)

        (await cache.touch("nope")).unwrap()

        assert (await cache.get("nope")).unwrap() is None
        assert (await cache.pending.is_empty()).unwrap() is True

    @pytest.mark.asyncio
    async def test_without_max_age_keeps_expiry(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        cookie = _cookie(max_age=None, expires="2030-01-01T00:00:00.000Z")
        (await cache.set("sid", {"cookie": cookie})).unwrap()
        (await cache.pending.drain_and_reset()).unwrap()

        (await cache.touch("sid")).unwrap()

        stored = (await cache.get("sid")).unwrap()
        assert stored["cookie"]["expires"] == "2030-01-01T00:00:00.000Z"
        assert (await cache.pending.peek()).unwrap().modified == frozenset({"sid"})


class TestExpiry:
    """Tests for lazy expiry in all()."""

    @pytest.mark.asyncio
    async def test_all_reaps_expired(self, tmp_path, backend, clock):
        cache = await open_cache(tmp_path, backend, clock)
        (await cache.set("short", {"cookie": _cookie(max_age=1000)})).unwrap()
        (await cache.set("long", {"cookie": _cookie(max_age=3600000)})).unwrap()
        (await cache.set("forever", {"cookie": _cookie(max_age=None)})).unwrap()
        (await cache.touch("short")).unwrap()
        (await cache.touch("long")).unwrap()

        clock.advance(5000)
        records = (await cache.all()).unwrap()

        assert set(records) == {"long", "forever"}
        assert (await cache.get("short")).unwrap() is None
        assert "short" in (await cache.pending.peek()).unwrap().removed

    @pytest.mark.asyncio
    async def test_expiry_boundary_is_inclusive(self, tmp_path, backend, clock):
        cache = await open_cache(tmp_path, backend, clock)
        (await cache.set("sid", {"cookie": _cookie(max_age=1000)})).unwrap()
        (await cache.touch("sid")).unwrap()

        clock.advance(1000)

        assert (await cache.all()).unwrap() == {}

    @pytest.mark.asyncio
    async def test_all_reports_corruption(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        (await cache.set("ok", {"a": 1})).unwrap()
        (tmp_path / "sessions" / "bad.json").write_text('{"a": 1} junk')

        result = await cache.all()

        assert result.error.code is ErrorCode.STORAGE_DECODE_FAILED


class TestMaterialization:
    """Tests for cold start from the backup table."""

    @pytest.mark.asyncio
    async def test_backup_rows_become_local_records(self, tmp_path, backend):
        backend.seed("a", json.dumps({"user": "ada"}))
        backend.seed("b", json.dumps({"user": "bob"}))

        cache = await open_cache(tmp_path, backend)

        assert (await cache.get("a")).unwrap() == {"user": "ada"}
        assert (await cache.get("b")).unwrap() == {"user": "bob"}
        assert backend.verbs() == ["CREATE", "SELECT"]

    @pytest.mark.asyncio
    async def test_materialization_does_not_queue_replication(self, tmp_path, backend):
        backend.seed("a", "{}")
        cache = await open_cache(tmp_path, backend)
        assert (await cache.pending.is_empty()).unwrap() is True

    @pytest.mark.asyncio
    async def test_bad_rows_are_skipped(self, tmp_path, backend):
        backend.seed("good", '{"ok": true}')
        backend.seed("null", None)
        backend.seed("junk", "not json")
        backend.seed("array", "[1]")

        cache = await open_cache(tmp_path, backend)

        assert (await cache.length()).unwrap() == 1
        assert (await cache.get("good")).unwrap() == {"ok": True}
        assert (await cache.get("junk")).unwrap() is None

    @pytest.mark.asyncio
    async def test_restart_keeps_unflushed_write(self, tmp_path, backend):
        backend.seed("sid", json.dumps({"v": 1}))
        cache = await open_cache(tmp_path, backend)
        record = (await cache.get("sid")).unwrap()
        record["v"] = 2
        (await cache.set("sid", record)).unwrap()

        restarted = await open_cache(tmp_path, backend)

        assert (await restarted.get("sid")).unwrap() == {"v": 2}
        (await restarted.flush()).unwrap()
        assert json.loads(backend.table["sid"]["data"]) == {"v": 2}

    @pytest.mark.asyncio
    async def test_restart_keeps_unflushed_destroy(self, tmp_path, backend):
        backend.seed("sid", json.dumps({"v": 1}))
        cache = await open_cache(tmp_path, backend)
        (await cache.destroy("sid")).unwrap()

        restarted = await open_cache(tmp_path, backend)

        assert (await restarted.get("sid")).unwrap() is None
        (await restarted.flush()).unwrap()
        assert "sid" not in backend.table
        assert (await restarted.get("sid")).unwrap() is None

    @pytest.mark.asyncio
    async def test_skip_bootstrap(self, tmp_path, backend):
        await open_cache(tmp_path, backend, create_table=False)
        assert backend.verbs() == ["SELECT"]


class TestLifecycle:
    """Tests for create() and close()."""

    @pytest.mark.asyncio
    async def test_create_starts_flusher(self, tmp_path, backend):
        cache = (await SessionCache.create(make_config(tmp_path, backup_interval_ms=60000), backend)).unwrap()
        try:
            assert cache.flusher_running
        finally:
            await cache.close(flush=False)
        assert not cache.flusher_running

    @pytest.mark.asyncio
    async def test_invalid_config(self, tmp_path, backend):
        result = await SessionCache.create(make_config(tmp_path, retry_limit=0), backend)

        assert result.error.code is ErrorCode.INTERNAL_CONFIGURATION_ERROR
        assert backend.statements == []

    @pytest.mark.asyncio
    async def test_backend_failure_at_startup(self, tmp_path, backend):
        backend.fail_verbs.add("SELECT")

        result = await SessionCache.create(make_config(tmp_path), backend)

        assert result.error.code is ErrorCode.BACKEND_QUERY_FAILED

    @pytest.mark.asyncio
    async def test_close_flushes(self, tmp_path, backend):
        config = make_config(tmp_path, backup_interval_ms=60000)
        async with (await SessionCache.create(config, backend)).unwrap() as cache:
            (await cache.set("sid", {"a": 1})).unwrap()

        assert json.loads(backend.table["sid"]["data"]) == {"a": 1}
        assert (await cache.pending.is_empty()).unwrap() is True
