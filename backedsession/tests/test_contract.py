"""
Unit Tests: Store Contract and Callback Adapter
"""

import pytest

from backedsession.session.contract import CallbackSessionStore, SessionStoreProtocol
from backedsession.tests.conftest import open_cache


class TestProtocol:
    """Tests for SessionStoreProtocol conformance."""

    @pytest.mark.asyncio
    async def test_cache_conforms(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        assert isinstance(cache, SessionStoreProtocol)

    def test_plain_object_does_not(self):
        assert not isinstance(object(), SessionStoreProtocol)


class TestCallbackSessionStore:
    """Tests for the (error, result) callback form."""

    @pytest.mark.asyncio
    async def test_success_callback(self, tmp_path, backend):
        store = CallbackSessionStore(await open_cache(tmp_path, backend))
        calls = []

        await store.set("sid", {"a": 1}, lambda err, res: calls.append(("set", err, res)))
        await store.get("sid", lambda err, res: calls.append(("get", err, res)))
        await store.length(lambda err, res: calls.append(("length", err, res)))

        assert calls == [
            ("set", None, None),
            ("get", None, {"a": 1}),
            ("length", None, 1),
        ]

    @pytest.mark.asyncio
    async def test_error_callback(self, tmp_path, backend):
        store = CallbackSessionStore(await open_cache(tmp_path, backend))
        calls = []

        await store.get("", lambda err, res: calls.append((err, res)))

        err, res = calls[0]
        assert err is not None
        assert res is None

    @pytest.mark.asyncio
    async def test_callback_exception_is_contained(self, tmp_path, backend, caplog):
        store = CallbackSessionStore(await open_cache(tmp_path, backend))

        def explode(err, res):
            raise RuntimeError("boom")

        await store.destroy("sid", explode)

        assert "callback raised" in caplog.text

    @pytest.mark.asyncio
    async def test_callback_optional(self, tmp_path, backend):
        cache = await open_cache(tmp_path, backend)
        store = CallbackSessionStore(cache)

        await store.set("sid", {"a": 1})
        await store.touch("sid")

        assert (await cache.get("sid")).unwrap() == {"a": 1}
