"""Tests for the latest-wins result cache."""

import asyncio

import pytest

from release_agent_core.latest import STALE, LatestWins


def _deferred():
    """A factory whose result is set later by the test."""
    future = asyncio.get_running_loop().create_future()

    async def factory():
        return await future

    return future, factory


class TestLatestWins:
    @pytest.mark.asyncio
    async def test_single_fetch_is_cached(self):
        cache = LatestWins()

        async def factory():
            return ["a"]

        assert await cache.fetch("k", factory) == ["a"]
        assert cache.peek("k") == ["a"]

    @pytest.mark.asyncio
    async def test_late_answer_for_superseded_request_is_dropped(self):
        cache = LatestWins()
        slow, slow_factory = _deferred()
        fast, fast_factory = _deferred()

        first = asyncio.ensure_future(cache.fetch("q", slow_factory))
        second = asyncio.ensure_future(cache.fetch("q", fast_factory))
        await asyncio.sleep(0)

        fast.set_result("newest")
        assert await second == "newest"

        slow.set_result("oldest")
        assert await first is STALE
        assert cache.peek("q") == "newest"

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        cache = LatestWins()
        a, a_factory = _deferred()
        b, b_factory = _deferred()

        fa = asyncio.ensure_future(cache.fetch(("clusters", "0.90", "Awake"), a_factory))
        fb = asyncio.ensure_future(cache.fetch(("clusters", "0.90", "Peek"), b_factory))
        await asyncio.sleep(0)
        b.set_result("peek")
        a.set_result("awake")

        assert await fa == "awake"
        assert await fb == "peek"
        assert cache.peek(("clusters", "0.90", "Awake")) == "awake"

    @pytest.mark.asyncio
    async def test_error_from_current_fetch_propagates(self):
        cache = LatestWins()

        async def factory():
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await cache.fetch("k", factory)
        assert cache.peek("k") is None

    @pytest.mark.asyncio
    async def test_error_from_superseded_fetch_is_stale(self):
        cache = LatestWins()
        slow, slow_factory = _deferred()

        first = asyncio.ensure_future(cache.fetch("k", slow_factory))
        await asyncio.sleep(0)
        cache.issue("k")
        slow.set_exception(RuntimeError("late failure"))

        assert await first is STALE

    @pytest.mark.asyncio
    async def test_invalidate_makes_pending_fetch_stale(self):
        cache = LatestWins()
        pending, factory = _deferred()

        task = asyncio.ensure_future(cache.fetch("k", factory))
        await asyncio.sleep(0)
        cache.invalidate("k")
        pending.set_result("late")

        assert await task is STALE
        assert cache.peek("k") is None

    @pytest.mark.asyncio
    async def test_invalidate_all(self):
        cache = LatestWins()

        async def factory():
            return 1

        await cache.fetch("a", factory)
        await cache.fetch("b", factory)
        cache.invalidate()

        assert cache.peek("a") is None
        assert cache.peek("b") is None

    def test_peek_default(self):
        assert LatestWins().peek("missing", default=[]) == []

    def test_tokens_increase_per_key(self):
        cache = LatestWins()
        t1 = cache.issue("k")
        t2 = cache.issue("k")
        assert t2 > t1
        assert cache.is_current("k", t2)
        assert not cache.is_current("k", t1)
