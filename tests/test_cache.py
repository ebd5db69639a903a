"""Tests for the preview cache."""

import asyncio

import pytest

from services.cache import PreviewCache
from services.message import ProcessedPreview


def _preview(url: str = "mxc://hs.test/1") -> ProcessedPreview:
    return ProcessedPreview(kind="image", file_name="a.png", url=url, content_type="image/png", size=3)


class TestLookupStore:

    def test_lookup_missing(self):
        assert PreviewCache().lookup("https://example.com/a.png") is None

    def test_store_then_lookup(self):
        cache = PreviewCache()
        preview = _preview()
        cache.store("https://example.com/a.png", preview)

        assert cache.lookup("https://example.com/a.png") is preview
        assert "https://example.com/a.png" in cache
        assert len(cache) == 1

    def test_store_overwrites(self):
        cache = PreviewCache()
        cache.store("k", _preview("mxc://hs.test/1"))
        cache.store("k", _preview("mxc://hs.test/2"))

        assert cache.lookup("k").url == "mxc://hs.test/2"


class TestGetOrCreate:

    @pytest.mark.asyncio
    async def test_second_call_hits_cache(self):
        cache = PreviewCache()
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1
            return _preview()

        first = await cache.get_or_create("k", factory)
        second = await cache.get_or_create("k", factory)

        assert first is second
        assert calls == 1

    @pytest.mark.asyncio
    async def test_concurrent_misses_share_one_run(self):
        cache = PreviewCache()
        release = asyncio.Event()
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1
            await release.wait()
            return _preview()

        waiters = [asyncio.create_task(cache.get_or_create("k", factory)) for _ in range(3)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters)

        assert calls == 1
        assert results[0] is results[1] is results[2]

    @pytest.mark.asyncio
    async def test_none_is_not_cached(self):
        cache = PreviewCache()
        calls = 0

        async def factory():
            nonlocal calls
            calls += 1
            return None

        assert await cache.get_or_create("k", factory) is None
        assert await cache.get_or_create("k", factory) is None
        assert calls == 2
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_errors_reach_every_waiter_and_are_not_cached(self):
        cache = PreviewCache()
        release = asyncio.Event()

        async def failing():
            await release.wait()
            raise RuntimeError("download failed")

        waiters = [asyncio.create_task(cache.get_or_create("k", failing)) for _ in range(2)]
        await asyncio.sleep(0)
        release.set()
        results = await asyncio.gather(*waiters, return_exceptions=True)

        assert all(isinstance(r, RuntimeError) for r in results)
        assert cache.lookup("k") is None

        async def working():
            return _preview()

        assert (await cache.get_or_create("k", working)).url == "mxc://hs.test/1"

    @pytest.mark.asyncio
    async def test_cancelled_waiter_does_not_cancel_shared_run(self):
        cache = PreviewCache()
        release = asyncio.Event()

        async def factory():
            await release.wait()
            return _preview()

        doomed = asyncio.create_task(cache.get_or_create("k", factory))
        survivor = asyncio.create_task(cache.get_or_create("k", factory))
        await asyncio.sleep(0)
        doomed.cancel()
        release.set()

        assert (await survivor).url == "mxc://hs.test/1"
        assert "k" in cache
