"""Tests for the direct media processor."""

import pytest

from processors.direct_media import DirectMediaProcessor

ROOM = "!room:hs.test"


@pytest.fixture
def processor(driver, cache, bot_config):
    return DirectMediaProcessor(driver, cache, bot_config)


class TestDirectMediaProcessor:

    @pytest.mark.asyncio
    async def test_html_is_not_applicable(self, processor, driver, web):
        web.heads["https://example.com/page"] = ("https://example.com/page", "text/html")

        assert await processor.process(ROOM, "https://example.com/page") is None
        assert driver.uploads == []

    @pytest.mark.asyncio
    async def test_image_yields_one_payload(self, processor, driver, web):
        web.heads["https://example.com/cat.png"] = ("https://example.com/cat.png", "image/png")
        web.files["https://example.com/cat.png"] = (b"\x89PNG....", "image/png")

        result = await processor.process(ROOM, "https://example.com/cat.png")

        assert len(result) == 1
        msg = result[0]
        assert msg.msgtype == "m.image"
        assert msg.url == "mxc://hs.test/1"
        assert msg.file_name == "cat.png"
        assert msg.mimetype == "image/png"
        assert msg.size == 8
        assert driver.uploads == [(b"\x89PNG....", "image/png", "cat.png")]

    @pytest.mark.asyncio
    async def test_same_url_twice_uploads_once(self, processor, driver, web):
        web.heads["https://example.com/cat.png"] = ("https://example.com/cat.png", "image/png")
        web.files["https://example.com/cat.png"] = (b"data", "image/png")

        first = await processor.process(ROOM, "https://example.com/cat.png")
        second = await processor.process(ROOM, "https://example.com/cat.png")

        assert len(driver.uploads) == 1
        assert web.fetches["https://example.com/cat.png"] == 1
        assert first[0].url == second[0].url

    @pytest.mark.asyncio
    async def test_cache_keyed_by_effective_url(self, processor, driver, web):
        web.heads["https://short.example/a"] = ("https://cdn.example.com/clip.mp4", "video/mp4")
        web.heads["https://short.example/b"] = ("https://cdn.example.com/clip.mp4", "video/mp4")
        web.files["https://cdn.example.com/clip.mp4"] = (b"mp4", "video/mp4")

        a = await processor.process(ROOM, "https://short.example/a")
        b = await processor.process(ROOM, "https://short.example/b")

        assert len(driver.uploads) == 1
        assert a[0].msgtype == b[0].msgtype == "m.video"

    @pytest.mark.asyncio
    async def test_content_type_parameters_ignored_for_category(self, processor, web):
        web.heads["https://example.com/song"] = ("https://example.com/song", "audio/mpeg; charset=binary")
        web.files["https://example.com/song"] = (b"id3", "audio/mpeg")

        result = await processor.process(ROOM, "https://example.com/song")

        assert result[0].msgtype == "m.audio"
        assert result[0].file_name.startswith("song.")

    @pytest.mark.asyncio
    async def test_head_failure_is_not_applicable(self, processor, driver, web):
        assert await processor.process(ROOM, "https://example.com/missing.png") is None
        assert driver.uploads == []

    @pytest.mark.asyncio
    async def test_failed_download_is_not_applicable(self, processor, cache, web):
        web.heads["https://example.com/huge.png"] = ("https://example.com/huge.png", "image/png")

        assert await processor.process(ROOM, "https://example.com/huge.png") is None
        assert cache.lookup("https://example.com/huge.png") is None
