"""Tests for Open Graph parsing."""

import pytest

from services.opengraph import parse_html, parse_url

PAGE = """
<html><head>
  <title>Fallback title</title>
  <meta property="og:title" content="A Post" />
  <meta property="og:description" content="Line one
Line two" />
  <meta property="og:image" content="https://cdn.example.com/one.jpg" />
  <meta property="og:image:width" content="640" />
  <meta property="og:image:height" content="480" />
  <meta property="og:image:type" content="image/jpeg" />
  <meta property="og:image" content="/two.png" />
  <meta property="og:video" content="https://cdn.example.com/clip.mp4" />
  <meta property="og:video:type" content="video/mp4" />
  <meta name="twitter:card" content="summary_large_image" />
</head><body></body></html>
"""


class TestParseHtml:

    def test_structured_properties_attach_to_latest_root(self):
        graph = parse_html(PAGE, "https://example.com/post/1")
        images = graph.get("og:image")

        assert [i.value for i in images] == [
            "https://cdn.example.com/one.jpg",
            "https://example.com/two.png",
        ]
        assert images[0].int_prop("width") == 640
        assert images[0].int_prop("height") == 480
        assert images[0].prop("type") == "image/jpeg"
        assert images[1].properties == {}
        assert images[0].name == "image"

    def test_video_entry(self):
        graph = parse_html(PAGE, "https://example.com/post/1")
        video = graph.get("og:video")[0]

        assert video.name == "video"
        assert video.prop("type") == "video/mp4"

    def test_title_and_description(self):
        graph = parse_html(PAGE, "https://example.com/post/1")

        assert graph.title == "A Post"
        assert graph.first("og:description") == "Line one\nLine two"
        assert graph.original_url == "https://example.com/post/1"

    def test_twitter_card_from_name_attribute(self):
        graph = parse_html(PAGE, "https://example.com/post/1")

        assert graph.first("twitter:card") == "summary_large_image"

    def test_title_falls_back_to_title_tag(self):
        graph = parse_html(
            '<html><head><title> Plain </title><meta property="og:type" content="website"></head></html>',
            "https://example.com/",
        )

        assert graph.title == "Plain"

    def test_no_tags_is_falsy(self):
        graph = parse_html("<html><head><title>x</title></head></html>", "https://example.com/")

        assert not graph
        assert graph.metadata == {}

    def test_url_alias_creates_root(self):
        graph = parse_html(
            '<meta property="og:image:url" content="https://cdn.example.com/a.gif">'
            '<meta property="og:image:width" content="10">',
            "https://example.com/",
        )
        image = graph.get("og:image")[0]

        assert image.value == "https://cdn.example.com/a.gif"
        assert image.int_prop("width") == 10

    def test_non_numeric_dimension(self):
        graph = parse_html(
            '<meta property="og:image" content="https://cdn.example.com/a.gif">'
            '<meta property="og:image:width" content="wide">',
            "https://example.com/",
        )

        assert graph.get("og:image")[0].int_prop("width") is None

    def test_meta_without_content_ignored(self):
        graph = parse_html('<meta name="viewport"><meta charset="utf-8">', "https://example.com/")

        assert not graph


class TestParseUrl:

    @pytest.mark.asyncio
    async def test_fetches_through_media_helpers(self, web):
        web.pages["https://example.com/post/1"] = PAGE

        graph = await parse_url("https://example.com/post/1", user_agent="TestAgent")

        assert graph.title == "A Post"
        assert len(graph.get("og:image")) == 2
