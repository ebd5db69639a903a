"""
Open Graph metadata, fetched and parsed with BeautifulSoup.

``<meta property="og:image" ...>`` starts a new structured entry;
``og:image:width`` / ``og:image:type`` etc. attach as properties to the most
recent ``og:image``.  ``twitter:*`` and other prefixed tags are collected the
same way, so ``twitter:card`` is available to the processors as a hint.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from urllib.parse import urljoin

from bs4 import BeautifulSoup

import services.media as media

# Sub-properties that may stand in for the root tag when it is missing
_ROOT_ALIASES = ("url", "secure_url")

# Tags whose value is a URL and must be made absolute
_URL_TAGS = {"og:image", "og:video", "og:audio", "og:url", "twitter:image", "twitter:player"}


@dataclass
class StructuredMetadata:
    """One metadata value with its nested properties (``width``, ``type``...)."""
    name: str                 # "image" for og:image
    value: str
    properties: dict[str, list[str]] = field(default_factory=dict)

    def prop(self, key: str) -> str | None:
        values = self.properties.get(key)
        return values[0] if values else None

    def int_prop(self, key: str) -> int | None:
        raw = self.prop(key)
        if raw is None:
            return None
        try:
            return int(raw.strip())
        except ValueError:
            return None


@dataclass
class OpenGraph:
    original_url: str
    metadata: dict[str, list[StructuredMetadata]] = field(default_factory=dict)
    page_title: str = ""

    def get(self, key: str) -> list[StructuredMetadata]:
        return self.metadata.get(key, [])

    def first(self, key: str) -> str | None:
        entries = self.metadata.get(key)
        return entries[0].value if entries else None

    @property
    def title(self) -> str:
        return self.first("og:title") or self.page_title

    def __bool__(self) -> bool:
        return bool(self.metadata)


def parse_html(html: str | bytes, url: str, encoding: str | None = None) -> OpenGraph:
    # For bytes, bs4 picks the encoding: *encoding* (the HTTP header) first,
    # then <meta charset>, then sniffing.
    if isinstance(html, bytes):
        soup = BeautifulSoup(html, "html.parser", from_encoding=encoding)
    else:
        soup = BeautifulSoup(html, "html.parser")
    graph = OpenGraph(original_url=url)

    if soup.title and soup.title.string:
        graph.page_title = soup.title.string.strip()

    for tag in soup.find_all("meta"):
        key = tag.get("property") or tag.get("name")
        content = tag.get("content")
        if not key or content is None:
            continue
        key = key.strip().lower()
        content = content.strip()
        parts = key.split(":")
        if len(parts) < 2:
            continue

        if len(parts) >= 3:
            root = ":".join(parts[:2])
            sub = ":".join(parts[2:])
            entries = graph.metadata.get(root)
            if entries:
                entries[-1].properties.setdefault(sub, []).append(content)
                continue
            if sub in _ROOT_ALIASES:
                key, parts = root, parts[:2]
            else:
                # Orphan property, keep it addressable under its full name
                graph.metadata.setdefault(key, []).append(
                    StructuredMetadata(name=parts[-1], value=content)
                )
                continue

        if key in _URL_TAGS:
            content = urljoin(url, content)
        graph.metadata.setdefault(key, []).append(StructuredMetadata(name=parts[1], value=content))

    return graph


async def parse_url(url: str, user_agent: str = "") -> OpenGraph:
    """Fetch *url* and parse its metadata.  Raises ``FetchError`` on HTTP failure."""
    final_url, raw, charset = await media.fetch_page(url, user_agent=user_agent)
    return parse_html(raw, final_url, charset)
