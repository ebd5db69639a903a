"""Pytest fixtures for UrlPreviewBot tests."""

import os
import tempfile
from collections import Counter

# services.logger opens its log file at import time
os.environ.setdefault("PREVIEW_BOT_LOG_DIR", tempfile.mkdtemp(prefix="previewbot-logs-"))

import pytest

import services.media as media
from drivers import BaseDriver
from services.cache import PreviewCache
from services.config_schema import MatrixConfig, PreviewBotConfig
from services.error import FetchError, ProtocolError


class FakeDriver(BaseDriver):
    """Records every protocol call in order instead of talking to a homeserver."""

    def __init__(self):
        super().__init__(MatrixConfig(
            homeserver="https://hs.test",
            user_id="@bot:hs.test",
            access_token="token-for-tests",
        ))
        self.calls: list[tuple] = []
        self.uploads: list[tuple[bytes, str, str]] = []
        self.fail_sends = False
        self._seq = 0

    async def start(self):
        pass

    async def stop(self):
        pass

    async def send_message(self, room_id, message):
        if self.fail_sends:
            raise ProtocolError("send rejected")
        self._seq += 1
        event_id = f"$sent{self._seq}"
        self.calls.append(("send", room_id, message, event_id))
        return event_id

    async def upload(self, data, content_type, filename):
        self.uploads.append((data, content_type, filename))
        return f"mxc://hs.test/{len(self.uploads)}"

    async def redact(self, room_id, event_id, reason=None):
        self.calls.append(("redact", room_id, event_id, reason))

    async def set_typing(self, room_id, typing, timeout_ms=30_000):
        self.calls.append(("typing", room_id, typing))

    def sent(self) -> list:
        return [c[2] for c in self.calls if c[0] == "send"]

    def redactions(self) -> list[tuple[str, str | None]]:
        return [(c[2], c[3]) for c in self.calls if c[0] == "redact"]


class FakeWeb:
    """Stand-in for the HTTP helpers in services.media."""

    def __init__(self):
        self.heads: dict[str, tuple[str, str]] = {}
        self.files: dict[str, tuple[bytes, str]] = {}
        self.pages: dict[str, str] = {}
        self.fetches: Counter = Counter()

    async def resolve(self, url, user_agent=""):
        if url not in self.heads:
            raise FetchError(f"HEAD {url} failed: 404")
        return self.heads[url]

    async def fetch(self, url, max_bytes=0, user_agent=""):
        self.fetches[url] += 1
        return self.files.get(url)

    async def fetch_page(self, url, user_agent="", max_bytes=0):
        if url not in self.pages:
            raise FetchError(f"GET {url} failed: 404")
        return url, self.pages[url].encode("utf-8"), "utf-8"


@pytest.fixture
def driver():
    return FakeDriver()


@pytest.fixture
def cache():
    return PreviewCache()


@pytest.fixture
def bot_config():
    return PreviewBotConfig(loading_text="Loading preview…", typing_interval=0.01)


@pytest.fixture
def web(monkeypatch):
    fake = FakeWeb()
    monkeypatch.setattr(media, "resolve", fake.resolve)
    monkeypatch.setattr(media, "fetch", fake.fetch)
    monkeypatch.setattr(media, "fetch_page", fake.fetch_page)
    return fake
