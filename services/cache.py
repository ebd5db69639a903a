"""
In-memory preview cache.

Keys are the *remote* media URLs (before upload), so the same asset linked
from different messages is downloaded and uploaded once per process.  There
is no eviction and nothing survives a restart.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import services.logger as log
from services.message import ProcessedPreview

l = log.get_logger()

PreviewFactory = Callable[[], Awaitable["ProcessedPreview | None"]]


class PreviewCache:

    def __init__(self):
        self._entries: dict[str, ProcessedPreview] = {}
        self._inflight: dict[str, asyncio.Task] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, url: str) -> bool:
        return url in self._entries

    def lookup(self, url: str) -> ProcessedPreview | None:
        return self._entries.get(url)

    def store(self, url: str, preview: ProcessedPreview) -> None:
        self._entries[url] = preview

    async def get_or_create(self, url: str, factory: PreviewFactory) -> ProcessedPreview | None:
        """Return the cached preview for *url*, building it with *factory* on a miss.

        Concurrent misses for the same key share one factory run.  ``None``
        results and exceptions are not cached; an exception reaches every
        caller waiting on that run.
        """
        hit = self._entries.get(url)
        if hit is not None:
            l.info(f"{url}: Cache hit!")
            return hit

        task = self._inflight.get(url)
        if task is None:
            l.info(f"{url}: Cache miss!")
            task = asyncio.create_task(self._build(url, factory), name=f"preview:{url}")
            self._inflight[url] = task
        else:
            l.debug(f"{url}: joining in-flight download")

        # One cancelled waiter must not cancel the download for the others
        return await asyncio.shield(task)

    async def _build(self, url: str, factory: PreviewFactory) -> ProcessedPreview | None:
        try:
            preview = await factory()
            if preview is not None:
                self._entries[url] = preview
            return preview
        finally:
            self._inflight.pop(url, None)
