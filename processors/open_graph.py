# Open Graph previews: a quoted title/description, plus the page's declared
# media re-hosted on the homeserver.
#
# Media order is videos, then images not taken as video thumbnails, then
# audio.  Video i uses og:image i as its thumbnail.  Every item goes through
# the preview cache keyed by its remote URL; downloads run concurrently.
# The summary text rides on the last media message, or is sent alone when
# the card is a plain summary or no media survived.

import asyncio
import html

import services.logger as log
import services.media as media
import services.opengraph as opengraph
from services.error import FetchError
from services.message import (
    MEDIA_KINDS,
    OutgoingMessage,
    ProcessedPreview,
    ThumbnailPreview,
    has_valid_dimensions,
)
from services.opengraph import OpenGraph, StructuredMetadata
from processors import BaseProcessor

l = log.get_logger()

# twitter:card values that mean "text only"
_NO_MEDIA_CARDS = ("summary", "undefined")


def build_summary(graph: OpenGraph) -> tuple[str, str]:
    """Return ``(plain, html)`` quote blocks for the page title and description."""
    title = graph.title
    description = graph.first("og:description") or ""

    plain = f"> {title}\n> {description}\n"

    link = html.escape(graph.original_url, quote=True)
    description_html = html.escape(description).replace("\n", "<br>")
    formatted = (
        '<blockquote><div class="m13253-url-preview-headline">'
        f'<a class="m13253-url-preview-backref" href="{link}">\U0001f517\ufe0f</a> '
        f'<strong><a class="m13253-url-preview-title" href="{link}">{html.escape(title)}</a></strong>'
        '</div>'
        f'<div class="m13253-url-preview-description">{description_html}</div>'
        '</blockquote>'
    )
    return plain, formatted


def _positive(v: int | None) -> bool:
    return v is not None and v > 0


class OpenGraphProcessor(BaseProcessor):

    name = "open-graph"

    async def _process(self, room_id: str, uri: str) -> list[OutgoingMessage] | None:
        try:
            graph = await opengraph.parse_url(uri, user_agent=self.config.user_agent)
        except FetchError as e:
            l.warning(f"open-graph: {e}")
            return None

        if not graph:
            return None

        body, formatted = build_summary(graph)

        card_type = graph.first("twitter:card")
        card_needs_media = card_type not in _NO_MEDIA_CARDS
        images = graph.get("og:image")
        videos = graph.get("og:video")
        audios = graph.get("og:audio")

        previews: list[ProcessedPreview] = []
        if card_needs_media and (images or videos or audios):
            jobs = []
            for i, video in enumerate(videos):
                thumbnail = images[i] if i < len(images) else None
                jobs.append(self._load(video, thumbnail))
            for image in images[len(videos):]:
                jobs.append(self._load(image, None))
            for audio in audios:
                jobs.append(self._load(audio, None))

            results = await asyncio.gather(*jobs)
            previews = [p for p in results if p is not None]

        if not previews:
            return [OutgoingMessage(msgtype="m.notice", body=body, formatted_body=formatted)]

        messages = [OutgoingMessage.from_preview(p) for p in previews]
        messages[-1].body = body
        messages[-1].formatted_body = formatted
        return messages

    async def _load(
        self,
        entry: StructuredMetadata,
        thumbnail: StructuredMetadata | None,
    ) -> ProcessedPreview | None:
        width = entry.int_prop("width")
        height = entry.int_prop("height")
        if not has_valid_dimensions(width, height):
            l.debug(f"open-graph: skipping {entry.value}, bad dimensions {width}x{height}")
            return None

        async def _build() -> ProcessedPreview:
            content_type = entry.prop("type") or media.guess_content_type(media.filename_from_url(entry.value))
            file_name = media.filename_for(entry.value, content_type)

            kind = entry.name
            category = media.media_category(content_type)
            if category != kind:
                l.warning(
                    f"MimeType discrepancy! Set: {content_type}, Mime: {category}, Media.Name: {entry.name}"
                )
                if category in MEDIA_KINDS:
                    kind = category

            thumb_job = None
            if entry.name == "video" and thumbnail is not None:
                thumb_job = self._load_thumbnail(thumbnail)

            if thumb_job is not None:
                (content_uri, size), thumb = await asyncio.gather(
                    self._upload(entry.value, content_type, file_name), thumb_job
                )
            else:
                content_uri, size = await self._upload(entry.value, content_type, file_name)
                thumb = None

            return ProcessedPreview(
                kind=kind,
                file_name=file_name,
                url=content_uri,
                content_type=content_type,
                width=width,
                height=height,
                size=size,
                thumbnail=thumb,
            )

        try:
            return await self.cache.get_or_create(entry.value, _build)
        except Exception as e:
            l.warning(f"open-graph: dropping {entry.value}: {e}")
            return None

    async def _load_thumbnail(self, thumbnail: StructuredMetadata) -> ThumbnailPreview | None:
        width = thumbnail.int_prop("width")
        height = thumbnail.int_prop("height")
        if not (_positive(width) and _positive(height)):
            return None

        content_type = thumbnail.prop("type") or media.guess_content_type(media.filename_from_url(thumbnail.value))
        file_name = media.filename_for(thumbnail.value, content_type)
        l.info(f"Downloading {content_type} for video: {thumbnail.value}")
        try:
            content_uri, size = await self._upload(thumbnail.value, content_type, file_name)
        except Exception as e:
            l.warning(f"open-graph: thumbnail {thumbnail.value} failed: {e}")
            return None
        return ThumbnailPreview(
            file_name=file_name,
            url=content_uri,
            content_type=content_type,
            width=width,
            height=height,
            size=size,
        )

    async def _upload(self, url: str, content_type: str, file_name: str) -> tuple[str, int]:
        l.info(f"Downloading {content_type}: {url}")
        result = await media.fetch(url, max_bytes=self.config.max_file_size, user_agent=self.config.user_agent)
        if result is None:
            raise FetchError(f"could not download {url}")
        data, _ = result
        content_uri = await self.driver.upload(data, content_type, file_name)
        return content_uri, len(data)
