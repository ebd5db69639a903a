# Direct media links: the URL itself is an image, video or audio file.
#
# A HEAD request (redirects followed) gives the effective URL and the content
# type.  Anything outside image/video/audio is not ours.  The effective URL is
# the cache key, so shortened and canonical links share one upload.

import services.logger as log
import services.media as media
from services.error import FetchError
from services.message import OutgoingMessage, ProcessedPreview
from processors import BaseProcessor

l = log.get_logger()


class DirectMediaProcessor(BaseProcessor):

    name = "direct-media"

    async def _process(self, room_id: str, uri: str) -> list[OutgoingMessage] | None:
        real_url, mime = await media.resolve(uri, user_agent=self.config.user_agent)

        if not media.is_media_type(mime):
            return None

        async def _download() -> ProcessedPreview:
            l.info(f"Downloading {mime}: {real_url}")
            result = await media.fetch(
                real_url,
                max_bytes=self.config.max_file_size,
                user_agent=self.config.user_agent,
            )
            if result is None:
                raise FetchError(f"could not download {real_url}")
            data, _ = result
            file_name = media.filename_for(real_url, mime)
            content_uri = await self.driver.upload(data, mime, file_name)
            return ProcessedPreview(
                kind=media.media_category(mime),
                file_name=file_name,
                url=content_uri,
                content_type=mime,
                size=len(data),
            )

        preview = await self.cache.get_or_create(real_url, _download)
        if preview is None:
            return None
        return [OutgoingMessage.from_preview(preview)]
