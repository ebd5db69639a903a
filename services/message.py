from dataclasses import dataclass, field

HTML_FORMAT = "org.matrix.custom.html"

MEDIA_KINDS = ("image", "video", "audio")


@dataclass
class IncomingMessage:
    """A text event from a joined room, as handed over by the driver."""
    room_id: str
    event_id: str
    sender: str
    body: str            # reply fallback already removed
    timestamp: int       # origin_server_ts, milliseconds


@dataclass
class ExtractedLinks:
    urls: list[str] = field(default_factory=list)
    contains_other_text: bool = False


@dataclass
class LinkEvent:
    """Links found in one message, queued for the dispatcher."""
    room_id: str
    event_id: str
    sender: str
    urls: list[str]
    contains_other_text: bool


@dataclass(frozen=True)
class ThumbnailPreview:
    file_name: str
    url: str             # mxc:// content URI
    content_type: str
    width: int | None = None
    height: int | None = None
    size: int = 0


@dataclass(frozen=True)
class ProcessedPreview:
    """One remote media item after download and upload.

    Cached under the *remote* media URL, so instances are immutable once built.
    """
    kind: str            # "image" | "video" | "audio"
    file_name: str
    url: str
    content_type: str
    width: int | None = None
    height: int | None = None
    size: int = 0
    thumbnail: ThumbnailPreview | None = None


def has_valid_dimensions(width: int | None, height: int | None) -> bool:
    """Declared dimensions must be positive; undeclared ones are fine."""
    return (width is None or width > 0) and (height is None or height > 0)


@dataclass
class OutgoingMessage:
    """A ``m.room.message`` the bot is about to send."""
    msgtype: str = "m.notice"
    body: str | None = None
    formatted_body: str | None = None
    url: str | None = None
    file_name: str | None = None
    mimetype: str | None = None
    size: int | None = None
    width: int | None = None
    height: int | None = None
    thumbnail: ThumbnailPreview | None = None

    @classmethod
    def from_preview(cls, preview: ProcessedPreview) -> "OutgoingMessage":
        return cls(
            msgtype=f"m.{preview.kind}",
            url=preview.url,
            file_name=preview.file_name,
            mimetype=preview.content_type,
            size=preview.size,
            width=preview.width,
            height=preview.height,
            thumbnail=preview.thumbnail,
        )

    @property
    def has_media(self) -> bool:
        return self.url is not None

    def to_content(self) -> dict:
        """Render the event content dict expected by ``room_send``."""
        # body is mandatory; a media event without caption uses its file name
        content: dict = {
            "msgtype": self.msgtype,
            "body": self.body if self.body is not None else (self.file_name or ""),
        }
        if self.formatted_body is not None:
            content["format"] = HTML_FORMAT
            content["formatted_body"] = self.formatted_body

        if self.url is None:
            return content

        content["url"] = self.url
        if self.file_name:
            content["filename"] = self.file_name

        info: dict = {}
        if self.mimetype:
            info["mimetype"] = self.mimetype
        if self.size is not None:
            info["size"] = self.size
        if self.width is not None:
            info["w"] = self.width
        if self.height is not None:
            info["h"] = self.height

        thumb = self.thumbnail
        if thumb is not None and thumb.url:
            info["thumbnail_url"] = thumb.url
            thumb_info: dict = {"mimetype": thumb.content_type, "size": thumb.size}
            if thumb.width is not None:
                thumb_info["w"] = thumb.width
            if thumb.height is not None:
                thumb_info["h"] = thumb.height
            info["thumbnail_info"] = thumb_info

        content["info"] = info
        return content
