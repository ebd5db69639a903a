# Link extraction and the listener that feeds the dispatcher.
#
# extract_links() is pure: regex matches, filtered through strict URI parsing,
# plus a flag telling whether the message says anything besides the links.
# LinkListener sits between the driver's sync loop and the dispatcher; the
# dispatcher callback is handed in at construction.

import re
from typing import Awaitable, Callable
from urllib.parse import urlsplit

import services.logger as log
import services.util as u
from services.message import ExtractedLinks, IncomingMessage, LinkEvent

l = log.get_logger()

LINK_RE = re.compile(
    r"https?://(?:www\.)?[-a-zA-Z0-9@:%._+~#=]{1,256}\.[a-zA-Z0-9()]{1,6}\b"
    r"(?:[-a-zA-Z0-9()@:%_+.~#?&/=]*)"
)

LinkCallback = Callable[[LinkEvent], Awaitable[None]]


def is_absolute_uri(candidate: str) -> bool:
    try:
        parts = urlsplit(candidate)
        # .port raises on out-of-range / non-numeric ports
        parts.port
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.hostname)


def extract_links(text: str) -> ExtractedLinks:
    """Find every URL in *text*.

    Matches that fail URI parsing are dropped. ``contains_other_text`` is
    computed over all matched spans, dropped ones included.
    """
    urls: list[str] = []
    residual: list[str] = []
    pos = 0
    for m in LINK_RE.finditer(text):
        residual.append(text[pos:m.start()])
        pos = m.end()
        if is_absolute_uri(m.group(0)):
            urls.append(m.group(0))
    residual.append(text[pos:])
    return ExtractedLinks(urls=urls, contains_other_text=bool("".join(residual).strip()))


def strip_reply_fallback(body: str) -> str:
    """Remove the ``> <@user> quoted`` block clients prepend to replies."""
    lines = body.split("\n")
    i = 0
    while i < len(lines) and lines[i].startswith(">"):
        i += 1
    if i == 0:
        return body
    if i < len(lines) and lines[i] == "":
        i += 1
    return "\n".join(lines[i:])


class LinkListener:
    """Turns incoming room messages into :class:`LinkEvent` notifications."""

    def __init__(self, on_links: LinkCallback, *, startup_ms: int | None = None):
        self._on_links = on_links
        # Anything older is history replayed by the first sync after a restart
        self.startup_ms = startup_ms if startup_ms is not None else u.now_ms()

    async def on_message(self, msg: IncomingMessage) -> None:
        if msg.timestamp < self.startup_ms:
            return

        try:
            found = extract_links(msg.body)
            if not found.urls:
                return
            for url in found.urls:
                l.info(f"New URI in {msg.room_id} from {msg.sender}: {url}")
            await self._on_links(LinkEvent(
                room_id=msg.room_id,
                event_id=msg.event_id,
                sender=msg.sender,
                urls=found.urls,
                contains_other_text=found.contains_other_text,
            ))
        except Exception as e:
            l.error(f"Error in link listener for {msg.event_id} in {msg.room_id}: {e}")
