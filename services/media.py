# HTTP helpers shared by the processors: resolve a link with HEAD, download
# media with a size cap, fetch HTML pages, and derive file names / MIME types.
#
# Usage:
#   final_url, mime = await media.resolve(url, user_agent=ua)
#   result = await media.fetch(final_url, max_bytes=8_000_000, user_agent=ua)
#   if result:
#       data, content_type = result

import mimetypes
from pathlib import PurePosixPath
from urllib.parse import unquote, urlsplit

import aiohttp

import services.logger as log
from services.error import FetchError
from services.message import MEDIA_KINDS

l = log.get_logger()

_DEFAULT_MAX = 50 * 1024 * 1024  # 50 MB
_PAGE_MAX = 2 * 1024 * 1024      # HTML beyond this is not worth parsing
_PAGE_TYPES = ("text/html", "application/xhtml+xml")

_session: aiohttp.ClientSession | None = None


def _get_session() -> aiohttp.ClientSession:
    global _session
    if _session is None or _session.closed:
        _session = aiohttp.ClientSession()
    return _session


async def close() -> None:
    global _session
    if _session is not None and not _session.closed:
        await _session.close()
    _session = None


def _headers(user_agent: str) -> dict[str, str]:
    return {"User-Agent": user_agent} if user_agent else {}


async def resolve(url: str, user_agent: str = "") -> tuple[str, str]:
    """HEAD *url*, following redirects.

    Returns ``(effective_url, content_type)``; raises :class:`FetchError` on
    network errors and non-2xx answers.
    """
    session = _get_session()
    try:
        async with session.head(
            url,
            allow_redirects=True,
            headers=_headers(user_agent),
            timeout=aiohttp.ClientTimeout(total=10),
        ) as resp:
            resp.raise_for_status()
            return str(resp.url), resp.content_type or ""
    except (aiohttp.ClientError, TimeoutError) as e:
        raise FetchError(f"HEAD {url} failed: {e}") from e


async def fetch(url: str, max_bytes: int = _DEFAULT_MAX, user_agent: str = "") -> tuple[bytes, str] | None:
    """
    Download *url* up to *max_bytes*.

    Sends a HEAD request first to check Content-Length before committing to a
    full download.  Falls back to streaming if the server doesn't support HEAD.

    Returns ``(data, content_type)`` on success, or ``None`` if the file is
    oversized, the URL is empty, or the download fails.
    """
    if not url:
        return None

    session = _get_session()
    headers = _headers(user_agent)

    try:
        try:
            async with session.head(
                url,
                allow_redirects=True,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=10),
            ) as resp:
                cl = resp.headers.get("Content-Length")
                if cl and cl.isdigit() and int(cl) > max_bytes:
                    l.debug(f"media.fetch: skipping {url!r} — Content-Length {cl} > {max_bytes}")
                    return None
        except (aiohttp.ClientError, TimeoutError):
            pass  # server doesn't support HEAD; proceed with GET

        async with session.get(
            url, headers=headers, timeout=aiohttp.ClientTimeout(total=60)
        ) as resp:
            resp.raise_for_status()
            chunks: list[bytes] = []
            total = 0
            async for chunk in resp.content.iter_chunked(65536):
                total += len(chunk)
                if total > max_bytes:
                    l.debug(f"media.fetch: {url!r} exceeded {max_bytes} bytes, aborting")
                    return None
                chunks.append(chunk)
            return b"".join(chunks), resp.content_type or "application/octet-stream"

    except (aiohttp.ClientError, TimeoutError) as e:
        l.error(f"media.fetch failed for {url!r}: {e}")
        return None


async def fetch_page(url: str, user_agent: str = "", max_bytes: int = _PAGE_MAX) -> tuple[str, bytes, str | None]:
    """GET an HTML page and return ``(effective_url, raw_bytes, header_charset)``.

    The body is left undecoded so the parser can honour ``<meta charset>``.
    Non-HTML answers and HTTP failures raise :class:`FetchError`.
    """
    session = _get_session()
    try:
        async with session.get(
            url,
            headers={**_headers(user_agent), "Accept": "text/html,application/xhtml+xml"},
            timeout=aiohttp.ClientTimeout(total=20),
        ) as resp:
            resp.raise_for_status()
            if resp.content_type not in _PAGE_TYPES:
                raise FetchError(f"GET {url}: not a page ({resp.content_type})")
            chunks: list[bytes] = []
            total = 0
            async for chunk in resp.content.iter_chunked(65536):
                chunks.append(chunk)
                total += len(chunk)
                if total >= max_bytes:
                    break
            return str(resp.url), b"".join(chunks)[:max_bytes], resp.charset
    except (aiohttp.ClientError, TimeoutError) as e:
        raise FetchError(f"GET {url} failed: {e}") from e


def media_category(content_type: str | None) -> str:
    """``"image/png; q=1"`` → ``"image"``."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].split("/", 1)[0].strip().lower()


def is_media_type(content_type: str | None) -> bool:
    return media_category(content_type) in MEDIA_KINDS


def guess_content_type(file_name: str) -> str:
    return mimetypes.guess_type(file_name)[0] or "application/octet-stream"


def filename_from_url(url: str) -> str:
    """Last path segment of *url*, percent-decoded (may be empty)."""
    try:
        path = urlsplit(url).path
    except ValueError:
        return ""
    return PurePosixPath(unquote(path)).name


def filename_for(url: str, content_type: str) -> str:
    """Return a sane filename given the source URL and its MIME type."""
    _fallback = {
        "image/jpeg":  "photo.jpg",
        "image/png":   "photo.png",
        "image/gif":   "image.gif",
        "image/webp":  "image.webp",
        "video/mp4":   "video.mp4",
        "video/webm":  "video.webm",
        "audio/ogg":   "audio.ogg",
        "audio/mpeg":  "audio.mp3",
        "audio/aac":   "audio.aac",
    }
    name = filename_from_url(url)
    mime = content_type.split(";", 1)[0].strip().lower()
    if not name:
        return _fallback.get(mime, "attachment.bin")
    if "." not in name:
        # CDNs often serve /media/12345 without an extension
        ext = mimetypes.guess_extension(mime)
        if ext:
            return name + ext
    return name
