import asyncio
import sys
import traceback

import services.logger as log

l = log.get_logger()


class PreviewBotError(Exception):
    """Base class for errors raised by the bot itself."""


class ConfigError(PreviewBotError):
    """The configuration is missing, unreadable or invalid."""


class FetchError(PreviewBotError):
    """A media or page request failed, timed out or returned non-2xx."""


class ProtocolError(PreviewBotError):
    """The homeserver rejected an upload, send, redact or typing call."""


def _handle_uncaught_exceptions(exc_type, exc_value, exc_traceback):
    """Global exception handler for uncaught exceptions."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return

    l.critical(
        "Unhandled exception caught:\n"
        + ''.join(traceback.format_exception(exc_type, exc_value, exc_traceback))
    )


sys.excepthook = _handle_uncaught_exceptions


def log_task_exception(task: asyncio.Task) -> None:
    """Done-callback for fire-and-forget tasks: log failures instead of losing them."""
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        l.error(f"Background task '{task.get_name()}' failed: {exc}")
