from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Generic, TypeVar

from pydantic import BaseModel

from services.message import IncomingMessage, OutgoingMessage

T = TypeVar("T", bound=BaseModel)

MessageListener = Callable[[IncomingMessage], Awaitable[None]]


class BaseDriver(ABC, Generic[T]):
    """Chat protocol boundary: sync, upload, send, redact and typing."""

    def __init__(self, config: T):
        self.config: T = config
        self._listener: MessageListener | None = None

    def register_listener(self, callback: MessageListener) -> None:
        """Route every incoming text message to *callback*."""
        self._listener = callback

    @abstractmethod
    async def start(self):
        """Connect, authenticate and run the sync loop until cancelled."""

    @abstractmethod
    async def stop(self):
        """Release connections."""

    @abstractmethod
    async def send_message(self, room_id: str, message: OutgoingMessage) -> str:
        """Send *message* and return the new event id."""

    @abstractmethod
    async def upload(self, data: bytes, content_type: str, filename: str) -> str:
        """Upload *data* and return its content URI."""

    @abstractmethod
    async def redact(self, room_id: str, event_id: str, reason: str | None = None) -> None:
        """Redact *event_id* in *room_id*."""

    @abstractmethod
    async def set_typing(self, room_id: str, typing: bool, timeout_ms: int = 30_000) -> None:
        """Start or stop the typing indicator."""
