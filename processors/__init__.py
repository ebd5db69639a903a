from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

import services.logger as log
from services.message import OutgoingMessage

if TYPE_CHECKING:
    from drivers import BaseDriver
    from services.cache import PreviewCache
    from services.config_schema import PreviewBotConfig

l = log.get_logger()


class BaseProcessor(ABC):
    """Turns one URL into zero or more ready-to-send messages.

    ``process`` returns ``None`` when the processor does not handle the URL
    and a (possibly empty) list when it does.  Failures inside a processor
    never escape: they are logged and reported as ``None``.
    """

    name = "processor"

    def __init__(self, driver: "BaseDriver", cache: "PreviewCache", config: "PreviewBotConfig"):
        self.driver = driver
        self.cache = cache
        self.config = config

    async def process(self, room_id: str, uri: str) -> list[OutgoingMessage] | None:
        try:
            return await self._process(room_id, uri)
        except Exception as e:
            l.error(f"{self.name}: failed to process {uri}: {e}")
            return None

    @abstractmethod
    async def _process(self, room_id: str, uri: str) -> list[OutgoingMessage] | None:
        """Build the messages for *uri*, or return ``None`` if not applicable."""
