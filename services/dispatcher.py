import asyncio
from typing import Sequence

import services.logger as log
from services.config_schema import PreviewBotConfig
from services.error import log_task_exception
from services.message import LinkEvent, OutgoingMessage
from drivers import BaseDriver
from processors import BaseProcessor

l = log.get_logger()

REDACT_REASON = "URL Preview provided."


class Dispatcher:
    """
    Runs every extracted link through the processor chain and posts the result.

    Per link: a loading notice is sent and a typing indicator kept alive while
    all processors run; afterwards both are cleared whether or not anything
    was produced.  Once every link is done the collected messages are sent
    (link order, then processor order) and the trigger may be redacted.
    """

    def __init__(self, driver: BaseDriver, processors: Sequence[BaseProcessor], config: PreviewBotConfig):
        self.driver = driver
        self.processors = list(processors)
        self.config = config
        self._tasks: set[asyncio.Task] = set()
        # room_id -> (links in progress, typing refresh task)
        self._typing: dict[str, tuple[int, asyncio.Task]] = {}

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def on_links(self, event: LinkEvent) -> None:
        """Link listener callback; returns at once so the sync loop keeps going."""
        self._spawn(self.handle(event), f"dispatch:{event.event_id}")

    async def handle(self, event: LinkEvent) -> None:
        try:
            await self._handle(event)
        except Exception as e:
            l.error(f"Failed to dispatch previews for {event.event_id} in {event.room_id}: {e}")

    async def drain(self) -> None:
        """Wait for every background dispatch and send to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    async def _handle(self, event: LinkEvent) -> None:
        per_link = await asyncio.gather(*(self._process_link(event.room_id, url) for url in event.urls))
        result_sets = [results for link_results in per_link for results in link_results]
        payloads = [msg for results in result_sets for msg in results]

        if not payloads:
            l.info(f"No previews produced for {event.event_id}")
            return

        if self.config.sender_prefix:
            self._send(event.room_id, OutgoingMessage(msgtype="m.notice", body=self._format_prefix(event)))

        for msg in payloads:
            self._send(event.room_id, msg)

        if self.config.delete_original_if_empty and not event.contains_other_text:
            self._spawn(
                self._redact(event.room_id, event.event_id, REDACT_REASON),
                f"redact:{event.event_id}",
            )

    async def _process_link(self, room_id: str, url: str) -> list[list[OutgoingMessage]]:
        placeholder = await self._send_placeholder(room_id)
        self._begin_typing(room_id)
        try:
            results = await asyncio.gather(*(p.process(room_id, url) for p in self.processors))
        finally:
            await self._end_typing(room_id)
            if placeholder is not None:
                await self._redact(room_id, placeholder, None)

        return [r for r in results if r is not None]

    def _begin_typing(self, room_id: str) -> None:
        count, task = self._typing.get(room_id, (0, None))
        if task is None:
            task = asyncio.create_task(self._keep_typing(room_id), name=f"typing:{room_id}")
        self._typing[room_id] = (count + 1, task)

    async def _end_typing(self, room_id: str) -> None:
        """Typing is per room: only the last link still running in it clears it."""
        count, task = self._typing[room_id]
        if count > 1:
            self._typing[room_id] = (count - 1, task)
            return
        del self._typing[room_id]
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        if room_id not in self._typing:
            await self._stop_typing(room_id)

    def _format_prefix(self, event: LinkEvent) -> str:
        try:
            return self.config.sender_prefix.format(sender=event.sender)
        except (KeyError, IndexError, ValueError) as e:
            l.warning(f"sender_prefix has a bad placeholder ({e}); sending it verbatim")
            return self.config.sender_prefix

    # ------------------------------------------------------------------
    # Protocol calls (failures are logged, never raised)
    # ------------------------------------------------------------------

    def _spawn(self, coro, name: str) -> asyncio.Task:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(log_task_exception)
        return task

    def _send(self, room_id: str, msg: OutgoingMessage) -> None:
        self._spawn(self._send_now(room_id, msg), f"send:{room_id}")

    async def _send_now(self, room_id: str, msg: OutgoingMessage) -> None:
        try:
            await self.driver.send_message(room_id, msg)
        except Exception as e:
            l.error(f"Failed to send {msg.msgtype} to {room_id}: {e}")

    async def _send_placeholder(self, room_id: str) -> str | None:
        if not self.config.loading_text:
            return None
        try:
            return await self.driver.send_message(
                room_id, OutgoingMessage(msgtype="m.notice", body=self.config.loading_text)
            )
        except Exception as e:
            l.warning(f"Failed to send loading notice to {room_id}: {e}")
            return None

    async def _keep_typing(self, room_id: str) -> None:
        interval = self.config.typing_interval
        while True:
            try:
                await self.driver.set_typing(room_id, True, int(interval * 2000))
            except Exception as e:
                l.warning(f"Typing notification failed in {room_id}: {e}")
            await asyncio.sleep(interval)

    async def _stop_typing(self, room_id: str) -> None:
        try:
            await self.driver.set_typing(room_id, False)
        except Exception as e:
            l.warning(f"Failed to clear typing in {room_id}: {e}")

    async def _redact(self, room_id: str, event_id: str, reason: str | None) -> None:
        try:
            await self.driver.redact(room_id, event_id, reason)
        except Exception as e:
            l.error(f"Failed to redact {event_id} in {room_id}: {e}")
