# Matrix driver via matrix-nio (async).
#
# Receive: AsyncClient.sync_forever() long-poll loop.  RoomMessageText events
#          from other users become IncomingMessage objects for the link
#          listener; invites are accepted and greeted.
# Send:    room_send() for messages, upload() for media, room_redact() and
#          room_typing() for the transient loading notice.
#
# Config keys (under matrix):
#   homeserver               – Homeserver URL, e.g. "https://matrix.org" (required)
#   user_id                  – Full Matrix user ID, e.g. "@bot:matrix.org" (required)
#   password                 – Login password (required unless access_token is set)
#   access_token             – Access token (alternative to password)
#   device_name              – Device display name used on password login
#   decrypted_homeserver_url – Optional endpoint (e.g. pantalaimon) that carries
#                              typing notifications and redactions
#
# Sync settings come from the link_listener section: timeout (ms),
# minimum_sync_time (s) and presence.

import io

from nio import (
    AsyncClient,
    ErrorResponse,
    InviteMemberEvent,
    LoginResponse,
    MatrixRoom,
    RoomMessageText,
    UploadResponse,
)

import services.logger as log
from services.config_schema import LinkListenerConfig, MatrixConfig
from services.error import ProtocolError
from services.links import strip_reply_fallback
from services.message import IncomingMessage, OutgoingMessage
from drivers import BaseDriver

l = log.get_logger()


def _check(resp, what: str):
    if isinstance(resp, ErrorResponse):
        raise ProtocolError(f"{what} failed: {resp}")
    return resp


def _is_reply(event: RoomMessageText) -> bool:
    relates_to = event.source.get("content", {}).get("m.relates_to") or {}
    return "m.in_reply_to" in relates_to


class MatrixDriver(BaseDriver[MatrixConfig]):

    def __init__(self, config: MatrixConfig, sync_config: LinkListenerConfig | None = None, greeting: str = ""):
        super().__init__(config)
        self.sync_config = sync_config or LinkListenerConfig()
        self.greeting = greeting
        self._client: AsyncClient | None = None
        # Typing and redactions go here; same object as _client unless a
        # decrypted endpoint is configured
        self._control: AsyncClient | None = None

    @property
    def user_id(self) -> str:
        return self.config.user_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self):
        self._client = AsyncClient(self.config.homeserver, self.config.user_id)

        if self.config.access_token:
            self._client.access_token = self.config.access_token
            self._client.user_id = self.config.user_id
        else:
            resp = await self._client.login(self.config.password, device_name=self.config.device_name)
            if not isinstance(resp, LoginResponse):
                await self._client.close()
                self._client = None
                raise ProtocolError(f"Matrix login failed: {resp}")

        self._control = self._client
        if self.config.decrypted_homeserver_url:
            control = AsyncClient(self.config.decrypted_homeserver_url, self.config.user_id)
            control.access_token = self._client.access_token
            control.user_id = self._client.user_id
            control.device_id = self._client.device_id
            self._control = control
            l.info(f"Matrix typing/redactions via {self.config.decrypted_homeserver_url}")

        self._client.add_event_callback(self._on_text, RoomMessageText)
        self._client.add_event_callback(self._on_invite, InviteMemberEvent)

        l.info(f"Matrix connected as {self.config.user_id}, starting sync")
        await self._client.sync_forever(
            timeout=self.sync_config.timeout,
            loop_sleep_time=int(self.sync_config.minimum_sync_time * 1000),
            set_presence=self.sync_config.presence,
        )

    async def stop(self):
        if self._control is not None and self._control is not self._client:
            await self._control.close()
        if self._client is not None:
            await self._client.close()
        self._client = None
        self._control = None
        l.info("Matrix connection closed")

    # ------------------------------------------------------------------
    # Receive
    # ------------------------------------------------------------------

    async def _on_text(self, room: MatrixRoom, event: RoomMessageText):
        if event.sender == self.user_id:
            return
        if self._listener is None:
            return

        body = event.body or ""
        if _is_reply(event):
            body = strip_reply_fallback(body)

        await self._listener(IncomingMessage(
            room_id=room.room_id,
            event_id=event.event_id,
            sender=event.sender,
            body=body,
            timestamp=event.server_timestamp,
        ))

    async def _on_invite(self, room: MatrixRoom, event: InviteMemberEvent):
        if event.state_key != self.user_id or event.membership != "invite":
            return
        try:
            _check(await self._require(self._client).join(room.room_id), f"join {room.room_id}")
            l.info(f"Joined {room.room_id} on invite from {event.sender}")
            if self.greeting:
                await self.send_message(room.room_id, OutgoingMessage(msgtype="m.notice", body=self.greeting))
        except ProtocolError as e:
            l.error(f"Matrix invite handling failed: {e}")

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def _require(self, client: AsyncClient | None) -> AsyncClient:
        if client is None:
            raise ProtocolError("Matrix driver not started")
        return client

    async def send_message(self, room_id: str, message: OutgoingMessage) -> str:
        client = self._require(self._client)
        resp = await client.room_send(
            room_id,
            "m.room.message",
            message.to_content(),
            ignore_unverified_devices=True,
        )
        _check(resp, f"send to {room_id}")
        return resp.event_id

    async def upload(self, data: bytes, content_type: str, filename: str) -> str:
        client = self._require(self._client)
        resp, _ = await client.upload(
            io.BytesIO(data),
            content_type=content_type,
            filename=filename,
            filesize=len(data),
        )
        if not isinstance(resp, UploadResponse):
            raise ProtocolError(f"upload of {filename} failed: {resp}")
        return resp.content_uri

    async def redact(self, room_id: str, event_id: str, reason: str | None = None) -> None:
        client = self._require(self._control)
        _check(await client.room_redact(room_id, event_id, reason=reason), f"redact {event_id}")

    async def set_typing(self, room_id: str, typing: bool, timeout_ms: int = 30_000) -> None:
        client = self._require(self._control)
        _check(
            await client.room_typing(room_id, typing_state=typing, timeout=timeout_ms),
            f"typing in {room_id}",
        )
