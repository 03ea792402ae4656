"""Long-lived WebSocket channels: chat-list updates and per-conversation messages."""
from __future__ import annotations

import asyncio
import json
import logging
from contextlib import suppress
from typing import Any, AsyncIterator, Awaitable, Callable, Protocol, Self

from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.protocol import State

from chat_sync.application.dto.close import CloseEvent
from chat_sync.application.exceptions import ChannelNotOpenError
from chat_sync.application.ports.scheduler import ScheduledCall, Scheduler
from chat_sync.application.ports.token_store import TokenStore
from chat_sync.application.registry import DispatchRegistry
from chat_sync.config import settings
from chat_sync.domain.value_objects.enums import (
    ChannelEvent,
    ChannelKind,
    ChannelState,
    CloseCode,
    ReconnectState,
)
from chat_sync.domain.value_objects.ids import ConversationId
from chat_sync.infrastructure.scheduling.asyncio_scheduler import AsyncioScheduler
from chat_sync.infrastructure.ws.protocol import AuthFrame, SendFrame, TypingFrame

logger = logging.getLogger(__name__)


class Socket(Protocol):
    """The subset of ``websockets.asyncio.client.ClientConnection`` we rely on."""

    @property
    def state(self) -> State: ...

    @property
    def close_code(self) -> int | None: ...

    @property
    def close_reason(self) -> str | None: ...

    async def send(self, message: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str], Awaitable[Socket]]
ConnectHandler = Callable[[], Any]
DisconnectHandler = Callable[[CloseEvent], Any]
FrameHandler = Callable[[Any], Any]

_NO_RECONNECT_CODES = frozenset({CloseCode.NORMAL, CloseCode.NO_CREDENTIAL})


async def _websockets_connector(url: str) -> Socket:
    return await ws_connect(url, open_timeout=settings.WS_OPEN_TIMEOUT_SECONDS)


class ChannelConnection:
    """One logical real-time channel with auth handshake and reconnect policy.

    The instance is reused across connect/disconnect cycles. ``connect()`` only
    starts the work; open, auth and receive happen on a background task, and
    observers learn about them through the registered handlers. Reconnect
    timers are tracked so ``disconnect()`` can cancel them.
    """

    kind: ChannelKind

    def __init__(
        self,
        base_url: str,
        token_store: TokenStore,
        *,
        connector: Connector | None = None,
        scheduler: Scheduler | None = None,
        base_delay_ms: float = settings.RECONNECT_BASE_DELAY_MS,
        backoff_factor: float = settings.RECONNECT_BACKOFF_FACTOR,
        max_attempts: int = settings.RECONNECT_MAX_ATTEMPTS,
        auth_settle_seconds: float = settings.AUTH_SETTLE_SECONDS,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.base_delay_ms = base_delay_ms
        self.backoff_factor = backoff_factor
        self.max_attempts = max_attempts
        self.auth_settle_seconds = auth_settle_seconds

        self.identity_key: ConversationId | None = None
        self.state = ChannelState.IDLE
        self.reconnect_state = ReconnectState.IDLE
        self.reconnect_attempts = 0

        self._token_store = token_store
        self._connector = connector or _websockets_connector
        self._scheduler = scheduler or AsyncioScheduler()
        self._registry: DispatchRegistry[ChannelEvent] = DispatchRegistry()

        self._socket: Socket | None = None
        self._task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[None]] = set()
        self._reconnect_timer: ScheduledCall | None = None
        self._local_close_code: int | None = None
        self._generation = 0

    # -- handler registration ------------------------------------------------

    def on_connect(self, handler: ConnectHandler) -> Self:
        self._registry.register(ChannelEvent.CONNECT, handler)
        return self

    def on_disconnect(self, handler: DisconnectHandler) -> Self:
        self._registry.register(ChannelEvent.DISCONNECT, handler)
        return self

    def on_frame(self, handler: FrameHandler) -> Self:
        self._registry.register(ChannelEvent.FRAME, handler)
        return self

    def remove_connection_handler(self, kind: ChannelEvent, handler: Callable[..., Any]) -> Self:
        if kind in (ChannelEvent.CONNECT, ChannelEvent.DISCONNECT):
            self._registry.remove(kind, handler)
        return self

    def remove_frame_handler(self, handler: FrameHandler) -> Self:
        self._registry.remove(ChannelEvent.FRAME, handler)
        return self

    # -- lifecycle -------------------------------------------------------------

    def url(self) -> str:
        raise NotImplementedError

    def backoff_delay_ms(self, attempt: int) -> float:
        return self.base_delay_ms * self.backoff_factor ** (attempt - 1)

    def is_connected(self) -> bool:
        return self._socket is not None and self._socket.state is State.OPEN

    def connect(self, identity_key: ConversationId | None = None) -> Self:
        if self.state in (ChannelState.CONNECTING, ChannelState.OPEN):
            if identity_key != self.identity_key:
                logger.warning(
                    "%s channel already bound to %s, ignoring connect(%s)",
                    self.kind, self.identity_key, identity_key,
                )
            return self

        self._cancel_reconnect()
        self._socket = None
        self.reconnect_attempts = 0
        self.identity_key = identity_key
        self._open()
        return self

    async def disconnect(self) -> None:
        self._cancel_reconnect()
        if self.reconnect_state is not ReconnectState.GIVEN_UP:
            self.reconnect_state = ReconnectState.IDLE

        task = self._task
        socket = self._socket
        if socket is None:
            if self.state is ChannelState.CONNECTING and task is not None and not task.done():
                # Abandon the in-flight open; its result is discarded.
                self._generation += 1
                task.cancel()
                with suppress(asyncio.CancelledError):
                    await task
                self.state = ChannelState.CLOSED
            return

        self._socket = None
        if socket.state in (State.CLOSING, State.CLOSED):
            return

        self.state = ChannelState.CLOSING
        self._local_close_code = CloseCode.NORMAL
        await socket.close(CloseCode.NORMAL, "Disconnecting normally")
        if task is not None and task is not asyncio.current_task():
            with suppress(asyncio.CancelledError):
                await task

    async def dispose(self) -> None:
        await self.disconnect()
        # Superseded runs may still be closing their sockets.
        leftovers = [t for t in self._tasks if t is not asyncio.current_task()]
        if leftovers:
            await asyncio.gather(*leftovers, return_exceptions=True)
        self._registry.clear()

    def _open(self) -> None:
        self._generation += 1
        self._local_close_code = None
        self.state = ChannelState.CONNECTING
        self.reconnect_state = ReconnectState.CONNECTING
        task = asyncio.get_running_loop().create_task(
            self._run(self.url(), self._generation),
            name=f"ws-{self.kind}-{self._generation}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._task = task

    async def _run(self, url: str, generation: int) -> None:
        logger.info("Opening %s channel: %s", self.kind, url)
        try:
            socket = await self._connector(url)
        except (OSError, TimeoutError, WebSocketException) as exc:
            logger.warning("%s channel failed to open: %s", self.kind, exc)
            if generation == self._generation:
                self._on_closed(CloseCode.ABNORMAL, str(exc))
            return

        if generation != self._generation:
            await socket.close(CloseCode.NORMAL, "Superseded")
            return

        self._socket = socket
        self.state = ChannelState.OPEN
        self.reconnect_state = ReconnectState.OPEN
        self.reconnect_attempts = 0
        logger.info("%s channel connection established", self.kind)
        self._registry.dispatch(ChannelEvent.CONNECT)

        await self._authenticate(socket)

        try:
            async for raw in socket:
                if generation != self._generation:
                    break
                self._on_raw_frame(raw)
        except ConnectionClosed:
            pass

        if generation != self._generation:
            if socket.state is State.OPEN:
                await socket.close(CloseCode.NORMAL, "Superseded")
            return

        code = self._local_close_code or socket.close_code or CloseCode.ABNORMAL
        if self._socket is socket:
            self._socket = None
        self._on_closed(code, socket.close_reason or "")

    async def _authenticate(self, socket: Socket) -> None:
        await asyncio.sleep(self.auth_settle_seconds)
        if socket.state is not State.OPEN:
            logger.warning("Cannot authenticate: %s channel is not connected", self.kind)
            return

        token = self._token_store.get_token()
        if not token:
            logger.error("No authentication token found, closing %s channel", self.kind)
            self._local_close_code = CloseCode.NO_CREDENTIAL
            await socket.close(CloseCode.NO_CREDENTIAL, "No authentication token available")
            return

        try:
            await socket.send(AuthFrame(token=token).model_dump_json())
        except ConnectionClosed as exc:
            logger.warning("%s channel closed before auth was sent: %s", self.kind, exc)
            return
        logger.info("Authentication token sent for %s channel", self.kind)

    def _on_raw_frame(self, raw: str | bytes) -> None:
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.warning("Dropping malformed frame on %s channel: %.200r", self.kind, raw)
            return
        self._registry.dispatch(ChannelEvent.FRAME, payload)

    def _on_closed(self, code: int, reason: str) -> None:
        self.state = ChannelState.CLOSED
        if code in _NO_RECONNECT_CODES:
            will_reconnect = False
            self.reconnect_state = ReconnectState.IDLE
        elif self.reconnect_attempts >= self.max_attempts:
            will_reconnect = False
            self.reconnect_state = ReconnectState.GIVEN_UP
            logger.error("Maximum reconnection attempts reached for %s channel", self.kind)
        else:
            will_reconnect = True

        logger.info("%s channel closed: code=%s reason=%r", self.kind, code, reason)
        self._registry.dispatch(ChannelEvent.DISCONNECT, CloseEvent(code, reason, will_reconnect))
        if will_reconnect:
            self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        # A disconnect handler may already have reconnected, or an overlapping
        # close may already have armed the timer.
        if self.state in (ChannelState.CONNECTING, ChannelState.OPEN):
            return
        if self._reconnect_timer is not None:
            return

        self.reconnect_attempts += 1
        delay_ms = self.backoff_delay_ms(self.reconnect_attempts)
        self.reconnect_state = ReconnectState.BACKOFF
        logger.info(
            "Attempting to reconnect %s channel in %.0fms (attempt %d/%d)",
            self.kind, delay_ms, self.reconnect_attempts, self.max_attempts,
        )
        self._reconnect_timer = self._scheduler.call_later(delay_ms / 1000, self._fire_reconnect)

    def _fire_reconnect(self) -> None:
        self._reconnect_timer = None
        if self.state in (ChannelState.CONNECTING, ChannelState.OPEN):
            return
        logger.info("Reconnecting %s channel", self.kind)
        self._open()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None


class ListChannel(ChannelConnection):
    """Chat-list update stream; one per session, no identity key."""

    kind = ChannelKind.LIST

    def url(self) -> str:
        return f"{self.base_url}/ws/chats/"

    def on_update(self, handler: FrameHandler) -> Self:
        return self.on_frame(handler)

    def remove_update_handler(self, handler: FrameHandler) -> Self:
        return self.remove_frame_handler(handler)


class MessageChannel(ChannelConnection):
    """Message stream for the conversation given as the identity key."""

    kind = ChannelKind.MESSAGE

    def url(self) -> str:
        if self.identity_key is None:
            raise ValueError("message channel needs a conversation id")
        return f"{self.base_url}/ws/chats/{self.identity_key}/"

    def connect(self, identity_key: ConversationId | None = None) -> Self:
        if identity_key is None:
            raise ValueError("message channel needs a conversation id")
        return super().connect(identity_key)

    def is_connected_to(self, conversation_id: ConversationId) -> bool:
        return self.is_connected() and self.identity_key == conversation_id

    def on_message(self, handler: FrameHandler) -> Self:
        return self.on_frame(handler)

    def remove_message_handler(self, handler: FrameHandler) -> Self:
        return self.remove_frame_handler(handler)

    async def send_message(self, text: str, chat_id: ConversationId) -> None:
        socket = self._socket
        if socket is None or socket.state is not State.OPEN:
            raise ChannelNotOpenError("WebSocket is not connected")
        try:
            await socket.send(SendFrame(chat_id=chat_id, text=text).model_dump_json())
        except ConnectionClosed as exc:
            raise ChannelNotOpenError(f"WebSocket closed during send: {exc}") from exc

    async def send_typing(self, status: str, username: str) -> bool:
        socket = self._socket
        if socket is None or socket.state is not State.OPEN:
            return False
        try:
            await socket.send(TypingFrame(typing_status=status, username=username).model_dump_json())
        except ConnectionClosed:
            logger.debug("Typing status dropped, %s channel closed", self.kind)
            return False
        return True
