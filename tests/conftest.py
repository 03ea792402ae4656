"""Shared test fixtures."""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Callable

import pytest
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK
from websockets.frames import Close
from websockets.protocol import State

from chat_sync.application.exceptions import AuthenticationError, ChatApiError
from chat_sync.domain.entities.conversation import ConversationSummary, LastMessage
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ConversationType
from chat_sync.domain.value_objects.ids import ConversationId, MessageId
from chat_sync.infrastructure.auth.memory_token_store import InMemoryTokenStore

BASE_TIME = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)
WS_URL = "ws://chat.test"


def make_message(
    message_id: int,
    *,
    conversation_id: int = 1,
    sender: str = "alice",
    text: str | None = None,
    minutes: int | None = None,
) -> Message:
    return Message(
        id=MessageId(message_id),
        conversation_id=ConversationId(conversation_id),
        sender_username=sender,
        sender_name=sender.title(),
        text=text if text is not None else f"message {message_id}",
        sent_at=BASE_TIME + timedelta(minutes=message_id if minutes is None else minutes),
    )


def message_payload(message_id: int, *, sender: str = "alice", minutes: int | None = None) -> dict[str, Any]:
    sent_at = BASE_TIME + timedelta(minutes=message_id if minutes is None else minutes)
    return {
        "id": message_id,
        "sender_username": sender,
        "sender_name": sender.title(),
        "text": f"message {message_id}",
        "sent_at": sent_at.strftime("%Y-%m-%d %H:%M:%S"),
    }


def list_update_payload(chat_id: int, *, unread: int = 1, **extra: Any) -> dict[str, Any]:
    return {
        "id": chat_id,
        "last_message": {
            "sender_username": "bob",
            "sender_name": "Bob",
            "text": f"latest in {chat_id}",
            "sent_at": "2024-05-10 11:00:00",
        },
        "type": "private",
        "unread_count": unread,
        **extra,
    }


def make_summary(
    chat_id: int,
    *,
    name: str | None = None,
    unread: int = 0,
    minutes: int = 0,
) -> ConversationSummary:
    return ConversationSummary(
        id=ConversationId(chat_id),
        display_name=name or f"chat {chat_id}",
        type=ConversationType.PRIVATE,
        last_message=LastMessage("bob", "Bob", "hi", BASE_TIME),
        unread_count=unread,
        updated_at=BASE_TIME + timedelta(minutes=minutes),
    )


@dataclass
class FixedClock:
    current: datetime = BASE_TIME
    tz: tzinfo = timezone.utc

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.astimezone(self.tz).date()

    def zone(self) -> tzinfo:
        return self.tz

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)


_END = object()


class FakeSocket:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self, url: str) -> None:
        self.url = url
        self.state = State.OPEN
        self.close_code: int | None = None
        self.close_reason: str | None = None
        self.sent: list[str] = []
        self.fail_sends = False
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.state is not State.OPEN or self.fail_sends:
            raise ConnectionClosedError(None, None)
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self.state is State.CLOSED:
            return
        self._finish(code, reason)

    def feed(self, raw: str | bytes) -> None:
        self._inbox.put_nowait(raw)

    def drop(self, code: int = 1006, reason: str = "") -> None:
        """Simulate the server or network closing the connection."""
        self._finish(code, reason)

    def _finish(self, code: int, reason: str) -> None:
        self.state = State.CLOSED
        self.close_code = code
        self.close_reason = reason
        self._inbox.put_nowait(_END)

    def __aiter__(self) -> FakeSocket:
        return self

    async def __anext__(self) -> str | bytes:
        item = await self._inbox.get()
        if item is _END:
            # Keep the sentinel so later iterations end too.
            self._inbox.put_nowait(_END)
            close = Close(self.close_code or 1006, self.close_reason or "")
            if self.close_code in (1000, 1001):
                raise ConnectionClosedOK(close, close, rcvd_then_sent=True)
            raise ConnectionClosedError(close, close, rcvd_then_sent=True)
        return item


@dataclass
class FakeConnector:
    """Hands out FakeSockets; queued exceptions make the next opens fail."""

    sockets: list[FakeSocket] = field(default_factory=list)
    failures: list[BaseException] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)

    async def __call__(self, url: str) -> FakeSocket:
        self.urls.append(url)
        if self.failures:
            raise self.failures.pop(0)
        socket = FakeSocket(url)
        self.sockets.append(socket)
        return socket

    @property
    def last(self) -> FakeSocket:
        return self.sockets[-1]


@dataclass
class _Timer:
    delay: float
    callback: Callable[[], None]
    cancelled: bool = False
    fired: bool = False

    def cancel(self) -> None:
        self.cancelled = True


@dataclass
class FakeScheduler:
    """Records scheduled calls; tests fire them explicitly."""

    timers: list[_Timer] = field(default_factory=list)

    def call_later(self, delay: float, callback: Callable[[], None]) -> _Timer:
        timer = _Timer(delay, callback)
        self.timers.append(timer)
        return timer

    @property
    def pending(self) -> list[_Timer]:
        return [t for t in self.timers if not t.cancelled and not t.fired]

    @property
    def delays_ms(self) -> list[int]:
        return [round(t.delay * 1000) for t in self.timers]

    def fire_next(self) -> None:
        timer = self.pending[0]
        timer.fired = True
        timer.callback()


@dataclass
class FakeChatApi:
    chats: list[dict[str, Any]] = field(default_factory=list)
    history: dict[int, list[dict[str, Any]]] = field(default_factory=dict)
    sent: list[tuple[int, str]] = field(default_factory=list)
    fail_send: bool = False
    unauthorized: bool = False
    unavailable: bool = False
    closed: bool = False
    user: dict[str, Any] = field(default_factory=lambda: {"id": 1, "username": "alice"})
    credentials: dict[str, str] = field(default_factory=lambda: {"alice": "wonderland"})
    issued_tokens: list[str] = field(default_factory=list)

    async def obtain_token(self, username: str, password: str) -> str:
        if self.credentials.get(username) != password:
            raise AuthenticationError("POST /token/: unauthorized")
        token = f"token-{len(self.issued_tokens) + 1}"
        self.issued_tokens.append(token)
        return token

    async def current_user(self) -> dict[str, Any]:
        self._check_auth()
        return dict(self.user)

    async def list_chats(self) -> list[dict[str, Any]]:
        self._check_auth()
        self._check_available()
        return list(self.chats)

    async def list_messages(self, conversation_id: ConversationId) -> list[dict[str, Any]]:
        self._check_auth()
        self._check_available()
        return list(self.history.get(conversation_id, []))

    async def send_message(self, conversation_id: ConversationId, text: str) -> None:
        self._check_auth()
        if self.fail_send:
            raise ChatApiError("POST /send/: HTTP 500")
        self.sent.append((conversation_id, text))
        items = self.history.setdefault(conversation_id, [])
        next_id = max((m["id"] for m in items), default=0) + 1
        items.append({**message_payload(next_id, sender="me"), "text": text})

    async def aclose(self) -> None:
        self.closed = True

    def _check_auth(self) -> None:
        if self.unauthorized:
            raise AuthenticationError("unauthorized")

    def _check_available(self) -> None:
        if self.unavailable:
            raise ChatApiError("HTTP 503")


async def settle(rounds: int = 5) -> None:
    """Let background channel tasks run until they block again."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def token_store() -> InMemoryTokenStore:
    return InMemoryTokenStore("secret-token")


@pytest.fixture
def connector() -> FakeConnector:
    return FakeConnector()


@pytest.fixture
def scheduler() -> FakeScheduler:
    return FakeScheduler()


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock()
