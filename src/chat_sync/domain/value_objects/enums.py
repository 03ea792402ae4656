from __future__ import annotations

from enum import IntEnum, StrEnum


class ConversationType(StrEnum):
    PRIVATE = "private"
    GROUP = "group"


class ChannelKind(StrEnum):
    LIST = "list"
    MESSAGE = "message"


class ChannelState(StrEnum):
    """Lifecycle of the socket owned by a channel."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class ReconnectState(StrEnum):
    """Reconnection policy state machine."""

    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    BACKOFF = "backoff"
    GIVEN_UP = "given_up"


class CloseCode(IntEnum):
    NORMAL = 1000
    ABNORMAL = 1006
    NO_CREDENTIAL = 4001


class ChannelEvent(StrEnum):
    CONNECT = "connect"
    DISCONNECT = "disconnect"
    FRAME = "frame"


class StateEvent(StrEnum):
    CONVERSATIONS = "conversations"
    MESSAGES = "messages"
    TYPING = "typing"


class SessionEvent(StrEnum):
    LOGOUT = "logout"


class RunPosition(StrEnum):
    SINGLE = "single"
    FIRST = "first"
    MIDDLE = "middle"
    LAST = "last"
