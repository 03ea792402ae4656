"""Decoded inbound channel updates."""
from __future__ import annotations

from dataclasses import dataclass

from chat_sync.domain.entities.conversation import LastMessage
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ConversationType
from chat_sync.domain.value_objects.ids import ConversationId


@dataclass(frozen=True, slots=True)
class ListUpdate:
    id: ConversationId
    last_message: LastMessage | None = None
    type: ConversationType | None = None
    display_name: str | None = None
    unread_count: int | None = None


@dataclass(frozen=True, slots=True)
class FullSync:
    """Complete message set for a conversation; replaces local state."""

    items: tuple[Message, ...]


@dataclass(frozen=True, slots=True)
class Incremental:
    item: Message


@dataclass(frozen=True, slots=True)
class TypingUpdate:
    username: str
    status: str


MessageUpdate = FullSync | Incremental
