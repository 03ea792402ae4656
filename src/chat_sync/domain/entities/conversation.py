from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_sync.domain.value_objects.enums import ConversationType
from chat_sync.domain.value_objects.ids import ConversationId


@dataclass(frozen=True, slots=True)
class LastMessage:
    sender_username: str
    sender_name: str
    text: str
    sent_at: datetime


@dataclass(frozen=True, slots=True)
class ConversationSummary:
    id: ConversationId
    display_name: str
    type: ConversationType
    last_message: LastMessage | None
    unread_count: int
    updated_at: datetime
