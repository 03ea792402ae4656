from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from chat_sync.domain.value_objects.ids import ConversationId, MessageId


@dataclass(frozen=True, slots=True)
class Message:
    id: MessageId
    conversation_id: ConversationId
    sender_username: str
    sender_name: str
    text: str
    sent_at: datetime
