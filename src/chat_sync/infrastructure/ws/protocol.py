"""WebSocket frame models and decoders for the list and message channels."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from chat_sync.application.dto.updates import (
    FullSync,
    Incremental,
    ListUpdate,
    MessageUpdate,
    TypingUpdate,
)
from chat_sync.application.exceptions import ValidationError
from chat_sync.domain.entities.conversation import LastMessage
from chat_sync.domain.entities.message import Message
from chat_sync.domain.entities.user import CurrentUser
from chat_sync.domain.value_objects.enums import ConversationType
from chat_sync.domain.value_objects.ids import ConversationId, MessageId

TYPING_STATUS = "typing ..."
LAST_SEEN_STATUS = "last seen recently"


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class _Inbound(BaseModel):
    model_config = ConfigDict(extra="ignore")


class LastMessageIn(_Inbound):
    sender_username: str = ""
    sender_name: str = ""
    text: str = ""
    sent_at: datetime

    @field_validator("sent_at")
    @classmethod
    def sent_at_as_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_entity(self) -> LastMessage:
        return LastMessage(
            sender_username=self.sender_username,
            sender_name=self.sender_name,
            text=self.text,
            sent_at=self.sent_at,
        )


class ListUpdateIn(_Inbound):
    """Server → Client on the list channel; also the shape of ``GET /chats/`` items."""

    id: int
    last_message: LastMessageIn | None = None
    type: ConversationType | None = None
    display_name: str | None = None
    unread_count: int | None = Field(default=None, ge=0)


class MessageIn(_Inbound):
    id: int
    sender_username: str = ""
    sender_name: str = ""
    text: str = ""
    sent_at: datetime

    @field_validator("sent_at")
    @classmethod
    def sent_at_as_utc(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_entity(self, conversation_id: ConversationId) -> Message:
        return Message(
            id=MessageId(self.id),
            conversation_id=conversation_id,
            sender_username=self.sender_username,
            sender_name=self.sender_name,
            text=self.text,
            sent_at=self.sent_at,
        )


class FullSyncIn(_Inbound):
    messages: list[MessageIn]


class IncrementalIn(_Inbound):
    message: MessageIn


class TypingIn(_Inbound):
    typing_status: str
    username: str


class UserIn(_Inbound):
    """Shape of the ``GET /me/`` response."""

    id: int | None = None
    username: str = Field(min_length=1)


class AuthFrame(BaseModel):
    """Client → Server, first frame after open."""

    token: str


class SendFrame(BaseModel):
    chat_id: int
    text: str


class TypingFrame(BaseModel):
    typing_status: str
    username: str


def _validate(model: type[_Inbound], payload: Any) -> Any:
    try:
        return model.model_validate(payload)
    except PydanticValidationError as exc:
        raise ValidationError(f"invalid {model.__name__}: {exc.errors(include_url=False)}") from exc


def decode_list_update(payload: Mapping[str, Any] | Any) -> ListUpdate:
    frame: ListUpdateIn = _validate(ListUpdateIn, payload)
    return ListUpdate(
        id=ConversationId(frame.id),
        last_message=frame.last_message.to_entity() if frame.last_message else None,
        type=frame.type,
        display_name=frame.display_name,
        unread_count=frame.unread_count,
    )


def decode_current_user(payload: Mapping[str, Any] | Any) -> CurrentUser:
    user: UserIn = _validate(UserIn, payload)
    return CurrentUser(id=user.id, username=user.username)


def decode_message(payload: Mapping[str, Any] | Any, conversation_id: ConversationId) -> Message:
    return _validate(MessageIn, payload).to_entity(conversation_id)


def decode_message_frame(
    payload: Mapping[str, Any] | Any,
    conversation_id: ConversationId,
) -> MessageUpdate | TypingUpdate:
    """Turn a raw message-channel frame into a tagged update.

    The wire carries two untagged message shapes (``messages`` for a full
    resync, ``message`` for a single delivery) plus typing notices. The shape
    is resolved here once so nothing downstream inspects raw keys.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("message frame is not an object")
    if "messages" in payload:
        full: FullSyncIn = _validate(FullSyncIn, payload)
        return FullSync(tuple(m.to_entity(conversation_id) for m in full.messages))
    if "message" in payload:
        inc: IncrementalIn = _validate(IncrementalIn, payload)
        return Incremental(inc.message.to_entity(conversation_id))
    if "typing_status" in payload:
        typing: TypingIn = _validate(TypingIn, payload)
        return TypingUpdate(username=typing.username, status=typing.typing_status)
    raise ValidationError(f"unknown message frame keys: {sorted(payload)}")
