"""Canonical in-memory view of the session, mutated only via reconciliation."""
from __future__ import annotations

from typing import Any, Callable, Iterable, Mapping

from chat_sync.application.dto.updates import ListUpdate, MessageUpdate, TypingUpdate
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.application.registry import DispatchRegistry
from chat_sync.domain.entities.conversation import ConversationSummary
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import StateEvent
from chat_sync.domain.value_objects.ids import ConversationId
from chat_sync.services import reconciliation


class ChatState:
    """Conversation list, active history and typing map for one session.

    Readers get immutable snapshots (tuples, mapping copies). Observers are
    notified after each change with the new snapshot.
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._conversations: list[ConversationSummary] = []
        self._messages: list[Message] = []
        self._typing: dict[str, str] = {}
        self.active_conversation_id: ConversationId | None = None
        self._observers: DispatchRegistry[StateEvent] = DispatchRegistry()

    @property
    def conversations(self) -> tuple[ConversationSummary, ...]:
        return tuple(self._conversations)

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def typing(self) -> dict[str, str]:
        return dict(self._typing)

    def subscribe(self, kind: StateEvent, handler: Callable[[Any], Any]) -> None:
        self._observers.register(kind, handler)

    def unsubscribe(self, kind: StateEvent, handler: Callable[[Any], Any]) -> None:
        self._observers.remove(kind, handler)

    # -- conversations ---------------------------------------------------------

    def load_conversations(self, payloads: Iterable[Mapping[str, Any]]) -> None:
        self._conversations = reconciliation.summaries_from_snapshot(payloads)
        if self.active_conversation_id is not None:
            self._conversations = reconciliation.mark_read(
                self._conversations, self.active_conversation_id,
            )
        self._observers.dispatch(StateEvent.CONVERSATIONS, self.conversations)

    def apply_list_update(self, payload: ListUpdate | Mapping[str, Any]) -> None:
        self._conversations = reconciliation.apply_list_update(
            self._conversations, payload, self.active_conversation_id, clock=self._clock,
        )
        self._observers.dispatch(StateEvent.CONVERSATIONS, self.conversations)

    # -- active conversation ---------------------------------------------------

    def activate(self, conversation_id: ConversationId) -> None:
        """Switch the active conversation; history and typing start empty."""
        self.active_conversation_id = conversation_id
        self._messages = []
        self._conversations = reconciliation.mark_read(self._conversations, conversation_id)
        self.clear_typing()
        self._observers.dispatch(StateEvent.MESSAGES, self.messages)
        self._observers.dispatch(StateEvent.CONVERSATIONS, self.conversations)

    def apply_messages(self, update: MessageUpdate) -> None:
        self._messages = reconciliation.apply_incoming_messages(self._messages, update)
        self._observers.dispatch(StateEvent.MESSAGES, self.messages)

    def apply_typing(self, update: TypingUpdate) -> None:
        self._typing = reconciliation.apply_typing_update(self._typing, update)
        self._observers.dispatch(StateEvent.TYPING, self.typing)

    def clear_typing(self) -> None:
        if self._typing:
            self._typing = {}
            self._observers.dispatch(StateEvent.TYPING, self.typing)

    def grouped_messages(self) -> Iterable[reconciliation.DateGroup]:
        return reconciliation.group_by_date(self.messages, clock=self._clock)
