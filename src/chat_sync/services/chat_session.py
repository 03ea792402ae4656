"""Session wiring: login, REST snapshots, both channels, state and outbound actions."""
from __future__ import annotations

import logging
from typing import Any, Callable

from chat_sync.application.dto.close import CloseEvent
from chat_sync.application.dto.updates import FullSync, TypingUpdate
from chat_sync.application.exceptions import AuthenticationError, ChatApiError, ValidationError
from chat_sync.application.ports.chat_api import ChatApi
from chat_sync.application.ports.token_store import TokenStore
from chat_sync.application.registry import DispatchRegistry
from chat_sync.domain.entities.user import CurrentUser
from chat_sync.domain.value_objects.enums import SessionEvent
from chat_sync.domain.value_objects.ids import ConversationId
from chat_sync.infrastructure.ws.channel import ListChannel, MessageChannel
from chat_sync.infrastructure.ws.protocol import (
    LAST_SEEN_STATUS,
    TYPING_STATUS,
    decode_current_user,
    decode_message,
    decode_message_frame,
)
from chat_sync.services.chat_state import ChatState
from chat_sync.services.send_coordinator import SendCoordinator, SendRoute

logger = logging.getLogger(__name__)


class ChatSession:
    """Owns the channels for one logged-in session.

    Constructed explicitly and torn down with ``close()``. Channel errors are
    recovered by the channels themselves and other REST failures are logged;
    only a REST authentication failure ends the session (token cleared,
    ``logout`` observers notified).
    """

    def __init__(
        self,
        token_store: TokenStore,
        api: ChatApi,
        list_channel: ListChannel,
        message_channel: MessageChannel,
        state: ChatState | None = None,
        coordinator: SendCoordinator | None = None,
    ) -> None:
        self._token_store = token_store
        self._api = api
        self.list_channel = list_channel
        self.message_channel = message_channel
        self.state = state or ChatState()
        self.current_user: CurrentUser | None = None
        self._coordinator = coordinator or SendCoordinator(message_channel, api, self.state)
        self._events: DispatchRegistry[SessionEvent] = DispatchRegistry()

        self.list_channel.on_update(self._on_list_frame)
        self.message_channel.on_message(self._on_message_frame)
        self.message_channel.on_disconnect(self._on_message_disconnect)

    def on_logout(self, handler: Callable[[], Any]) -> None:
        self._events.register(SessionEvent.LOGOUT, handler)

    async def login(self, username: str, password: str) -> CurrentUser:
        """Exchange credentials for an access token and load the account.

        Rejected credentials raise AuthenticationError without a ``logout``
        event, since nothing was logged in yet.
        """
        token = await self._api.obtain_token(username, password)
        self._token_store.set_token(token)
        logger.info("Logged in as %s", username)
        return await self.load_current_user()

    async def load_current_user(self) -> CurrentUser:
        payload = await self._call(self._api.current_user)
        try:
            self.current_user = decode_current_user(payload)
        except ValidationError as exc:
            raise ChatApiError(f"GET /me/: {exc.detail}") from exc
        return self.current_user

    def logout(self) -> None:
        self._token_store.set_token(None)
        self.current_user = None
        self._events.dispatch(SessionEvent.LOGOUT)

    async def start(self) -> None:
        """Load the account and chat list, open the first conversation, subscribe to updates.

        A REST outage leaves the list empty but still opens the list channel,
        whose frames fill it in.
        """
        if self.current_user is None and self._token_store.get_token():
            try:
                await self.load_current_user()
            except ChatApiError as exc:
                logger.warning("Could not load the current user: %s", exc.detail)

        try:
            payloads = await self._call(self._api.list_chats)
        except ChatApiError as exc:
            logger.warning("Could not load the chat list: %s", exc.detail)
        else:
            self.state.load_conversations(payloads)
            if self.state.active_conversation_id is None and self.state.conversations:
                await self.select_conversation(self.state.conversations[0].id)
        self.list_channel.connect()

    async def select_conversation(self, conversation_id: ConversationId) -> None:
        # Close the previous session first so its frames cannot leak into the new one.
        await self.message_channel.disconnect()
        self.state.activate(conversation_id)

        try:
            payloads = await self._call(self._api.list_messages, conversation_id)
            history = FullSync(tuple(decode_message(p, conversation_id) for p in payloads))
        except (ChatApiError, ValidationError) as exc:
            logger.warning("No history for %s, waiting for the channel: %s", conversation_id, exc.detail)
        else:
            self.state.apply_messages(history)

        self.message_channel.connect(conversation_id)

    async def send(self, text: str) -> SendRoute | None:
        conversation_id = self.state.active_conversation_id
        if conversation_id is None:
            return None
        return await self._call(self._coordinator.send, text, conversation_id)

    async def set_typing(self, is_typing: bool, username: str | None = None) -> bool:
        """Announce typing for ``username``, defaulting to the logged-in user."""
        if username is None:
            if self.current_user is None:
                logger.debug("Typing status dropped, no current user")
                return False
            username = self.current_user.username
        status = TYPING_STATUS if is_typing else LAST_SEEN_STATUS
        return await self._coordinator.send_typing(status, username)

    async def close(self) -> None:
        await self.message_channel.dispose()
        await self.list_channel.dispose()
        await self._api.aclose()
        self._events.clear()

    async def _call(self, fn: Callable[..., Any], *args: Any) -> Any:
        try:
            return await fn(*args)
        except AuthenticationError:
            logger.warning("REST authentication failed, logging out")
            self.logout()
            raise

    def _on_list_frame(self, payload: Any) -> None:
        self.state.apply_list_update(payload)

    def _on_message_frame(self, payload: Any) -> None:
        conversation_id = self.message_channel.identity_key
        if conversation_id is None or conversation_id != self.state.active_conversation_id:
            logger.debug("Dropping frame for inactive conversation %s", conversation_id)
            return
        try:
            update = decode_message_frame(payload, conversation_id)
        except ValidationError as exc:
            logger.warning("Dropping message frame: %s", exc.detail)
            return
        if isinstance(update, TypingUpdate):
            self.state.apply_typing(update)
        else:
            self.state.apply_messages(update)

    def _on_message_disconnect(self, event: CloseEvent) -> None:
        self.state.clear_typing()
