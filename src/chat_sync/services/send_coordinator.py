"""Outbound messages: socket first, REST fallback with a history resync."""
from __future__ import annotations

import asyncio
import logging
from enum import StrEnum

from chat_sync.application.dto.updates import FullSync
from chat_sync.application.exceptions import (
    ChannelNotOpenError,
    ChatApiError,
    SendFailedError,
    ValidationError,
)
from chat_sync.application.ports.chat_api import ChatApi
from chat_sync.config import settings
from chat_sync.domain.value_objects.ids import ConversationId
from chat_sync.infrastructure.ws.channel import MessageChannel
from chat_sync.infrastructure.ws.protocol import decode_message
from chat_sync.services.chat_state import ChatState

logger = logging.getLogger(__name__)


class SendRoute(StrEnum):
    SOCKET = "socket"
    SOCKET_AFTER_RECONNECT = "socket_after_reconnect"
    REST = "rest"


class SendCoordinator:
    def __init__(
        self,
        channel: MessageChannel,
        api: ChatApi,
        state: ChatState,
        *,
        settle_seconds: float = settings.SEND_SETTLE_SECONDS,
    ) -> None:
        self._channel = channel
        self._api = api
        self._state = state
        self._settle_seconds = settle_seconds

    async def send(self, text: str, conversation_id: ConversationId) -> SendRoute | None:
        """Deliver ``text`` to the conversation by whichever route works.

        Returns the route used, or None for blank input. Raises
        SendFailedError only when the REST fallback fails too.
        """
        if not text.strip():
            return None

        if self._channel.is_connected_to(conversation_id):
            if await self._try_socket(text, conversation_id):
                return SendRoute.SOCKET

        await self._reconnect(conversation_id)
        if await self._try_socket(text, conversation_id):
            return SendRoute.SOCKET_AFTER_RECONNECT

        logger.info("Channel unavailable, sending to %s over REST", conversation_id)
        await self._send_over_rest(text, conversation_id)
        return SendRoute.REST

    async def send_typing(self, status: str, username: str) -> bool:
        """Fire-and-forget; dropped when the channel is not open."""
        return await self._channel.send_typing(status, username)

    async def _try_socket(self, text: str, conversation_id: ConversationId) -> bool:
        if not self._channel.is_connected_to(conversation_id):
            return False
        try:
            await self._channel.send_message(text, conversation_id)
        except ChannelNotOpenError as exc:
            logger.warning("Socket send failed: %s", exc.detail)
            return False
        return True

    async def _reconnect(self, conversation_id: ConversationId) -> None:
        if self._channel.identity_key != conversation_id:
            await self._channel.disconnect()
        self._channel.connect(conversation_id)
        await asyncio.sleep(self._settle_seconds)

    async def _send_over_rest(self, text: str, conversation_id: ConversationId) -> None:
        try:
            await self._api.send_message(conversation_id, text)
        except ChatApiError as exc:
            raise SendFailedError(f"message not delivered: {exc.detail}") from exc

        try:
            history = await self._api.list_messages(conversation_id)
            update = FullSync(tuple(decode_message(item, conversation_id) for item in history))
        except (ChatApiError, ValidationError) as exc:
            logger.warning("Sent over REST but history resync failed: %s", exc.detail)
            return

        if self._state.active_conversation_id == conversation_id:
            self._state.apply_messages(update)
