from __future__ import annotations

from typing import Any, Protocol

from chat_sync.domain.value_objects.ids import ConversationId


class ChatApi(Protocol):
    """REST collaborator for login, the initial fetches and the send fallback.

    Returns raw JSON payloads; decoding into domain objects happens in the
    protocol layer so that REST snapshots and socket frames share one path.
    """

    async def obtain_token(self, username: str, password: str) -> str: ...

    async def current_user(self) -> dict[str, Any]: ...

    async def list_chats(self) -> list[dict[str, Any]]: ...

    async def list_messages(self, conversation_id: ConversationId) -> list[dict[str, Any]]: ...

    async def send_message(self, conversation_id: ConversationId, text: str) -> None: ...

    async def aclose(self) -> None: ...
