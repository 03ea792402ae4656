"""httpx-backed REST collaborator: login, initial fetches and the send fallback."""
from __future__ import annotations

import logging
from typing import Any

import httpx

from chat_sync.application.exceptions import AuthenticationError, ChatApiError
from chat_sync.application.ports.token_store import TokenStore
from chat_sync.domain.value_objects.ids import ConversationId

logger = logging.getLogger(__name__)


class HttpxChatApi:
    """Implements application.ports.chat_api.ChatApi.

    The bearer token is read from the store on every request so a token
    refreshed mid-session is picked up without rebuilding the client.
    """

    def __init__(
        self,
        base_url: str,
        token_store: TokenStore,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_store = token_store
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
        )

    async def obtain_token(self, username: str, password: str) -> str:
        response = await self._request(
            "POST", "/token/", json={"username": username, "password": password}, authorize=False,
        )
        data = self._json(response, "POST", "/token/")
        access = data.get("access") if isinstance(data, dict) else None
        if not isinstance(access, str) or not access:
            raise ChatApiError("POST /token/: response carries no access token")
        return access

    async def current_user(self) -> dict[str, Any]:
        response = await self._request("GET", "/me/")
        data = self._json(response, "GET", "/me/")
        if not isinstance(data, dict):
            raise ChatApiError("GET /me/: expected a JSON object")
        return data

    async def list_chats(self) -> list[dict[str, Any]]:
        return await self._request_list("GET", "/chats/")

    async def list_messages(self, conversation_id: ConversationId) -> list[dict[str, Any]]:
        return await self._request_list("GET", f"/chats/{conversation_id}/messages")

    async def send_message(self, conversation_id: ConversationId, text: str) -> None:
        await self._request("POST", "/send/", json={"chat": conversation_id, "text": text})

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request_list(self, method: str, url: str) -> list[dict[str, Any]]:
        response = await self._request(method, url)
        data = self._json(response, method, url)
        if not isinstance(data, list):
            raise ChatApiError(f"{method} {url}: expected a JSON array")
        return data

    @staticmethod
    def _json(response: httpx.Response, method: str, url: str) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise ChatApiError(f"{method} {url}: invalid JSON") from exc

    async def _request(
        self, method: str, url: str, *, authorize: bool = True, **kwargs: Any,
    ) -> httpx.Response:
        headers = {}
        token = self._token_store.get_token() if authorize else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = await self._client.request(method, url, headers=headers, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == httpx.codes.UNAUTHORIZED:
                raise AuthenticationError(f"{method} {url}: unauthorized") from exc
            raise ChatApiError(f"{method} {url}: HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise ChatApiError(f"{method} {url}: {exc}") from exc
        return response
