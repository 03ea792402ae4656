"""Entrypoint: python -m chat_sync"""
from __future__ import annotations

import asyncio
import logging

from chat_sync.application.exceptions import AuthenticationError, ChatApiError
from chat_sync.application.ports.clock import SystemClock
from chat_sync.config import settings
from chat_sync.domain.value_objects.enums import StateEvent
from chat_sync.infrastructure.auth.memory_token_store import InMemoryTokenStore
from chat_sync.infrastructure.http.rest_client import HttpxChatApi
from chat_sync.infrastructure.ws.channel import ListChannel, MessageChannel
from chat_sync.services.chat_session import ChatSession
from chat_sync.services.chat_state import ChatState

logger = logging.getLogger("chat_sync")


def build_session() -> ChatSession:
    token_store = InMemoryTokenStore(settings.ACCESS_TOKEN)
    api = HttpxChatApi(
        settings.api_base_url,
        token_store,
        timeout=settings.HTTP_TIMEOUT_SECONDS,
    )
    return ChatSession(
        token_store,
        api,
        ListChannel(settings.ws_base_url, token_store),
        MessageChannel(settings.ws_base_url, token_store),
        ChatState(SystemClock(settings.display_tz)),
    )


def _log_latest_message(messages) -> None:
    if messages:
        latest = messages[-1]
        logger.info("[%s] %s: %s", latest.sent_at, latest.sender_name, latest.text)


async def run_client() -> None:
    session = build_session()
    stopped = asyncio.Event()

    session.on_logout(stopped.set)
    session.state.subscribe(
        StateEvent.CONVERSATIONS,
        lambda convs: logger.info("Chats: %s", ", ".join(f"{c.display_name}({c.unread_count})" for c in convs)),
    )
    session.state.subscribe(StateEvent.MESSAGES, _log_latest_message)
    session.state.subscribe(StateEvent.TYPING, lambda typing: logger.info("Typing: %s", typing))

    try:
        if settings.LOGIN_USERNAME and settings.LOGIN_PASSWORD:
            user = await session.login(settings.LOGIN_USERNAME, settings.LOGIN_PASSWORD)
            logger.info("Hello, %s", user.username)
        await session.start()
        await stopped.wait()
    except AuthenticationError:
        logger.error("Not authenticated; set LOGIN_USERNAME and LOGIN_PASSWORD or ACCESS_TOKEN")
    except ChatApiError as exc:
        logger.error("Chat API unavailable: %s", exc.detail)
    finally:
        await session.close()


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        asyncio.run(run_client())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
