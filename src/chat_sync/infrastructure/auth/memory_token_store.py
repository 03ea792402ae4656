from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class InMemoryTokenStore:
    """Implements application.ports.token_store.TokenStore for one session."""

    def __init__(self, token: str | None = None) -> None:
        self._token = token or None

    def get_token(self) -> str | None:
        return self._token

    def set_token(self, token: str | None) -> None:
        self._token = token or None
        logger.debug("Token %s", "stored" if self._token else "cleared")
