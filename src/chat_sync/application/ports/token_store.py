from __future__ import annotations

from typing import Protocol


class TokenStore(Protocol):
    """Holds the current bearer credential. Read on every connect/auth attempt."""

    def get_token(self) -> str | None: ...

    def set_token(self, token: str | None) -> None: ...
