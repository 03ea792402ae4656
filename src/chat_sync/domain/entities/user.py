from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CurrentUser:
    """The logged-in account as reported by ``GET /me/``."""

    id: int | None
    username: str
