from __future__ import annotations

from datetime import date, datetime, timezone, tzinfo
from typing import Protocol


class Clock(Protocol):
    def now(self) -> datetime: ...

    def today(self) -> date: ...

    def zone(self) -> tzinfo:
        """Zone whose calendar days are shown to the user."""
        ...


class SystemClock:
    """Default wall-clock implementation.

    ``now()`` is always UTC. Calendar days follow ``tz``, or the machine's
    local zone when none is given.
    """

    def __init__(self, tz: tzinfo | None = None) -> None:
        self._tz = tz

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def today(self) -> date:
        return self.now().astimezone(self.zone()).date()

    def zone(self) -> tzinfo:
        if self._tz is not None:
            return self._tz
        return datetime.now().astimezone().tzinfo or timezone.utc
