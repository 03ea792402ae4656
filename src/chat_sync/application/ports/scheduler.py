from __future__ import annotations

from typing import Callable, Protocol


class ScheduledCall(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Schedules a callback on the event loop after ``delay`` seconds."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> ScheduledCall: ...
