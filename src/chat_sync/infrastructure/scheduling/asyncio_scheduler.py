from __future__ import annotations

import asyncio
from typing import Callable


class AsyncioScheduler:
    """Implements application.ports.scheduler.Scheduler on the running loop."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)
