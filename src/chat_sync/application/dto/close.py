from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class CloseEvent:
    """Passed to ``disconnect`` handlers.

    ``will_reconnect`` is False on a deliberate close, on a missing credential,
    and on the close that exhausts the reconnect attempts.
    """

    code: int
    reason: str = ""
    will_reconnect: bool = False
