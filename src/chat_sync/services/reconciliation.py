"""Pure merge logic for the conversation list, message history and typing state.

Nothing here performs I/O or mutates its inputs: every entry point returns a
new collection built from the current one and an inbound update.
"""
from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Any, Iterable, Iterator, Mapping, Sequence

from chat_sync.application.dto.updates import (
    FullSync,
    Incremental,
    ListUpdate,
    MessageUpdate,
    TypingUpdate,
)
from chat_sync.application.exceptions import ValidationError
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.domain.entities.conversation import ConversationSummary
from chat_sync.domain.entities.message import Message
from chat_sync.domain.value_objects.enums import ConversationType, RunPosition
from chat_sync.domain.value_objects.ids import ConversationId
from chat_sync.infrastructure.ws.protocol import decode_list_update

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_TICK = timedelta(microseconds=1)

_system_clock = SystemClock()


# ---------------------------------------------------------------------------
# Conversation list
# ---------------------------------------------------------------------------


def _sorted_by_recency(summaries: Iterable[ConversationSummary]) -> list[ConversationSummary]:
    return sorted(summaries, key=lambda s: s.updated_at, reverse=True)


def _fresh_stamp(current: Sequence[ConversationSummary], clock: Clock) -> datetime:
    stamp = clock.now()
    newest = max((s.updated_at for s in current), default=None)
    if newest is not None and stamp <= newest:
        stamp = newest + _TICK
    return stamp


def apply_list_update(
    current: Sequence[ConversationSummary],
    payload: ListUpdate | Mapping[str, Any],
    active_conversation_id: ConversationId | None,
    *,
    clock: Clock = _system_clock,
) -> list[ConversationSummary]:
    """Merge one list-channel update and re-sort by recency.

    The touched conversation always gets the newest stamp, so it floats to the
    top regardless of its id. An update for the active conversation never
    carries unread messages.
    """
    if isinstance(payload, ListUpdate):
        update = payload
    else:
        try:
            update = decode_list_update(payload)
        except ValidationError as exc:
            logger.warning("Rejected list update: %s", exc.detail)
            return list(current)

    stamp = _fresh_stamp(current, clock)
    is_active = active_conversation_id is not None and update.id == active_conversation_id

    merged: list[ConversationSummary] = []
    found = False
    for summary in current:
        if summary.id != update.id:
            merged.append(summary)
            continue
        found = True
        if is_active:
            unread = 0
        elif update.unread_count is not None:
            unread = update.unread_count
        else:
            unread = summary.unread_count
        merged.append(
            replace(
                summary,
                last_message=update.last_message or summary.last_message,
                type=update.type or summary.type,
                display_name=update.display_name if update.display_name is not None else summary.display_name,
                unread_count=unread,
                updated_at=stamp,
            )
        )

    if not found:
        merged.append(
            ConversationSummary(
                id=update.id,
                display_name=update.display_name or "",
                type=update.type or ConversationType.PRIVATE,
                last_message=update.last_message,
                unread_count=0 if is_active else (update.unread_count or 0),
                updated_at=stamp,
            )
        )

    return _sorted_by_recency(merged)


def mark_read(
    current: Sequence[ConversationSummary],
    conversation_id: ConversationId,
) -> list[ConversationSummary]:
    """Zero the unread count of one conversation without touching its recency."""
    return [
        replace(s, unread_count=0) if s.id == conversation_id and s.unread_count else s
        for s in current
    ]


def summaries_from_snapshot(payloads: Iterable[Mapping[str, Any]]) -> list[ConversationSummary]:
    """Build the initial list from a ``GET /chats/`` response.

    Entries are stamped with their last message time (conversations without
    messages sink to the bottom); invalid entries and repeated ids are dropped.
    """
    seen: set[ConversationId] = set()
    result: list[ConversationSummary] = []
    for payload in payloads:
        try:
            update = decode_list_update(payload)
        except ValidationError as exc:
            logger.warning("Dropped chat list entry: %s", exc.detail)
            continue
        if update.id in seen:
            continue
        seen.add(update.id)
        result.append(
            ConversationSummary(
                id=update.id,
                display_name=update.display_name or "",
                type=update.type or ConversationType.PRIVATE,
                last_message=update.last_message,
                unread_count=update.unread_count or 0,
                updated_at=update.last_message.sent_at if update.last_message else _EPOCH,
            )
        )
    return _sorted_by_recency(result)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


def _dedup_first_seen(messages: Iterable[Message]) -> list[Message]:
    seen = set()
    unique = []
    for message in messages:
        if message.id in seen:
            continue
        seen.add(message.id)
        unique.append(message)
    return unique


def apply_incoming_messages(current: Sequence[Message], update: MessageUpdate) -> list[Message]:
    """Fold a message-channel update into the history.

    ``FullSync`` replaces the collection; ``Incremental`` appends. Either way
    the result holds each id once (first-seen copy wins) in ``sent_at`` order.
    """
    if isinstance(update, FullSync):
        merged = _dedup_first_seen(update.items)
    elif isinstance(update, Incremental):
        merged = _dedup_first_seen([*current, update.item])
    else:
        raise TypeError(f"unsupported message update: {type(update).__name__}")
    merged.sort(key=lambda m: m.sent_at)
    return merged


@dataclass(frozen=True, slots=True)
class DateGroup:
    date: date
    label: str
    messages: tuple[Message, ...]


def date_label(day: date, today: date) -> str:
    if day == today:
        return "Today"
    if day == today - timedelta(days=1):
        return "Yesterday"
    return f"{day:%B} {day.day}, {day.year}"


class _DateGroups:
    """Re-iterable view; each iteration regroups from the source sequence."""

    def __init__(self, messages: Sequence[Message], today: date, tz: tzinfo) -> None:
        self._messages = messages
        self._today = today
        self._tz = tz

    def _day(self, message: Message) -> date:
        return message.sent_at.astimezone(self._tz).date()

    def __iter__(self) -> Iterator[DateGroup]:
        for day, items in itertools.groupby(self._messages, key=self._day):
            yield DateGroup(date=day, label=date_label(day, self._today), messages=tuple(items))


def group_by_date(
    messages: Sequence[Message],
    *,
    today: date | None = None,
    tz: tzinfo | None = None,
    clock: Clock = _system_clock,
) -> Iterable[DateGroup]:
    """Group time-ordered messages by the viewer's calendar day.

    Days are taken in ``tz`` (default: the clock's zone) so "Today" and
    "Yesterday" flip at the viewer's midnight, not UTC's.
    """
    zone = tz if tz is not None else clock.zone()
    return _DateGroups(messages, today if today is not None else clock.today(), zone)


@dataclass(frozen=True, slots=True)
class PositionedMessage:
    message: Message
    position: RunPosition

    @property
    def starts_run(self) -> bool:
        return self.position in (RunPosition.SINGLE, RunPosition.FIRST)

    @property
    def ends_run(self) -> bool:
        return self.position in (RunPosition.SINGLE, RunPosition.LAST)


def mark_consecutive(messages: Sequence[Message]) -> list[PositionedMessage]:
    result = []
    for i, message in enumerate(messages):
        same_as_prev = i > 0 and messages[i - 1].sender_username == message.sender_username
        same_as_next = (
            i + 1 < len(messages) and messages[i + 1].sender_username == message.sender_username
        )
        if same_as_prev and same_as_next:
            position = RunPosition.MIDDLE
        elif same_as_prev:
            position = RunPosition.LAST
        elif same_as_next:
            position = RunPosition.FIRST
        else:
            position = RunPosition.SINGLE
        result.append(PositionedMessage(message, position))
    return result


# ---------------------------------------------------------------------------
# Typing
# ---------------------------------------------------------------------------


def apply_typing_update(current: Mapping[str, str], update: TypingUpdate) -> dict[str, str]:
    return {**current, update.username: update.status}
