"""Slack event normalization.

Turns the kind-specific ``event`` body of a Slack event_callback into one
canonical record, or a skip reason. Pure: nothing here writes anywhere.

Slack names the channel and actor fields differently per event kind
(``file_shared`` uses ``channel_id``/``user_id``, reactions nest the
channel under ``item``). FIELD_MAP is the single place that divergence
is resolved.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal, InvalidOperation
from typing import Any

from src.models import (
    EventKind,
    FileEvent,
    MembershipAction,
    MembershipEvent,
    MessageEvent,
    ReactionEvent,
)
from src.webhook.models import NormalizeResult

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)

UNKNOWN_FILE_NAME = "Unknown"


@dataclass(frozen=True)
class FieldMap:
    """Where a Slack event kind keeps its channel and actor ids."""

    channel_path: tuple[str, ...]
    actor_field: str


FIELD_MAP: dict[EventKind, FieldMap] = {
    EventKind.REACTION: FieldMap(channel_path=("item", "channel"), actor_field="user"),
    EventKind.MEMBER_JOINED: FieldMap(channel_path=("channel",), actor_field="user"),
    EventKind.MEMBER_LEFT: FieldMap(channel_path=("channel",), actor_field="user"),
    EventKind.MESSAGE: FieldMap(channel_path=("channel",), actor_field="user"),
    EventKind.FILE: FieldMap(channel_path=("channel_id",), actor_field="user_id"),
}


def slack_ts_to_datetime(value: Any, now: datetime | None = None) -> datetime:
    """Convert a Slack seconds timestamp (``"1700000000.123456"``) to UTC.

    Truncated to whole milliseconds. A missing or unparsable value
    falls back to ``now`` (the current instant by default).
    """
    fallback = now or datetime.now(UTC)
    if value is None or value == "":
        return fallback
    try:
        millis = int(Decimal(str(value)) * 1000)
        return _EPOCH + timedelta(milliseconds=millis)
    except (InvalidOperation, ValueError, OverflowError):
        logger.warning("Unparsable Slack timestamp %r, using current time", value)
        return fallback


def _lookup(event: dict[str, Any], path: tuple[str, ...]) -> Any:
    node: Any = event
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node


def _event_ts(event: dict[str, Any], now: datetime | None) -> datetime:
    return slack_ts_to_datetime(event.get("event_ts") or event.get("ts"), now)


def _ids(kind: EventKind, event: dict[str, Any]) -> tuple[str | None, str | None]:
    fields = FIELD_MAP[kind]
    channel = _lookup(event, fields.channel_path)
    actor = event.get(fields.actor_field)
    return (str(channel) if channel else None, str(actor) if actor else None)


def normalize_reaction(
    event_id: str, event: dict[str, Any], now: datetime | None = None,
) -> NormalizeResult:
    channel_id, user_id = _ids(EventKind.REACTION, event)
    if not channel_id:
        return NormalizeResult.skip("missing channel id")
    if not user_id:
        return NormalizeResult.skip("missing user id")
    reaction = event.get("reaction")
    if not reaction:
        return NormalizeResult.skip("missing reaction name")
    return NormalizeResult.ok(ReactionEvent(
        event_id=event_id,
        channel_id=channel_id,
        user_id=user_id,
        reaction=str(reaction),
        event_ts=_event_ts(event, now),
        raw_event=event,
    ))


def _normalize_membership(
    kind: EventKind, event_id: str, event: dict[str, Any], now: datetime | None,
) -> NormalizeResult:
    channel_id, user_id = _ids(kind, event)
    if not channel_id:
        return NormalizeResult.skip("missing channel id")
    if not user_id:
        return NormalizeResult.skip("missing user id")
    return NormalizeResult.ok(MembershipEvent(
        kind=kind,
        event_id=event_id,
        channel_id=channel_id,
        user_id=user_id,
        action=MembershipAction(kind.value),
        event_ts=_event_ts(event, now),
        raw_event=event,
    ))


def normalize_member_joined(
    event_id: str, event: dict[str, Any], now: datetime | None = None,
) -> NormalizeResult:
    return _normalize_membership(EventKind.MEMBER_JOINED, event_id, event, now)


def normalize_member_left(
    event_id: str, event: dict[str, Any], now: datetime | None = None,
) -> NormalizeResult:
    return _normalize_membership(EventKind.MEMBER_LEFT, event_id, event, now)


def normalize_message(
    event_id: str, event: dict[str, Any], now: datetime | None = None,
) -> NormalizeResult:
    """Only plain human messages count: edits, deletions and bot posts are skipped."""
    channel_id, user_id = _ids(EventKind.MESSAGE, event)
    if not channel_id:
        return NormalizeResult.skip("missing channel id")
    if event.get("subtype"):
        return NormalizeResult.skip(f"message subtype {event['subtype']}")
    if event.get("bot_id"):
        return NormalizeResult.skip("bot message")
    if not user_id:
        return NormalizeResult.skip("missing user id")
    return NormalizeResult.ok(MessageEvent(
        event_id=event_id,
        channel_id=channel_id,
        user_id=user_id,
        event_ts=_event_ts(event, now),
        raw_event=event,
    ))


def normalize_file(
    event_id: str, event: dict[str, Any], now: datetime | None = None,
) -> NormalizeResult:
    channel_id, user_id = _ids(EventKind.FILE, event)
    if not channel_id:
        return NormalizeResult.skip("missing channel id")
    if not user_id:
        return NormalizeResult.skip("missing user id")
    file_id = event.get("file_id")
    file_name = _lookup(event, ("file", "name")) or UNKNOWN_FILE_NAME
    return NormalizeResult.ok(FileEvent(
        event_id=event_id,
        channel_id=channel_id,
        user_id=user_id,
        file_id=str(file_id) if file_id else None,
        file_name=str(file_name),
        event_ts=_event_ts(event, now),
        raw_event=event,
    ))


Normalizer = Callable[[str, dict[str, Any], datetime | None], NormalizeResult]

NORMALIZERS: dict[EventKind, Normalizer] = {
    EventKind.REACTION: normalize_reaction,
    EventKind.MEMBER_JOINED: normalize_member_joined,
    EventKind.MEMBER_LEFT: normalize_member_left,
    EventKind.MESSAGE: normalize_message,
    EventKind.FILE: normalize_file,
}


def normalize_event(
    kind: EventKind,
    event_id: str,
    event: dict[str, Any],
    now: datetime | None = None,
) -> NormalizeResult:
    return NORMALIZERS[kind](event_id, event, now)
