"""Event storage for Slack activity.

This module provides the EventStore class for:
- Inserting events with insert-if-absent semantics keyed on event_id
- Counting events per channel within an inclusive time range
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum

from src.models import (
    EventRecord,
    FileEvent,
    MembershipAction,
    MembershipEvent,
    MessageEvent,
    ReactionEvent,
    to_utc_iso,
)
from src.store.db import ActivityDB


class SaveStatus(str, Enum):
    INSERTED = "inserted"
    DUPLICATE = "duplicate"


@dataclass
class ActivityCounts:
    """All five range counts for one channel and window."""

    reactions: int
    new_members: int
    members_removed: int
    messages: int
    file_uploads: int


def _require_event_id(record: EventRecord) -> None:
    if not record.event_id:
        raise ValueError("event_id must be non-empty")


def _status(rowcount: int) -> SaveStatus:
    return SaveStatus.INSERTED if rowcount > 0 else SaveStatus.DUPLICATE


class EventStore:
    """Owns the four event tables.

    A redelivered event (same event_id) is a silent no-op: the existing
    row is left untouched and DUPLICATE is returned.
    """

    def __init__(self, db: ActivityDB) -> None:
        self._db = db

    # --- Inserts ---

    def save_reaction_event(self, record: ReactionEvent) -> SaveStatus:
        _require_event_id(record)
        rowcount = self._db.execute(
            """INSERT INTO reaction_events
               (event_id, channel_id, user_id, reaction, event_ts, raw_event, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(event_id) DO NOTHING""",
            (
                record.event_id,
                record.channel_id,
                record.user_id,
                record.reaction,
                to_utc_iso(record.event_ts),
                json.dumps(record.raw_event),
                _created_at(),
            ),
        )
        return _status(rowcount)

    def save_member_event(self, record: MembershipEvent) -> SaveStatus:
        _require_event_id(record)
        rowcount = self._db.execute(
            """INSERT INTO member_events
               (event_id, channel_id, user_id, event_type, event_ts, raw_event, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(event_id) DO NOTHING""",
            (
                record.event_id,
                record.channel_id,
                record.user_id,
                record.action.value,
                to_utc_iso(record.event_ts),
                json.dumps(record.raw_event),
                _created_at(),
            ),
        )
        return _status(rowcount)

    def save_message_event(self, record: MessageEvent) -> SaveStatus:
        _require_event_id(record)
        rowcount = self._db.execute(
            """INSERT INTO message_events
               (event_id, channel_id, user_id, message_ts, raw_event, created_at)
               VALUES (?, ?, ?, ?, ?, ?)
               ON CONFLICT(event_id) DO NOTHING""",
            (
                record.event_id,
                record.channel_id,
                record.user_id,
                to_utc_iso(record.event_ts),
                json.dumps(record.raw_event),
                _created_at(),
            ),
        )
        return _status(rowcount)

    def save_file_event(self, record: FileEvent) -> SaveStatus:
        _require_event_id(record)
        rowcount = self._db.execute(
            """INSERT INTO file_events
               (event_id, channel_id, user_id, file_id, file_name, event_ts, raw_event, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(event_id) DO NOTHING""",
            (
                record.event_id,
                record.channel_id,
                record.user_id,
                record.file_id,
                record.file_name,
                to_utc_iso(record.event_ts),
                json.dumps(record.raw_event),
                _created_at(),
            ),
        )
        return _status(rowcount)

    def save_event(self, record: EventRecord) -> SaveStatus:
        """Route a normalized record to the insert for its kind."""
        if isinstance(record, ReactionEvent):
            return self.save_reaction_event(record)
        if isinstance(record, MembershipEvent):
            return self.save_member_event(record)
        if isinstance(record, MessageEvent):
            return self.save_message_event(record)
        if isinstance(record, FileEvent):
            return self.save_file_event(record)
        raise TypeError(f"Unsupported event record: {type(record).__name__}")

    # --- Range counts (inclusive on both ends) ---

    def count_reactions_between(self, channel_id: str, start: datetime, end: datetime) -> int:
        return self._count(
            """SELECT COUNT(*) FROM reaction_events
               WHERE channel_id = ? AND event_ts >= ? AND event_ts <= ?""",
            (channel_id, to_utc_iso(start), to_utc_iso(end)),
        )

    def count_new_members_between(self, channel_id: str, start: datetime, end: datetime) -> int:
        return self._count_members(channel_id, MembershipAction.JOINED, start, end)

    def count_members_removed_between(
        self, channel_id: str, start: datetime, end: datetime,
    ) -> int:
        return self._count_members(channel_id, MembershipAction.LEFT, start, end)

    def count_messages_between(self, channel_id: str, start: datetime, end: datetime) -> int:
        return self._count(
            """SELECT COUNT(*) FROM message_events
               WHERE channel_id = ? AND message_ts >= ? AND message_ts <= ?""",
            (channel_id, to_utc_iso(start), to_utc_iso(end)),
        )

    def count_file_uploads_between(self, channel_id: str, start: datetime, end: datetime) -> int:
        return self._count(
            """SELECT COUNT(*) FROM file_events
               WHERE channel_id = ? AND event_ts >= ? AND event_ts <= ?""",
            (channel_id, to_utc_iso(start), to_utc_iso(end)),
        )

    def count_activity_between(
        self, channel_id: str, start: datetime, end: datetime,
    ) -> ActivityCounts:
        return ActivityCounts(
            reactions=self.count_reactions_between(channel_id, start, end),
            new_members=self.count_new_members_between(channel_id, start, end),
            members_removed=self.count_members_removed_between(channel_id, start, end),
            messages=self.count_messages_between(channel_id, start, end),
            file_uploads=self.count_file_uploads_between(channel_id, start, end),
        )

    def _count_members(
        self,
        channel_id: str,
        action: MembershipAction,
        start: datetime,
        end: datetime,
    ) -> int:
        return self._count(
            """SELECT COUNT(*) FROM member_events
               WHERE channel_id = ? AND event_type = ?
                 AND event_ts >= ? AND event_ts <= ?""",
            (channel_id, action.value, to_utc_iso(start), to_utc_iso(end)),
        )

    def _count(self, sql: str, params: tuple[str, ...]) -> int:
        return int(self._db.fetch_scalar(sql, params) or 0)


def _created_at() -> str:
    return datetime.now(UTC).isoformat()
