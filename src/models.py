"""Shared Pydantic data models for channel-pulse."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class EventKind(str, Enum):
    REACTION = "reaction_added"
    MEMBER_JOINED = "member_joined_channel"
    MEMBER_LEFT = "member_left_channel"
    MESSAGE = "message"
    FILE = "file_shared"


class MembershipAction(str, Enum):
    JOINED = "member_joined_channel"
    LEFT = "member_left_channel"


# --- Timestamps ---


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


def to_utc_iso(instant: datetime) -> str:
    """Format an aware datetime as fixed-width UTC text with milliseconds.

    ``2023-11-14T22:13:20.000Z``. Every stored event timestamp uses this
    shape, so string comparison in SQL orders the same as the instants.
    """
    utc = instant.astimezone(UTC)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def from_utc_iso(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


# --- Event Models ---


class _EventRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str = Field(min_length=1)
    channel_id: str
    user_id: str
    event_ts: datetime
    raw_event: dict[str, Any] = Field(default_factory=dict)


class ReactionEvent(_EventRecord):
    kind: Literal[EventKind.REACTION] = EventKind.REACTION
    reaction: str


class MembershipEvent(_EventRecord):
    kind: Literal[EventKind.MEMBER_JOINED, EventKind.MEMBER_LEFT]
    action: MembershipAction


class MessageEvent(_EventRecord):
    kind: Literal[EventKind.MESSAGE] = EventKind.MESSAGE


class FileEvent(_EventRecord):
    kind: Literal[EventKind.FILE] = EventKind.FILE
    file_id: str | None = None
    file_name: str = "Unknown"


EventRecord = ReactionEvent | MembershipEvent | MessageEvent | FileEvent


# --- Summary Models ---


class DailySummary(BaseModel):
    model_config = ConfigDict(frozen=True)

    channel_id: str
    stat_date: str  # YYYY-MM-DD in the configured timezone
    reaction_count: int = Field(default=0, ge=0)
    new_member_count: int = Field(default=0, ge=0)
    member_removed_count: int = Field(default=0, ge=0)
    message_count: int = Field(default=0, ge=0)
    file_upload_count: int = Field(default=0, ge=0)

    @property
    def total_activity(self) -> int:
        return self.message_count + self.reaction_count + self.file_upload_count


class StoredSummary(DailySummary):
    id: int
    message_ts: str | None = None
    created_at: str = Field(default_factory=_now_iso)
