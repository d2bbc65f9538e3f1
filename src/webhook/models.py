"""Data models for the webhook ingestion pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from src.models import EventRecord


@dataclass
class EventEnvelope:
    """Slack event_callback wrapper. Consumed, never persisted."""

    event_id: str
    event: dict[str, Any] = field(default_factory=dict)
    event_time: int | None = None

    @property
    def event_type(self) -> str:
        return str(self.event.get("type", ""))

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> EventEnvelope | None:
        """Build an envelope, or None when the body or the event_id is missing."""
        event = payload.get("event")
        event_id = payload.get("event_id")
        if not event or not event_id or not isinstance(event, dict):
            return None
        return cls(
            event_id=str(event_id),
            event=event,
            event_time=payload.get("event_time"),
        )


@dataclass
class NormalizeResult:
    """Either a canonical record or the reason the event was skipped."""

    record: EventRecord | None = None
    skip_reason: str | None = None

    @property
    def skipped(self) -> bool:
        return self.record is None

    @classmethod
    def ok(cls, record: EventRecord) -> NormalizeResult:
        return cls(record=record)

    @classmethod
    def skip(cls, reason: str) -> NormalizeResult:
        return cls(skip_reason=reason)


class DispatchOutcome(str, Enum):
    PERSISTED = "persisted"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    FAILED = "failed"
    IGNORED = "ignored"


@dataclass
class DispatchResult:
    """What happened to one inbound delivery."""

    outcome: DispatchOutcome
    event_id: str | None = None
    event_type: str | None = None
    detail: str | None = None
