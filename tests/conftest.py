"""Shared test fixtures for channel-pulse."""

from __future__ import annotations

import hashlib
import hmac
from collections.abc import Iterator
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import pytest

from src.config import Settings
from src.models import (
    DailySummary,
    EventKind,
    FileEvent,
    MembershipAction,
    MembershipEvent,
    MessageEvent,
    ReactionEvent,
)
from src.store.db import ActivityDB
from src.store.events import EventStore
from src.store.summaries import SummaryStore

SIGNING_SECRET = "test-signing-secret"

# 2023-11-14T22:13:20Z
BASE_TS = datetime(2023, 11, 14, 22, 13, 20, tzinfo=UTC)


@pytest.fixture
def activity_db_path(tmp_path: Path) -> str:
    """Create a temporary database path for store tests."""
    return str(tmp_path / "test_activity.db")


@pytest.fixture
def activity_db(activity_db_path: str) -> Iterator[ActivityDB]:
    db = ActivityDB(activity_db_path)
    yield db
    db.close()


@pytest.fixture
def event_store(activity_db: ActivityDB) -> EventStore:
    return EventStore(activity_db)


@pytest.fixture
def summary_store(activity_db: ActivityDB) -> SummaryStore:
    return SummaryStore(activity_db)


@pytest.fixture
def settings(activity_db_path: str) -> Settings:
    return make_settings(db_path=activity_db_path)


# --- Factory functions for test data ---


def make_settings(**kwargs: Any) -> Settings:
    """Factory for Settings with sensible defaults."""
    defaults: dict[str, Any] = {
        "slack_bot_token": "xoxb-test",
        "slack_signing_secret": "",
        "slack_channel_id": "C1",
        "timezone": "Asia/Kolkata",
        "scheduler_enabled": False,
    }
    defaults.update(kwargs)
    return Settings(**defaults)


def make_reaction_event(**kwargs: Any) -> ReactionEvent:
    """Factory for ReactionEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_id": "Ev1",
        "channel_id": "C1",
        "user_id": "U1",
        "reaction": "thumbsup",
        "event_ts": BASE_TS,
        "raw_event": {"type": "reaction_added"},
    }
    defaults.update(kwargs)
    return ReactionEvent(**defaults)


def make_membership_event(
    action: MembershipAction = MembershipAction.JOINED, **kwargs: Any,
) -> MembershipEvent:
    """Factory for MembershipEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "kind": EventKind(action.value),
        "action": action,
        "event_id": "EvM1",
        "channel_id": "C1",
        "user_id": "U1",
        "event_ts": BASE_TS,
    }
    defaults.update(kwargs)
    return MembershipEvent(**defaults)


def make_message_event(**kwargs: Any) -> MessageEvent:
    """Factory for MessageEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_id": "EvMsg1",
        "channel_id": "C1",
        "user_id": "U1",
        "event_ts": BASE_TS,
    }
    defaults.update(kwargs)
    return MessageEvent(**defaults)


def make_file_event(**kwargs: Any) -> FileEvent:
    """Factory for FileEvent with sensible defaults."""
    defaults: dict[str, Any] = {
        "event_id": "EvF1",
        "channel_id": "C1",
        "user_id": "U1",
        "file_id": "F1",
        "file_name": "report.pdf",
        "event_ts": BASE_TS,
    }
    defaults.update(kwargs)
    return FileEvent(**defaults)


def make_summary(**kwargs: Any) -> DailySummary:
    """Factory for DailySummary with sensible defaults."""
    defaults: dict[str, Any] = {
        "channel_id": "C1",
        "stat_date": "2024-01-15",
        "reaction_count": 3,
        "new_member_count": 1,
        "member_removed_count": 0,
        "message_count": 10,
        "file_upload_count": 2,
    }
    defaults.update(kwargs)
    return DailySummary(**defaults)


def make_event_payload(event: dict[str, Any], event_id: str = "Ev1") -> dict[str, Any]:
    """Wrap an event body in a Slack event_callback envelope."""
    return {
        "type": "event_callback",
        "team_id": "T1",
        "event_id": event_id,
        "event_time": 1700000000,
        "event": event,
    }


def sign_slack_request(
    body: bytes, timestamp: int, secret: str = SIGNING_SECRET,
) -> dict[str, str]:
    """Headers Slack would send for ``body`` at ``timestamp``."""
    base = f"v0:{timestamp}:".encode() + body
    digest = hmac.new(secret.encode(), base, hashlib.sha256).hexdigest()
    return {
        "x-slack-signature": f"v0={digest}",
        "x-slack-request-timestamp": str(timestamp),
    }
