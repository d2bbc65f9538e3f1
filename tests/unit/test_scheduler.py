"""Tests for the daily summary job and its scheduler."""

from __future__ import annotations

from datetime import UTC, date, datetime
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

import pytest

from src.config import Settings
from src.stats.aggregator import Aggregator
from src.stats.scheduler import (
    DailySummaryJob,
    SummaryScheduler,
    default_target_date,
    parse_date_input,
    resolve_target_date,
)
from src.store.events import EventStore
from src.store.summaries import SummaryStore
from tests.conftest import make_message_event, make_settings

KOLKATA = ZoneInfo("Asia/Kolkata")
# 01:30 on 2024-01-16 in Kolkata
NOW = datetime(2024, 1, 15, 20, 0, tzinfo=UTC)


class TestTargetDate:
    def test_parse_bare_date_is_local_midnight(self):
        parsed = parse_date_input("2024-01-15", KOLKATA)
        assert parsed == datetime(2024, 1, 15, tzinfo=KOLKATA)
        assert parsed.date() == date(2024, 1, 15)

    def test_parse_naive_datetime_in_tz(self):
        parsed = parse_date_input("2024-01-15T23:00:00", KOLKATA)
        assert parsed.tzinfo is KOLKATA

    def test_parse_aware_datetime_kept(self):
        parsed = parse_date_input("2024-01-15T20:00:00+00:00", KOLKATA)
        assert parsed == NOW

    @pytest.mark.parametrize("value", [None, "", "yesterday", "2024-13-45"])
    def test_parse_invalid_returns_none(self, value):
        assert parse_date_input(value, KOLKATA) is None

    def test_default_is_yesterday_in_tz(self):
        assert default_target_date(KOLKATA, now=NOW).date() == date(2024, 1, 15)

    def test_default_today_flag(self):
        assert default_target_date(KOLKATA, True, now=NOW).date() == date(2024, 1, 16)

    def test_invalid_input_falls_back(self):
        assert resolve_target_date("garbage", KOLKATA, now=NOW).date() == date(2024, 1, 15)
        assert resolve_target_date(
            "garbage", KOLKATA, default_to_today=True, now=NOW,
        ).date() == date(2024, 1, 16)

    def test_valid_input_wins_over_flag(self):
        assert resolve_target_date(
            "2023-12-31", KOLKATA, default_to_today=True, now=NOW,
        ).date() == date(2023, 12, 31)


def _job(
    event_store: EventStore,
    summary_store: SummaryStore,
    settings: Settings,
    poster: object | None = None,
) -> DailySummaryJob:
    return DailySummaryJob(
        aggregator=Aggregator(event_store, settings),
        summaries=summary_store,
        settings=settings,
        poster=poster,  # type: ignore[arg-type]
    )


class TestDailySummaryJob:
    @pytest.mark.asyncio
    async def test_collect_post_persist(
        self, event_store: EventStore, summary_store: SummaryStore, settings: Settings,
    ):
        event_store.save_event(make_message_event(
            event_ts=datetime(2024, 1, 15, 6, 0, tzinfo=UTC),
        ))
        poster = MagicMock()
        poster.post_summary = AsyncMock(return_value="1705300000.000100")

        result = await _job(event_store, summary_store, settings, poster).run(now=NOW)

        assert result.success is True
        assert result.stat_date == "2024-01-15"
        assert result.summary.message_count == 1
        assert result.summary.message_ts == "1705300000.000100"
        poster.post_summary.assert_awaited_once()
        stored = summary_store.get_summary("C1", "2024-01-15")
        assert stored.message_ts == "1705300000.000100"

    @pytest.mark.asyncio
    async def test_explicit_date(
        self, event_store: EventStore, summary_store: SummaryStore, settings: Settings,
    ):
        result = await _job(event_store, summary_store, settings).run(
            date_input="2024-01-10", now=NOW,
        )
        assert result.stat_date == "2024-01-10"
        assert result.summary.message_ts is None

    @pytest.mark.asyncio
    async def test_post_failure_still_persists(
        self, event_store: EventStore, summary_store: SummaryStore, settings: Settings,
    ):
        poster = MagicMock()
        poster.post_summary = AsyncMock(side_effect=RuntimeError("slack down"))

        result = await _job(event_store, summary_store, settings, poster).run(now=NOW)

        assert result.success is True
        assert result.summary.message_ts is None
        assert summary_store.get_summary("C1", "2024-01-15") is not None

    @pytest.mark.asyncio
    async def test_post_returning_none_persists_without_ts(
        self, event_store: EventStore, summary_store: SummaryStore, settings: Settings,
    ):
        poster = MagicMock()
        poster.post_summary = AsyncMock(return_value=None)
        result = await _job(event_store, summary_store, settings, poster).run(now=NOW)
        assert result.success is True
        assert result.summary.message_ts is None

    @pytest.mark.asyncio
    async def test_missing_channel_reports_failure(
        self, event_store: EventStore, summary_store: SummaryStore,
    ):
        settings = make_settings(slack_channel_id="")
        result = await _job(event_store, summary_store, settings).run(now=NOW)
        assert result.success is False
        assert "SLACK_CHANNEL_ID" in result.error
        assert summary_store.list_summaries("C1") == []

    @pytest.mark.asyncio
    async def test_store_failure_reports_failure(
        self, event_store: EventStore, settings: Settings,
    ):
        summaries = MagicMock()
        summaries.persist_summary.side_effect = RuntimeError("disk full")
        result = await _job(event_store, summaries, settings).run(now=NOW)
        assert result.success is False
        assert result.error == "disk full"


class TestSummaryScheduler:
    def test_not_running_before_start(self):
        scheduler = SummaryScheduler(MagicMock(), make_settings())
        assert scheduler.running is False
        assert scheduler.next_run_time() is None

    def test_start_without_channel(self):
        scheduler = SummaryScheduler(MagicMock(), make_settings(slack_channel_id=""))
        assert scheduler.start() is False
        assert scheduler.running is False

    @pytest.mark.parametrize("cron", ["not a cron", "61 * * * *"])
    def test_start_with_invalid_cron(self, cron: str):
        scheduler = SummaryScheduler(MagicMock(), make_settings(cron_schedule=cron))
        assert scheduler.start() is False
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_start_schedules_job(self):
        scheduler = SummaryScheduler(MagicMock(), make_settings(cron_schedule="0 15 * * *"))
        try:
            assert scheduler.start() is True
            assert scheduler.running is True
            next_run = scheduler.next_run_time()
            assert next_run is not None
            local = next_run.astimezone(KOLKATA)
            assert (local.hour, local.minute) == (15, 0)
        finally:
            scheduler.shutdown()
        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_scheduled_run_invokes_job(self):
        job = MagicMock()
        job.run = AsyncMock(return_value="result")
        scheduler = SummaryScheduler(job, make_settings())
        assert await scheduler._run_scheduled() == "result"
        job.run.assert_awaited_once_with()
