"""Daily summary job and its cron scheduler.

The job body is collect -> post -> persist. The outbound post is best
effort: if it fails, the summary is still stored without a message
reference. Any other failure is logged with its stack trace and reported
in the JobResult; the job never raises, so a failed run cannot take down
the process or the next scheduled run.

The cron timer only fires while this process is running. Deployments
without an always-on host can disable it and call the manual summary
endpoint from an external scheduler instead.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import UTC, date, datetime, time, timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

if TYPE_CHECKING:
    from src.config import Settings
    from src.models import DailySummary, StoredSummary
    from src.stats.aggregator import Aggregator
    from src.store.summaries import SummaryStore
    from src.webhook.slack import SlackRelay

logger = logging.getLogger(__name__)


def parse_date_input(value: str | None, tz: ZoneInfo) -> datetime | None:
    """Parse an ISO date or datetime; None when absent or invalid.

    A bare date (``2024-01-15``) means local midnight in ``tz``; naive
    datetimes are read as wall-clock time in ``tz``.
    """
    if not value:
        return None
    try:
        return datetime.combine(date.fromisoformat(value), time.min, tzinfo=tz)
    except ValueError:
        pass
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        logger.warning("Ignoring invalid date input %r", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)


def default_target_date(
    tz: ZoneInfo, default_to_today: bool = False, now: datetime | None = None,
) -> datetime:
    """Local midnight of yesterday (or today) in ``tz``."""
    local_now = (now or datetime.now(UTC)).astimezone(tz)
    day = local_now.date()
    if not default_to_today:
        day -= timedelta(days=1)
    return datetime.combine(day, time.min, tzinfo=tz)


def resolve_target_date(
    date_input: str | None,
    tz: ZoneInfo,
    default_to_today: bool = False,
    now: datetime | None = None,
) -> datetime:
    return parse_date_input(date_input, tz) or default_target_date(tz, default_to_today, now)


@dataclass
class JobResult:
    """Outcome of one daily summary run."""

    success: bool
    stat_date: str | None = None
    summary: StoredSummary | None = None
    error: str | None = None


class DailySummaryJob:
    """Collects, posts and stores one day's summary."""

    def __init__(
        self,
        aggregator: Aggregator,
        summaries: SummaryStore,
        settings: Settings,
        poster: SlackRelay | None = None,
    ) -> None:
        self._aggregator = aggregator
        self._summaries = summaries
        self._settings = settings
        self._poster = poster

    async def run(
        self,
        date_input: str | None = None,
        default_to_today: bool = False,
        now: datetime | None = None,
    ) -> JobResult:
        target = resolve_target_date(date_input, self._settings.tz, default_to_today, now)
        try:
            summary = await self._aggregator.collect_stats_for_date(target)
            message_ts = await self._post(summary)
            stored = await asyncio.to_thread(
                self._summaries.persist_summary, summary, message_ts,
            )
        except Exception as exc:
            logger.exception("Failed to post daily summary: %s", exc)
            return JobResult(success=False, error=str(exc))

        logger.info(
            "Posted summary for %s: %d reactions, %d new members.",
            stored.stat_date, stored.reaction_count, stored.new_member_count,
        )
        return JobResult(success=True, stat_date=stored.stat_date, summary=stored)

    async def _post(self, summary: DailySummary) -> str | None:
        if self._poster is None:
            return None
        try:
            return await self._poster.post_summary(summary)
        except Exception:
            logger.exception(
                "Summary post for %s failed; storing it without a message reference",
                summary.stat_date,
            )
            return None


class SummaryScheduler:
    """Runs the DailySummaryJob on the configured cron schedule and timezone."""

    JOB_ID = "daily_summary"

    def __init__(self, job: DailySummaryJob, settings: Settings) -> None:
        self._job = job
        self._settings = settings
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    def start(self) -> bool:
        """Start the cron timer. Must be called with an event loop running.

        Returns False when the scheduler cannot run (no channel configured
        or an invalid cron expression).
        """
        if self._scheduler is not None:
            logger.warning("SummaryScheduler already running")
            return True
        if not self._settings.slack_channel_id:
            logger.warning("SLACK_CHANNEL_ID not set. Scheduler will not run.")
            return False

        try:
            trigger = CronTrigger.from_crontab(
                self._settings.cron_schedule, timezone=self._settings.timezone,
            )
        except ValueError as exc:
            logger.error(
                "Invalid cron schedule %r (expected 'minute hour day month weekday'): %s",
                self._settings.cron_schedule, exc,
            )
            return False

        scheduler = AsyncIOScheduler(timezone=self._settings.timezone)
        scheduler.add_job(
            self._run_scheduled,
            trigger,
            id=self.JOB_ID,
            name="Daily Slack Summary",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info(
            "Scheduler initialized. Summaries will post at %r (%s), next run %s",
            self._settings.cron_schedule, self._settings.timezone, self.next_run_time(),
        )
        return True

    def next_run_time(self) -> datetime | None:
        if self._scheduler is None:
            return None
        job = self._scheduler.get_job(self.JOB_ID)
        return job.next_run_time if job else None

    def shutdown(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("SummaryScheduler stopped")

    async def _run_scheduled(self) -> JobResult:
        logger.info(
            "Running scheduled Slack summary job (timezone %s)", self._settings.timezone,
        )
        return await self._job.run()
