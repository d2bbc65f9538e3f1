"""Daily activity aggregation.

Day boundaries are computed in the configured timezone, never the
process's local one: local midnight and 23:59:59.999 on the calendar
date are built with zoneinfo and converted to UTC. This holds for
offsets that are not whole hours (Asia/Kolkata is UTC+05:30).
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, date, datetime, time
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from src.models import DailySummary

if TYPE_CHECKING:
    from src.config import Settings
    from src.store.events import EventStore

logger = logging.getLogger(__name__)

_END_OF_DAY = time(23, 59, 59, 999000)


def resolve_stat_date(target: date | datetime, tz: ZoneInfo) -> date:
    """Calendar date of ``target`` in ``tz``.

    Aware datetimes are converted to ``tz``; naive datetimes are read as
    wall-clock time in ``tz``; plain dates are used as given.
    """
    if isinstance(target, datetime):
        if target.tzinfo is None:
            return target.date()
        return target.astimezone(tz).date()
    return target


def day_range(stat_date: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Return (start, end) in UTC for ``stat_date`` in ``tz``, both inclusive."""
    start = datetime.combine(stat_date, time.min, tzinfo=tz).astimezone(UTC)
    end = datetime.combine(stat_date, _END_OF_DAY, tzinfo=tz).astimezone(UTC)
    return start, end


class Aggregator:
    """Computes a DailySummary from the event tables. Does not persist."""

    def __init__(self, store: EventStore, settings: Settings) -> None:
        self._store = store
        self._settings = settings

    async def collect_stats_for_date(
        self, target: date | datetime, channel_id: str | None = None,
    ) -> DailySummary:
        """Count the channel's activity on the target's calendar date.

        Raises:
            ConfigurationError: No channel given and none configured.
        """
        channel = self._settings.require_channel(channel_id)
        tz = self._settings.tz
        stat_date = resolve_stat_date(target, tz)
        start, end = day_range(stat_date, tz)

        # Independent read-only queries; sqlite work happens in worker threads
        (
            reaction_count,
            new_member_count,
            member_removed_count,
            message_count,
            file_upload_count,
        ) = await asyncio.gather(
            asyncio.to_thread(self._store.count_reactions_between, channel, start, end),
            asyncio.to_thread(self._store.count_new_members_between, channel, start, end),
            asyncio.to_thread(self._store.count_members_removed_between, channel, start, end),
            asyncio.to_thread(self._store.count_messages_between, channel, start, end),
            asyncio.to_thread(self._store.count_file_uploads_between, channel, start, end),
        )

        logger.debug(
            "Collected stats for %s on %s (%s .. %s)",
            channel, stat_date.isoformat(), start.isoformat(), end.isoformat(),
        )
        return DailySummary(
            channel_id=channel,
            stat_date=stat_date.isoformat(),
            reaction_count=reaction_count,
            new_member_count=new_member_count,
            member_removed_count=member_removed_count,
            message_count=message_count,
            file_upload_count=file_upload_count,
        )
