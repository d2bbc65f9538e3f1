"""Daily summary persistence with upsert on (channel_id, stat_date)."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any

from src.models import DailySummary, StoredSummary
from src.store.db import ActivityDB

logger = logging.getLogger(__name__)


class SummaryStore:
    """Owns the daily_summaries table.

    Re-running a summary for the same channel and date replaces the counts
    in place. A previously recorded message_ts survives a run that has none.
    """

    def __init__(self, db: ActivityDB) -> None:
        self._db = db

    def persist_summary(
        self, summary: DailySummary, message_ts: str | None = None,
    ) -> StoredSummary:
        row = self._db.execute_returning(
            """INSERT INTO daily_summaries
               (channel_id, stat_date, reaction_count, new_member_count,
                member_removed_count, message_count, file_upload_count,
                message_ts, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(channel_id, stat_date) DO UPDATE SET
                 reaction_count=excluded.reaction_count,
                 new_member_count=excluded.new_member_count,
                 member_removed_count=excluded.member_removed_count,
                 message_count=excluded.message_count,
                 file_upload_count=excluded.file_upload_count,
                 message_ts=COALESCE(excluded.message_ts, daily_summaries.message_ts)
               RETURNING *""",
            (
                summary.channel_id,
                summary.stat_date,
                summary.reaction_count,
                summary.new_member_count,
                summary.member_removed_count,
                summary.message_count,
                summary.file_upload_count,
                message_ts or None,
                datetime.now(UTC).isoformat(),
            ),
        )
        if row is None:
            # RETURNING always yields the inserted or updated row
            raise RuntimeError(
                f"Upsert returned no row for {summary.channel_id} {summary.stat_date}"
            )
        stored = _row_to_summary(row)
        logger.info(
            "Stored summary for %s on %s (message_ts=%s)",
            stored.channel_id, stored.stat_date, stored.message_ts,
        )
        return stored

    def get_summary(self, channel_id: str, stat_date: str) -> StoredSummary | None:
        row = self._db.fetch_one(
            "SELECT * FROM daily_summaries WHERE channel_id = ? AND stat_date = ?",
            (channel_id, stat_date),
        )
        return _row_to_summary(row) if row else None

    def list_summaries(self, channel_id: str, limit: int = 30) -> list[StoredSummary]:
        rows = self._db.fetch_all(
            """SELECT * FROM daily_summaries WHERE channel_id = ?
               ORDER BY stat_date DESC LIMIT ?""",
            (channel_id, limit),
        )
        return [_row_to_summary(r) for r in rows]


def _row_to_summary(row: dict[str, Any]) -> StoredSummary:
    return StoredSummary(**row)
