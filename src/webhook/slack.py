"""Slack boundary: request verification and summary delivery.

Handles Slack Events API requests (v0 HMAC-SHA256 signature with a
freshness window, url_verification handshake) and posts daily summaries
with chat.postMessage. The outbound post is a single best-effort
attempt that yields the message ``ts`` or None.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

if TYPE_CHECKING:
    from src.config import Settings
    from src.models import DailySummary

logger = logging.getLogger(__name__)

_SIGNATURE_VERSION = "v0"
_POST_TIMEOUT_SECONDS = 10.0


def summary_text(summary: DailySummary) -> str:
    """Plain-text fallback shown in notifications."""
    return (
        f"Daily summary for {summary.stat_date}: {summary.message_count} messages, "
        f"{summary.reaction_count} reactions, {summary.file_upload_count} files, "
        f"{summary.new_member_count} new members, "
        f"{summary.member_removed_count} members removed."
    )


def build_summary_blocks(summary: DailySummary) -> list[dict[str, Any]]:
    """Block Kit layout: header, metric/count table, footer."""
    rows = [
        ("💬 Messages Sent", summary.message_count),
        ("👍 Reactions Added", summary.reaction_count),
        ("📎 File Uploads", summary.file_upload_count),
        ("👥 New Members", summary.new_member_count),
        ("👋 Members Removed", summary.member_removed_count),
    ]
    rule = "━━━━━━━━━━━━━━━━"
    labels = "\n".join(label for label, _ in rows)
    counts = "\n".join(f"`{count:,}`" for _, count in rows)
    return [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": f"📊 Daily Channel Summary - {summary.stat_date}",
            },
        },
        {"type": "divider"},
        {
            "type": "section",
            "text": {"type": "mrkdwn", "text": "*📋 Activity Statistics Table*"},
        },
        {
            "type": "section",
            "fields": [
                {
                    "type": "mrkdwn",
                    "text": f"*Metric*\n{labels}\n{rule}\n📊 *Total Activity*",
                },
                {
                    "type": "mrkdwn",
                    "text": f"*Count*\n{counts}\n{rule}\n*`{summary.total_activity:,}`*",
                },
            ],
        },
        {
            "type": "context",
            "elements": [
                {
                    "type": "mrkdwn",
                    "text": f"⏰ Generated automatically • Date: {summary.stat_date}",
                },
            ],
        },
    ]


class SlackRelay:
    """Handles Slack Events API requests and summary posts."""

    def __init__(
        self,
        bot_token: str,
        signing_secret: str,
        channel_id: str = "",
        window_seconds: int = 300,
        api_base: str = "https://slack.com/api",
    ) -> None:
        self._bot_token = bot_token
        self._signing_secret = signing_secret
        self._channel_id = channel_id
        self._window_seconds = window_seconds
        self._api_base = api_base.rstrip("/")
        if not bot_token:
            logger.warning("SLACK_BOT_TOKEN is not set. Slack messages cannot be sent.")

    @classmethod
    def from_settings(cls, settings: Settings) -> SlackRelay:
        return cls(
            bot_token=settings.slack_bot_token,
            signing_secret=settings.slack_signing_secret,
            channel_id=settings.slack_channel_id,
            window_seconds=settings.signature_window_seconds,
            api_base=settings.slack_api_base,
        )

    @property
    def verification_enabled(self) -> bool:
        return bool(self._signing_secret)

    def verify_signature(
        self, headers: dict[str, str], body: bytes, now: float | None = None,
    ) -> bool:
        """Verify a Slack request signature.

        Rejects missing headers, timestamps outside the freshness window
        (replay protection) and signature mismatches. Uses constant-time
        comparison. Without a signing secret, verification is disabled.
        """
        if not self._signing_secret:
            return True

        signature = headers.get("x-slack-signature", "")
        timestamp = headers.get("x-slack-request-timestamp", "")
        if not signature or not timestamp:
            return False

        try:
            ts = int(timestamp)
        except ValueError:
            return False
        current = time.time() if now is None else now
        if abs(current - ts) > self._window_seconds:
            logger.warning("Stale Slack request (timestamp %s)", timestamp)
            return False

        base = f"{_SIGNATURE_VERSION}:{timestamp}:".encode() + body
        expected = hmac.new(
            self._signing_secret.encode(), base, hashlib.sha256,
        ).hexdigest()
        return hmac.compare_digest(f"{_SIGNATURE_VERSION}={expected}", signature)

    @staticmethod
    def handle_url_verification(payload: dict[str, Any]) -> str | None:
        """Return the challenge for a url_verification request, else None."""
        if payload.get("type") != "url_verification":
            return None
        return str(payload.get("challenge", ""))

    async def post_summary(self, summary: DailySummary) -> str | None:
        """Post the summary to its channel; return the message ts or None."""
        if not self._bot_token or not self._channel_id:
            logger.warning("Slack credentials missing. Skipping post.")
            return None

        url = f"{self._api_base}/chat.postMessage"
        payload = {
            "channel": summary.channel_id,
            "text": summary_text(summary),
            "blocks": build_summary_blocks(summary),
        }
        headers = {"Authorization": f"Bearer {self._bot_token}"}

        try:
            async with httpx.AsyncClient(verify=True) as client:
                resp = await client.post(
                    url, json=payload, headers=headers, timeout=_POST_TIMEOUT_SECONDS,
                )
            data = resp.json()
        except (httpx.HTTPError, json.JSONDecodeError) as exc:
            logger.error("Slack chat.postMessage failed: %s", exc)
            return None
        if not isinstance(data, dict):
            data = {}

        if resp.status_code >= 400 or not data.get("ok"):
            logger.error(
                "Slack chat.postMessage rejected (status %s): %s",
                resp.status_code, data.get("error", "unknown_error"),
            )
            return None
        ts = data.get("ts")
        return str(ts) if ts else None
