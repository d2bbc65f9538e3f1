"""Service configuration, built once at startup and passed to every component."""

from __future__ import annotations

import os
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ConfigurationError(Exception):
    """Raised when an operation needs a setting that is not configured."""


def parse_flag(value: object, default: bool = False) -> bool:
    """Read a boolean from JSON or env input; unrecognized strings are False."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return False


def _env_bool(name: str, default: bool) -> bool:
    return parse_flag(os.environ.get(name), default)


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    slack_bot_token: str = ""
    slack_signing_secret: str = ""
    slack_channel_id: str = ""
    cron_schedule: str = "0 15 * * *"
    timezone: str = "Asia/Kolkata"
    db_path: str = "data/activity.db"
    signature_window_seconds: int = Field(default=300, ge=0)
    scheduler_enabled: bool = True
    slack_api_base: str = "https://slack.com/api"

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone: {value!r}") from exc
        return value

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone)

    def require_channel(self, channel_id: str | None = None) -> str:
        """Return the channel to aggregate, or raise if none is configured."""
        channel = channel_id or self.slack_channel_id
        if not channel:
            raise ConfigurationError("SLACK_CHANNEL_ID is not configured.")
        return channel

    @classmethod
    def from_env(cls) -> Settings:
        """Create Settings from environment variables."""
        return cls(
            slack_bot_token=os.environ.get("SLACK_BOT_TOKEN", ""),
            slack_signing_secret=os.environ.get("SLACK_SIGNING_SECRET", ""),
            slack_channel_id=os.environ.get("SLACK_CHANNEL_ID", ""),
            cron_schedule=os.environ.get("CRON_SCHEDULE", "0 15 * * *"),
            timezone=os.environ.get("CRON_TIMEZONE", "Asia/Kolkata"),
            db_path=os.environ.get("ACTIVITY_DB_PATH", "data/activity.db"),
            # pydantic coerces the string; a non-number is a ValidationError
            signature_window_seconds=os.environ.get("SLACK_SIGNATURE_WINDOW_SECONDS", "300"),
            scheduler_enabled=_env_bool("SCHEDULER_ENABLED", True),
            slack_api_base=os.environ.get("SLACK_API_BASE", "https://slack.com/api"),
        )
