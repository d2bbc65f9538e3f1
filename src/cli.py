"""Click CLI for the activity store and daily summaries."""

from __future__ import annotations

import asyncio
import json
from dataclasses import asdict
from datetime import UTC, datetime

import click
from pydantic import ValidationError

from src.config import ConfigurationError, Settings
from src.stats.aggregator import Aggregator, day_range
from src.stats.scheduler import DailySummaryJob, resolve_target_date
from src.store.db import ActivityDB
from src.store.events import EventStore
from src.store.summaries import SummaryStore
from src.webhook.slack import SlackRelay


@click.group()
@click.option("--db", default=None, help="Activity database path (default: ACTIVITY_DB_PATH).")
@click.option("--channel", default=None, help="Slack channel ID (default: SLACK_CHANNEL_ID).")
@click.option("--timezone", "tz_name", default=None, help="IANA timezone (default: CRON_TIMEZONE).")
@click.pass_context
def cli(ctx: click.Context, db: str | None, channel: str | None, tz_name: str | None) -> None:
    """Slack channel activity stats CLI."""
    ctx.ensure_object(dict)
    overrides = {
        key: value
        for key, value in (("db_path", db), ("slack_channel_id", channel), ("timezone", tz_name))
        if value
    }
    try:
        settings = Settings(**{**Settings.from_env().model_dump(), **overrides})
    except ValidationError as exc:
        raise click.UsageError(str(exc)) from exc
    activity_db = ActivityDB(settings.db_path)
    ctx.call_on_close(activity_db.close)
    ctx.obj["settings"] = settings
    ctx.obj["events"] = EventStore(activity_db)
    ctx.obj["summaries"] = SummaryStore(activity_db)
    ctx.obj["db_path"] = activity_db.path


@cli.command("init-db")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create the activity tables if they do not exist."""
    click.echo(f"Database ready: {ctx.obj['db_path']}")


@cli.command("run-summary")
@click.option("--date", "date_input", default=None, help="Calendar date (YYYY-MM-DD).")
@click.option("--today", is_flag=True, help="Default to today instead of yesterday.")
@click.option("--no-post", is_flag=True, help="Store the summary without posting to Slack.")
@click.pass_context
def run_summary(ctx: click.Context, date_input: str | None, today: bool, no_post: bool) -> None:
    """Collect, post and store a daily summary."""
    settings: Settings = ctx.obj["settings"]
    events: EventStore = ctx.obj["events"]
    job = DailySummaryJob(
        aggregator=Aggregator(events, settings),
        summaries=ctx.obj["summaries"],
        settings=settings,
        poster=None if no_post else SlackRelay.from_settings(settings),
    )
    result = asyncio.run(job.run(date_input=date_input, default_to_today=today))
    output = asdict(result)
    output["summary"] = result.summary.model_dump() if result.summary else None
    click.echo(json.dumps(output, indent=2))
    if not result.success:
        ctx.exit(1)


@cli.command()
@click.option("--date", "date_input", default=None, help="Calendar date (YYYY-MM-DD).")
@click.option("--today", is_flag=True, help="Default to today instead of yesterday.")
@click.pass_context
def stats(ctx: click.Context, date_input: str | None, today: bool) -> None:
    """Print a day's counts without posting or storing them."""
    settings: Settings = ctx.obj["settings"]
    aggregator = Aggregator(ctx.obj["events"], settings)
    target = resolve_target_date(date_input, settings.tz, default_to_today=today)
    try:
        summary = asyncio.run(aggregator.collect_stats_for_date(target))
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(summary.model_dump(), indent=2))


@cli.command()
@click.pass_context
def activity(ctx: click.Context) -> None:
    """Show today's activity so far (local midnight until now)."""
    settings: Settings = ctx.obj["settings"]
    events: EventStore = ctx.obj["events"]
    try:
        channel = settings.require_channel()
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    now = datetime.now(UTC)
    start, _ = day_range(now.astimezone(settings.tz).date(), settings.tz)
    counts = events.count_activity_between(channel, start, now)
    click.echo(json.dumps({
        "channel_id": channel,
        "timezone": settings.timezone,
        "start": start.isoformat(),
        "end": now.isoformat(),
        "counts": asdict(counts),
    }, indent=2))


@cli.command("summaries")
@click.option("--limit", default=7, show_default=True, help="Number of days to list.")
@click.pass_context
def list_summaries(ctx: click.Context, limit: int) -> None:
    """List stored daily summaries, newest first."""
    settings: Settings = ctx.obj["settings"]
    summaries: SummaryStore = ctx.obj["summaries"]
    try:
        channel = settings.require_channel()
    except ConfigurationError as exc:
        raise click.ClickException(str(exc)) from exc
    rows = summaries.list_summaries(channel, limit=limit)
    click.echo(json.dumps([s.model_dump() for s in rows], indent=2))
