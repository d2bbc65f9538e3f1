"""FastAPI application for Slack event intake and daily summaries."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import BackgroundTasks, FastAPI, Request, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from src.config import Settings, parse_flag
from src.stats.aggregator import Aggregator
from src.stats.scheduler import DailySummaryJob, SummaryScheduler
from src.store.db import ActivityDB
from src.store.events import EventStore
from src.store.summaries import SummaryStore
from src.webhook.dispatcher import EventDispatcher
from src.webhook.slack import SlackRelay

logger = logging.getLogger(__name__)

_SLASH_COMMAND = "/dailyengage"


def create_app_from_env() -> FastAPI:
    """Factory for uvicorn --factory: reads config from environment variables."""
    logging.basicConfig(
        level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return create_app(Settings.from_env())


def create_app(
    settings: Settings,
    db: ActivityDB | None = None,
    slack: SlackRelay | None = None,
) -> FastAPI:
    """Create the app with its store, dispatcher, job and scheduler wired in."""
    owns_db = db is None
    db = db or ActivityDB(settings.db_path)
    slack = slack or SlackRelay.from_settings(settings)
    events = EventStore(db)
    summaries = SummaryStore(db)
    dispatcher = EventDispatcher(events)
    job = DailySummaryJob(
        aggregator=Aggregator(events, settings),
        summaries=summaries,
        settings=settings,
        poster=slack,
    )
    scheduler = SummaryScheduler(job, settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if settings.scheduler_enabled:
            scheduler.start()
        else:
            logger.info("Cron scheduler disabled; use /api/slack/run-summary to trigger")
        try:
            yield
        finally:
            scheduler.shutdown()
            if owns_db:
                db.close()

    app = FastAPI(docs_url=None, redoc_url=None, lifespan=lifespan)
    app.state.settings = settings
    app.state.dispatcher = dispatcher
    app.state.job = job
    app.state.scheduler = scheduler

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "message": "Slack stats service running."}

    @app.post("/api/slack/events")
    async def slack_events(request: Request) -> Response:
        body = await request.body()
        if not slack.verify_signature(dict(request.headers), body):
            return JSONResponse({"error": "Invalid webhook signature"}, status_code=401)

        try:
            payload = json.loads(body)
        except json.JSONDecodeError:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)
        if not isinstance(payload, dict):
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        challenge = slack.handle_url_verification(payload)
        if challenge is not None:
            logger.info("URL verification challenge received")
            return PlainTextResponse(challenge)

        if payload.get("type") == "event_callback":
            try:
                await dispatcher.handle_inbound(payload)
            except Exception:
                # Acknowledged with 200 regardless; Slack must not redeliver
                logger.exception("Error processing Slack event")
        else:
            logger.info("Unknown payload type: %s", payload.get("type"))
        return Response(status_code=200)

    @app.post("/api/slack/run-summary")
    async def run_summary(request: Request) -> JSONResponse:
        body = await request.body()
        params: dict[str, object] = {}
        if body:
            try:
                loaded = json.loads(body)
            except json.JSONDecodeError:
                return JSONResponse(
                    {"success": False, "error": "Invalid JSON body"}, status_code=400,
                )
            if isinstance(loaded, dict):
                params = loaded

        date_input = params.get("date")
        result = await job.run(
            date_input=date_input if isinstance(date_input, str) else None,
            default_to_today=parse_flag(params.get("today")),
        )
        if not result.success:
            return JSONResponse({"success": False, "error": result.error}, status_code=500)
        return JSONResponse({
            "success": True,
            "date": result.stat_date,
            "summary": result.summary.model_dump() if result.summary else None,
        })

    @app.post("/api/slack/command")
    async def slash_command(request: Request, background: BackgroundTasks) -> JSONResponse:
        body = await request.body()
        if not slack.verify_signature(dict(request.headers), body):
            return JSONResponse({"error": "Invalid webhook signature"}, status_code=401)

        form = await request.form()
        command = form.get("command")
        channel_id = form.get("channel_id")
        user_id = form.get("user_id")
        if command != _SLASH_COMMAND:
            return JSONResponse({
                "response_type": "ephemeral",
                "text": f"Only {_SLASH_COMMAND} is supported.",
            })

        logger.info("Slash command triggered by %s in %s", user_id, channel_id)
        background.add_task(job.run)
        return JSONResponse({
            "response_type": "ephemeral",
            "text": f"✅ Collecting yesterday's stats for <#{channel_id}>...",
        })

    return app
