"""Webhook event dispatcher.

Routes a verified Slack event_callback payload to the normalizer for its
event kind and persists the result:

1. Envelope check (event body and event_id present)
2. Kind lookup (unrecognized kinds are ignored)
3. Normalize (skip reasons are expected, not errors)
4. Insert-if-absent in the EventStore, off the event loop

A failure while normalizing or storing one event is logged and reported
as FAILED; it never propagates to the caller.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from src.models import EventKind
from src.store.events import SaveStatus
from src.webhook.models import DispatchOutcome, DispatchResult, EventEnvelope
from src.webhook.normalizer import normalize_event

if TYPE_CHECKING:
    from src.store.events import EventStore

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Dispatches inbound Slack events to the EventStore."""

    def __init__(self, store: EventStore) -> None:
        self._store = store

    async def handle_inbound(
        self, payload: dict[str, Any], now: datetime | None = None,
    ) -> DispatchResult:
        envelope = EventEnvelope.from_payload(payload)
        if envelope is None:
            return DispatchResult(outcome=DispatchOutcome.IGNORED, detail="no event or event_id")

        logger.info("Received event %s (event_id: %s)", envelope.event_type, envelope.event_id)

        try:
            kind = EventKind(envelope.event_type)
        except ValueError:
            logger.info("Unhandled event type: %s", envelope.event_type)
            return DispatchResult(
                outcome=DispatchOutcome.IGNORED,
                event_id=envelope.event_id,
                event_type=envelope.event_type,
                detail="unhandled event type",
            )

        return await self._handle(kind, envelope, now)

    async def _handle(
        self, kind: EventKind, envelope: EventEnvelope, now: datetime | None,
    ) -> DispatchResult:
        try:
            result = normalize_event(kind, envelope.event_id, envelope.event, now)
            if result.record is None:
                logger.info(
                    "Skipped %s event %s: %s", kind.value, envelope.event_id, result.skip_reason,
                )
                return DispatchResult(
                    outcome=DispatchOutcome.SKIPPED,
                    event_id=envelope.event_id,
                    event_type=kind.value,
                    detail=result.skip_reason,
                )
            record = result.record
            status = await asyncio.to_thread(self._store.save_event, record)
        except Exception as exc:
            logger.exception("Error handling %s event %s", kind.value, envelope.event_id)
            return DispatchResult(
                outcome=DispatchOutcome.FAILED,
                event_id=envelope.event_id,
                event_type=kind.value,
                detail=str(exc),
            )

        if status is SaveStatus.DUPLICATE:
            logger.info("Duplicate %s event %s ignored", kind.value, envelope.event_id)
            outcome = DispatchOutcome.DUPLICATE
        else:
            logger.info(
                "Saved %s event %s (channel %s)", kind.value, envelope.event_id, record.channel_id,
            )
            outcome = DispatchOutcome.PERSISTED
        return DispatchResult(outcome=outcome, event_id=envelope.event_id, event_type=kind.value)
