"""SQLite persistence for activity events and daily summaries."""

from src.store.db import ActivityDB
from src.store.events import EventStore, SaveStatus
from src.store.summaries import SummaryStore

__all__ = ["ActivityDB", "EventStore", "SaveStatus", "SummaryStore"]
