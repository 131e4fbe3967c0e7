"""
Delivery: local study experience.

Components:
- ContentCatalog: phrase, category and prayer content
- LocalStore: SQLite durable slot for the progress document
- BoxScheduler / SessionPlanner: five-box scheduling and daily plans
- StudySession: ratings, timer and finalization
- PrayerTracker: recitation chunk progress
"""

from .catalog import ContentCatalog, Phrase, PrayerRecitation
from .prayer import PrayerTracker
from .scheduler import BoxScheduler, ItemSchedule, Rating, SessionPlan, SessionPlanner
from .session import StudySession, finalize_session, start_session
from .state_store import LocalStore, default_document, normalize

__all__ = [
    # Content
    "ContentCatalog",
    "Phrase",
    "PrayerRecitation",
    # Persistence
    "LocalStore",
    "default_document",
    "normalize",
    # Scheduling
    "BoxScheduler",
    "ItemSchedule",
    "Rating",
    "SessionPlan",
    "SessionPlanner",
    # Sessions
    "StudySession",
    "start_session",
    "finalize_session",
    # Prayer
    "PrayerTracker",
]
