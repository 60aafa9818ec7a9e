"""
Models module.

Usage:
    from app.models import CandidateEvent, Event, EventBracket
"""
from app.models.models import (
    Base,
    CandidateEvent,
    Event,
    EventBracket,
    EventBout,
    EventPlacement,
    AppConfig,
    SyncRunLog,
)

__all__ = [
    "Base",
    "CandidateEvent",
    "Event",
    "EventBracket",
    "EventBout",
    "EventPlacement",
    "AppConfig",
    "SyncRunLog",
]
