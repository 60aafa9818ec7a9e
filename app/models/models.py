"""
Database models for the bracket sync service.

Two sources feed these tables: the listing source (tournament schedule,
``external_id``) and the result provider (brackets and bouts, numeric
``provider_event_id``). Candidate events hold discovered listings until
they are promoted to canonical events, which own the synced bracket tree.
"""
import uuid

from sqlalchemy import (
    Column, String, Integer, DateTime, Date, ForeignKey, Boolean, Text, JSON,
    Index, UniqueConstraint,
)
from sqlalchemy.orm import relationship, declarative_base

from app.utils.timezone import utc_now

Base = declarative_base()


def _uuid() -> str:
    return str(uuid.uuid4())


class CandidateEvent(Base):
    """Discovered listing awaiting approval.

    Lifecycle: pending → approved | auto_approved | dismissed.
    """
    __tablename__ = "candidate_events"

    id = Column(String(36), primary_key=True, default=_uuid)
    external_id = Column(String(64), unique=True, nullable=False)  # listing source id
    name = Column(String(255), nullable=False)
    start_date = Column(Date, nullable=True, index=True)
    end_date = Column(Date, nullable=True)
    venue = Column(String(255), nullable=True)
    street = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip = Column(String(20), nullable=True)
    provider_event_id = Column(String(32), nullable=True, index=True)
    match_confidence = Column(Integer, nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    approved_event_id = Column(String(36), ForeignKey("events.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    approved_event = relationship("Event", foreign_keys=[approved_event_id])

    __table_args__ = (
        Index('ix_candidate_events_status_start', 'status', 'start_date'),
    )


class Event(Base):
    """Canonical (approved) event and its bracket sync state."""
    __tablename__ = "events"

    id = Column(String(36), primary_key=True, default=_uuid)
    external_id = Column(String(64), unique=True, nullable=False)
    name = Column(String(255), nullable=False)
    start_date = Column(Date, nullable=True, index=True)
    end_date = Column(Date, nullable=True)
    venue = Column(String(255), nullable=True)
    street = Column(String(255), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(50), nullable=True)
    zip = Column(String(20), nullable=True)
    provider_event_id = Column(String(32), nullable=True, index=True)
    bracket_sync_status = Column(String(16), nullable=False, default="pending", index=True)  # pending, syncing, synced, error
    bracket_synced_at = Column(DateTime, nullable=True)
    bracket_sync_error = Column(Text, nullable=True)
    total_brackets = Column(Integer, nullable=False, default=0)
    total_bouts = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)

    brackets = relationship("EventBracket", back_populates="event", cascade="all, delete-orphan")


class EventBracket(Base):
    """One weight-class draw within an event, keyed by the provider's bracket id."""
    __tablename__ = "event_brackets"

    id = Column(String(36), primary_key=True, default=_uuid)
    event_id = Column(String(36), ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_bracket_id = Column(String(64), nullable=False)
    weight_class = Column(String(255), nullable=False)
    participant_count = Column(Integer, nullable=False, default=0)
    bout_count = Column(Integer, nullable=False, default=0)  # provider count, byes included
    synced_at = Column(DateTime, nullable=True)

    event = relationship("Event", back_populates="brackets")
    bouts = relationship("EventBout", back_populates="bracket", cascade="all, delete-orphan")
    placements = relationship("EventPlacement", back_populates="bracket", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('event_id', 'provider_bracket_id', name='uq_event_brackets_event_bracket'),
    )


class EventBout(Base):
    """A single bout; byes are never stored."""
    __tablename__ = "event_bouts"

    id = Column(String(36), primary_key=True, default=_uuid)
    bracket_id = Column(String(36), ForeignKey("event_brackets.id", ondelete="CASCADE"), nullable=False, index=True)
    provider_bout_id = Column(String(64), nullable=False)
    match_number = Column(String(32), nullable=True)
    round_name = Column(String(100), nullable=True)
    state = Column(String(32), nullable=True)
    result = Column(String(255), nullable=True)
    win_type = Column(String(32), nullable=True)
    placement = Column(String(64), nullable=True)

    top_provider_id = Column(String(64), nullable=True)
    top_name = Column(String(255), nullable=True)
    top_team = Column(String(255), nullable=True)
    top_display_team = Column(String(255), nullable=True)
    top_seed = Column(Integer, nullable=True)
    top_score = Column(Integer, nullable=True)
    top_is_winner = Column(Boolean, nullable=False, default=False)

    bottom_provider_id = Column(String(64), nullable=True)
    bottom_name = Column(String(255), nullable=True)
    bottom_team = Column(String(255), nullable=True)
    bottom_display_team = Column(String(255), nullable=True)
    bottom_seed = Column(Integer, nullable=True)
    bottom_score = Column(Integer, nullable=True)
    bottom_is_winner = Column(Boolean, nullable=False, default=False)

    bracket_x = Column(Integer, nullable=True)
    bracket_y = Column(Integer, nullable=True)

    bracket = relationship("EventBracket", back_populates="bouts")

    __table_args__ = (
        UniqueConstraint('bracket_id', 'provider_bout_id', name='uq_event_bouts_bracket_bout'),
    )


class EventPlacement(Base):
    """Final placing within a bracket."""
    __tablename__ = "event_placements"

    id = Column(String(36), primary_key=True, default=_uuid)
    bracket_id = Column(String(36), ForeignKey("event_brackets.id", ondelete="CASCADE"), nullable=False, index=True)
    place = Column(String(32), nullable=False)  # provider text, e.g. "1st"
    wrestler_name = Column(String(255), nullable=False)
    team_name = Column(String(255), nullable=True)
    provider_participant_id = Column(String(64), nullable=True)

    bracket = relationship("EventBracket", back_populates="placements")


class AppConfig(Base):
    """Key/value settings row with an optimistic-lock version counter.

    The ``last_provider_event_id`` key is the matching state: the identifier
    the next identity scan is centered on.
    """
    __tablename__ = "app_config"

    key = Column(String(64), primary_key=True)
    value = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime, nullable=False, default=utc_now, onupdate=utc_now)


class SyncRunLog(Base):
    """Append-only report of one orchestrator execution."""
    __tablename__ = "sync_run_logs"

    id = Column(String(36), primary_key=True, default=_uuid)
    job_name = Column(String(64), nullable=False, index=True)
    status = Column(String(16), nullable=False, default="running", index=True)  # running, success, error
    started_at = Column(DateTime, nullable=False, default=utc_now, index=True)
    finished_at = Column(DateTime, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    scraped = Column(Integer, nullable=False, default=0)
    new_candidates = Column(Integer, nullable=False, default=0)
    matched = Column(Integer, nullable=False, default=0)
    auto_approved = Column(Integer, nullable=False, default=0)
    auto_synced = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    log_lines = Column(JSON, nullable=True)
