"""Shared pytest fixtures for bracket-sync-api tests."""
import asyncio
import os
import sys
import uuid
from datetime import date, datetime
from pathlib import Path
from typing import Generator, List, Optional
from unittest.mock import AsyncMock, Mock

# Must be set before any app module reads settings
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from app.services.sync.types import (  # noqa: E402
    BracketData,
    Bout,
    FullEventData,
    ListingPage,
    Participant,
    Placement,
    ProviderEvent,
    SourceEvent,
)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create fresh test database session with isolated in-memory database."""
    from app.models import Base

    # StaticPool keeps one connection so the TestClient thread sees the same data
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestSessionLocal = sessionmaker(bind=engine, autoflush=False)
    session = TestSessionLocal()

    yield session

    session.close()
    engine.dispose()


# =============================================================================
# FAKES
# =============================================================================

class FakeListingSource:
    """In-memory listing source; ``pages`` is a list of event lists."""

    def __init__(
        self,
        pages: List[List[SourceEvent]],
        failing_pages: Optional[set] = None,
        stalled_pages: Optional[set] = None,
    ):
        self.pages = pages
        self.failing_pages = failing_pages or set()
        self.stalled_pages = stalled_pages or set()
        self.requested: List[int] = []

    async def fetch_page(self, page_index: int) -> ListingPage:
        self.requested.append(page_index)
        if page_index in self.failing_pages:
            raise RuntimeError(f"page {page_index} unavailable")
        if page_index in self.stalled_pages:
            await asyncio.Event().wait()
        events = self.pages[page_index] if page_index < len(self.pages) else []
        return ListingPage(events=list(events), total_count=sum(len(p) for p in self.pages))


def make_source_event(external_id: str, name: str, start_date: Optional[date] = date(2026, 2, 14), **kwargs) -> SourceEvent:
    """Helper to build a listing event with sensible defaults."""
    defaults = {
        'venue': 'Civic Center',
        'city': 'Des Moines',
        'state': 'IA',
    }
    defaults.update(kwargs)
    return SourceEvent(external_id=external_id, name=name, start_date=start_date, **defaults)


def make_participant(pid: str, name: str, seed: Optional[int] = None, winner: bool = False,
                     display_team: Optional[str] = None) -> Participant:
    return Participant(provider_id=pid, name=name, team="Ames", display_team=display_team, seed=seed, is_winner=winner)


def make_bracket(bracket_id: str = "b-106", weight_class: str = "106", bout_ids: Optional[List[str]] = None,
                 places: int = 2, bout_count: Optional[int] = None) -> BracketData:
    """Helper to build a bracket payload as returned by the provider client."""
    bout_ids = bout_ids if bout_ids is not None else ["m1", "m2", "m3"]
    bouts = [
        Bout(
            provider_bout_id=bout_id,
            state="completed",
            match_number=str(n + 1),
            round_name="Quarterfinal",
            result="Fall 1:23",
            win_type="F",
            top_participant=make_participant(f"p{n}a", f"Wrestler {n}A", seed=1, winner=True),
            bottom_participant=make_participant(f"p{n}b", f"Wrestler {n}B", seed=8),
            bracket_x=n,
            bracket_y=0,
        )
        for n, bout_id in enumerate(bout_ids)
    ]
    placements = [
        Placement(place=str(p), wrestler_name=f"Placer {p}", team_name="Ames", provider_participant_id=f"pp{p}")
        for p in range(1, places + 1)
    ]
    return BracketData(
        bracket_id=bracket_id,
        weight_class=weight_class,
        participant_count=16,
        bout_count=bout_count if bout_count is not None else len(bouts),
        bouts=bouts,
        placements=placements,
    )


def make_full_event(provider_id: str = "14468801", brackets: Optional[List[BracketData]] = None,
                    errors: Optional[List[str]] = None) -> FullEventData:
    return FullEventData(
        event=ProviderEvent(provider_id=provider_id, title="Metro Duals", start_date="2026-02-14T08:00:00"),
        brackets=brackets if brackets is not None else [make_bracket()],
        errors=errors or [],
    )


def create_candidate(db: Session, **kwargs):
    """Helper to insert a CandidateEvent with all required fields."""
    from app.models import CandidateEvent

    defaults = {
        'id': str(uuid.uuid4()),
        'external_id': f"ext-{uuid.uuid4().hex[:8]}",
        'name': 'Metro Duals',
        'start_date': date(2026, 2, 14),
        'status': 'pending',
        'provider_event_id': None,
        'match_confidence': None,
        'created_at': datetime.utcnow(),
        'updated_at': datetime.utcnow(),
    }
    defaults.update(kwargs)
    candidate = CandidateEvent(**defaults)
    db.add(candidate)
    db.commit()
    return candidate


def create_event(db: Session, **kwargs):
    """Helper to insert a canonical Event with all required fields."""
    from app.models import Event

    defaults = {
        'id': str(uuid.uuid4()),
        'external_id': f"ext-{uuid.uuid4().hex[:8]}",
        'name': 'Metro Duals',
        'start_date': date(2026, 2, 14),
        'provider_event_id': None,
        'bracket_sync_status': 'pending',
        'total_brackets': 0,
        'total_bouts': 0,
        'created_at': datetime.utcnow(),
        'updated_at': datetime.utcnow(),
    }
    defaults.update(kwargs)
    event = Event(**defaults)
    db.add(event)
    db.commit()
    return event


@pytest.fixture
def mock_results_service():
    """Result provider client double with async methods and no network."""
    service = Mock()
    service.get_event_info = AsyncMock()
    service.get_full_event_data = AsyncMock(return_value=make_full_event())
    service.find_event_id_by_name = AsyncMock(return_value=None)
    service.close = AsyncMock()
    return service


@pytest.fixture
def mock_matcher():
    """Identity matcher double; ``match_batch`` returns no matches by default."""
    matcher = Mock()
    matcher.match_batch = AsyncMock(return_value={})
    return matcher


# =============================================================================
# FASTAPI TEST CLIENT FIXTURE
# =============================================================================

@pytest.fixture(scope="function")
def test_client(db_session):
    """
    Create FastAPI TestClient with a fresh database for each test.

    Note: We don't use context manager (with TestClient) because it would
    run the lifespan and start the scheduler.

    Usage:
        def test_endpoint(test_client):
            response = test_client.get("/api/v1/sync/candidates")
            assert response.status_code == 200
    """
    from fastapi.testclient import TestClient
    from app.main import app
    from app.core.database import get_db

    test_db_session = db_session

    def override_get_db():
        try:
            yield test_db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
