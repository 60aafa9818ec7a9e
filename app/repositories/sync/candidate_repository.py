"""
Candidate event repository.

Candidates are inserted with ON CONFLICT (external_id) DO NOTHING: a
concurrent discovery run that already inserted the same listing wins and
the duplicate is silently dropped.
"""
import uuid
from typing import Dict, Iterable, List, Optional, Set

from sqlalchemy import update

from app.models import CandidateEvent, Event
from app.repositories.base import BaseRepository
from app.services.sync.types import SourceEvent
from app.utils.timezone import utc_now

STATUS_PENDING = "pending"
STATUS_APPROVED = "approved"
STATUS_AUTO_APPROVED = "auto_approved"
STATUS_DISMISSED = "dismissed"


class CandidateRepository(BaseRepository[CandidateEvent]):
    """Repository for discovered candidate events."""

    def __init__(self, db):
        super().__init__(CandidateEvent, db)

    def find_by_external_id(self, external_id: str) -> Optional[CandidateEvent]:
        return self.where_first(CandidateEvent.external_id == external_id)

    def find_known_external_ids(self, external_ids: Iterable[str]) -> Set[str]:
        """
        External ids already present as a candidate or a canonical event.

        Args:
            external_ids: Listing source ids to check

        Returns:
            The subset of ``external_ids`` that is already stored
        """
        ids = list(set(external_ids))
        if not ids:
            return set()

        known = {
            row[0] for row in
            self.db.query(CandidateEvent.external_id).filter(CandidateEvent.external_id.in_(ids)).all()
        }
        known.update(
            row[0] for row in
            self.db.query(Event.external_id).filter(Event.external_id.in_(ids)).all()
        )
        return known

    def insert_candidates(
        self,
        events: List[SourceEvent],
        matches: Dict[str, str],
        confidence: int,
    ) -> int:
        """
        Insert new candidates, ignoring external ids that already exist.

        Args:
            events: Listing events to store
            matches: Event name to provider id for matched events
            confidence: Confidence recorded on matched candidates

        Returns:
            Number of rows actually inserted
        """
        inserted = 0
        now = utc_now()

        for event in events:
            provider_id = matches.get(event.name)
            stmt = self.insert_stmt().values(
                id=str(uuid.uuid4()),
                external_id=event.external_id,
                name=event.name,
                start_date=event.start_date,
                end_date=event.end_date,
                venue=event.venue,
                street=event.street,
                city=event.city,
                state=event.state,
                zip=event.zip,
                provider_event_id=provider_id,
                match_confidence=confidence if provider_id else None,
                status=STATUS_PENDING,
                created_at=now,
                updated_at=now,
            ).on_conflict_do_nothing(index_elements=["external_id"])
            inserted += self.db.execute(stmt).rowcount or 0

        self.db.commit()
        return inserted

    def find_pending(self) -> List[CandidateEvent]:
        """Pending candidates, soonest first."""
        return self.query().filter(
            CandidateEvent.status == STATUS_PENDING
        ).order_by(CandidateEvent.start_date.asc(), CandidateEvent.name.asc()).all()

    def find_unmatched_pending(self) -> List[CandidateEvent]:
        return self.where(
            CandidateEvent.status == STATUS_PENDING,
            CandidateEvent.provider_event_id.is_(None),
        )

    def set_match(self, candidate_id: str, provider_event_id: str, confidence: int) -> None:
        self.db.execute(
            update(CandidateEvent)
            .where(CandidateEvent.id == candidate_id)
            .values(provider_event_id=provider_event_id, match_confidence=confidence, updated_at=utc_now())
        )
        self.db.commit()

    def mark_approved(self, candidate_id: str, event_id: str, status: str = STATUS_APPROVED) -> None:
        """Link a candidate to its canonical event."""
        self.db.execute(
            update(CandidateEvent)
            .where(CandidateEvent.id == candidate_id)
            .values(status=status, approved_event_id=event_id, updated_at=utc_now())
        )
        self.db.commit()

    def mark_dismissed(self, candidate_id: str) -> None:
        self.db.execute(
            update(CandidateEvent)
            .where(CandidateEvent.id == candidate_id)
            .values(status=STATUS_DISMISSED, updated_at=utc_now())
        )
        self.db.commit()
