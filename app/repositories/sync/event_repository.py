"""
Canonical event and bracket repository.

Usage:
    repo = EventRepository(db)
    event = repo.upsert_from_candidate(candidate, provider_event_id="14468801")
    bracket_id, bouts, placements = repo.replace_bracket(event.id, bracket_data)

Bracket refresh is a full replace: the bracket row is upserted on
(event_id, provider_bracket_id), then its bouts and placements are deleted
and re-inserted. All of it happens in one transaction, so a failure leaves
the previous bout set in place rather than a partial one.
"""
import uuid
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, insert, select, update

from app.core.config import settings
from app.models import CandidateEvent, Event, EventBout, EventBracket, EventPlacement
from app.repositories.base import BaseRepository
from app.services.sync.types import BracketData, Bout, Participant, Placement
from app.utils.timezone import utc_now

SYNC_PENDING = "pending"
SYNC_SYNCING = "syncing"
SYNC_SYNCED = "synced"
SYNC_ERROR = "error"


def _participant_columns(prefix: str, participant: Optional[Participant]) -> Dict:
    if participant is None:
        return {
            f"{prefix}_provider_id": None,
            f"{prefix}_name": None,
            f"{prefix}_team": None,
            f"{prefix}_display_team": None,
            f"{prefix}_seed": None,
            f"{prefix}_score": None,
            f"{prefix}_is_winner": False,
        }
    return {
        f"{prefix}_provider_id": participant.provider_id,
        f"{prefix}_name": participant.name or None,
        f"{prefix}_team": participant.team,
        f"{prefix}_display_team": participant.display_team,
        f"{prefix}_seed": participant.seed,
        f"{prefix}_score": participant.score,
        f"{prefix}_is_winner": participant.is_winner,
    }


def _bout_row(bracket_id: str, bout: Bout) -> Dict:
    row = {
        "id": str(uuid.uuid4()),
        "bracket_id": bracket_id,
        "provider_bout_id": bout.provider_bout_id,
        "match_number": bout.match_number,
        "round_name": bout.round_name,
        "state": bout.state,
        "result": bout.result,
        "win_type": bout.win_type,
        "placement": bout.placement,
        "bracket_x": bout.bracket_x,
        "bracket_y": bout.bracket_y,
    }
    row.update(_participant_columns("top", bout.top_participant))
    row.update(_participant_columns("bottom", bout.bottom_participant))
    return row


def _placement_row(bracket_id: str, placement: Placement) -> Dict:
    return {
        "id": str(uuid.uuid4()),
        "bracket_id": bracket_id,
        "place": placement.place,
        "wrestler_name": placement.wrestler_name,
        "team_name": placement.team_name,
        "provider_participant_id": placement.provider_participant_id,
    }


class EventRepository(BaseRepository[Event]):
    """Repository for canonical events and their bracket trees."""

    def __init__(self, db):
        super().__init__(Event, db)

    def find_by_external_id(self, external_id: str) -> Optional[Event]:
        return self.where_first(Event.external_id == external_id)

    def find_unmatched(self) -> List[Event]:
        """Events with no provider id yet."""
        return self.where(Event.provider_event_id.is_(None))

    # ========================================================================
    # Event writes
    # ========================================================================

    def upsert_from_candidate(
        self,
        candidate: CandidateEvent,
        provider_event_id: Optional[str] = None,
    ) -> Event:
        """
        Create or refresh the canonical event for a candidate.

        Keyed on external_id: an existing event keeps its id and sync
        history, only the listing fields and provider id are refreshed.
        """
        now = utc_now()
        provider_event_id = provider_event_id or candidate.provider_event_id
        listing = dict(
            name=candidate.name,
            start_date=candidate.start_date,
            end_date=candidate.end_date,
            venue=candidate.venue,
            street=candidate.street,
            city=candidate.city,
            state=candidate.state,
            zip=candidate.zip,
            provider_event_id=provider_event_id,
            updated_at=now,
        )
        stmt = self.insert_stmt().values(
            id=str(uuid.uuid4()),
            external_id=candidate.external_id,
            bracket_sync_status=SYNC_PENDING,
            total_brackets=0,
            total_bouts=0,
            created_at=now,
            **listing,
        ).on_conflict_do_update(index_elements=["external_id"], set_=listing)
        self.db.execute(stmt)
        self.db.commit()

        return self.find_by_external_id(candidate.external_id)

    def set_provider_event_id(self, event_id: str, provider_event_id: str) -> None:
        self.db.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(provider_event_id=provider_event_id, updated_at=utc_now())
        )
        self.db.commit()

    def update_sync_status(self, event_id: str, status: str, **fields) -> None:
        """
        Set bracket_sync_status plus any counter/error fields.

        Args:
            event_id: Canonical event id
            status: pending, syncing, synced or error
            **fields: total_brackets, total_bouts, bracket_sync_error, bracket_synced_at
        """
        self.db.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(bracket_sync_status=status, updated_at=utc_now(), **fields)
        )
        self.db.commit()

    # ========================================================================
    # Brackets
    # ========================================================================

    def replace_bracket(self, event_id: str, bracket: BracketData) -> Tuple[str, int, int]:
        """
        Upsert one bracket and replace all of its bouts and placements.

        Bouts are inserted in batches of BOUT_INSERT_BATCH_SIZE. Duplicate
        provider bout ids within the payload keep the first occurrence.
        Rolls back and re-raises on any error.

        Returns:
            (bracket_id, bouts_inserted, placements_inserted)
        """
        batch_size = settings.BOUT_INSERT_BATCH_SIZE
        now = utc_now()
        counts = dict(
            weight_class=bracket.weight_class,
            participant_count=bracket.participant_count,
            bout_count=bracket.bout_count,
            synced_at=now,
        )

        try:
            stmt = self.insert_stmt(EventBracket).values(
                id=str(uuid.uuid4()),
                event_id=event_id,
                provider_bracket_id=bracket.bracket_id,
                **counts,
            ).on_conflict_do_update(index_elements=["event_id", "provider_bracket_id"], set_=counts)
            self.db.execute(stmt)

            bracket_id = self.db.execute(
                select(EventBracket.id).where(
                    EventBracket.event_id == event_id,
                    EventBracket.provider_bracket_id == bracket.bracket_id,
                )
            ).scalar_one()

            self.db.execute(delete(EventBout).where(EventBout.bracket_id == bracket_id))
            self.db.execute(delete(EventPlacement).where(EventPlacement.bracket_id == bracket_id))

            seen = set()
            bout_rows = []
            for bout in bracket.bouts:
                if bout.provider_bout_id in seen:
                    continue
                seen.add(bout.provider_bout_id)
                bout_rows.append(_bout_row(bracket_id, bout))

            for start in range(0, len(bout_rows), batch_size):
                self.db.execute(insert(EventBout), bout_rows[start:start + batch_size])

            placement_rows = [_placement_row(bracket_id, p) for p in bracket.placements]
            if placement_rows:
                self.db.execute(insert(EventPlacement), placement_rows)

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        return bracket_id, len(bout_rows), len(placement_rows)

    def get_brackets(self, event_id: str) -> List[EventBracket]:
        return self.db.query(EventBracket).filter(
            EventBracket.event_id == event_id
        ).order_by(EventBracket.weight_class).all()

    def get_bracket_tree(self, event_id: str) -> List[Tuple[EventBracket, List[EventBout], List[EventPlacement]]]:
        """
        Load an event's brackets with their bouts and placements.

        Brackets are ordered by weight class, bouts by round then match
        number, placements by place. Two queries cover every bracket.

        Returns:
            [(bracket, bouts, placements), ...]
        """
        brackets = self.get_brackets(event_id)
        if not brackets:
            return []

        bracket_ids = [b.id for b in brackets]
        bouts: Dict[str, List[EventBout]] = {bid: [] for bid in bracket_ids}
        placements: Dict[str, List[EventPlacement]] = {bid: [] for bid in bracket_ids}

        for bout in self.db.query(EventBout).filter(
            EventBout.bracket_id.in_(bracket_ids)
        ).order_by(EventBout.round_name, EventBout.match_number).all():
            bouts[bout.bracket_id].append(bout)

        for placement in self.db.query(EventPlacement).filter(
            EventPlacement.bracket_id.in_(bracket_ids)
        ).order_by(EventPlacement.place).all():
            placements[placement.bracket_id].append(placement)

        return [(b, bouts[b.id], placements[b.id]) for b in brackets]

    def count_bouts(self, event_id: str) -> int:
        return self.db.query(EventBout).join(EventBracket).filter(EventBracket.event_id == event_id).count()

    def count_placements(self, event_id: str) -> int:
        return self.db.query(EventPlacement).join(EventBracket).filter(EventBracket.event_id == event_id).count()
