"""Bracket sync for canonical events.

Pulls the full bracket tree of one event from the result provider and
writes it into event_brackets / event_bouts / event_placements.

Failure handling:
- Provider fetch fails (event info or divisions): the event is marked
  ``error`` and the exception propagates.
- A division could not be fetched: the provider client leaves it out; the
  message is stored on the event but does not change its status.
- A bracket fails to persist: that bracket's transaction is rolled back,
  the others continue, and the event ends in ``error``.

Re-running a sync with unchanged provider data leaves identical row counts.
"""
import logging
from typing import List

from sqlalchemy.orm import Session

from app.core.metrics import event_bracket_syncs_total
from app.models import Event
from app.repositories.sync.event_repository import (
    EventRepository,
    SYNC_ERROR,
    SYNC_SYNCED,
    SYNC_SYNCING,
)
from app.services.core.results_api_service import ResultsApiService
from app.services.sync.exceptions import PartialSyncError
from app.services.sync.types import BracketData, BracketSyncResult
from app.utils.timezone import utc_now

logger = logging.getLogger(__name__)

MAX_ERROR_TEXT = 4000


class BracketSyncService:
    """Persist provider bracket data for canonical events."""

    def __init__(self, db: Session, results_service: ResultsApiService):
        self.db = db
        self.results_service = results_service
        self.events = EventRepository(db)

    async def sync_event(self, event: Event) -> BracketSyncResult:
        """
        Fetch and store every bracket of ``event``.

        Args:
            event: Canonical event with a provider_event_id

        Returns:
            BracketSyncResult with status ``synced`` or ``error``

        Raises:
            ValueError: The event has no provider id
            ResultsApiError: Event info or divisions could not be fetched
        """
        event_id = event.id
        provider_id = event.provider_event_id
        if not provider_id:
            raise ValueError(f"Event {event_id} has no provider event id")

        self.events.update_sync_status(event_id, SYNC_SYNCING)
        logger.info(f"Syncing brackets for '{event.name}' (provider event {provider_id})")

        try:
            full = await self.results_service.get_full_event_data(provider_id)
        except Exception as e:
            self.events.update_sync_status(
                event_id, SYNC_ERROR, bracket_sync_error=str(e)[:MAX_ERROR_TEXT]
            )
            event_bracket_syncs_total.labels(status=SYNC_ERROR).inc()
            logger.error(f"Bracket fetch failed for event {event_id}: {e}")
            raise

        result = BracketSyncResult(event_id=event_id, status=SYNC_SYNCED, errors=list(full.errors))
        failed: List[str] = []

        for bracket in full.brackets:
            try:
                bouts, placements = self._persist_bracket(event_id, bracket)
            except PartialSyncError as e:
                failed.append(str(e))
                logger.error(str(e))
                continue
            result.brackets += 1
            result.bouts += bouts
            result.placements += placements

        result.errors.extend(failed)
        if failed:
            result.status = SYNC_ERROR

        self.events.update_sync_status(
            event_id,
            result.status,
            total_brackets=result.brackets,
            total_bouts=result.bouts,
            bracket_synced_at=utc_now(),
            bracket_sync_error="; ".join(result.errors)[:MAX_ERROR_TEXT] or None,
        )
        event_bracket_syncs_total.labels(status=result.status).inc()

        logger.info(
            f"Event {event_id} {result.status}: {result.brackets} brackets, "
            f"{result.bouts} bouts, {result.placements} placements, {len(result.errors)} errors"
        )
        return result

    def _persist_bracket(self, event_id: str, bracket: BracketData):
        try:
            _, bouts, placements = self.events.replace_bracket(event_id, bracket)
        except Exception as e:
            raise PartialSyncError(f"Failed to store bracket {bracket.weight_class}: {e}") from e
        return bouts, placements
