"""Sync orchestrator for event discovery and reconciliation.

Discovery run (scheduled or manual):

    scrape → deduplicate → match → persist_candidates
           → auto_approve_and_sync (scheduled runs only) → update_matching_state

Every run is recorded in sync_run_logs with its counts, log lines and a
terminal status. Runs never raise: failures inside a step are logged and
the run continues, and anything that escapes a step ends the run with
status ``error``.

Error policy:
- A listing page that fails or outlives LISTING_SOURCE_TIMEOUT is skipped;
  an empty page stops pagination.
- A matcher failure during discovery means no matches this run.
- One event failing to approve or sync is marked ``error`` on its row and
  the loop moves on.
- Nothing is retried within a run; the next run or a manual resync picks
  failed events up.

Sync Schedule (recommended cron):
- discover-events: "0 6 * * *" (daily, 2 pages, auto-approve)
"""
import asyncio
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.logging import RunLogCollector, clear_correlation_id, set_correlation_id
from app.core.metrics import sync_run_duration_seconds, sync_runs_total
from app.repositories.sync import (
    AppConfigRepository,
    CandidateRepository,
    EventRepository,
    SyncRunRepository,
)
from app.repositories.sync.candidate_repository import STATUS_APPROVED, STATUS_AUTO_APPROVED
from app.repositories.sync.event_repository import SYNC_ERROR
from app.services.core.results_api_service import ResultsApiService, get_results_service
from app.services.sync.adapters.listing_adapter import ListingSource, get_listing_source
from app.services.sync.bracket_sync import BracketSyncService
from app.services.sync.exceptions import ListingSourceNotConfiguredError, PersistenceConflictError
from app.services.sync.matchers.event_matcher import EventMatcher
from app.services.sync.types import SourceEvent, SyncRunReport

logger = logging.getLogger(__name__)

JOB_SCHEDULED_DISCOVERY = "discover-events"
JOB_MANUAL_DISCOVERY = "discover-manual"
JOB_REMATCH = "rematch"

REMATCH_SCOPES = ("events", "candidates", "all")


class SyncOrchestrator:
    """
    Coordinates discovery, matching and bracket sync.

    This is the main entry point for the sync layer; API routes and the
    scheduler go through it.
    """

    def __init__(
        self,
        db: Session,
        listing_source: Optional[ListingSource] = None,
        results_service: Optional[ResultsApiService] = None,
        matcher: Optional[EventMatcher] = None,
    ):
        """
        Initialize the sync orchestrator.

        Args:
            db: SQLAlchemy database session
            listing_source: Listing reader (default: LISTING_SOURCE_CLASS)
            results_service: Result provider client (default: shared singleton)
            matcher: Identity matcher (default: built on results_service)
        """
        self.db = db
        self.results_service = results_service or get_results_service()
        self.matcher = matcher or EventMatcher(self.results_service)
        self.bracket_sync = BracketSyncService(db, self.results_service)

        self.candidates = CandidateRepository(db)
        self.events = EventRepository(db)
        self.app_config = AppConfigRepository(db)
        self.runs = SyncRunRepository(db)

        # Lazy load listing source (configured by dotted path)
        self._listing_source = listing_source

    @property
    def listing_source(self) -> Optional[ListingSource]:
        """Lazy load listing source."""
        if self._listing_source is None:
            self._listing_source = get_listing_source()
        return self._listing_source

    # ========================================================================
    # Entry points
    # ========================================================================

    async def run_discovery(
        self,
        pages: int = 2,
        auto_approve: bool = False,
        job_name: Optional[str] = None,
    ) -> SyncRunReport:
        """
        Discover new listing events and link them to the result provider.

        Args:
            pages: Listing pages to read (stops early at an empty page)
            auto_approve: Promote matched candidates and sync their brackets
            job_name: Run label (default depends on auto_approve)

        Returns:
            SyncRunReport with status ``success`` or ``error``
        """
        job_name = job_name or (JOB_SCHEDULED_DISCOVERY if auto_approve else JOB_MANUAL_DISCOVERY)
        return await self._execute(job_name, lambda report: self._discover(report, pages, auto_approve))

    async def run_scheduled_discovery(self) -> SyncRunReport:
        """Fully automated run: fixed page count, matched events auto-approved."""
        return await self.run_discovery(
            pages=settings.SCHEDULED_DISCOVERY_PAGES,
            auto_approve=True,
            job_name=JOB_SCHEDULED_DISCOVERY,
        )

    async def run_manual_discovery(self, pages: int) -> SyncRunReport:
        """Operator-triggered run; candidates are left pending for review."""
        pages = max(1, min(pages, settings.MANUAL_DISCOVERY_MAX_PAGES))
        return await self.run_discovery(pages=pages, auto_approve=False, job_name=JOB_MANUAL_DISCOVERY)

    async def rematch(self, scope: str = "all") -> SyncRunReport:
        """
        Re-run identity matching for stored rows that have no provider id.

        Args:
            scope: ``events`` (canonical events), ``candidates`` (pending
                candidates) or ``all``

        Raises:
            ValueError: Unknown scope
        """
        if scope not in REMATCH_SCOPES:
            raise ValueError(f"Invalid scope '{scope}', expected one of {', '.join(REMATCH_SCOPES)}")
        return await self._execute(JOB_REMATCH, lambda report: self._rematch(report, scope))

    # ========================================================================
    # Run bookkeeping
    # ========================================================================

    async def _execute(
        self,
        job_name: str,
        body: Callable[[SyncRunReport], Awaitable[None]],
    ) -> SyncRunReport:
        """Run ``body`` inside a recorded, log-captured run. Never raises."""
        run_id = str(uuid.uuid4())
        report = SyncRunReport(job_name=job_name, run_id=run_id)
        collector = RunLogCollector(run_id)
        token = set_correlation_id(run_id)
        started = time.perf_counter()

        try:
            with collector.attached():
                logger.info(f"Starting {job_name}")
                try:
                    self.runs.start(job_name, run_id)
                    await body(report)
                    report.status = "success"
                except Exception as e:
                    self.db.rollback()
                    report.status = "error"
                    report.error_message = str(e)
                    logger.exception(f"{job_name} failed: {e}")

                report.duration_ms = int((time.perf_counter() - started) * 1000)
                logger.info(
                    f"{job_name} finished with {report.status}: scraped={report.scraped} "
                    f"new={report.new_candidates} matched={report.matched} "
                    f"auto_approved={report.auto_approved} synced={report.auto_synced} "
                    f"({report.duration_ms}ms)"
                )

            report.log_lines = list(collector.lines)
            self._record_finish(report)
        finally:
            clear_correlation_id(token)

        sync_runs_total.labels(job=job_name, status=report.status).inc()
        sync_run_duration_seconds.labels(job=job_name).observe(report.duration_ms / 1000)
        return report

    def _record_finish(self, report: SyncRunReport) -> None:
        try:
            self.runs.finish(report.run_id, report)
        except Exception as e:
            # The report is still returned to the caller
            self.db.rollback()
            logger.error(f"Could not record run {report.run_id}: {e}")

    # ========================================================================
    # Discovery steps
    # ========================================================================

    async def _discover(self, report: SyncRunReport, pages: int, auto_approve: bool) -> None:
        source = self.listing_source
        if source is None:
            raise ListingSourceNotConfiguredError("No listing source configured (set LISTING_SOURCE_CLASS)")

        scraped = await self._scrape(source, pages)
        report.scraped = len(scraped)

        known = self.candidates.find_known_external_ids(e.external_id for e in scraped)
        new_events = [e for e in scraped if e.external_id not in known]
        logger.info(f"Deduplicated: {len(new_events)} new of {len(scraped)} scraped")
        if not new_events:
            logger.info("No new events, nothing to do")
            return

        matches = await self._match(new_events)
        report.matches = matches
        report.matched = len(matches)

        report.new_candidates = self.candidates.insert_candidates(
            new_events, matches, settings.CANDIDATE_MATCH_CONFIDENCE
        )
        logger.info(f"Stored {report.new_candidates} new candidates ({report.matched} matched)")

        if auto_approve and matches:
            await self._auto_approve_and_sync(new_events, matches, report)

        self._update_matching_state(matches)

    async def _scrape(self, source: ListingSource, pages: int) -> List[SourceEvent]:
        """Read up to ``pages`` pages; first occurrence of an external id wins."""
        seen = set()
        events: List[SourceEvent] = []

        for page_index in range(pages):
            try:
                page = await asyncio.wait_for(source.fetch_page(page_index), settings.LISTING_SOURCE_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning(
                    f"Listing page {page_index} timed out after {settings.LISTING_SOURCE_TIMEOUT}s, skipping"
                )
                continue
            except Exception as e:
                logger.warning(f"Listing page {page_index} failed, skipping: {e}")
                continue

            if not page.events:
                logger.info(f"Listing page {page_index} is empty, stopping")
                break

            for event in page.events:
                if event.external_id in seen:
                    continue
                seen.add(event.external_id)
                events.append(event)
            logger.info(f"Listing page {page_index}: {len(page.events)} events")

        logger.info(f"Scraped {len(events)} events")
        return events

    async def _match(self, targets: List[Any]) -> Dict[str, str]:
        hint = self.app_config.get_matching_state()
        try:
            return await self.matcher.match_batch(targets, hint_id=hint)
        except Exception as e:
            logger.error(f"Identity matching failed, continuing without matches: {e}")
            return {}

    async def _auto_approve_and_sync(
        self,
        new_events: List[SourceEvent],
        matches: Dict[str, str],
        report: SyncRunReport,
    ) -> None:
        for source_event in new_events:
            provider_id = matches.get(source_event.name)
            if not provider_id:
                continue

            event_id = None
            try:
                candidate = self.candidates.find_by_external_id(source_event.external_id)
                if candidate is None:
                    continue

                event = self.events.upsert_from_candidate(candidate, provider_id)
                event_id = event.id
                self.candidates.mark_approved(candidate.id, event_id, STATUS_AUTO_APPROVED)
                report.auto_approved += 1

                result = await self.bracket_sync.sync_event(event)
                if result.success:
                    report.auto_synced += 1
                else:
                    report.sync_errors += 1
                    logger.warning(f"'{source_event.name}' synced with errors: {'; '.join(result.errors)}")
            except Exception as e:
                self.db.rollback()
                report.sync_errors += 1
                logger.error(f"Auto-approve/sync failed for '{source_event.name}': {e}")
                if event_id:
                    self._mark_event_error(event_id, e)

    def _mark_event_error(self, event_id: str, error: Exception) -> None:
        try:
            self.events.update_sync_status(event_id, SYNC_ERROR, bracket_sync_error=str(error)[:4000])
        except Exception as e:
            self.db.rollback()
            logger.error(f"Could not mark event {event_id} as errored: {e}")

    def _update_matching_state(self, matches: Dict[str, str]) -> None:
        """Advance the scan center to the highest matched provider id."""
        ids = [int(pid) for pid in matches.values() if str(pid).isdigit()]
        if not ids:
            logger.info("No matches, scan center unchanged")
            return
        try:
            center = self.app_config.advance_matching_state(max(ids))
            logger.info(f"Next scan centered on provider id {center}")
        except PersistenceConflictError as e:
            logger.warning(f"Matching state not updated: {e}")

    # ========================================================================
    # Rematch
    # ========================================================================

    async def _rematch(self, report: SyncRunReport, scope: str) -> None:
        events = self.events.find_unmatched() if scope in ("events", "all") else []
        candidates = self.candidates.find_unmatched_pending() if scope in ("candidates", "all") else []
        logger.info(f"Rematching {len(events)} events and {len(candidates)} candidates")

        targets = list(events) + list(candidates)
        if not targets:
            logger.info("Nothing to rematch")
            return

        hint = self.app_config.get_matching_state()
        matches = await self.matcher.match_batch(targets, hint_id=hint)
        report.matches = matches

        for event in events:
            provider_id = matches.get(event.name)
            if provider_id:
                self.events.set_provider_event_id(event.id, provider_id)
                report.matched += 1

        for candidate in candidates:
            provider_id = matches.get(candidate.name)
            if provider_id:
                self.candidates.set_match(candidate.id, provider_id, settings.CANDIDATE_MATCH_CONFIDENCE)
                report.matched += 1

        logger.info(f"Rematched {report.matched}/{len(targets)} rows")
        self._update_matching_state(matches)

    # ========================================================================
    # Manual review
    # ========================================================================

    def list_pending_candidates(self) -> List[Dict[str, Any]]:
        """Pending candidates for review, soonest first."""
        return [
            {
                'id': c.id,
                'external_id': c.external_id,
                'name': c.name,
                'start_date': c.start_date.isoformat() if c.start_date else None,
                'end_date': c.end_date.isoformat() if c.end_date else None,
                'venue': c.venue,
                'city': c.city,
                'state': c.state,
                'provider_event_id': c.provider_event_id,
                'match_confidence': c.match_confidence,
            }
            for c in self.candidates.find_pending()
        ]

    async def approve_candidate(self, candidate_id: str, sync_brackets: bool = True) -> Dict[str, Any]:
        """
        Promote a candidate to a canonical event.

        Args:
            candidate_id: Candidate row id
            sync_brackets: Pull brackets now if the candidate has a provider id

        Returns:
            Dict with event_id, bracket counts and sync status

        Raises:
            LookupError: Unknown candidate
        """
        candidate = self.candidates.find_by_id(candidate_id)
        if candidate is None:
            raise LookupError(f"Candidate {candidate_id} not found")

        event = self.events.upsert_from_candidate(candidate)
        self.candidates.mark_approved(candidate.id, event.id, STATUS_APPROVED)
        logger.info(f"Approved candidate '{event.name}' as event {event.id}")

        result = {
            'success': True,
            'event_id': event.id,
            'sync_status': event.bracket_sync_status,
            'brackets': 0,
            'bouts': 0,
            'errors': [],
        }

        if sync_brackets and event.provider_event_id:
            result.update(await self._sync_and_summarize(event))

        return result

    def dismiss_candidate(self, candidate_id: str) -> Dict[str, Any]:
        """
        Mark a candidate as dismissed.

        Raises:
            LookupError: Unknown candidate
        """
        candidate = self.candidates.find_by_id(candidate_id)
        if candidate is None:
            raise LookupError(f"Candidate {candidate_id} not found")
        self.candidates.mark_dismissed(candidate_id)
        logger.info(f"Dismissed candidate '{candidate.name}'")
        return {'success': True, 'candidate_id': candidate_id}

    async def sync_event_brackets(self, event_id: str) -> Dict[str, Any]:
        """
        Re-sync the brackets of an existing canonical event.

        Raises:
            LookupError: Unknown event
            ValueError: The event has no provider id
        """
        event = self.events.find_by_id(event_id)
        if event is None:
            raise LookupError(f"Event {event_id} not found")
        if not event.provider_event_id:
            raise ValueError(f"Event {event_id} has no provider event id; run a rematch first")

        summary = await self._sync_and_summarize(event)
        return {'event_id': event_id, **summary}

    def get_event_brackets(self, event_id: str) -> Dict[str, Any]:
        """
        Stored bracket tree of an event: brackets by weight class, each with
        its bouts and placements.

        Raises:
            LookupError: Unknown event
        """
        event = self.events.find_by_id(event_id)
        if event is None:
            raise LookupError(f"Event {event_id} not found")

        result = {
            'event': {
                'id': event.id,
                'name': event.name,
                'start_date': event.start_date.isoformat() if event.start_date else None,
                'end_date': event.end_date.isoformat() if event.end_date else None,
                'venue': event.venue,
                'city': event.city,
                'state': event.state,
                'provider_event_id': event.provider_event_id,
                'bracket_sync_status': event.bracket_sync_status,
            },
            'brackets': [
                {
                    'id': bracket.id,
                    'provider_bracket_id': bracket.provider_bracket_id,
                    'weight_class': bracket.weight_class,
                    'participant_count': bracket.participant_count,
                    'bout_count': bracket.bout_count,
                    'synced_at': bracket.synced_at.isoformat() if bracket.synced_at else None,
                    'bouts': [_bout_dict(b) for b in bouts],
                    'placements': [
                        {
                            'place': p.place,
                            'wrestler_name': p.wrestler_name,
                            'team_name': p.team_name,
                            'provider_participant_id': p.provider_participant_id,
                        }
                        for p in placements
                    ],
                }
                for bracket, bouts, placements in self.events.get_bracket_tree(event_id)
            ],
        }
        if not result['brackets']:
            result['message'] = 'No bracket data synced yet'
        return result

    async def _sync_and_summarize(self, event) -> Dict[str, Any]:
        event_id = event.id
        try:
            sync = await self.bracket_sync.sync_event(event)
        except Exception as e:
            self.db.rollback()
            self._mark_event_error(event_id, e)
            return {'success': False, 'sync_status': SYNC_ERROR, 'brackets': 0, 'bouts': 0, 'errors': [str(e)]}

        return {
            'success': sync.success,
            'sync_status': sync.status,
            'brackets': sync.brackets,
            'bouts': sync.bouts,
            'placements': sync.placements,
            'errors': sync.errors,
        }

    # ========================================================================
    # History
    # ========================================================================

    def get_recent_runs(self, limit: int = 20, job_name: Optional[str] = None) -> List[Dict[str, Any]]:
        """Most recent run reports, newest first."""
        return [
            {
                'id': run.id,
                'job_name': run.job_name,
                'status': run.status,
                'started_at': run.started_at.isoformat() if run.started_at else None,
                'finished_at': run.finished_at.isoformat() if run.finished_at else None,
                'duration_ms': run.duration_ms,
                'scraped': run.scraped,
                'new_candidates': run.new_candidates,
                'matched': run.matched,
                'auto_approved': run.auto_approved,
                'auto_synced': run.auto_synced,
                'error_message': run.error_message,
                'log_lines': run.log_lines or [],
            }
            for run in self.runs.find_recent(limit=limit, job_name=job_name)
        ]

    async def cleanup(self):
        """Release the provider client."""
        await self.results_service.close()


def _bout_dict(bout) -> Dict[str, Any]:
    def side(prefix: str) -> Optional[Dict[str, Any]]:
        name = getattr(bout, f"{prefix}_name")
        if name is None and getattr(bout, f"{prefix}_provider_id") is None:
            return None
        return {
            'provider_id': getattr(bout, f"{prefix}_provider_id"),
            'name': name,
            'team': getattr(bout, f"{prefix}_team"),
            'display_team': getattr(bout, f"{prefix}_display_team"),
            'seed': getattr(bout, f"{prefix}_seed"),
            'score': getattr(bout, f"{prefix}_score"),
            'is_winner': getattr(bout, f"{prefix}_is_winner"),
        }

    return {
        'id': bout.id,
        'provider_bout_id': bout.provider_bout_id,
        'match_number': bout.match_number,
        'round_name': bout.round_name,
        'state': bout.state,
        'result': bout.result,
        'win_type': bout.win_type,
        'placement': bout.placement,
        'top': side('top'),
        'bottom': side('bottom'),
        'bracket_x': bout.bracket_x,
        'bracket_y': bout.bracket_y,
    }
