"""Sync API routes for event discovery and reconciliation.

Provides endpoints for:
- Manual discovery (candidates left pending for review)
- Rematching rows that have no provider id
- Candidate review (list, approve, dismiss)
- Reading and re-syncing an event's brackets
- Run history and scheduler status
"""
import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.rate_limit import limiter
from app.core.scheduler import get_scheduler
from app.services.sync.orchestrator import REMATCH_SCOPES, SyncOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sync", tags=["sync"])


class RematchRequest(BaseModel):
    scope: str = Field("all", description="events, candidates or all")


class ApproveRequest(BaseModel):
    sync_brackets: bool = Field(True, description="Pull brackets now if a provider id is known")


def get_orchestrator(db: Session = Depends(get_db)) -> SyncOrchestrator:
    """Dependency to get sync orchestrator instance."""
    return SyncOrchestrator(db)


@router.post("/discover")
@limiter.limit(settings.DISCOVERY_RATE_LIMIT)
async def trigger_discovery(
    request: Request,
    pages: int = Query(1, ge=1, le=settings.MANUAL_DISCOVERY_MAX_PAGES, description="Listing pages to read"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
) -> Dict:
    """
    Manually trigger event discovery.

    This will:
    1. Read the requested number of listing pages
    2. Drop events already stored as candidates or events
    3. Match new events against the result provider
    4. Store them as pending candidates (no auto-approval)

    Returns:
        Run report (status, counts, log lines)
    """
    report = await orchestrator.run_manual_discovery(pages)
    return report.to_dict()


@router.post("/rematch")
async def trigger_rematch(
    body: Optional[RematchRequest] = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
) -> Dict:
    """
    Re-run identity matching for events and/or pending candidates without a provider id.

    Returns:
        Run report; ``matched`` is the number of rows that received an id
    """
    scope = body.scope if body else "all"
    if scope not in REMATCH_SCOPES:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid scope '{scope}', expected one of {', '.join(REMATCH_SCOPES)}"
        )

    report = await orchestrator.rematch(scope)
    return report.to_dict()


@router.get("/candidates")
async def list_candidates(
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
) -> Dict:
    """Pending candidates awaiting review, soonest first."""
    candidates = orchestrator.list_pending_candidates()
    return {
        'count': len(candidates),
        'candidates': candidates
    }


@router.post("/candidates/{candidate_id}/approve")
async def approve_candidate(
    candidate_id: str,
    body: Optional[ApproveRequest] = None,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
) -> Dict:
    """
    Promote a candidate to a canonical event, optionally syncing its brackets.
    """
    sync_brackets = body.sync_brackets if body else True
    try:
        return await orchestrator.approve_candidate(candidate_id, sync_brackets=sync_brackets)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/candidates/{candidate_id}/dismiss")
async def dismiss_candidate(
    candidate_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
) -> Dict:
    """Dismiss a candidate so it no longer shows up for review."""
    try:
        return orchestrator.dismiss_candidate(candidate_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/events/{event_id}/brackets")
async def get_event_brackets(
    event_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
) -> Dict:
    """
    Get the synced bracket tree of an event.

    Brackets are ordered by weight class; each carries its bouts (by round
    and match number) and placements.
    """
    try:
        return orchestrator.get_event_brackets(event_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.post("/events/{event_id}/brackets")
async def sync_event_brackets(
    event_id: str,
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
) -> Dict:
    """
    Re-sync all brackets of an event from the result provider.

    Existing bouts and placements of each bracket are replaced.
    """
    try:
        return await orchestrator.sync_event_brackets(event_id)
    except LookupError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.get("/runs")
async def get_recent_runs(
    limit: int = Query(20, ge=1, le=100),
    job_name: Optional[str] = Query(None, description="Filter by job (discover-events, discover-manual, rematch)"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator)
) -> Dict:
    """Recent run reports, newest first."""
    runs = orchestrator.get_recent_runs(limit=limit, job_name=job_name)
    return {
        'count': len(runs),
        'runs': runs
    }


@router.get("/scheduler/status")
async def get_scheduler_status() -> Dict:
    """
    Get the current status of the automation scheduler.

    Returns:
        Scheduler status including running state and job list
    """
    scheduler = get_scheduler()

    if scheduler is None:
        return {
            'running': False,
            'message': 'Scheduler not initialized'
        }

    jobs = scheduler.get_jobs()
    return {
        'running': scheduler.running,
        'jobs': jobs,
        'total_jobs': len(jobs)
    }
