"""
Sync run log repository. Rows are created as ``running`` and finished once.
"""
import uuid
from typing import List

from app.models import SyncRunLog
from app.repositories.base import BaseRepository
from app.services.sync.types import SyncRunReport
from app.utils.timezone import utc_now


class SyncRunRepository(BaseRepository[SyncRunLog]):
    """Repository for orchestrator run reports."""

    def __init__(self, db):
        super().__init__(SyncRunLog, db)

    def start(self, job_name: str, run_id: str = None) -> SyncRunLog:
        run = SyncRunLog(
            id=run_id or str(uuid.uuid4()),
            job_name=job_name,
            status="running",
            started_at=utc_now(),
        )
        self.db.add(run)
        self.db.commit()
        return run

    def finish(self, run_id: str, report: SyncRunReport) -> None:
        """Copy the report's terminal state onto the run row."""
        run = self.find_by_id(run_id)
        if run is None:
            return
        run.status = report.status
        run.finished_at = utc_now()
        run.duration_ms = report.duration_ms
        run.scraped = report.scraped
        run.new_candidates = report.new_candidates
        run.matched = report.matched
        run.auto_approved = report.auto_approved
        run.auto_synced = report.auto_synced
        run.error_message = report.error_message
        run.log_lines = list(report.log_lines)
        self.db.commit()

    def find_recent(self, limit: int = 20, job_name: str = None) -> List[SyncRunLog]:
        query = self.query()
        if job_name:
            query = query.filter(SyncRunLog.job_name == job_name)
        return query.order_by(SyncRunLog.started_at.desc()).limit(limit).all()
