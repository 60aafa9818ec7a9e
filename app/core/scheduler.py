"""
Automated task scheduler for the bracket sync service.

Scheduled background jobs:
- Event discovery: scrape the listing source, match against the result
  provider, auto-approve matches and sync their brackets

Scheduler: APScheduler (lightweight, FastAPI-compatible)
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.metrics import scheduler_jobs_total, scheduler_running
from app.services.sync.adapters.listing_adapter import get_listing_source
from app.services.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


async def run_discovery_job() -> Optional[dict]:
    """
    One scheduled discovery run in its own database session.

    Returns:
        The run report as a dict, or None when no listing source is configured
    """
    listing_source = get_listing_source()
    if listing_source is None:
        logger.warning("⚠️ Discovery skipped: LISTING_SOURCE_CLASS is not set")
        return None

    db = SessionLocal()
    try:
        orchestrator = SyncOrchestrator(db, listing_source=listing_source)
        report = await orchestrator.run_scheduled_discovery()
        if report.success:
            logger.info(
                f"✅ Discovery: {report.new_candidates} new, {report.matched} matched, "
                f"{report.auto_synced}/{report.auto_approved} synced ({report.duration_ms}ms)"
            )
        else:
            logger.error(f"❌ Discovery failed: {report.error_message}")
        return report.to_dict()
    finally:
        db.close()


class AutomationScheduler:
    """
    Main scheduler for automated background tasks.

    All scheduled jobs are defined here with their schedules and error handling.
    """

    def __init__(self):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting automation scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone=settings.SCHEDULER_TIMEZONE,
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job
                'misfire_grace_time': 300
            }
        )

        self._schedule_event_discovery()

        self.scheduler.start()
        self.running = True
        scheduler_running.set(1)
        scheduler_jobs_total.set(len(self.scheduler.get_jobs()))

        logger.info("✅ Scheduler started with %d jobs", len(self.scheduler.get_jobs()))
        self._log_scheduled_jobs()

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=True)
        self.running = False
        scheduler_running.set(0)
        logger.info("✅ Scheduler stopped")

    def _schedule_event_discovery(self):
        """
        Schedule: Discover and sync new events.

        Frequency: Daily (DISCOVERY_CRON_HOUR:DISCOVERY_CRON_MINUTE)
        Purpose: Pull new tournaments, link them to the result provider and
        import brackets for every match without manual review
        """
        if self.scheduler is None:
            return

        @self.scheduler.scheduled_job(
            trigger=CronTrigger(
                hour=settings.DISCOVERY_CRON_HOUR,
                minute=settings.DISCOVERY_CRON_MINUTE,
                timezone=settings.SCHEDULER_TIMEZONE
            ),
            id='discover_events',
            name='Discover Events and Sync Brackets',
            misfire_grace_time=900
        )
        async def discover_events_job():
            try:
                await run_discovery_job()
            except Exception as e:
                logger.error(f"❌ Discovery job crashed: {e}")

        logger.info(
            f"📅 Scheduled: Event discovery (hour={settings.DISCOVERY_CRON_HOUR}, "
            f"minute={settings.DISCOVERY_CRON_MINUTE})"
        )

    def get_jobs(self) -> list:
        """Scheduled jobs as plain dicts."""
        if self.scheduler is None:
            return []
        return [
            {
                'id': job.id,
                'name': job.name,
                'next_run': job.next_run_time.isoformat() if job.next_run_time else None,
                'trigger': str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        for job in self.get_jobs():
            logger.info(f"  • {job['name']} (id={job['id']}, next run: {job['next_run'] or 'pending'})")


# Global scheduler instance
_scheduler: Optional[AutomationScheduler] = None


async def start_scheduler():
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AutomationScheduler()
        await _scheduler.start()
    return _scheduler


async def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_scheduler() -> Optional[AutomationScheduler]:
    """Get the global scheduler instance."""
    return _scheduler
