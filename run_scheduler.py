#!/usr/bin/env python3
"""
Background runner for the bracket sync automation scheduler.

This script runs the discovery scheduler as a standalone background service.
It can be run via systemd, supervisor, or directly.

Usage:
    python run_scheduler.py              # Run in foreground
    python run_scheduler.py --run-once   # Run one discovery now and exit
    python run_scheduler.py --list-jobs  # Show the configured schedule
"""
import asyncio
import argparse
import json
import signal
import sys
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from app.core.scheduler import AutomationScheduler, run_discovery_job
from app.core.config import settings
from app.core.logging import configure_logging, get_logger

configure_logging(level=settings.LOG_LEVEL, json_output=settings.is_production())
logger = get_logger(__name__)


class SchedulerRunner:
    """Runner for the automation scheduler."""

    def __init__(self):
        self.scheduler: Optional[AutomationScheduler] = None
        self.shutdown = False

    async def start(self):
        """Start the scheduler and run until shutdown."""
        logger.info("🚀 Starting scheduler runner...")

        from app.core.database import init_db
        init_db()

        self.scheduler = AutomationScheduler()
        await self.scheduler.start()

        logger.info("✅ Scheduler is now running")
        logger.info("Press Ctrl+C to stop")

        # Setup signal handlers for graceful shutdown
        loop = asyncio.get_running_loop()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        # Keep running until shutdown
        while not self.shutdown:
            await asyncio.sleep(1)

        await self.scheduler.stop()

        from app.services.core.results_api_service import get_results_service
        await get_results_service().close()
        logger.info("✅ Scheduler runner stopped")

    def _set_shutdown(self):
        """Set shutdown flag."""
        logger.info("⏹️  Shutdown signal received")
        self.shutdown = True


async def run_once() -> bool:
    """Run a single scheduled-style discovery and print its report."""
    from app.core.database import init_db
    from app.services.core.results_api_service import get_results_service

    init_db()
    try:
        report = await run_discovery_job()
    finally:
        await get_results_service().close()

    if report is None:
        print("❌ No listing source configured (set LISTING_SOURCE_CLASS)")
        return False

    print(json.dumps(report, indent=2, default=str))
    return report.get('status') == 'success'


def list_jobs():
    """Print the configured schedule."""
    print("=" * 60)
    print("SCHEDULED AUTOMATION JOBS")
    print("=" * 60)
    print()
    print("📋 Discover Events and Sync Brackets")
    print("   ID: discover_events")
    print(
        f"   Schedule: cron hour={settings.DISCOVERY_CRON_HOUR} "
        f"minute={settings.DISCOVERY_CRON_MINUTE} ({settings.SCHEDULER_TIMEZONE})"
    )
    print(f"   Listing pages: {settings.SCHEDULED_DISCOVERY_PAGES}")
    print(f"   Listing source: {settings.LISTING_SOURCE_CLASS or '(not configured)'}")
    print()
    print("=" * 60)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Run the bracket sync automation scheduler'
    )

    parser.add_argument(
        '--run-once',
        action='store_true',
        help='Run one discovery immediately and exit'
    )

    parser.add_argument(
        '--list-jobs',
        action='store_true',
        help='List all scheduled jobs and exit'
    )

    args = parser.parse_args()

    if args.list_jobs:
        list_jobs()
        return 0

    if args.run_once:
        result = asyncio.run(run_once())
        return 0 if result else 1

    runner = SchedulerRunner()

    try:
        asyncio.run(runner.start())
    except KeyboardInterrupt:
        logger.info("🛑 Received interrupt, shutting down...")
        return 0
    except Exception as e:
        logger.error(f"❌ Scheduler error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
