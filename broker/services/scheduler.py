"""
Background Scheduler

Periodic jobs:
- daily content sync at SYNC_CRON_HOUR
- reconcile_pending every RECONCILE_INTERVAL_MINUTES
- purge of expired room search sessions every PURGE_INTERVAL_MINUTES

Uses APScheduler's BackgroundScheduler; every job opens and closes its own
database session.
"""

import logging
from datetime import datetime
from typing import Dict, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..database import SessionLocal
from ..exceptions import BrokerError
from .booking_coordinator import BookingCoordinator
from .quote_cache import QuoteCache
from .sync_engine import SyncEngine

logger = logging.getLogger(__name__)

# Global scheduler instance
_scheduler: Optional[BackgroundScheduler] = None
_last_runs: Dict[str, Dict] = {}


def _record_run(job_id: str, result: Optional[Dict] = None, error: Optional[str] = None):
    _last_runs[job_id] = {
        "finished_at": datetime.utcnow().isoformat(),
        "result": result,
        "error": error,
    }


def run_content_sync_job():
    logger.info("Running scheduled content sync...")
    db = SessionLocal()
    try:
        results = SyncEngine(db, request_id="scheduled-sync").sync_all()
        _record_run("content_sync", {name: stats.as_dict() for name, stats in results.items()})
    except BrokerError as e:
        logger.error(f"Scheduled content sync failed: {e.message}")
        _record_run("content_sync", error=e.message)
    finally:
        db.close()


def run_reconcile_job():
    db = SessionLocal()
    try:
        summary = BookingCoordinator(db, request_id="scheduled-reconcile").reconcile_pending()
        _record_run("reconcile_pending", vars(summary))
    except BrokerError as e:
        logger.error(f"Scheduled reconciliation failed: {e.message}")
        _record_run("reconcile_pending", error=e.message)
    finally:
        db.close()


def run_purge_job():
    db = SessionLocal()
    try:
        removed = QuoteCache(db).purge_expired()
        _record_run("purge_expired", {"removed": removed})
    finally:
        db.close()


def start_scheduler() -> bool:
    """
    Start the background jobs.

    Returns:
        True if the scheduler is running afterwards
    """
    global _scheduler

    if _scheduler is not None and _scheduler.running:
        logger.warning("Scheduler is already running")
        return True

    timezone = settings.scheduler_timezone
    _scheduler = BackgroundScheduler(timezone=timezone)

    _scheduler.add_job(
        run_content_sync_job,
        CronTrigger(hour=settings.sync_cron_hour, minute=0, timezone=timezone),
        id="content_sync",
        name=f"Content sync at {settings.sync_cron_hour:02d}:00",
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )
    _scheduler.add_job(
        run_reconcile_job,
        IntervalTrigger(minutes=settings.reconcile_interval_minutes),
        id="reconcile_pending",
        name="Reconcile PENDING reservations",
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )
    _scheduler.add_job(
        run_purge_job,
        IntervalTrigger(minutes=settings.purge_interval_minutes),
        id="purge_expired",
        name="Purge expired room searches",
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    _scheduler.start()
    logger.info(
        f"Scheduler started (sync {settings.sync_cron_hour:02d}:00 {timezone}, "
        f"reconcile every {settings.reconcile_interval_minutes}m, "
        f"purge every {settings.purge_interval_minutes}m)"
    )
    return True


def stop_scheduler() -> bool:
    global _scheduler

    if _scheduler is None:
        return True

    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("Scheduler stopped")
    return True


def get_scheduler_status() -> Dict:
    status = {
        "running": False,
        "timezone": settings.scheduler_timezone,
        "jobs": [],
        "last_runs": dict(_last_runs),
    }

    if _scheduler is not None and _scheduler.running:
        status["running"] = True
        for job in _scheduler.get_jobs():
            status["jobs"].append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None
            })

    return status
