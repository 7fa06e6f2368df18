"""
Scheduler Service
Runs the daily background sync of linked Plaid items using APScheduler
"""
import logging
from collections import defaultdict
from typing import Any, Dict, List

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.core.config import settings

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "daily_plaid_sync"

# Scheduler instance (exported for the health router)
scheduler: BackgroundScheduler = None


def daily_sync_job() -> Dict[str, int]:
    """Sync transactions and recurring charges for every linked item."""
    from app.db import dynamo
    from app.utils.sync import sync_user_items

    items_by_user: Dict[str, List[Dict[str, Any]]] = defaultdict(list)
    for item in dynamo.get_all_plaid_items():
        items_by_user[item["user_id"]].append(item)

    logger.info(f"Executing daily sync for {len(items_by_user)} users...")
    totals = {"users": len(items_by_user), "transactions": 0, "recurring": 0}
    for user_id, items in items_by_user.items():
        try:
            result = sync_user_items(user_id, items)
        except Exception as e:
            logger.error(f"Daily sync failed for user {user_id}: {str(e)}", exc_info=True)
            continue
        totals["transactions"] += result["transactions"]
        totals["recurring"] += result["recurring"]

    logger.info(
        f"Daily sync completed: {totals['transactions']} transactions, "
        f"{totals['recurring']} recurring charges"
    )
    return totals


def start_scheduler():
    """Start the background scheduler with the daily sync job"""
    global scheduler

    if scheduler is not None:
        logger.warning("Scheduler is already running")
        return

    scheduler = BackgroundScheduler(timezone="UTC")
    scheduler.add_job(
        daily_sync_job,
        trigger=CronTrigger(hour=settings.SYNC_HOUR, minute=settings.SYNC_MINUTE),
        id=SYNC_JOB_ID,
        name="Daily Plaid Sync",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(f"Scheduler started: daily sync at {settings.SYNC_HOUR:02d}:{settings.SYNC_MINUTE:02d} UTC")


def stop_scheduler():
    """Stop the background scheduler"""
    global scheduler

    if scheduler is not None:
        scheduler.shutdown()
        scheduler = None
        logger.info("Scheduler stopped")


def get_scheduler_status():
    """Get current scheduler status"""
    if scheduler is None:
        return {"running": False}

    jobs = []
    for job in scheduler.get_jobs():
        jobs.append({
            "id": job.id,
            "name": job.name,
            "next_run": str(job.next_run_time) if job.next_run_time else None
        })

    return {
        "running": scheduler.running,
        "jobs": jobs
    }
