"""
Background scheduler for day rollover and widget refresh.
Handles:
- Finalizing past days into the streak ledger after midnight
- Clearing yesterday's app lock-in
- Refreshing the widget snapshot
"""

import logging
from datetime import datetime
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy.orm import Session

from morningproof.database import SessionLocal
from morningproof.constants import WIDGET_REFRESH_MINUTES
import morningproof.crud as crud

logger = logging.getLogger("morningproof.scheduler")


def check_day_rollover():
    """Finalize any unrecorded past day and reset a stale lock-in"""
    db: Session = SessionLocal()
    try:
        result = crud.run_day_rollover(db, datetime.now())
        if result["finalized"] or result["lock_reset"]:
            logger.info(
                f"Day rollover: {result['finalized']} day(s) finalized, "
                f"lock reset: {result['lock_reset']}"
            )
    except Exception as e:
        logger.error(f"Error in check_day_rollover: {e}")
    finally:
        db.close()


def refresh_widget():
    """Rewrite the widget snapshot so countdowns stay current"""
    db: Session = SessionLocal()
    try:
        crud.refresh_widget(db, datetime.now())
    except Exception as e:
        logger.error(f"Error in refresh_widget: {e}")
    finally:
        db.close()


# Create scheduler instance
scheduler = BackgroundScheduler()


def start_scheduler():
    """Start the background scheduler"""
    logger.info("Starting Morning Proof background scheduler")

    # The job itself is a no-op until a day has ended unrecorded
    scheduler.add_job(
        check_day_rollover,
        CronTrigger(minute='*'),  # Every minute
        id='check_day_rollover',
        replace_existing=True
    )

    scheduler.add_job(
        refresh_widget,
        CronTrigger(minute=f'*/{WIDGET_REFRESH_MINUTES}'),
        id='refresh_widget',
        replace_existing=True
    )

    scheduler.start()
    logger.info("Background scheduler started successfully")


def stop_scheduler():
    """Stop the background scheduler"""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped")
