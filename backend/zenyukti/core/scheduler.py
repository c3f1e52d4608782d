"""
Background scheduler for periodic tasks.

This module manages background jobs that run on a schedule:
- Purge expired password reset tickets: Runs every RESET_TICKET_PURGE_MINUTES
"""

from datetime import datetime, timezone
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy.exc import SQLAlchemyError
from zenyukti.core.config import settings
from zenyukti.core.database import SessionLocal
from zenyukti.services.account_directory import account_directory
import logging

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()


def purge_expired_reset_tickets_job(session_factory=SessionLocal) -> int:
    """
    Background job to clear expired reset tickets.

    Expired tickets are already rejected at reset time; this only keeps
    stale digests from lingering in the users table.
    """
    db = session_factory()
    try:
        purged = account_directory.purge_expired_reset_tickets(db, datetime.now(timezone.utc))
        if purged > 0:
            logger.info(f"Purge job completed: Cleared {purged} expired reset tickets")
        else:
            logger.debug("Purge job completed: No expired reset tickets found")
        return purged
    except SQLAlchemyError as e:
        logger.error(f"Error in purge_expired_reset_tickets_job: {str(e)}")
        db.rollback()
        return 0
    finally:
        db.close()


def start_scheduler():
    """
    Start the background scheduler.

    This should be called when the FastAPI app starts.
    """
    if not scheduler.running:
        scheduler.add_job(
            purge_expired_reset_tickets_job,
            trigger=IntervalTrigger(minutes=settings.RESET_TICKET_PURGE_MINUTES),
            id="purge_expired_reset_tickets",
            name="Purge expired reset tickets",
            replace_existing=True
        )

        scheduler.start()
        logger.info(
            f"Background scheduler started. Reset ticket purge runs every "
            f"{settings.RESET_TICKET_PURGE_MINUTES} minutes."
        )


def stop_scheduler():
    """
    Stop the background scheduler.

    This should be called when the FastAPI app shuts down.
    """
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Background scheduler stopped.")
