import logging
import os
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlalchemy.exc import SQLAlchemyError
from app.core.config import settings
from app.core.database import SessionLocal
from app.services.attempt_control import attempt_control_service
from app.services.grading import grading_service

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


# Plain functions: APScheduler runs them in its thread pool, off the event loop.
def expire_overdue_attempts():
    db = SessionLocal()
    try:
        result = attempt_control_service.expire_overdue(db)
        if result.expired_count:
            logger.info(f"Expired {result.expired_count} overdue attempt(s)")
    except SQLAlchemyError as e:
        logger.error(f"Error expiring overdue attempts: {e}", exc_info=True)
    finally:
        db.close()


def process_pending_grading():
    db = SessionLocal()
    try:
        grading_service.process_pending_grading_sessions(db)
    except SQLAlchemyError as e:
        logger.error(f"Error processing pending grading sessions: {e}", exc_info=True)
    finally:
        db.close()


def start_scheduler():
    if os.getenv("TESTING") == "true":
        logger.info("Scheduler disabled in test environment")
        return

    if not scheduler.running:
        scheduler.add_job(
            expire_overdue_attempts,
            'interval',
            seconds=settings.EXPIRY_SWEEP_INTERVAL_SECONDS,
            id='expire_overdue_attempts',
            name='Expire Overdue Attempts',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        scheduler.add_job(
            process_pending_grading,
            'interval',
            seconds=settings.PENDING_GRADING_INTERVAL_SECONDS,
            id='process_pending_grading',
            name='Process Pending Grading Sessions',
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        scheduler.start()
        logger.info("Scheduler started with expiry sweep and pending grading jobs")


def stop_scheduler():
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
