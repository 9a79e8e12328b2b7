from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from qr_auth.config import settings
from qr_auth.database import AsyncSessionLocal
from qr_auth.services.session_service import cleanup_expired_sessions
import logging

scheduler = AsyncIOScheduler()

logger = logging.getLogger(__name__)

CLEANUP_JOB_ID = "cleanup_expired_sessions"


async def run_session_cleanup() -> int:
    async with AsyncSessionLocal() as db:
        count = await cleanup_expired_sessions(db)
    logger.info(f"[Scheduler] Session cleanup removed {count} row(s)")
    return count


def schedule_session_cleanup(interval_minutes: int | None = None):
    interval_minutes = interval_minutes or settings.session_cleanup_interval_minutes
    scheduler.add_job(
        run_session_cleanup,
        trigger=IntervalTrigger(minutes=interval_minutes),
        id=CLEANUP_JOB_ID,
        replace_existing=True,
    )
    logger.info(f"[Scheduler] Session cleanup scheduled every {interval_minutes} minute(s)")
