"""
APScheduler jobs for background sync.

The incremental poll runs once a day and syncs every athlete who has
connected Strava, so new activities show up even if nobody presses
"sync" in the app. Incremental mode only writes activities not yet stored.
"""
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from sqlmodel import Session, select

from activitymap.config import get_settings
from activitymap.models.auth import AuthRecord

logger = logging.getLogger(__name__)


def build_scheduler(engine) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine to pass to the sync job.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _incremental_poll,
        trigger="cron",
        hour=settings.sync_poll_hour,
        minute=0,
        id="incremental_poll",
        replace_existing=True,
        kwargs={"engine": engine},
    )

    return scheduler


async def _incremental_poll(engine) -> None:
    """
    Daily job: incremental sync for every authenticated athlete.

    Athletes are synced one after another; run_background_sync logs its own
    failures, so one broken account doesn't stop the rest.
    """
    from activitymap.strava.sync_service import run_background_sync

    logger.info("Incremental poll starting at %s", datetime.utcnow().isoformat())

    with Session(engine) as s:
        athlete_ids = s.exec(select(AuthRecord.athlete_id)).all()

    for athlete_id in athlete_ids:
        await run_background_sync(athlete_id, full_sync=False, engine=engine)
        logger.info("Polled athlete %s", athlete_id)

    logger.info("Incremental poll finished (%d athletes)", len(athlete_ids))
