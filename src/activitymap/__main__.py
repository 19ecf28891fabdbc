"""
Main entrypoint: serves the API and runs the daily poll in one process.

Usage:
    python -m activitymap setup     # create database tables
    python -m activitymap           # starts API + scheduler
    uvicorn activitymap.api.main:app --host 0.0.0.0 --port 8000  # API only
"""
import asyncio
import logging
import sys

from activitymap.config import get_settings

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


def _run_setup() -> None:
    from activitymap.scripts.setup import run_setup
    run_setup()


async def _run_server() -> None:
    import uvicorn

    from activitymap.api.main import app
    from activitymap.db.engine import get_engine
    from activitymap.scheduler.jobs import build_scheduler

    settings = get_settings()
    engine = get_engine()

    if not settings.strava_client_id or not settings.strava_client_secret:
        logger.warning(
            "Strava credentials not configured. "
            "Set STRAVA_CLIENT_ID and STRAVA_CLIENT_SECRET in .env"
        )
    if not settings.google_geocoding_api_key:
        logger.info("GOOGLE_GEOCODING_API_KEY not set; country lookup starts at Nominatim.")

    scheduler = build_scheduler(engine)
    scheduler.start()
    logger.info(
        "Scheduler started (incremental poll at %02d:00 UTC)",
        settings.sync_poll_hour,
    )

    server = uvicorn.Server(
        uvicorn.Config(app, host=settings.host, port=settings.port, log_config=None)
    )
    logger.info("Serving API on %s:%d", settings.host, settings.port)
    try:
        await server.serve()
    finally:
        scheduler.shutdown()
        logger.info("Goodbye.")


if __name__ == "__main__":
    # Dispatch on first argument: `python -m activitymap setup` or just `python -m activitymap`
    if len(sys.argv) > 1 and sys.argv[1] == "setup":
        _run_setup()
    else:
        asyncio.run(_run_server())
