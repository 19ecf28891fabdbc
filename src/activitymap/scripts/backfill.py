"""
Backfill script: run one sync for an athlete in the foreground.

Usage:
    python -m activitymap.scripts.backfill --athlete-id 12345
    python -m activitymap.scripts.backfill --athlete-id 12345 --full

Incremental by default (only activities not yet stored are written);
--full re-normalizes and overwrites every activity. The athlete must have
connected Strava through /auth/strava first.
"""
import argparse
import asyncio
import logging
import sys

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(message)s")
logger = logging.getLogger(__name__)


async def _backfill(athlete_id: str, full_sync: bool) -> int:
    import httpx

    from activitymap.config import get_settings
    from activitymap.db.engine import get_engine
    from activitymap.geo.country_resolver import CountryResolver
    from activitymap.store.activity_store import ActivityStore
    from activitymap.strava.auth import AuthNotFoundError, TokenProvider
    from activitymap.strava.client import StravaClient
    from activitymap.strava.sync_service import StravaSyncService

    settings = get_settings()
    engine = get_engine()

    async with httpx.AsyncClient() as http:
        try:
            token = await TokenProvider(engine, http=http).get_valid_access_token(athlete_id)
        except AuthNotFoundError as exc:
            logger.error("%s. Connect Strava via /auth/strava first.", exc)
            return 1

        store = ActivityStore(engine)
        service = StravaSyncService(
            client=StravaClient(token, http=http),
            store=store,
            resolver=CountryResolver.from_settings(settings, http),
        )
        log = await service.sync(athlete_id, full_sync=full_sync)

    logger.info(
        "Backfill complete. Fetched: %d, Stored: %d, Skipped (already exist): %d, Total: %d",
        log.activities_fetched,
        log.activities_stored,
        log.activities_skipped,
        store.count_by_owner(athlete_id),
    )
    return 0


def main() -> None:
    parser = argparse.ArgumentParser(description="Sync Strava activities for one athlete")
    parser.add_argument("--athlete-id", required=True, help="Strava athlete id")
    parser.add_argument(
        "--full",
        action="store_true",
        help="Overwrite every activity instead of only adding new ones",
    )
    args = parser.parse_args()
    sys.exit(asyncio.run(_backfill(args.athlete_id, args.full)))


if __name__ == "__main__":
    main()
