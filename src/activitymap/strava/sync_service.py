"""
StravaSyncService orchestrates fetching activities from Strava and
persisting them to the activity store.

Flow for one sync run:
  1. Create SyncLog (status="running")
  2. Take the athlete's sync lease (another live run → status="rejected",
     which latest_sync_log() ignores)
  3. Page through /athlete/activities (50 per page, 200 ms apart) until an
     empty page, dropping virtual/indoor activities and normalizing the rest
  4. Persist:
       full        → tag every activity with the athlete and batch-upsert
       incremental → skip ids already stored, batch-insert the rest
  5. Update SyncLog (status="completed", counts) and release the lease

On any exception: update SyncLog (status="failed") and re-raise. Batches
written before the failure stay written; re-running an incremental sync
picks up the rest.

Detail path: get_activity_detail() serves a stored activity when it already
has a full track, otherwise fetches it from Strava, normalizes it with every
coordinate and stores it for next time.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

import httpx
from sqlmodel import Session, select

from activitymap.models.sync import SyncLog
from activitymap.store.activity_store import ActivityStore
from activitymap.strava.normalizer import (
    ActivityView,
    is_virtual_or_indoor,
    normalize_activity,
)

logger = logging.getLogger(__name__)

PAGE_SIZE = 50
PAGE_DELAY = 0.2
# A stored activity with more points than this came from the detail fetch
# (list sync keeps at most 20), so it is served without refetching.
DETAIL_COORDINATE_THRESHOLD = 20
# Status of a run turned away because another run held the lease
REJECTED = "rejected"


class SyncInProgressError(RuntimeError):
    """Raised when another sync run already holds the athlete's lease."""


class StravaSyncService:
    """Orchestrates Strava → store sync for one athlete."""

    def __init__(
        self,
        client,
        store: ActivityStore,
        resolver,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        """
        Args:
            client: StravaClient instance (or AsyncMock in tests).
            store: ActivityStore bound to the database engine.
            resolver: CountryResolver for each activity's first point.
        """
        self.client = client
        self.store = store
        self.resolver = resolver
        self._sleep = sleep

    # ─── Bulk sync ────────────────────────────────────────────────────────────

    async def sync(self, athlete_id: str, full_sync: bool = False) -> SyncLog:
        """
        Fetch every activity for the athlete and persist it.

        Returns:
            The finished SyncLog row.

        Raises:
            SyncInProgressError: if another run holds the athlete's lease.
            Any exception from the Strava client or the store (after
            recording it on the log).
        """
        athlete_id = str(athlete_id)
        mode = "full" if full_sync else "incremental"
        log = self._create_sync_log(athlete_id, mode)
        logger.info("Starting %s sync for athlete %s (run %s)", mode, athlete_id, log.id)

        if not self.store.acquire_lease(athlete_id, log.id):
            message = "sync already in progress"
            self._finish_sync_log(log, status=REJECTED, error_message=message)
            raise SyncInProgressError(f"Sync already in progress for athlete {athlete_id}")

        try:
            activities = await self.fetch_activities()
            stored, skipped = await self._persist(athlete_id, activities, full_sync)
            total = self.store.count_by_owner(athlete_id)
            logger.info(
                "Sync complete for athlete %s: new=%d skipped=%d total=%d",
                athlete_id, stored, skipped, total,
            )
            return self._finish_sync_log(
                log,
                status="completed",
                fetched=len(activities),
                stored=stored,
                skipped=skipped,
            )
        except Exception as exc:
            self._finish_sync_log(log, status="failed", error_message=str(exc))
            raise
        finally:
            self.store.release_lease(athlete_id, log.id)

    async def fetch_activities(self) -> List[Dict[str, Any]]:
        """Page through the athlete's activities and normalize the keepers."""
        activities: List[Dict[str, Any]] = []
        page = 1

        while True:
            logger.info("Fetching activities page %d...", page)
            page_items = await self.client.list_activities(page=page, per_page=PAGE_SIZE)
            if not page_items:
                break

            for raw in page_items:
                if is_virtual_or_indoor(raw, ActivityView.LIST):
                    logger.info(
                        "Skipping virtual/indoor activity: %s (%s)", raw.get("name"), raw.get("type")
                    )
                    continue
                fields = await normalize_activity(raw, self.resolver, ActivityView.LIST)
                if fields is not None:
                    activities.append(fields)

            page += 1
            await self._sleep(PAGE_DELAY)

        logger.info("Fetched %d activities total", len(activities))
        return activities

    async def _persist(
        self, athlete_id: str, activities: List[Dict[str, Any]], full_sync: bool
    ) -> Tuple[int, int]:
        """Write activities. Returns (stored, skipped)."""
        if full_sync:
            tagged = [{**a, "athlete_id": athlete_id} for a in activities]
            return await self.store.batch_put(tagged), 0

        logger.info("Performing incremental sync - checking for duplicates")
        to_store = []
        skipped = 0
        for activity in activities:
            if self.store.exists(activity["id"]):
                skipped += 1
            else:
                to_store.append({**activity, "athlete_id": athlete_id})

        stored = await self.store.batch_put(to_store) if to_store else 0
        return stored, skipped

    # ─── Detail path ──────────────────────────────────────────────────────────

    async def get_activity_detail(
        self, athlete_id: str, activity_id: int
    ) -> Optional[Dict[str, Any]]:
        """
        Return one activity with its full track.

        Returns:
            Activity dict, or None if Strava's copy is virtual or lacks GPS.

        Raises:
            StravaUnauthorizedError / httpx.HTTPError from the Strava client.
        """
        stored = self.store.get(activity_id)
        if stored is not None and stored.coordinate_count > DETAIL_COORDINATE_THRESHOLD:
            logger.info("Returning detailed activity from store: %s", activity_id)
            return stored.to_dict()

        logger.info("Fetching detailed activity from Strava: %s", activity_id)
        raw = await self.client.get_activity(activity_id)
        fields = await normalize_activity(
            raw, self.resolver, ActivityView.DETAIL, athlete_id=athlete_id
        )
        if fields is None:
            return None

        try:
            activity = self.store.put(fields)
        except Exception as exc:
            logger.warning("Failed to store detailed activity %s: %s", activity_id, exc)
            return {**fields, "start_date": _isoformat(fields.get("start_date"))}

        logger.info("Stored detailed activity %s", activity_id)
        return activity.to_dict()

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _create_sync_log(self, athlete_id: str, mode: str) -> SyncLog:
        log = SyncLog(athlete_id=athlete_id, mode=mode, started_at=datetime.utcnow(), status="running")
        with Session(self.store.engine) as s:
            s.add(log)
            s.commit()
            s.refresh(log)
        return log

    def _finish_sync_log(
        self,
        log: SyncLog,
        *,
        status: str,
        fetched: int = 0,
        stored: int = 0,
        skipped: int = 0,
        error_message: Optional[str] = None,
    ) -> SyncLog:
        with Session(self.store.engine, expire_on_commit=False) as s:
            db_log = s.get(SyncLog, log.id)
            db_log.status = status
            db_log.finished_at = datetime.utcnow()
            db_log.activities_fetched = fetched
            db_log.activities_stored = stored
            db_log.activities_skipped = skipped
            db_log.error_message = error_message
            s.add(db_log)
            s.commit()
        return db_log


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def latest_sync_log(session: Session, athlete_id: str) -> Optional[SyncLog]:
    """Most recent sync run for the athlete, not counting rejected duplicates."""
    return session.exec(
        select(SyncLog)
        .where(SyncLog.athlete_id == str(athlete_id), SyncLog.status != REJECTED)
        .order_by(SyncLog.started_at.desc(), SyncLog.id.desc())
    ).first()


async def run_background_sync(athlete_id: str, full_sync: bool, engine=None) -> None:
    """
    Background task body: build the collaborators from settings and sync.

    Runs after the HTTP response has been sent, so every failure is only
    logged; the SyncLog row carries the outcome.
    """
    from activitymap.config import get_settings
    from activitymap.db.engine import get_engine
    from activitymap.geo.country_resolver import CountryResolver
    from activitymap.strava.auth import TokenProvider
    from activitymap.strava.client import StravaClient

    settings = get_settings()
    if engine is None:
        engine = get_engine()

    try:
        async with httpx.AsyncClient() as http:
            token = await TokenProvider(engine, http=http).get_valid_access_token(athlete_id)
            service = StravaSyncService(
                client=StravaClient(token, http=http),
                store=ActivityStore(engine),
                resolver=CountryResolver.from_settings(settings, http),
            )
            await service.sync(athlete_id, full_sync=full_sync)
    except Exception:
        logger.exception("Background sync failed for athlete %s", athlete_id)
