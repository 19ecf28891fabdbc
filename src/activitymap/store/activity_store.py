"""
ActivityStore: persistence gateway for normalized activities.

Point operations (put, get, exists, count, query) are plain synchronous
session calls. batch_put() is async because it paces itself between
batches and backs off when the database reports it is busy:

  - at most BATCH_SIZE activities per transaction
  - BATCH_DELAY after each batch (LARGE_SYNC_BATCH_DELAY above
    LARGE_SYNC_THRESHOLD activities)
  - on ThroughputExceededError, retry the same batch after 2**attempt
    seconds, up to MAX_RETRIES times, then re-raise; later batches are
    not written and earlier ones stay written

Writes are upserts keyed by the Strava activity id.
"""
import asyncio
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlmodel import Session, select

from activitymap.models.activity import Activity
from activitymap.models.sync import SyncLease

logger = logging.getLogger(__name__)

BATCH_SIZE = 25
BATCH_DELAY = 0.5
LARGE_SYNC_BATCH_DELAY = 1.0
LARGE_SYNC_THRESHOLD = 500
MAX_RETRIES = 3
LEASE_TTL = timedelta(hours=1)

_BUSY_MARKERS = ("database is locked", "database is busy", "lock wait timeout")


class ThroughputExceededError(RuntimeError):
    """Raised when the database is too busy to accept a write right now."""


def _is_busy(exc: OperationalError) -> bool:
    message = str(exc.orig if exc.orig is not None else exc).lower()
    return any(marker in message for marker in _BUSY_MARKERS)


def split_batches(items: List[Any], size: int = BATCH_SIZE) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class ActivityStore:
    """Reads and writes Activity rows and per-athlete sync leases."""

    def __init__(
        self,
        engine,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.engine = engine
        self._sleep = sleep

    # ── Point operations ──────────────────────────────────────────────────────

    def put(self, fields: Dict[str, Any]) -> Activity:
        """Insert or overwrite one activity."""
        activity = Activity(**{**fields, "stored_at": datetime.utcnow()})
        with Session(self.engine, expire_on_commit=False) as s:
            activity = s.merge(activity)
            s.commit()
        return activity

    def get(self, activity_id: int) -> Optional[Activity]:
        with Session(self.engine) as s:
            return s.get(Activity, int(activity_id))

    def exists(self, activity_id: int) -> bool:
        """Return True if the activity is stored. Lookup errors count as absent."""
        try:
            with Session(self.engine) as s:
                found = s.exec(
                    select(Activity.id).where(Activity.id == int(activity_id))
                ).first()
        except SQLAlchemyError as exc:
            logger.error("Error checking activity existence for %s: %s", activity_id, exc)
            return False
        return found is not None

    def count_by_owner(self, athlete_id: str) -> int:
        try:
            with Session(self.engine) as s:
                return s.exec(
                    select(func.count())
                    .select_from(Activity)
                    .where(Activity.athlete_id == str(athlete_id))
                ).one()
        except SQLAlchemyError as exc:
            logger.error("Error getting activity count for %s: %s", athlete_id, exc)
            return 0

    def query_by_owner(
        self,
        athlete_id: str,
        activity_type: Optional[str] = None,
        race_filter: Optional[str] = None,
    ) -> List[Activity]:
        """
        List an athlete's activities, newest first.

        Args:
            athlete_id: Owner.
            activity_type: "run", "ride", "swim"; None or "all" for every type.
            race_filter: "race" for races only, any other value except
                "all" for non-races; None or "all" for both.
        """
        statement = select(Activity).where(Activity.athlete_id == str(athlete_id))
        if activity_type and activity_type != "all":
            statement = statement.where(Activity.type == activity_type)
        if race_filter and race_filter != "all":
            statement = statement.where(Activity.is_race == (race_filter == "race"))
        statement = statement.order_by(Activity.start_date.desc(), Activity.id.desc())

        with Session(self.engine) as s:
            return list(s.exec(statement).all())

    # ── Batched writes ────────────────────────────────────────────────────────

    async def batch_put(self, activities: Iterable[Dict[str, Any]]) -> int:
        """
        Upsert activities in batches. Returns the number written.

        Raises:
            ThroughputExceededError: if a batch is still rejected after
                MAX_RETRIES retries.
        """
        items = list(activities)
        batches = split_batches(items)
        delay = LARGE_SYNC_BATCH_DELAY if len(items) > LARGE_SYNC_THRESHOLD else BATCH_DELAY
        total_stored = 0

        for number, batch in enumerate(batches, start=1):
            attempt = 0
            while True:
                try:
                    self._write_batch(batch)
                    break
                except ThroughputExceededError:
                    if attempt >= MAX_RETRIES:
                        logger.error(
                            "Giving up on batch %d/%d after %d retries", number, len(batches), attempt
                        )
                        raise
                    attempt += 1
                    backoff = 2 ** attempt
                    logger.warning(
                        "Throughput exceeded, retrying batch %d in %ds (attempt %d/%d)",
                        number, backoff, attempt, MAX_RETRIES,
                    )
                    await self._sleep(backoff)

            total_stored += len(batch)
            logger.info(
                "Stored batch %d/%d (%d activities) - Total: %d/%d",
                number, len(batches), len(batch), total_stored, len(items),
            )
            await self._sleep(delay)

        logger.info("Successfully stored %d activities", total_stored)
        return total_stored

    def _write_batch(self, batch: List[Dict[str, Any]]) -> None:
        stored_at = datetime.utcnow()
        try:
            with Session(self.engine) as s:
                for fields in batch:
                    s.merge(Activity(**{**fields, "stored_at": stored_at}))
                s.commit()
        except OperationalError as exc:
            if _is_busy(exc):
                raise ThroughputExceededError(str(exc)) from exc
            raise

    # ── Sync lease ────────────────────────────────────────────────────────────

    def acquire_lease(self, athlete_id: str, run_id: int, now: Optional[datetime] = None) -> bool:
        """
        Take the athlete's sync lease for run_id.

        Returns False if another run holds a lease younger than LEASE_TTL.
        """
        now = now or datetime.utcnow()
        with Session(self.engine) as s:
            lease = s.get(SyncLease, str(athlete_id))
            if lease is not None:
                if now - lease.acquired_at < LEASE_TTL:
                    return False
                logger.warning(
                    "Taking over stale sync lease for athlete %s (run %s since %s)",
                    athlete_id, lease.run_id, lease.acquired_at.isoformat(),
                )
                lease.run_id = run_id
                lease.acquired_at = now
            else:
                lease = SyncLease(athlete_id=str(athlete_id), run_id=run_id, acquired_at=now)
            s.add(lease)
            try:
                s.commit()
            except IntegrityError:
                return False
        return True

    def release_lease(self, athlete_id: str, run_id: int) -> None:
        with Session(self.engine) as s:
            lease = s.get(SyncLease, str(athlete_id))
            if lease is not None and lease.run_id == run_id:
                s.delete(lease)
                s.commit()
