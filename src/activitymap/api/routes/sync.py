"""Sync trigger and status routes."""
import logging
from datetime import datetime
from typing import Optional, Union

import httpx
from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session

from activitymap.api.dependencies import get_store, get_token_provider
from activitymap.db.engine import get_session
from activitymap.store.activity_store import ActivityStore
from activitymap.strava.auth import AuthNotFoundError, TokenProvider
from activitymap.strava.sync_service import latest_sync_log, run_background_sync

logger = logging.getLogger(__name__)

router = APIRouter()


class SyncTriggerRequest(BaseModel):
    athlete_id: Optional[Union[int, str]] = None
    full_sync: bool = False


class SyncStatusResponse(BaseModel):
    status: str
    mode: Optional[str]
    started_at: Optional[datetime]
    finished_at: Optional[datetime]
    activities_fetched: Optional[int]
    activities_stored: Optional[int]
    activities_skipped: Optional[int]
    error_message: Optional[str]
    total_activities: int
    last_checked: datetime


@router.post("")
async def trigger_sync(
    request: SyncTriggerRequest,
    background_tasks: BackgroundTasks,
    tokens: TokenProvider = Depends(get_token_provider),
):
    """
    Start a Strava sync for an athlete.
    Returns immediately; sync runs in background.
    """
    if not request.athlete_id:
        raise HTTPException(status_code=400, detail="athlete_id is required")
    athlete_id = str(request.athlete_id)

    # Fail fast on missing auth rather than inside the background task
    try:
        await tokens.get_valid_access_token(athlete_id)
    except AuthNotFoundError:
        raise HTTPException(status_code=401, detail="Authentication expired")
    except httpx.HTTPError as exc:
        logger.error("Error starting sync for athlete %s: %s", athlete_id, exc)
        raise HTTPException(status_code=500, detail="Failed to start sync")

    background_tasks.add_task(run_background_sync, athlete_id, request.full_sync)
    return {
        "message": "Sync started in background",
        "sync_type": "full" if request.full_sync else "incremental",
        "status": "in_progress",
        "started_at": datetime.utcnow().isoformat(),
    }


@router.get("/status/{athlete_id}", response_model=SyncStatusResponse)
def sync_status(
    athlete_id: str,
    session: Session = Depends(get_session),
    store: ActivityStore = Depends(get_store),
):
    """Return the outcome of the athlete's most recent sync run."""
    log = latest_sync_log(session, athlete_id)
    total = store.count_by_owner(athlete_id)
    now = datetime.utcnow()

    if not log:
        return SyncStatusResponse(
            status="never_run",
            mode=None,
            started_at=None,
            finished_at=None,
            activities_fetched=None,
            activities_stored=None,
            activities_skipped=None,
            error_message=None,
            total_activities=total,
            last_checked=now,
        )
    return SyncStatusResponse(
        status=log.status,
        mode=log.mode,
        started_at=log.started_at,
        finished_at=log.finished_at,
        activities_fetched=log.activities_fetched,
        activities_stored=log.activities_stored,
        activities_skipped=log.activities_skipped,
        error_message=log.error_message,
        total_activities=total,
        last_checked=now,
    )
