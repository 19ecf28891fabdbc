"""Activity query routes."""
import logging
from typing import Callable, Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException

from activitymap.api.dependencies import (
    get_detail_service_factory,
    get_store,
    get_token_provider,
)
from activitymap.store.activity_store import ActivityStore
from activitymap.strava.auth import AuthNotFoundError, TokenProvider
from activitymap.strava.client import StravaUnauthorizedError, TokenSupplier
from activitymap.strava.sync_service import StravaSyncService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("")
def list_activities(
    athlete_id: Optional[str] = None,
    activity_type: Optional[str] = None,
    race_filter: Optional[str] = None,
    store: ActivityStore = Depends(get_store),
    tokens: TokenProvider = Depends(get_token_provider),
):
    """List an athlete's stored activities, optionally filtered by type and race flag."""
    if not athlete_id:
        raise HTTPException(status_code=400, detail="athlete_id is required")
    if tokens.get_auth_record(athlete_id) is None:
        raise HTTPException(status_code=401, detail="User not authenticated")

    activities = store.query_by_owner(
        athlete_id, activity_type=activity_type, race_filter=race_filter
    )
    return {
        "activities": [a.to_dict() for a in activities],
        "cached": True,
        "total": store.count_by_owner(athlete_id),
        "returned": len(activities),
    }


@router.get("/{activity_id}")
async def get_activity(
    activity_id: int,
    athlete_id: Optional[str] = None,
    tokens: TokenProvider = Depends(get_token_provider),
    build_service: Callable[[TokenSupplier], StravaSyncService] = Depends(get_detail_service_factory),
):
    """Fetch one activity with its full GPS track, from the store or from Strava."""
    if not athlete_id:
        raise HTTPException(status_code=400, detail="athlete_id is required")
    if tokens.get_auth_record(athlete_id) is None:
        raise HTTPException(status_code=401, detail="User not authenticated")

    # Token refreshed only if the activity has to be fetched from Strava
    service = build_service(lambda: tokens.get_valid_access_token(athlete_id))
    try:
        activity = await service.get_activity_detail(athlete_id, activity_id)
    except AuthNotFoundError:
        raise HTTPException(status_code=401, detail="User not authenticated")
    except StravaUnauthorizedError:
        raise HTTPException(status_code=401, detail="Strava token expired")
    except httpx.HTTPError as exc:
        logger.error("Error fetching activity details for %s: %s", activity_id, exc)
        raise HTTPException(status_code=500, detail="Failed to fetch activity details")

    if activity is None:
        raise HTTPException(status_code=404, detail="Activity not found or is virtual")
    return activity
