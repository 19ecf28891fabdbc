"""Strava OAuth routes."""
import logging
from typing import Optional
from urllib.parse import urlencode

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse, RedirectResponse

from activitymap.config import get_settings
from activitymap.api.dependencies import get_token_provider
from activitymap.strava.auth import TokenProvider

logger = logging.getLogger(__name__)

router = APIRouter()


def _frontend_redirect(**params) -> RedirectResponse:
    return RedirectResponse(f"{get_settings().frontend_url}?{urlencode(params)}")


@router.get("/strava")
def strava_login(tokens: TokenProvider = Depends(get_token_provider)):
    """Send the browser to Strava's consent page."""
    url = tokens.authorize_url()
    logger.info("Redirecting to Strava OAuth: %s", url)
    return RedirectResponse(url)


@router.get("/strava/callback")
async def strava_callback(
    code: Optional[str] = None,
    error: Optional[str] = None,
    tokens: TokenProvider = Depends(get_token_provider),
):
    """Exchange the authorization code, then bounce back to the frontend."""
    if error:
        logger.error("Strava OAuth error: %s", error)
        return _frontend_redirect(error="auth_failed")
    if not code:
        logger.error("No authorization code received")
        return _frontend_redirect(error="no_code")

    try:
        record = await tokens.exchange_code(code)
    except (httpx.HTTPError, KeyError) as exc:
        logger.error("Error exchanging code for token: %s", exc)
        return _frontend_redirect(error="token_exchange_failed")

    return _frontend_redirect(auth="success", athlete_id=record.athlete_id)


@router.get("/status/{athlete_id}")
def auth_status(athlete_id: str, tokens: TokenProvider = Depends(get_token_provider)):
    record = tokens.get_auth_record(athlete_id)
    if record is None:
        return JSONResponse(
            status_code=404,
            content={"authenticated": False, "message": "No authentication found"},
        )
    return {
        "authenticated": True,
        "athlete_info": record.athlete_info,
        "token_valid": tokens.token_is_valid(record),
        "expires_at": record.expires_at,
    }
