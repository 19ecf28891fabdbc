"""
Strava OAuth token storage and refresh.

Tokens live in the AuthRecord table, one row per athlete. Strava access
tokens expire after six hours; get_valid_access_token() refreshes in place
whenever the stored token is within EXPIRY_BUFFER_SECONDS of expiry, so
callers can always use the returned token for the next few minutes.
"""
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlencode

import httpx
from sqlmodel import Session

from activitymap.config import Settings, get_settings
from activitymap.models.auth import AuthRecord

logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────────────

EXPIRY_BUFFER_SECONDS = 300
OAUTH_SCOPE = "read,activity:read_all"


# ── Exceptions ────────────────────────────────────────────────────────────────

class AuthNotFoundError(RuntimeError):
    """Raised when no token record exists for an athlete."""


# ── Main class ────────────────────────────────────────────────────────────────

class TokenProvider:
    """
    Issues valid Strava access tokens for stored athletes.

    Usage:
        tokens = TokenProvider(engine)
        record = await tokens.exchange_code(code)          # OAuth callback
        token = await tokens.get_valid_access_token("42")  # before API calls
    """

    def __init__(
        self,
        engine,
        http: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.engine = engine
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient()
        self._settings = settings or get_settings()
        self._clock = clock

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    # ── OAuth ─────────────────────────────────────────────────────────────────

    def authorize_url(self) -> str:
        query = urlencode({
            "client_id": self._settings.strava_client_id,
            "response_type": "code",
            "redirect_uri": self._settings.strava_redirect_uri,
            "approval_prompt": "force",
            "scope": OAUTH_SCOPE,
        })
        return f"{self._settings.strava_oauth_url}/authorize?{query}"

    async def _token_request(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        resp = await self._http.post(
            f"{self._settings.strava_oauth_url}/token",
            data={
                "client_id": self._settings.strava_client_id,
                "client_secret": self._settings.strava_client_secret,
                **payload,
            },
            timeout=10.0,
        )
        resp.raise_for_status()
        return resp.json()

    async def exchange_code(self, code: str) -> AuthRecord:
        """
        Exchange an authorization code for tokens and store them.

        Raises:
            httpx.HTTPError: if Strava rejects the code.
        """
        token_data = await self._token_request(
            {"code": code, "grant_type": "authorization_code"}
        )
        athlete = token_data.get("athlete") or {}
        logger.info("Successfully authenticated athlete: %s", athlete.get("id"))
        return self.store_auth_token(athlete["id"], token_data)

    async def refresh_access_token(self, athlete_id: str, refresh_token: str) -> AuthRecord:
        logger.info("Refreshing access token for athlete: %s", athlete_id)
        token_data = await self._token_request(
            {"grant_type": "refresh_token", "refresh_token": refresh_token}
        )
        record = self.store_auth_token(athlete_id, token_data)
        logger.info("Successfully refreshed token for athlete: %s", athlete_id)
        return record

    # ── Persistence ───────────────────────────────────────────────────────────

    def get_auth_record(self, athlete_id: str) -> Optional[AuthRecord]:
        with Session(self.engine) as s:
            return s.get(AuthRecord, str(athlete_id))

    def store_auth_token(self, athlete_id: Any, token_data: Dict[str, Any]) -> AuthRecord:
        """
        Insert or update the athlete's token record.

        An update keeps created_at, and keeps athlete_info when the token
        response carries no athlete (refresh responses don't).
        """
        now = datetime.utcnow()
        with Session(self.engine, expire_on_commit=False) as s:
            record = s.get(AuthRecord, str(athlete_id))
            if record is None:
                record = AuthRecord(
                    athlete_id=str(athlete_id),
                    access_token=token_data["access_token"],
                    refresh_token=token_data["refresh_token"],
                    created_at=now,
                )
            record.access_token = token_data["access_token"]
            record.refresh_token = token_data["refresh_token"]
            record.expires_at = token_data.get("expires_at")
            athlete = token_data.get("athlete_info") or token_data.get("athlete")
            if athlete:
                record.athlete_info = athlete
            record.updated_at = now
            s.add(record)
            s.commit()
        logger.info("Stored auth token for athlete: %s", athlete_id)
        return record

    # ── Tokens ────────────────────────────────────────────────────────────────

    def token_is_valid(self, record: AuthRecord, now: Optional[float] = None) -> bool:
        """True if the token has no expiry or expires more than the buffer from now."""
        now = self._clock() if now is None else now
        return not record.expires_at or now + EXPIRY_BUFFER_SECONDS < record.expires_at

    async def get_valid_access_token(self, athlete_id: str) -> str:
        """
        Return a usable access token, refreshing it first if it is about to expire.

        Raises:
            AuthNotFoundError: if the athlete never authenticated.
            httpx.HTTPError: if the refresh request fails.
        """
        record = self.get_auth_record(athlete_id)
        if record is None:
            raise AuthNotFoundError(f"No authentication data found for athlete {athlete_id}")

        if not self.token_is_valid(record):
            logger.info("Access token expired for athlete %s, refreshing...", athlete_id)
            record = await self.refresh_access_token(athlete_id, record.refresh_token)

        return record.access_token
