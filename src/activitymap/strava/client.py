"""
Async Strava API client over httpx.

One instance per access token. The caller owns token freshness
(TokenProvider.get_valid_access_token) and pagination policy
(StravaSyncService.fetch_activities).
"""
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from activitymap.config import get_settings

TokenSupplier = Callable[[], Awaitable[str]]


class StravaUnauthorizedError(RuntimeError):
    """Raised when Strava rejects the bearer token (HTTP 401)."""


class StravaClient:
    """Thin async wrapper over the Strava v3 REST API."""

    def __init__(
        self,
        access_token: Optional[str] = None,
        http: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        token_supplier: Optional[TokenSupplier] = None,
    ):
        """
        Args:
            access_token: Valid Strava bearer token.
            http: Shared AsyncClient. A private one is created if omitted.
            base_url: Override for the API root (defaults to settings).
            token_supplier: Awaited for a token on the first request when
                access_token is not given.
        """
        if access_token is None and token_supplier is None:
            raise ValueError("StravaClient needs an access_token or a token_supplier")
        self._access_token = access_token
        self._token_supplier = token_supplier
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient()
        self._base_url = (base_url or get_settings().strava_api_base).rstrip("/")

    async def _headers(self) -> Dict[str, str]:
        if self._access_token is None:
            self._access_token = await self._token_supplier()
        return {"Authorization": f"Bearer {self._access_token}"}

    async def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        resp = await self._http.get(
            f"{self._base_url}{path}", headers=await self._headers(), params=params
        )
        if resp.status_code == 401:
            raise StravaUnauthorizedError(f"Strava rejected token for {path}")
        resp.raise_for_status()
        return resp.json()

    async def list_activities(self, page: int, per_page: int) -> List[Dict[str, Any]]:
        """Fetch one page of the athlete's activities. An empty list means no more pages."""
        return await self._get(
            "/athlete/activities", params={"page": page, "per_page": per_page}
        )

    async def get_activity(self, activity_id: int) -> Dict[str, Any]:
        """Fetch one activity with its full-resolution polyline."""
        return await self._get(f"/activities/{activity_id}")

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()
