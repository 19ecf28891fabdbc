"""
Reverse geocoders used by CountryResolver.

Both geocoders take a shared httpx.AsyncClient and their own
IntervalRateLimiter. They return a country name or raise a GeocodingError
subclass; CountryResolver treats every failure as "try the next tier".
"""
from typing import Any, Dict, Optional

import httpx

from activitymap.geo.rate_limiter import IntervalRateLimiter

GOOGLE_GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
NOMINATIM_REVERSE_URL = "https://nominatim.openstreetmap.org/reverse"
REQUEST_TIMEOUT = 10.0


# ── Exceptions ────────────────────────────────────────────────────────────────

class GeocodingError(RuntimeError):
    """Base class for a geocoding tier failing to produce a country."""


class GeocoderNotConfigured(GeocodingError):
    """Raised when a tier needs an API key that is not set."""


class GeocodingQuotaExceeded(GeocodingError):
    """Raised when the service reports the caller is over quota."""


class NoCountryFound(GeocodingError):
    """Raised when the service answered but had no country for the point."""


# ── Google ────────────────────────────────────────────────────────────────────

class GoogleGeocoder:
    """Google Geocoding API, restricted to country-level results."""

    name = "google"

    def __init__(
        self,
        api_key: str,
        http: httpx.AsyncClient,
        limiter: IntervalRateLimiter,
        url: str = GOOGLE_GEOCODE_URL,
    ):
        self._api_key = api_key
        self._http = http
        self._limiter = limiter
        self._url = url

    async def country(self, lat: float, lng: float) -> str:
        if not self._api_key:
            raise GeocoderNotConfigured("Google API key not configured")

        await self._limiter.acquire()
        resp = await self._http.get(
            self._url,
            params={
                "latlng": f"{lat},{lng}",
                "result_type": "country",
                "key": self._api_key,
            },
            timeout=REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        data: Dict[str, Any] = resp.json()
        status = data.get("status")

        if status == "OK" and data.get("results"):
            component = _find_country_component(data["results"][0])
            if component:
                return component["long_name"]

        if status == "OVER_QUERY_LIMIT":
            raise GeocodingQuotaExceeded("Google API quota exceeded")
        if status == "ZERO_RESULTS":
            raise NoCountryFound("No country found")
        raise GeocodingError(f"Google Geocoding failed: {status}")


def _find_country_component(result: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    for component in result.get("address_components", []):
        if "country" in component.get("types", []):
            return component
    return None


# ── Nominatim ─────────────────────────────────────────────────────────────────

class NominatimGeocoder:
    """OpenStreetMap Nominatim reverse geocoding. Free, but strictly rate limited."""

    name = "nominatim"

    def __init__(
        self,
        user_agent: str,
        http: httpx.AsyncClient,
        limiter: IntervalRateLimiter,
        url: str = NOMINATIM_REVERSE_URL,
    ):
        self._user_agent = user_agent
        self._http = http
        self._limiter = limiter
        self._url = url

    async def country(self, lat: float, lng: float) -> str:
        await self._limiter.acquire()
        resp = await self._http.get(
            self._url,
            params={
                "format": "json",
                "lat": lat,
                "lon": lng,
                "zoom": 3,
                "addressdetails": 1,
            },
            headers={"User-Agent": self._user_agent},
            timeout=REQUEST_TIMEOUT,
        )
        resp.raise_for_status()
        data = resp.json() or {}
        country = (data.get("address") or {}).get("country")
        if country:
            return country
        raise NoCountryFound("Nominatim: No country found")
