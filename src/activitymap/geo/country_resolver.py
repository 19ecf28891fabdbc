"""
CountryResolver: best-effort country name for a coordinate.

Resolution chain, each tier tried only if the previous one failed or came
back empty / "Unknown":

  1. GoogleGeocoder     (needs an API key; 100 ms between calls)
  2. NominatimGeocoder  (no key; 1.1 s between calls)
  3. country_from_coordinate_ranges (static table, always answers)

resolve() never raises. A network error, timeout, quota response or bad
payload from a tier is logged and the next tier is tried.
"""
import logging
import math
from typing import Callable, Optional, Protocol, Sequence

import httpx

from activitymap.config import Settings
from activitymap.geo.geocoders import GeocoderNotConfigured, GoogleGeocoder, NominatimGeocoder
from activitymap.geo.ranges import country_from_coordinate_ranges
from activitymap.geo.rate_limiter import IntervalRateLimiter, default_limiters

logger = logging.getLogger(__name__)

UNKNOWN = "Unknown"


class Geocoder(Protocol):
    name: str

    async def country(self, lat: float, lng: float) -> str:
        ...


class CountryResolver:
    """Runs the geocoding tiers in order and falls back to the range table."""

    def __init__(
        self,
        tiers: Sequence[Geocoder],
        fallback: Callable[[float, float], str] = country_from_coordinate_ranges,
    ):
        self._tiers = list(tiers)
        self._fallback = fallback

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        http: httpx.AsyncClient,
        google_limiter: Optional[IntervalRateLimiter] = None,
        nominatim_limiter: Optional[IntervalRateLimiter] = None,
    ) -> "CountryResolver":
        """Build the default Google → Nominatim → range table chain."""
        limiters = default_limiters()
        return cls(
            tiers=[
                GoogleGeocoder(
                    settings.google_geocoding_api_key,
                    http,
                    google_limiter or limiters["google"],
                ),
                NominatimGeocoder(
                    settings.nominatim_user_agent,
                    http,
                    nominatim_limiter or limiters["nominatim"],
                ),
            ]
        )

    async def resolve(self, lat: Optional[float], lng: Optional[float]) -> str:
        if not _is_valid(lat) or not _is_valid(lng):
            logger.info("Invalid coordinates: %r, %r", lat, lng)
            return UNKNOWN

        for tier in self._tiers:
            try:
                country = await tier.country(lat, lng)
            except GeocoderNotConfigured:
                logger.debug("%s geocoding not configured, skipping", tier.name)
                continue
            except Exception as exc:
                logger.warning(
                    "%s geocoding failed for %.4f, %.4f: %s", tier.name, lat, lng, exc
                )
                continue
            if country and country != UNKNOWN:
                logger.info("%s geocoding: %.4f, %.4f -> %s", tier.name, lat, lng, country)
                return country

        fallback = self._fallback(lat, lng)
        logger.info("Using coordinate fallback: %.4f, %.4f -> %s", lat, lng, fallback)
        return fallback


def _is_valid(value: Optional[float]) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)
