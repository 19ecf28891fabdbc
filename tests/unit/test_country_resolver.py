"""Tests for CountryResolver fallback order and the coordinate range table."""
import logging
import math

import httpx
import pytest

from activitymap.config import Settings
from activitymap.geo.country_resolver import UNKNOWN, CountryResolver
from activitymap.geo.geocoders import GeocoderNotConfigured, GeocodingQuotaExceeded
from activitymap.geo.ranges import country_from_coordinate_ranges
from activitymap.geo.rate_limiter import IntervalRateLimiter


class StubTier:
    def __init__(self, name, result=None, error=None):
        self.name = name
        self.result = result
        self.error = error
        self.calls = []

    async def country(self, lat, lng):
        self.calls.append((lat, lng))
        if self.error is not None:
            raise self.error
        return self.result


# ─── Resolution chain ─────────────────────────────────────────────────────────

class TestCountryResolver:
    @pytest.mark.asyncio
    async def test_first_tier_wins(self):
        google = StubTier("google", result="France")
        nominatim = StubTier("nominatim", result="Germany")
        resolver = CountryResolver([google, nominatim])

        assert await resolver.resolve(48.85, 2.35) == "France"
        assert nominatim.calls == []

    @pytest.mark.asyncio
    async def test_falls_through_on_error(self):
        google = StubTier("google", error=GeocodingQuotaExceeded("quota"))
        nominatim = StubTier("nominatim", result="Germany")
        resolver = CountryResolver([google, nominatim])

        assert await resolver.resolve(52.52, 13.4) == "Germany"

    @pytest.mark.asyncio
    async def test_falls_through_on_network_error(self):
        google = StubTier("google", error=httpx.ConnectError("down"))
        nominatim = StubTier("nominatim", error=httpx.ReadTimeout("slow"))
        resolver = CountryResolver([google, nominatim])

        assert await resolver.resolve(38.5, -120.2) == "United States"

    @pytest.mark.asyncio
    async def test_unknown_and_empty_answers_fall_through(self):
        google = StubTier("google", result=UNKNOWN)
        nominatim = StubTier("nominatim", result="")
        resolver = CountryResolver([google, nominatim])

        assert await resolver.resolve(-33.9, 151.2) == "Australia"
        assert google.calls and nominatim.calls

    @pytest.mark.asyncio
    async def test_fallback_when_no_tiers(self):
        assert await CountryResolver([]).resolve(26.2, 50.6) == "Bahrain"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("lat,lng", [
        (None, 2.0),
        (1.0, None),
        (math.nan, 2.0),
        (1.0, math.inf),
        ("48.8", 2.0),
    ])
    async def test_invalid_input_is_unknown(self, lat, lng):
        google = StubTier("google", result="France")
        resolver = CountryResolver([google])

        assert await resolver.resolve(lat, lng) == UNKNOWN
        assert google.calls == []

    @pytest.mark.asyncio
    async def test_unconfigured_tier_skipped_quietly(self, caplog):
        google = StubTier("google", error=GeocoderNotConfigured("no key"))
        nominatim = StubTier("nominatim", result="Spain")
        resolver = CountryResolver([google, nominatim])

        with caplog.at_level(logging.DEBUG, logger="activitymap.geo.country_resolver"):
            assert await resolver.resolve(40.4, -3.7) == "Spain"

        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]
        assert any("not configured" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_never_raises_on_unexpected_error(self):
        google = StubTier("google", error=KeyError("address_components"))
        resolver = CountryResolver([google], fallback=lambda lat, lng: "Other")

        assert await resolver.resolve(0.0, 0.0) == "Other"


class TestFromSettings:
    @pytest.mark.asyncio
    async def test_without_google_key_uses_nominatim(self, caplog):
        hosts = []

        def handler(request):
            hosts.append(request.url.host)
            return httpx.Response(200, json={"address": {"country": "Spain"}})

        settings = Settings(google_geocoding_api_key="", nominatim_user_agent="tests")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            resolver = CountryResolver.from_settings(
                settings,
                http,
                google_limiter=IntervalRateLimiter(0),
                nominatim_limiter=IntervalRateLimiter(0),
            )
            assert await resolver.resolve(40.4, -3.7) == "Spain"

        assert hosts == ["nominatim.openstreetmap.org"]
        assert not [r for r in caplog.records if r.levelno >= logging.WARNING]

    @pytest.mark.asyncio
    async def test_google_quota_then_nominatim(self):
        def handler(request):
            if request.url.host == "maps.googleapis.com":
                return httpx.Response(200, json={"status": "OVER_QUERY_LIMIT"})
            return httpx.Response(200, json={"address": {"country": "Italia"}})

        settings = Settings(google_geocoding_api_key="key", nominatim_user_agent="tests")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            resolver = CountryResolver.from_settings(
                settings,
                http,
                google_limiter=IntervalRateLimiter(0),
                nominatim_limiter=IntervalRateLimiter(0),
            )
            assert await resolver.resolve(41.9, 12.5) == "Italia"

    @pytest.mark.asyncio
    async def test_everything_down_uses_ranges(self):
        def handler(request):
            raise httpx.ConnectError("offline", request=request)

        settings = Settings(google_geocoding_api_key="key", nominatim_user_agent="tests")
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http:
            resolver = CountryResolver.from_settings(
                settings,
                http,
                google_limiter=IntervalRateLimiter(0),
                nominatim_limiter=IntervalRateLimiter(0),
            )
            assert await resolver.resolve(48.85, 2.35) == "France"


# ─── Range table ──────────────────────────────────────────────────────────────

class TestCoordinateRanges:
    @pytest.mark.parametrize("lat,lng,expected", [
        (48.85, 2.35, "France"),
        (52.52, 13.40, "Germany"),
        (51.50, -0.12, "United Kingdom"),
        (41.90, 12.50, "Italy"),
        (40.40, -7.00, "Spain"),
        (59.90, 10.70, "Europe"),
        (38.50, -120.20, "United States"),
        (60.00, -100.00, "Canada"),
        (26.20, 50.60, "Bahrain"),
        (-33.90, 151.20, "Australia"),
        (35.70, 139.70, "Other"),
        (0.0, 0.0, "Other"),
    ])
    def test_lookup(self, lat, lng, expected):
        assert country_from_coordinate_ranges(lat, lng) == expected

    def test_unlisted_european_country(self):
        # Finland has no box of its own
        assert country_from_coordinate_ranges(64.0, 26.0) == "Europe"
