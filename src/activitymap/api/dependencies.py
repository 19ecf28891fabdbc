"""FastAPI dependencies wiring the store, token provider and sync service."""
from typing import AsyncIterator, Callable

import httpx
from fastapi import Depends

from activitymap.config import get_settings
from activitymap.db.engine import get_engine
from activitymap.geo.country_resolver import CountryResolver
from activitymap.store.activity_store import ActivityStore
from activitymap.strava.auth import TokenProvider
from activitymap.strava.client import StravaClient, TokenSupplier
from activitymap.strava.sync_service import StravaSyncService


async def get_http_client() -> AsyncIterator[httpx.AsyncClient]:
    """One outbound HTTP client per request."""
    async with httpx.AsyncClient() as http:
        yield http


def get_store() -> ActivityStore:
    return ActivityStore(get_engine())


def get_token_provider(
    http: httpx.AsyncClient = Depends(get_http_client),
) -> TokenProvider:
    return TokenProvider(get_engine(), http=http)


def get_resolver(
    http: httpx.AsyncClient = Depends(get_http_client),
) -> CountryResolver:
    return CountryResolver.from_settings(get_settings(), http)


def get_detail_service_factory(
    store: ActivityStore = Depends(get_store),
    resolver: CountryResolver = Depends(get_resolver),
    http: httpx.AsyncClient = Depends(get_http_client),
) -> Callable[[TokenSupplier], StravaSyncService]:
    """
    Return a builder that binds a StravaSyncService to a token supplier.

    The supplier is only awaited when the service actually calls Strava, so
    activities already in the store are served without touching OAuth.
    """

    def build(token_supplier: TokenSupplier) -> StravaSyncService:
        return StravaSyncService(
            client=StravaClient(token_supplier=token_supplier, http=http),
            store=store,
            resolver=resolver,
        )

    return build
