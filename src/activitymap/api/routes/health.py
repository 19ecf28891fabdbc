"""Health check and geocoding test routes."""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from activitymap.api.dependencies import get_resolver
from activitymap.db.engine import get_session
from activitymap.geo.country_resolver import CountryResolver

router = APIRouter()


@router.get("/health")
def health(session: Session = Depends(get_session)):
    try:
        session.execute(text("SELECT 1"))
        database = "connected"
    except SQLAlchemyError:
        database = "unavailable"
    return {
        "status": "healthy" if database == "connected" else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "database": database,
    }


@router.get("/test/geocoding")
async def test_geocoding(
    lat: Optional[float] = None,
    lng: Optional[float] = None,
    resolver: CountryResolver = Depends(get_resolver),
):
    """Resolve a country for an arbitrary point through the full fallback chain."""
    if lat is None or lng is None:
        raise HTTPException(status_code=400, detail="lat and lng parameters required")
    return {
        "coordinates": {"lat": lat, "lng": lng},
        "country": await resolver.resolve(lat, lng),
        "timestamp": datetime.utcnow().isoformat(),
    }
