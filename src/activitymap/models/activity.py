"""Activity model: one row per Strava activity kept for the map."""
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, BigInteger, Column
from sqlmodel import Field, SQLModel


class Activity(SQLModel, table=True):
    """
    A normalized run, ride or swim with at least 3 GPS points.

    Rows written by the list sync keep at most 20 coordinates; rows written
    by the detail fetch keep the full track.
    """

    # Strava activity id; not autoincremented
    id: int = Field(sa_column=Column(BigInteger, primary_key=True, autoincrement=False))
    athlete_id: str = Field(index=True)
    name: str
    type: str  # "run", "ride", "swim"
    distance: str  # km, one decimal, e.g. "12.3"
    time: str  # "MM:SS" or "HH:MM:SS"
    country: str
    is_race: bool = False
    coordinates: List[Dict[str, float]] = Field(
        default_factory=list, sa_column=Column(JSON, nullable=False)
    )

    elevation_gain: Optional[float] = None  # meters
    average_speed: Optional[float] = None  # m/s
    start_date: Optional[datetime] = None  # UTC

    stored_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def coordinate_count(self) -> int:
        return len(self.coordinates or [])

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")
