"""Shared test fixtures."""
import os

# Settings are read once; keep the app's own engine in memory during tests.
os.environ.setdefault("DATABASE_URL", "sqlite://")

from typing import Generator, List, Sequence, Tuple  # noqa: E402
from unittest.mock import AsyncMock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import Session, SQLModel, create_engine  # noqa: E402

from activitymap.db.engine import create_tables  # noqa: E402
from activitymap.store.activity_store import ActivityStore  # noqa: E402

# Reference vector from the polyline format documentation:
# (38.5, -120.2), (40.7, -120.95), (43.252, -126.453)
REFERENCE_POLYLINE = "_p~iF~ps|U_ulLnnqC_mqNvxq`@"


def encode_polyline(points: Sequence[Tuple[float, float]]) -> str:
    """Test-side encoder so fixtures can build tracks of any length."""
    out: List[str] = []
    prev_lat = prev_lng = 0
    for lat, lng in points:
        ilat, ilng = round(lat * 1e5), round(lng * 1e5)
        for delta in (ilat - prev_lat, ilng - prev_lng):
            value = ~(delta << 1) if delta < 0 else delta << 1
            while value >= 0x20:
                out.append(chr((0x20 | (value & 0x1F)) + 63))
                value >>= 5
            out.append(chr(value + 63))
        prev_lat, prev_lng = ilat, ilng
    return "".join(out)


def make_track(n: int, start: Tuple[float, float] = (47.6, -122.3)) -> List[Tuple[float, float]]:
    return [(round(start[0] + i * 0.001, 5), round(start[1] + i * 0.001, 5)) for i in range(n)]


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    create_tables(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    with Session(engine) as session:
        yield session


@pytest.fixture(name="fake_sleep")
def fake_sleep_fixture() -> AsyncMock:
    """Stands in for asyncio.sleep; inspect await_args_list for the delays."""
    return AsyncMock()


@pytest.fixture(name="store")
def store_fixture(engine, fake_sleep) -> ActivityStore:
    return ActivityStore(engine, sleep=fake_sleep)


@pytest.fixture(name="resolver")
def resolver_fixture() -> AsyncMock:
    resolver = AsyncMock()
    resolver.resolve = AsyncMock(return_value="United States")
    return resolver


@pytest.fixture(name="make_raw")
def make_raw_fixture():
    """Factory for Strava activity dicts shaped like the list/detail endpoints."""

    def make_raw(activity_id: int = 1, **overrides):
        raw = {
            "id": activity_id,
            "name": "Morning Run",
            "type": "Run",
            "distance": 12345.0,
            "moving_time": 3725,
            "workout_type": 0,
            "trainer": False,
            "manual": False,
            "commute": False,
            "start_latlng": [47.6, -122.3],
            "map": {
                "summary_polyline": encode_polyline(make_track(30)),
                "polyline": encode_polyline(make_track(120)),
            },
            "total_elevation_gain": 85.0,
            "average_speed": 3.3,
            "start_date": "2025-01-15T07:30:00Z",
        }
        raw.update(overrides)
        return raw

    return make_raw
