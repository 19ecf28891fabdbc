"""
Strava API response normalizer.

Converts raw activity dicts from the Strava API into field dicts that map
directly onto the Activity model. No DB access here; callers
(sync_service) handle persistence.

Two views of an activity exist:

  ActivityView.LIST:   items from GET /athlete/activities
    - coordinates come from map.summary_polyline, truncated to 20 points
    - names that look like indoor/virtual sessions are excluded

  ActivityView.DETAIL: GET /activities/{id}
    - coordinates come from map.polyline, all points kept
    - no name heuristics (the user opened this activity explicitly)

exclusion_reason() is the single place both views decide what to drop.
"""
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from activitymap.strava.polyline import (
    Coordinate,
    PolylineDecodeError,
    coordinates_to_json,
    decode_polyline,
)

logger = logging.getLogger(__name__)

SUPPORTED_TYPES = ("run", "ride", "swim")
VIRTUAL_TYPES = ("VirtualRide", "VirtualRun")
VIRTUAL_NAME_KEYWORDS = ("zwift", "peloton", "virtual", "indoor", "trainer", "treadmill")
RACE_WORKOUT_TYPE = 1  # Strava workout_type for a run tagged as a race
MIN_COORDINATES = 3
LIST_VIEW_MAX_COORDINATES = 20

_TYPE_MAP = {
    "Run": "run",
    "Ride": "ride",
    "Swim": "swim",
    "Walk": "run",
    "Hike": "run",
    "TrailRun": "run",
}


class ActivityView(str, Enum):
    LIST = "list"
    DETAIL = "detail"


# ── Field helpers ─────────────────────────────────────────────────────────────

def map_strava_type(strava_type: Optional[str]) -> Optional[str]:
    """Map a Strava type to run/ride/swim, or None for anything we don't keep."""
    return _TYPE_MAP.get(strava_type or "")


def format_duration(seconds: Optional[float]) -> str:
    """Format seconds as MM:SS, or HH:MM:SS from one hour up."""
    total = int(seconds or 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours:02d}:{minutes:02d}:{secs:02d}"
    return f"{minutes:02d}:{secs:02d}"


def format_distance_km(meters: Optional[float]) -> str:
    """Meters to kilometers with one decimal, as a display string."""
    return f"{(meters or 0) / 1000:.1f}"


def is_race(raw: Dict[str, Any]) -> bool:
    name = (raw.get("name") or "").lower()
    return raw.get("workout_type") == RACE_WORKOUT_TYPE or "race" in name


def _parse_strava_datetime(s: Optional[str]) -> Optional[datetime]:
    """Parse "2024-05-01T07:12:44Z" into a naive UTC datetime."""
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def _polyline_for_view(raw: Dict[str, Any], view: ActivityView) -> Optional[str]:
    map_data = raw.get("map") or {}
    if view is ActivityView.DETAIL:
        return map_data.get("polyline")
    return map_data.get("summary_polyline")


def _is_virtual(raw: Dict[str, Any], view: ActivityView) -> bool:
    if raw.get("trainer") or raw.get("manual"):
        return True
    if raw.get("type") in VIRTUAL_TYPES:
        return True
    if view is ActivityView.LIST:
        name = (raw.get("name") or "").lower()
        return any(keyword in name for keyword in VIRTUAL_NAME_KEYWORDS)
    return False


def _has_polyline(raw: Dict[str, Any], view: ActivityView) -> bool:
    map_data = raw.get("map") or {}
    if view is ActivityView.DETAIL:
        return bool(map_data.get("polyline"))
    return bool(map_data.get("summary_polyline") or map_data.get("polyline"))


def _decode(raw: Dict[str, Any], view: ActivityView) -> List[Coordinate]:
    encoded = _polyline_for_view(raw, view)
    if not encoded:
        return []
    try:
        return decode_polyline(encoded)
    except PolylineDecodeError as exc:
        logger.warning("Bad polyline on activity %s: %s", raw.get("id"), exc)
        return []


# ── Exclusion policy ──────────────────────────────────────────────────────────

def is_virtual_or_indoor(raw: Dict[str, Any], view: ActivityView = ActivityView.LIST) -> bool:
    """The cheap checks: virtual flags/types/names, or no start position."""
    return _is_virtual(raw, view) or not raw.get("start_latlng")


def exclusion_reason(
    raw: Dict[str, Any],
    view: ActivityView,
    coordinates: Optional[List[Coordinate]] = None,
) -> Optional[str]:
    """
    Return why an activity should be dropped, or None if it should be kept.

    Checks run in a fixed order and the first hit wins:
    virtual, no_start_latlng, unsupported_type, no_polyline, insufficient_gps.

    Args:
        raw: Strava activity dict.
        view: Which endpoint the dict came from.
        coordinates: Already-decoded points for this view. Decoded here if omitted.
    """
    if _is_virtual(raw, view):
        return "virtual"
    if not raw.get("start_latlng"):
        return "no_start_latlng"
    if map_strava_type(raw.get("type")) not in SUPPORTED_TYPES:
        return "unsupported_type"
    if not _has_polyline(raw, view):
        return "no_polyline"
    if coordinates is None:
        coordinates = _decode(raw, view)
    if len(coordinates) < MIN_COORDINATES:
        return "insufficient_gps"
    return None


# ── Normalization ─────────────────────────────────────────────────────────────

async def normalize_activity(
    raw: Dict[str, Any],
    resolver,
    view: ActivityView = ActivityView.LIST,
    athlete_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """
    Normalize a Strava activity into an Activity field dict.

    Args:
        raw: Strava activity dict (list item or detail object).
        resolver: CountryResolver used for the first decoded point.
        view: LIST truncates coordinates to 20 points, DETAIL keeps all.
        athlete_id: Owner to tag the record with, if known.

    Returns:
        Dict with keys matching Activity columns, or None if excluded.
    """
    coordinates = _decode(raw, view)
    reason = exclusion_reason(raw, view, coordinates)
    if reason:
        logger.info(
            "Skipping activity %s (%s, %s): %s",
            raw.get("id"), raw.get("name"), raw.get("type"), reason,
        )
        return None

    first = coordinates[0]
    country = await resolver.resolve(first.lat, first.lng)

    if view is ActivityView.LIST:
        coordinates = coordinates[:LIST_VIEW_MAX_COORDINATES]

    fields: Dict[str, Any] = {
        "id": int(raw["id"]),
        "name": raw.get("name") or "",
        "type": map_strava_type(raw.get("type")),
        "distance": format_distance_km(raw.get("distance")),
        "time": format_duration(raw.get("moving_time")),
        "country": country,
        "is_race": is_race(raw),
        "coordinates": coordinates_to_json(coordinates),
        "elevation_gain": raw.get("total_elevation_gain"),
        "average_speed": raw.get("average_speed"),
        "start_date": _parse_strava_datetime(raw.get("start_date")),
    }
    if athlete_id is not None:
        fields["athlete_id"] = str(athlete_id)
    return fields
