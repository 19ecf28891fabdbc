"""
Decoder for the encoded polyline format Strava uses for activity maps.

Each coordinate is stored as a pair of signed deltas (lat, lng) against the
previous point, scaled by 1e5, zig-zag encoded and split into 5-bit groups.
Every group is offset by 63 to land in printable ASCII; bit 0x20 marks that
another group follows.

    >>> decode_polyline("_p~iF~ps|U_ulLnnqC_mqNvxq`@")
    [Coordinate(lat=38.5, lng=-120.2), Coordinate(lat=40.7, lng=-120.95), Coordinate(lat=43.252, lng=-126.453)]
"""
from typing import Dict, Iterable, List, NamedTuple, Tuple

_OFFSET = 63
_CONTINUATION = 0x20
_CHUNK_MASK = 0x1F
_SCALE = 1e5


class Coordinate(NamedTuple):
    lat: float
    lng: float


class PolylineDecodeError(ValueError):
    """Raised when an encoded polyline ends in the middle of a value."""


def _read_delta(encoded: str, index: int) -> Tuple[int, int]:
    """Read one zig-zag varint starting at index. Returns (delta, next_index)."""
    result = 0
    shift = 0
    while True:
        if index >= len(encoded):
            raise PolylineDecodeError(
                f"Truncated polyline: value starting before offset {index} never terminates"
            )
        byte = ord(encoded[index]) - _OFFSET
        index += 1
        result |= (byte & _CHUNK_MASK) << shift
        shift += 5
        if byte < _CONTINUATION:
            break

    delta = ~(result >> 1) if result & 1 else result >> 1
    return delta, index


def decode_polyline(encoded: str) -> List[Coordinate]:
    """
    Decode an encoded polyline string into an ordered list of coordinates.

    Deltas accumulate across the whole string, so points cannot be decoded
    independently of the ones before them.

    Raises:
        PolylineDecodeError: if the string stops in the middle of a point.
    """
    coordinates: List[Coordinate] = []
    index = 0
    lat = 0
    lng = 0

    while index < len(encoded):
        delta_lat, index = _read_delta(encoded, index)
        if index >= len(encoded):
            raise PolylineDecodeError(
                f"Truncated polyline: latitude at offset {index} has no longitude"
            )
        delta_lng, index = _read_delta(encoded, index)
        lat += delta_lat
        lng += delta_lng
        coordinates.append(Coordinate(lat=lat / _SCALE, lng=lng / _SCALE))

    return coordinates


def coordinates_to_json(points: Iterable[Coordinate]) -> List[Dict[str, float]]:
    """Convert decoded points into the [{"lat", "lng"}] shape stored on Activity."""
    return [{"lat": p.lat, "lng": p.lng} for p in points]
