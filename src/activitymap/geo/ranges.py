"""Coarse bounding-box country lookup, the last tier of country resolution."""

# (name, lat_min, lat_max, lng_min, lng_max), checked in order
_EUROPE = (35.8, 71.2, -31.3, 69.1)
_EUROPEAN_COUNTRIES = [
    ("France", 42.3, 51.1, -5.1, 8.2),
    ("Germany", 47.3, 55.1, 5.9, 15.0),
    ("United Kingdom", 49.9, 60.9, -8.2, 1.8),
    ("Italy", 36.0, 47.1, 6.6, 18.5),
    ("Spain", 35.9, 43.8, -9.5, -6.2),
]
_OTHER_COUNTRIES = [
    ("United States", 25.1, 49.4, -125.0, -66.9),
    ("Canada", 41.7, 83.1, -141.0, -52.6),
    ("Bahrain", 25.6, 26.3, 50.4, 50.8),
    ("Australia", -47.0, -10.0, 113.0, 154.0),
]


def _inside(lat: float, lng: float, box) -> bool:
    lat_min, lat_max, lng_min, lng_max = box
    return lat_min <= lat <= lat_max and lng_min <= lng <= lng_max


def country_from_coordinate_ranges(lat: float, lng: float) -> str:
    """Guess a country (or "Europe" / "Other") from static coordinate ranges."""
    if _inside(lat, lng, _EUROPE):
        for name, *box in _EUROPEAN_COUNTRIES:
            if _inside(lat, lng, box):
                return name
        return "Europe"

    for name, *box in _OTHER_COUNTRIES:
        if _inside(lat, lng, box):
            return name

    return "Other"
