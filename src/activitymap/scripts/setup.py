"""
Setup: create the database tables for the activity map.

Usage:
    python -m activitymap setup
    python -m activitymap.scripts.setup   (direct invocation)

Safe to re-run; existing tables and rows are left alone.
"""
from sqlalchemy import inspect

from activitymap.config import get_settings
from activitymap.db.engine import get_engine


def run_setup() -> None:
    settings = get_settings()

    print("\n🗺  Activity Map Setup\n")
    print(f"Database: {settings.database_url}")

    engine = get_engine()  # creates any missing tables
    tables = sorted(inspect(engine).get_table_names())
    print(f"\n✅ Tables ready: {', '.join(tables)}")

    if not settings.strava_client_id or not settings.strava_client_secret:
        print("\n⚠️  STRAVA_CLIENT_ID / STRAVA_CLIENT_SECRET are not set.")
        print("   Athletes can't connect Strava until they are added to .env")
    if not settings.google_geocoding_api_key:
        print("\nℹ️  GOOGLE_GEOCODING_API_KEY not set; countries resolve via Nominatim.")
    print()


if __name__ == "__main__":
    run_setup()
