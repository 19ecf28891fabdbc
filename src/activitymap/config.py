from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    strava_client_id: str = ""
    strava_client_secret: str = ""
    strava_redirect_uri: str = "http://localhost:8000/auth/strava/callback"
    strava_api_base: str = "https://www.strava.com/api/v3"
    strava_oauth_url: str = "https://www.strava.com/oauth"
    frontend_url: str = "http://localhost:3000"
    google_geocoding_api_key: str = ""
    nominatim_user_agent: str = "ActivityMap/1.0 (activitymap@example.com)"
    database_url: str = "sqlite:///./activitymap.db"
    host: str = "0.0.0.0"
    port: int = 8000
    sync_poll_hour: int = 4
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
