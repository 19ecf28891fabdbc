"""Strava OAuth token records."""
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel


class AuthRecord(SQLModel, table=True):
    """One row per athlete. Refreshing a token rewrites the same row."""

    athlete_id: str = Field(primary_key=True)
    access_token: str
    refresh_token: str
    expires_at: Optional[int] = None  # epoch seconds
    athlete_info: Optional[Dict[str, Any]] = Field(
        default=None, sa_column=Column(JSON)
    )
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
