"""Sync run log and per-athlete sync lease."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncLog(SQLModel, table=True):
    """Records each sync run so status queries see real outcomes."""

    id: Optional[int] = Field(default=None, primary_key=True)
    athlete_id: str = Field(index=True)
    mode: str = "incremental"  # "full", "incremental"
    status: str = "running"  # "running", "completed", "failed", "rejected"
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    activities_fetched: int = 0
    activities_stored: int = 0
    activities_skipped: int = 0
    error_message: Optional[str] = None


class SyncLease(SQLModel, table=True):
    """Held by at most one sync run per athlete while it persists activities."""

    athlete_id: str = Field(primary_key=True)
    run_id: int
    acquired_at: datetime = Field(default_factory=datetime.utcnow)
