"""SQLModel engine singleton and session dependency."""
from typing import Generator

from sqlmodel import Session, SQLModel, create_engine

from activitymap.config import get_settings

_engine = None


def get_engine():
    """Return the module-level engine, creating it on first call."""
    global _engine
    if _engine is None:
        settings = get_settings()
        connect_args = {}
        if settings.database_url.startswith("sqlite"):
            connect_args["check_same_thread"] = False  # shared with background tasks
        _engine = create_engine(settings.database_url, connect_args=connect_args)
        create_tables(_engine)
    return _engine


def create_tables(engine) -> None:
    """Create all tables (idempotent)."""
    # Import all models so metadata is populated before create_all
    from activitymap.models.activity import Activity  # noqa
    from activitymap.models.auth import AuthRecord  # noqa
    from activitymap.models.sync import SyncLease, SyncLog  # noqa
    SQLModel.metadata.create_all(engine)


def get_session() -> Generator[Session, None, None]:
    """FastAPI dependency that yields a DB session."""
    with Session(get_engine()) as session:
        yield session
