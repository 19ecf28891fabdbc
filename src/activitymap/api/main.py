"""FastAPI application factory."""
from contextlib import asynccontextmanager

from fastapi import FastAPI

from activitymap.db.engine import create_tables, get_engine
from activitymap.api.routes import activities, auth, health, sync as sync_routes


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Create tables on startup (idempotent)
        create_tables(get_engine())
        yield

    app = FastAPI(
        title="Activity Map API",
        description="Strava activity sync and world-map backend",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(auth.router, prefix="/auth", tags=["auth"])
    # Sync routes first so /activities/sync/... never reaches /activities/{activity_id}
    app.include_router(sync_routes.router, prefix="/activities/sync", tags=["sync"])
    app.include_router(activities.router, prefix="/activities", tags=["activities"])
    app.include_router(health.router, tags=["health"])

    return app


# Module-level app instance for uvicorn
app = create_app()
