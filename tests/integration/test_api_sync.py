"""Integration tests for /activities/sync routes."""
from datetime import datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session

from activitymap.api.dependencies import get_store, get_token_provider
from activitymap.api.main import create_app
from activitymap.config import Settings
from activitymap.db.engine import get_session
from activitymap.models.auth import AuthRecord
from activitymap.models.sync import SyncLog
from activitymap.strava.auth import TokenProvider


@pytest.fixture(name="client")
def client_fixture(engine, store):
    app = create_app()

    def override_session():
        with Session(engine) as s:
            yield s

    def override_tokens():
        # Any refresh attempt fails
        http = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
        return TokenProvider(engine, http=http, settings=Settings())

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_store] = lambda: store
    app.dependency_overrides[get_token_provider] = override_tokens
    with TestClient(app) as c:
        yield c


def add_auth(engine, expires_at=None):
    with Session(engine) as s:
        s.add(AuthRecord(athlete_id="42", access_token="tok", refresh_token="r", expires_at=expires_at))
        s.commit()


class TestTriggerSync:
    def test_requires_athlete_id(self, client):
        resp = client.post("/activities/sync", json={})
        assert resp.status_code == 400

    def test_unknown_athlete_is_401(self, client):
        with patch("activitymap.api.routes.sync.run_background_sync", new=AsyncMock()) as bg:
            resp = client.post("/activities/sync", json={"athlete_id": "42"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Authentication expired"
        bg.assert_not_awaited()

    def test_failed_refresh_is_500(self, client, engine):
        add_auth(engine, expires_at=1)
        resp = client.post("/activities/sync", json={"athlete_id": "42"})
        assert resp.status_code == 500

    def test_starts_incremental_by_default(self, client, engine):
        add_auth(engine)
        with patch("activitymap.api.routes.sync.run_background_sync", new=AsyncMock()) as bg:
            resp = client.post("/activities/sync", json={"athlete_id": 42})

        assert resp.status_code == 200
        body = resp.json()
        assert body["message"] == "Sync started in background"
        assert body["sync_type"] == "incremental"
        assert body["status"] == "in_progress"
        bg.assert_awaited_once_with("42", False)

    def test_full_sync(self, client, engine):
        add_auth(engine)
        with patch("activitymap.api.routes.sync.run_background_sync", new=AsyncMock()) as bg:
            resp = client.post("/activities/sync", json={"athlete_id": "42", "full_sync": True})

        assert resp.json()["sync_type"] == "full"
        bg.assert_awaited_once_with("42", True)


class TestSyncStatus:
    def test_never_run(self, client):
        resp = client.get("/activities/sync/status/42")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "never_run"
        assert body["total_activities"] == 0

    def test_latest_log_reported(self, client, engine):
        with Session(engine) as s:
            s.add(SyncLog(
                athlete_id="42", mode="full", status="failed",
                started_at=datetime(2025, 1, 14, 4, 0), error_message="old",
            ))
            s.add(SyncLog(
                athlete_id="42", mode="incremental", status="completed",
                started_at=datetime(2025, 1, 15, 4, 0),
                finished_at=datetime(2025, 1, 15, 4, 2),
                activities_fetched=10, activities_stored=3, activities_skipped=7,
            ))
            s.add(SyncLog(athlete_id="99", status="running", started_at=datetime(2025, 1, 16)))
            s.commit()

        body = client.get("/activities/sync/status/42").json()
        assert body["status"] == "completed"
        assert body["mode"] == "incremental"
        assert body["activities_stored"] == 3
        assert body["activities_skipped"] == 7
        assert body["error_message"] is None

    def test_rejected_duplicate_ignored(self, client, engine):
        with Session(engine) as s:
            s.add(SyncLog(
                athlete_id="42", mode="full", status="completed",
                started_at=datetime(2025, 1, 15, 4, 0),
                finished_at=datetime(2025, 1, 15, 4, 5),
                activities_stored=12,
            ))
            s.add(SyncLog(
                athlete_id="42", mode="incremental", status="rejected",
                started_at=datetime(2025, 1, 15, 4, 1),
                finished_at=datetime(2025, 1, 15, 4, 1),
                error_message="sync already in progress",
            ))
            s.commit()

        body = client.get("/activities/sync/status/42").json()
        assert body["status"] == "completed"
        assert body["mode"] == "full"
        assert body["activities_stored"] == 12
        assert body["error_message"] is None
