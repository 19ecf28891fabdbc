"""Tests for the backfill script."""
from unittest.mock import AsyncMock, patch

import pytest
from sqlmodel import Session, select

from activitymap.models.auth import AuthRecord
from activitymap.models.sync import SyncLog
from activitymap.scripts.backfill import _backfill


class TestBackfill:
    @pytest.mark.asyncio
    async def test_unknown_athlete_returns_error_code(self, engine):
        with patch("activitymap.db.engine.get_engine", return_value=engine):
            assert await _backfill("42", full_sync=False) == 1

    @pytest.mark.asyncio
    async def test_runs_sync_and_records_log(self, engine):
        with Session(engine) as s:
            s.add(AuthRecord(athlete_id="42", access_token="tok", refresh_token="r"))
            s.commit()

        mock_client = AsyncMock()
        mock_client.list_activities = AsyncMock(return_value=[])

        with patch("activitymap.db.engine.get_engine", return_value=engine), \
             patch("activitymap.strava.client.StravaClient", return_value=mock_client) as client_cls:
            assert await _backfill("42", full_sync=True) == 0

        assert client_cls.call_args.args[0] == "tok"
        with Session(engine) as s:
            log = s.exec(select(SyncLog)).one()
        assert log.status == "completed"
        assert log.mode == "full"
