"""Tests for APScheduler job configuration and the periodic sync job body."""
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from tasksync.scheduler.jobs import _periodic_sync, build_scheduler


class TestBuildScheduler:
    def test_returns_scheduler(self):
        scheduler = build_scheduler(MagicMock())
        assert isinstance(scheduler, AsyncIOScheduler)

    def test_periodic_sync_job_registered(self):
        scheduler = build_scheduler(MagicMock())
        job_ids = [job.id for job in scheduler.get_jobs()]
        assert "periodic_sync" in job_ids

    def test_periodic_sync_is_interval(self):
        scheduler = build_scheduler(MagicMock())
        job = next(j for j in scheduler.get_jobs() if j.id == "periodic_sync")
        assert job.trigger.__class__.__name__ == "IntervalTrigger"

    def test_default_interval_is_five_minutes(self):
        scheduler = build_scheduler(MagicMock())
        job = next(j for j in scheduler.get_jobs() if j.id == "periodic_sync")
        assert job.trigger.interval == timedelta(minutes=5)

    def test_interval_from_settings(self):
        """Scheduler respects the SYNC_INTERVAL_MINUTES setting."""
        with patch("tasksync.scheduler.jobs.get_settings") as mock_settings:
            mock_settings.return_value.sync_interval_minutes = 15
            scheduler = build_scheduler(MagicMock())

        job = next(j for j in scheduler.get_jobs() if j.id == "periodic_sync")
        assert job.trigger.interval == timedelta(minutes=15)

    def test_runs_never_overlap(self):
        scheduler = build_scheduler(MagicMock())
        job = next(j for j in scheduler.get_jobs() if j.id == "periodic_sync")
        assert job.max_instances == 1

    def test_scheduler_not_running_on_creation(self):
        """build_scheduler should not auto-start."""
        scheduler = build_scheduler(MagicMock())
        assert not scheduler.running


class TestPeriodicSyncJob:
    @pytest.mark.asyncio
    async def test_syncs_all_users(self):
        service = AsyncMock()
        service.sync_all_users = AsyncMock(return_value={1: MagicMock(), 2: "boom"})

        await _periodic_sync(service=service)

        service.sync_all_users.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_exception_does_not_propagate(self):
        """The job swallows errors so the scheduler stays alive."""
        service = AsyncMock()
        service.sync_all_users = AsyncMock(side_effect=Exception("database is locked"))

        # Should not raise
        await _periodic_sync(service=service)
