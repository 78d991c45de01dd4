"""Tests for APScheduler job configuration and the per-entity sync job body."""
import pytest
from unittest.mock import AsyncMock, MagicMock, patch
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from retailsync.core.engine import SyncCycleResult
from retailsync.entities import ORDERS
from retailsync.scheduler.jobs import _sync_entity, build_notifier, build_scheduler


@pytest.fixture
def mock_settings():
    with patch("retailsync.scheduler.jobs.get_settings") as mocked:
        mocked.return_value.sync_entities = ["orders", "customers"]
        mocked.return_value.sync_interval_minutes = 15
        yield mocked.return_value


class TestBuildScheduler:
    def test_returns_scheduler(self, mock_settings):
        scheduler = build_scheduler(MagicMock())
        assert isinstance(scheduler, AsyncIOScheduler)

    def test_one_job_per_entity(self, mock_settings):
        scheduler = build_scheduler(MagicMock())
        job_ids = sorted(job.id for job in scheduler.get_jobs())
        assert job_ids == ["sync_customers", "sync_orders"]

    def test_sync_jobs_are_interval(self, mock_settings):
        mock_settings.sync_interval_minutes = 30
        scheduler = build_scheduler(MagicMock())
        job = scheduler.get_job("sync_orders")
        assert job.trigger.__class__.__name__ == "IntervalTrigger"
        assert job.trigger.interval.total_seconds() == 30 * 60
        assert job.max_instances == 1
        assert job.kwargs["entity_type"] == "orders"

    def test_notifier_job_added(self, mock_settings):
        notifier = MagicMock()
        scheduler = build_scheduler(MagicMock(), notifier=notifier)
        notifier.start.assert_called_once_with(scheduler)

    def test_scheduler_not_running_on_creation(self, mock_settings):
        """build_scheduler should not auto-start."""
        scheduler = build_scheduler(MagicMock())
        assert not scheduler.running


class TestBuildNotifier:
    @pytest.mark.asyncio
    async def test_fetches_configured_branches(self, settings):
        client = AsyncMock()
        client.fetch_orders_modified_today = AsyncMock(return_value=[])
        notifier = build_notifier(client, MagicMock(), settings)

        await notifier.tick()

        client.fetch_orders_modified_today.assert_awaited_once_with([635934, 402819, 154833])
        assert notifier.notify_statuses == frozenset({3, 4})
        assert notifier.interval_seconds == 15


# ─── _sync_entity job body ────────────────────────────────────────────────────

class TestSyncEntityJob:
    """ReconciliationEngine and KiotVietClient are imported inside the job
    body, so they are patched at their source module paths."""

    @pytest.mark.asyncio
    async def test_runs_sync_for_entity(self, mock_settings):
        client = AsyncMock()
        client.__aenter__.return_value = client
        reconciler = MagicMock()
        reconciler.run_sync = AsyncMock(
            return_value=SyncCycleResult("orders", "current", success=True, saved_count=2)
        )

        with patch("retailsync.upstream.client.KiotVietClient", return_value=client), \
             patch("retailsync.core.engine.ReconciliationEngine", return_value=reconciler):
            await _sync_entity(engine=MagicMock(), entity_type="orders")

        reconciler.run_sync.assert_awaited_once_with(ORDERS)
        client.__aexit__.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_exception_does_not_propagate(self, mock_settings):
        """Job should swallow errors so the next interval still fires."""
        client = AsyncMock()
        client.__aenter__.side_effect = RuntimeError("network down")

        with patch("retailsync.upstream.client.KiotVietClient", return_value=client):
            await _sync_entity(engine=MagicMock(), entity_type="orders")

    @pytest.mark.asyncio
    async def test_unknown_entity_is_logged_not_raised(self, mock_settings):
        await _sync_entity(engine=MagicMock(), entity_type="invoices")
