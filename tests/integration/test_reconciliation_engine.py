"""
Integration tests for ReconciliationEngine.

Uses AsyncMock for the KiotViet client and an in-memory SQLite DB.
No real network calls are made.
"""
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import Session, select

from retailsync.core.engine import ReconciliationEngine
from retailsync.core.persistence import PersistenceOutcome
from retailsync.core.sync_status import SyncStatusTracker
from retailsync.entities import ORDERS, PRICE_BOOKS
from retailsync.exceptions import UpstreamError
from retailsync.models.entities import Order
from retailsync.models.sync import SyncRun

NOW = datetime(2025, 3, 10, 12, 0)


async def no_sleep(_seconds):
    return None


def make_engine(engine, settings, client):
    return ReconciliationEngine(engine, client, settings, sleep=no_sleep, clock=lambda: NOW)


def mock_client(*, records=None, side_effect=None):
    client = AsyncMock()
    if side_effect is not None:
        client.fetch_entities = AsyncMock(side_effect=side_effect)
    else:
        client.fetch_entities = AsyncMock(return_value=records or [])
    return client


def runs(engine):
    with Session(engine) as s:
        return s.exec(select(SyncRun).order_by(SyncRun.id)).all()


class TestCurrentSync:
    @pytest.mark.asyncio
    async def test_zero_records_still_updates_status(self, engine, settings):
        reconciler = make_engine(engine, settings, mock_client(records=[]))

        result = await reconciler.run_current(ORDERS)

        assert result.success
        assert result.saved_count == 0
        assert result.has_new_data is False
        status = SyncStatusTracker(engine).get_sync_status("orders")
        assert status.last_sync == NOW
        assert status.historical_completed is True
        assert runs(engine)[-1].status == "success"
        assert runs(engine)[-1].finished_at == NOW

    @pytest.mark.asyncio
    async def test_saves_and_reports_new_records(self, engine, settings, order_factory):
        client = mock_client(records=[order_factory(1), order_factory(2), order_factory(3)])
        result = await make_engine(engine, settings, client).run_current(ORDERS)

        assert result.saved_count == 3
        assert result.has_new_data
        with Session(engine) as s:
            assert len(s.exec(select(Order)).all()) == 3
        run = runs(engine)[-1]
        assert (run.records_total, run.records_new, run.attempts) == (3, 3, 1)

    @pytest.mark.asyncio
    async def test_first_sync_fetches_everything(self, engine, settings):
        client = mock_client()
        await make_engine(engine, settings, client).run_current(ORDERS)

        endpoint, filters = client.fetch_entities.await_args.args
        assert endpoint == "/orders"
        assert filters.last_modified_from is None
        assert filters.extra["includePayment"] is True

    @pytest.mark.asyncio
    async def test_later_sync_uses_last_sync_minus_overlap(self, engine, settings):
        last = datetime(2025, 3, 10, 11, 0)
        SyncStatusTracker(engine).record_sync("orders", completed=True, at=last)
        client = mock_client()

        await make_engine(engine, settings, client).run_current(ORDERS)

        filters = client.fetch_entities.await_args.args[1]
        assert filters.last_modified_from == last - timedelta(minutes=settings.sync_overlap_minutes)

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, engine, settings, order_factory):
        client = mock_client(side_effect=[UpstreamError("502"), [order_factory(1)]])
        result = await make_engine(engine, settings, client).run_current(ORDERS)

        assert result.success
        assert client.fetch_entities.await_count == 2
        assert runs(engine)[-1].attempts == 2

    @pytest.mark.asyncio
    async def test_exhausted_retries_leave_status_untouched(self, engine, settings):
        client = mock_client(side_effect=UpstreamError("upstream down", status_code=503))
        result = await make_engine(engine, settings, client).run_current(ORDERS)

        assert not result.success
        assert result.error == "upstream down"
        assert client.fetch_entities.await_count == settings.retry_max_attempts
        assert SyncStatusTracker(engine).get_sync_status("orders").last_sync is None
        run = runs(engine)[-1]
        assert run.status == "error"
        assert run.error_message == "upstream down"
        assert run.finished_at is not None

    @pytest.mark.asyncio
    async def test_rolled_back_transaction_is_retried(self, engine, settings):
        persister = MagicMock()
        persister.persist = AsyncMock(side_effect=[
            PersistenceOutcome.rolled_back(1, Exception("database is locked")),
            PersistenceOutcome(total=1, succeeded=1, new_count=1, committed=True),
        ])
        client = mock_client(records=[{"id": 1}])

        with patch("retailsync.core.engine.BatchPersister", return_value=persister):
            result = await make_engine(engine, settings, client).run_current(ORDERS)

        assert result.success
        assert persister.persist.await_count == 2
        assert client.fetch_entities.await_count == 2

    @pytest.mark.asyncio
    async def test_persistent_rollback_fails_cycle(self, engine, settings):
        persister = MagicMock()
        persister.persist = AsyncMock(return_value=PersistenceOutcome.rolled_back(1, Exception("disk full")))

        with patch("retailsync.core.engine.BatchPersister", return_value=persister):
            result = await make_engine(engine, settings, mock_client(records=[{"id": 1}])).run_current(ORDERS)

        assert not result.success
        assert "disk full" in result.error
        assert SyncStatusTracker(engine).get_sync_status("orders").last_sync is None

    @pytest.mark.asyncio
    async def test_record_failures_mark_run_partial(self, engine, settings, order_factory):
        bad = order_factory(2)
        bad.pop("id")
        client = mock_client(records=[order_factory(1), bad])
        result = await make_engine(engine, settings, client).run_current(ORDERS)

        assert result.success
        assert result.outcome.failed == 1
        run = runs(engine)[-1]
        assert run.status == "partial"
        assert run.records_failed == 1


class TestHistoricalSync:
    @pytest.mark.asyncio
    async def test_walks_windows_and_marks_complete(self, engine, settings, order_factory):
        client = mock_client(side_effect=[[order_factory(1)], [order_factory(2)], []])
        result = await make_engine(engine, settings, client).run_historical(ORDERS, days_ago=21)

        assert result.success
        assert result.mode == "historical"
        assert result.saved_count == 2
        windows = [
            (call.args[1].last_modified_from, call.args[1].to_date)
            for call in client.fetch_entities.await_args_list
        ]
        start = NOW - timedelta(days=21)
        assert windows == [
            (start, start + timedelta(days=7)),
            (start + timedelta(days=7), start + timedelta(days=14)),
            (start + timedelta(days=14), NOW),
        ]
        status = SyncStatusTracker(engine).get_sync_status("orders")
        assert status.historical_completed is True
        assert status.last_sync == NOW

    @pytest.mark.asyncio
    async def test_failed_window_stops_backfill(self, engine, settings, order_factory):
        client = mock_client(side_effect=[[order_factory(1)]] + [UpstreamError("boom")] * 3)
        result = await make_engine(engine, settings, client).run_historical(ORDERS, days_ago=21)

        assert not result.success
        assert client.fetch_entities.await_count == 4
        assert SyncStatusTracker(engine).get_sync_status("orders").historical_completed is False
        # the first window's rows were committed on their own
        with Session(engine) as s:
            assert len(s.exec(select(Order)).all()) == 1
        assert runs(engine)[-1].status == "error"

    @pytest.mark.asyncio
    async def test_entity_without_modified_filter_fetched_once(self, engine, settings):
        client = mock_client()
        result = await make_engine(engine, settings, client).run_historical(PRICE_BOOKS, days_ago=160)

        assert result.success
        assert client.fetch_entities.await_count == 1
        filters = client.fetch_entities.await_args.args[1]
        assert filters.last_modified_from is None
        assert filters.to_date is None


class TestRunSync:
    @pytest.mark.asyncio
    async def test_backfills_first(self, engine, settings):
        result = await make_engine(engine, settings, mock_client()).run_sync(ORDERS)
        assert result.mode == "historical"

    @pytest.mark.asyncio
    async def test_incremental_after_backfill(self, engine, settings):
        SyncStatusTracker(engine).record_sync("orders", completed=True, at=NOW - timedelta(hours=1))
        result = await make_engine(engine, settings, mock_client()).run_sync(ORDERS)
        assert result.mode == "current"


class TestStoreFailures:
    def _locked(self):
        return OperationalError("SELECT", {}, Exception("database is locked"))

    @pytest.mark.asyncio
    async def test_status_read_failure_returns_failed_result(self, engine, settings):
        client = mock_client()
        reconciler = make_engine(engine, settings, client)

        with patch.object(reconciler.status, "get_sync_status", side_effect=self._locked()):
            current = await reconciler.run_current(ORDERS)
            synced = await reconciler.run_sync(ORDERS)

        assert not current.success
        assert "database is locked" in current.error
        assert not synced.success
        client.fetch_entities.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_audit_row_failure_returns_failed_result(self, engine, settings):
        client = mock_client()
        reconciler = make_engine(engine, settings, client)

        with patch.object(reconciler, "_create_sync_run", side_effect=self._locked()):
            result = await reconciler.run_historical(ORDERS, days_ago=7)

        assert not result.success
        assert result.mode == "historical"
        assert SyncStatusTracker(engine).get_sync_status("orders").historical_completed is False
