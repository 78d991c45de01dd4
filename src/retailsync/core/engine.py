"""
ReconciliationEngine: drives one sync cycle per entity type.

Flow for a current (incremental) cycle:
  1. Create SyncRun (status="running")
  2. Read SyncStatus → fetch records modified since last_sync minus overlap
  3. Persist through BatchPersister; a rolled-back transaction fails the step
  4. Steps 2-3 run under run_with_retry
  5. On success upsert SyncStatus (even for zero records) and finish the
     SyncRun as "success" or "partial"; on exhaustion finish it as "error"
     and leave SyncStatus untouched.

Historical backfill walks the last N days in fixed-size windows, each window
retried on its own; the backfill flag is only set once every window landed.

No ``run_*`` method raises for upstream or storage failures; they come back
as a SyncCycleResult with ``success=False``.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from retailsync.config import Settings, get_settings
from retailsync.core.descriptor import EntityDescriptor
from retailsync.core.persistence import BatchPersister, PersistenceOutcome
from retailsync.core.retry import run_with_retry
from retailsync.core.sync_status import SyncStatusTracker
from retailsync.exceptions import PersistenceError
from retailsync.models.sync import SyncRun
from retailsync.upstream.client import FetchFilters

logger = logging.getLogger(__name__)


@dataclass
class SyncCycleResult:
    entity_type: str
    mode: str
    success: bool
    saved_count: int = 0
    has_new_data: bool = False
    error: Optional[str] = None
    outcome: Optional[PersistenceOutcome] = None
    run_id: Optional[int] = None


class ReconciliationEngine:
    """Fetch → persist → record status, for any registered entity type."""

    def __init__(
        self,
        engine: Engine,
        client,
        settings: Optional[Settings] = None,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        """
        Args:
            engine: SQLAlchemy engine shared by persistence and status tracking.
            client: KiotVietClient (or AsyncMock in tests).
            settings: Tuning knobs; defaults to get_settings().
            sleep: Awaitable sleep used for backoff and batch pacing.
            clock: Returns the current naive-UTC time.
        """
        self.engine = engine
        self.client = client
        self.settings = settings or get_settings()
        self.status = SyncStatusTracker(engine)
        self._sleep = sleep
        self._clock = clock

    # ─── Public API ───────────────────────────────────────────────────────────

    async def run_sync(self, descriptor: EntityDescriptor) -> SyncCycleResult:
        """Backfill history first; once it is complete, sync incrementally."""
        try:
            status = self.status.get_sync_status(descriptor.entity_type)
        except SQLAlchemyError as exc:
            return _store_failure(descriptor.entity_type, "sync", exc)
        if not status.historical_completed:
            return await self.run_historical(descriptor, self.settings.backfill_days)
        return await self.run_current(descriptor)

    async def run_current(self, descriptor: EntityDescriptor) -> SyncCycleResult:
        """Fetch records modified since the last sync and persist them."""
        try:
            return await self._run_current(descriptor)
        except SQLAlchemyError as exc:
            return _store_failure(descriptor.entity_type, "current", exc)

    async def run_historical(self, descriptor: EntityDescriptor, days_ago: Optional[int] = None) -> SyncCycleResult:
        """
        Backfill the last ``days_ago`` days window by window.

        Stops at the first window that exhausts its retries; the backfill flag
        is left unset so the next cycle starts over.
        """
        try:
            return await self._run_historical(descriptor, days_ago)
        except SQLAlchemyError as exc:
            return _store_failure(descriptor.entity_type, "historical", exc)

    # ─── Internal helpers ─────────────────────────────────────────────────────

    async def _run_current(self, descriptor: EntityDescriptor) -> SyncCycleResult:
        entity = descriptor.entity_type
        started = self._clock()
        status = self.status.get_sync_status(entity)

        since = None
        if status.last_sync is not None and descriptor.supports_modified_filter:
            since = status.last_sync - timedelta(minutes=self.settings.sync_overlap_minutes)
        filters = self._filters(descriptor, last_modified_from=since)

        run = self._create_sync_run(entity, "current")
        logger.info("Starting %s sync (modified since %s)", entity, since or "the beginning")

        result = await run_with_retry(
            lambda: self._fetch_and_persist(descriptor, filters),
            max_attempts=self.settings.retry_max_attempts,
            base_delay=self.settings.retry_base_delay,
            sleep=self._sleep,
            label=f"{entity} sync",
        )

        if not result.ok:
            self._finish_sync_run(run, status="error", attempts=result.attempts, error_message=result.error_message)
            return SyncCycleResult(entity, "current", success=False, error=result.error_message, run_id=run.id)

        outcome: PersistenceOutcome = result.value
        self.status.record_sync(entity, completed=True, at=started)
        self._finish_sync_run(run, status=_run_status(outcome), attempts=result.attempts, outcome=outcome)
        return SyncCycleResult(
            entity,
            "current",
            success=True,
            saved_count=outcome.new_count,
            has_new_data=outcome.has_new_data,
            outcome=outcome,
            run_id=run.id,
        )

    async def _run_historical(self, descriptor: EntityDescriptor, days_ago: Optional[int]) -> SyncCycleResult:
        entity = descriptor.entity_type
        days_ago = days_ago if days_ago is not None else self.settings.backfill_days
        end = self._clock()

        run = self._create_sync_run(entity, "historical")
        logger.info("Starting %s historical sync for the last %d days", entity, days_ago)

        total = PersistenceOutcome(committed=True)
        attempts = 0
        windows = self._windows(descriptor, end - timedelta(days=days_ago), end)
        for i, (window_start, window_end) in enumerate(windows, 1):
            filters = self._filters(descriptor, last_modified_from=window_start, to_date=window_end)
            result = await run_with_retry(
                lambda: self._fetch_and_persist(descriptor, filters),
                max_attempts=self.settings.retry_max_attempts,
                base_delay=self.settings.retry_base_delay,
                sleep=self._sleep,
                label=f"{entity} backfill {i}/{len(windows)}",
            )
            attempts += result.attempts
            if not result.ok:
                self._finish_sync_run(
                    run, status="error", attempts=attempts, outcome=total, error_message=result.error_message
                )
                return SyncCycleResult(
                    entity, "historical", success=False, error=result.error_message, outcome=total, run_id=run.id
                )
            total = total.merge(result.value)

        self.status.record_sync(entity, completed=True, at=end)
        self._finish_sync_run(run, status=_run_status(total), attempts=attempts, outcome=total)
        logger.info("%s historical sync complete: %d new, %d updated", entity, total.new_count, total.updated_count)
        return SyncCycleResult(
            entity,
            "historical",
            success=True,
            saved_count=total.new_count,
            has_new_data=total.has_new_data,
            outcome=total,
            run_id=run.id,
        )

    async def _fetch_and_persist(self, descriptor: EntityDescriptor, filters: FetchFilters) -> PersistenceOutcome:
        records = await self.client.fetch_entities(descriptor.endpoint, filters)
        persister = BatchPersister(
            self.engine,
            descriptor,
            batch_size=self.settings.batch_size,
            pause=self.settings.batch_pause_seconds,
            sleep=self._sleep,
        )
        outcome = await persister.persist(records)
        if not outcome.committed:
            raise PersistenceError(outcome.error or f"{descriptor.entity_type} transaction rolled back")
        return outcome

    def _filters(
        self,
        descriptor: EntityDescriptor,
        last_modified_from: Optional[datetime] = None,
        to_date: Optional[datetime] = None,
    ) -> FetchFilters:
        if not descriptor.supports_modified_filter:
            last_modified_from = to_date = None
        return FetchFilters(
            last_modified_from=last_modified_from,
            to_date=to_date,
            extra=dict(descriptor.fetch_params),
        )

    def _windows(self, descriptor: EntityDescriptor, start: datetime, end: datetime) -> List[Tuple[datetime, datetime]]:
        # Entities without a modified filter are fetched whole in one go
        if not descriptor.supports_modified_filter:
            return [(start, end)]
        step = timedelta(days=max(self.settings.backfill_chunk_days, 1))
        windows = []
        cursor = start
        while cursor < end:
            windows.append((cursor, min(cursor + step, end)))
            cursor += step
        return windows or [(start, end)]

    def _create_sync_run(self, entity_type: str, mode: str) -> SyncRun:
        run = SyncRun(entity_type=entity_type, mode=mode, started_at=self._clock(), status="running")
        with Session(self.engine) as s:
            s.add(run)
            s.commit()
            s.refresh(run)
        return run

    def _finish_sync_run(
        self,
        run: SyncRun,
        *,
        status: str,
        attempts: int = 0,
        outcome: Optional[PersistenceOutcome] = None,
        error_message: Optional[str] = None,
    ) -> None:
        with Session(self.engine) as s:
            db_run = s.get(SyncRun, run.id)
            db_run.status = status
            db_run.finished_at = self._clock()
            db_run.attempts = attempts
            if outcome is not None:
                db_run.records_total = outcome.total
                db_run.records_new = outcome.new_count
                db_run.records_updated = outcome.updated_count
                db_run.records_failed = outcome.failed
            db_run.error_message = error_message
            s.add(db_run)
            s.commit()


def _run_status(outcome: PersistenceOutcome) -> str:
    return "success" if outcome.failed == 0 else "partial"


def _store_failure(entity_type: str, mode: str, exc: SQLAlchemyError) -> SyncCycleResult:
    logger.error("%s %s sync aborted, store unavailable: %s", entity_type, mode, exc)
    return SyncCycleResult(entity_type, mode, success=False, error=str(exc))
