"""Per-entity sync progress: last successful sync time and backfill flag."""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from retailsync.models.sync import SyncStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncStatusView:
    entity_type: Optional[str] = None
    last_sync: Optional[datetime] = None
    historical_completed: bool = False


class SyncStatusTracker:
    """Reads and upserts the single ``sync_status`` row of each entity type."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def record_sync(
        self,
        entity_type: str,
        completed: bool,
        at: Optional[datetime] = None,
    ) -> SyncStatusView:
        """
        Set ``last_sync`` and ``historical_completed`` for ``entity_type``.

        Select-then-update-or-insert; if another writer inserted the row in
        between, the unique constraint fires and the write is redone as an
        update.
        """
        at = at or datetime.utcnow()
        try:
            return self._upsert(entity_type, completed, at)
        except IntegrityError:
            logger.info("sync_status row for %s appeared concurrently, updating", entity_type)
            return self._upsert(entity_type, completed, at)

    def get_sync_status(self, entity_type: str) -> SyncStatusView:
        """Current status; a never-synced entity reads as (None, False)."""
        with Session(self.engine) as s:
            row = s.exec(
                select(SyncStatus).where(SyncStatus.entity_type == entity_type)
            ).first()
            if row is None:
                return SyncStatusView(entity_type=entity_type)
            return _view(row)

    def list_sync_statuses(self) -> List[SyncStatusView]:
        with Session(self.engine) as s:
            rows = s.exec(select(SyncStatus).order_by(SyncStatus.entity_type)).all()
            return [_view(row) for row in rows]

    def _upsert(self, entity_type: str, completed: bool, at: datetime) -> SyncStatusView:
        with Session(self.engine) as s:
            row = s.exec(
                select(SyncStatus).where(SyncStatus.entity_type == entity_type)
            ).first()
            if row is None:
                row = SyncStatus(entity_type=entity_type)
            row.last_sync = at
            row.historical_completed = completed
            s.add(row)
            s.commit()
            s.refresh(row)
            logger.info(
                "Updated sync status for %s: last_sync=%s, historical_completed=%s",
                entity_type,
                at.isoformat(),
                completed,
            )
            return _view(row)


def _view(row: SyncStatus) -> SyncStatusView:
    return SyncStatusView(
        entity_type=row.entity_type,
        last_sync=row.last_sync,
        historical_completed=row.historical_completed,
    )
