"""Sync bookkeeping models: per-entity status and per-cycle audit log."""
from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel


class SyncStatus(SQLModel, table=True):
    """Exactly one row per entity type; upserted after every successful cycle."""

    __tablename__ = "sync_status"

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_type: str = Field(unique=True, index=True, max_length=50)
    last_sync: Optional[datetime] = None
    historical_completed: bool = False


class SyncRun(SQLModel, table=True):
    """Records each sync cycle for audit and debugging."""

    __tablename__ = "sync_run"

    id: Optional[int] = Field(default=None, primary_key=True)
    entity_type: str = Field(index=True, max_length=50)
    mode: str = "current"  # "current", "historical"
    started_at: datetime = Field(default_factory=datetime.utcnow)
    finished_at: Optional[datetime] = None
    status: str = "running"  # "running", "success", "partial", "error"
    records_total: int = 0
    records_new: int = 0
    records_updated: int = 0
    records_failed: int = 0
    attempts: int = 0
    error_message: Optional[str] = None
