"""Sync trigger, status and audit routes."""
import logging
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from retailsync.core.engine import ReconciliationEngine
from retailsync.core.sync_status import SyncStatusTracker
from retailsync.db.engine import get_engine, get_session
from retailsync.entities import entity_types, get_descriptor
from retailsync.exceptions import UnknownEntityError
from retailsync.models.sync import SyncRun
from retailsync.upstream.client import KiotVietClient

logger = logging.getLogger(__name__)

router = APIRouter()


class SyncTriggerRequest(BaseModel):
    entity_type: Optional[str] = None  # If None, syncs every registered entity


class SyncStatusResponse(BaseModel):
    entity_type: str
    last_sync: Optional[datetime]
    historical_completed: bool


async def _do_sync(engine: Engine, types: List[str]) -> None:
    """Background task: run one sync cycle for each entity type in turn."""
    async with KiotVietClient() as client:
        reconciler = ReconciliationEngine(engine, client)
        for entity_type in types:
            try:
                await reconciler.run_sync(get_descriptor(entity_type))
            except Exception:
                logger.exception("On-demand sync of %s failed", entity_type)


@router.post("/trigger")
async def trigger_sync(
    request: SyncTriggerRequest,
    background_tasks: BackgroundTasks,
    engine: Engine = Depends(get_engine),
):
    """
    Trigger an on-demand sync. Returns immediately; the sync runs in the
    background and its outcome shows up under /sync/runs.
    """
    if request.entity_type is None:
        types = entity_types()
    else:
        _require_entity(request.entity_type)
        types = [request.entity_type]
    background_tasks.add_task(_do_sync, engine, types)
    return {"message": "Sync started", "entity_types": types}


@router.get("/status", response_model=List[SyncStatusResponse])
def list_statuses(engine: Engine = Depends(get_engine)):
    """Sync status of every registered entity type; never-synced ones included."""
    tracker = SyncStatusTracker(engine)
    return [_status_response(tracker, t) for t in entity_types()]


@router.get("/status/{entity_type}", response_model=SyncStatusResponse)
def entity_status(entity_type: str, engine: Engine = Depends(get_engine)):
    _require_entity(entity_type)
    return _status_response(SyncStatusTracker(engine), entity_type)


@router.get("/runs", response_model=List[SyncRun])
def recent_runs(
    limit: int = Query(20, ge=1, le=500),
    entity_type: Optional[str] = None,
    session: Session = Depends(get_session),
):
    """Most recent sync cycles, newest first."""
    query = select(SyncRun)
    if entity_type:
        query = query.where(SyncRun.entity_type == entity_type)
    return session.exec(query.order_by(SyncRun.id.desc()).limit(limit)).all()


def _require_entity(entity_type: str) -> None:
    try:
        get_descriptor(entity_type)
    except UnknownEntityError:
        raise HTTPException(status_code=404, detail=f"Unknown entity type: {entity_type}")


def _status_response(tracker: SyncStatusTracker, entity_type: str) -> SyncStatusResponse:
    view = tracker.get_sync_status(entity_type)
    return SyncStatusResponse(
        entity_type=entity_type,
        last_sync=view.last_sync,
        historical_completed=view.historical_completed,
    )
