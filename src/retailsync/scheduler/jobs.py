"""
APScheduler jobs for background sync.

One interval job per configured entity type runs ``run_sync`` (historical
backfill until complete, then incremental). The order notifier registers
its own interval job on the same scheduler.

The scheduler runs inside the entrypoint process (wired in __main__.py).
"""
import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from retailsync.config import Settings, get_settings
from retailsync.notify.notifier import ChangeNotifier

logger = logging.getLogger(__name__)


def build_scheduler(engine, notifier: Optional[ChangeNotifier] = None) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine to pass to the sync jobs.
        notifier: Optional ChangeNotifier to schedule alongside the syncs.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    for entity_type in settings.sync_entities:
        scheduler.add_job(
            _sync_entity,
            trigger="interval",
            minutes=settings.sync_interval_minutes,
            id=f"sync_{entity_type}",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            kwargs={"engine": engine, "entity_type": entity_type},
        )

    if notifier is not None:
        notifier.start(scheduler)

    return scheduler


def build_notifier(client, sink, settings: Optional[Settings] = None) -> ChangeNotifier:
    """ChangeNotifier polling today's orders of the configured branches."""
    settings = settings or get_settings()

    async def fetch_orders():
        return await client.fetch_orders_modified_today(settings.notifier_branch_ids)

    return ChangeNotifier(
        fetch_orders,
        sink,
        notify_statuses=settings.notify_statuses,
        interval_seconds=settings.notifier_interval_seconds,
        max_concurrency=settings.notifier_max_concurrency,
    )


async def _sync_entity(engine, entity_type: str) -> None:
    """
    Interval job: reconcile one entity type with upstream.

    Failures are logged and swallowed so the next interval still fires.
    """
    from retailsync.core.engine import ReconciliationEngine
    from retailsync.entities import get_descriptor
    from retailsync.upstream.client import KiotVietClient

    settings = get_settings()
    logger.info("%s sync starting at %s", entity_type, datetime.utcnow().isoformat())

    try:
        descriptor = get_descriptor(entity_type)
        async with KiotVietClient(settings) as client:
            result = await ReconciliationEngine(engine, client, settings).run_sync(descriptor)

        if result.success:
            logger.info(
                "%s %s sync finished: %d new records",
                entity_type,
                result.mode,
                result.saved_count,
            )
        else:
            logger.error("%s %s sync failed: %s", entity_type, result.mode, result.error)

    except Exception as exc:
        logger.error("%s sync job failed: %s", entity_type, exc)
