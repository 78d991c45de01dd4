"""
Main entrypoint: starts the sync scheduler and the order notifier.

FastAPI runs separately under uvicorn.

Usage:
    python -m retailsync                                   # scheduler + notifier
    python -m retailsync backfill --entity orders --days 160
    uvicorn retailsync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_service() -> None:
    from retailsync.config import get_settings
    from retailsync.db.engine import get_engine
    from retailsync.notify.sinks import build_sink
    from retailsync.scheduler.jobs import build_notifier, build_scheduler
    from retailsync.upstream.client import KiotVietClient

    settings = get_settings()
    engine = get_engine()

    if not settings.kiot_client_id or not settings.kiot_retailer:
        logger.error("KIOT_CLIENT_ID and KIOT_RETAILER must be set (see .env).")
        sys.exit(1)

    async with KiotVietClient(settings) as client:
        notifier = None
        sink = build_sink(settings) if settings.notifier_enabled else None
        if sink is not None:
            notifier = build_notifier(client, sink, settings)

        scheduler = build_scheduler(engine, notifier=notifier)
        scheduler.start()
        logger.info(
            "Scheduler started (%s every %d min)",
            ", ".join(settings.sync_entities),
            settings.sync_interval_minutes,
        )

        try:
            await asyncio.Event().wait()
        except (KeyboardInterrupt, SystemExit):
            logger.info("Shutting down...")
        finally:
            if notifier is not None:
                notifier.stop()
            scheduler.shutdown()
            if sink is not None:
                await sink.aclose()
            logger.info("Goodbye.")


if __name__ == "__main__":
    # Dispatch on first argument: `python -m retailsync backfill ...` or just `python -m retailsync`
    if len(sys.argv) > 1 and sys.argv[1] == "backfill":
        from retailsync.scripts.backfill import main as backfill_main
        sys.exit(backfill_main(sys.argv[2:]))
    else:
        try:
            asyncio.run(_run_service())
        except KeyboardInterrupt:
            pass
