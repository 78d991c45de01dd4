"""
Backfill script: pull the last N days of one or more entity types.

Usage:
    python -m retailsync backfill --entity orders --days 160
    python -m retailsync.scripts.backfill --entity all

Runs a historical sync (windowed, each window retried on its own) and
marks the entity's backfill complete when every window landed. Records
already stored and not modified since are skipped by last-write-wins.
"""
import argparse
import asyncio
import logging
from typing import List, Optional

from retailsync.entities import entity_types

logger = logging.getLogger(__name__)


async def _backfill(types: List[str], days: int) -> bool:
    from retailsync.core.engine import ReconciliationEngine
    from retailsync.db.engine import get_engine
    from retailsync.entities import get_descriptor
    from retailsync.upstream.client import KiotVietClient

    engine = get_engine()
    ok = True

    async with KiotVietClient() as client:
        reconciler = ReconciliationEngine(engine, client)
        for entity_type in types:
            try:
                result = await reconciler.run_historical(get_descriptor(entity_type), days)
            except Exception:
                ok = False
                logger.exception("Backfill of %s crashed", entity_type)
                continue
            if result.success:
                logger.info(
                    "Backfill of %s complete. New: %d, updated: %d",
                    entity_type,
                    result.outcome.new_count,
                    result.outcome.updated_count,
                )
            else:
                ok = False
                logger.error("Backfill of %s failed: %s", entity_type, result.error)

    return ok


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Backfill KiotViet data")
    parser.add_argument(
        "--entity",
        choices=entity_types() + ["all"],
        default="all",
        help="Entity type to backfill (default: all)",
    )
    parser.add_argument(
        "--days",
        type=int,
        default=None,
        help="Number of days to backfill (default: BACKFILL_DAYS setting)",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    from retailsync.config import get_settings

    args = build_parser().parse_args(argv)
    types = entity_types() if args.entity == "all" else [args.entity]
    days = args.days if args.days is not None else get_settings().backfill_days
    ok = asyncio.run(_backfill(types, days))
    return 0 if ok else 1


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(name)s %(levelname)s %(message)s")
    raise SystemExit(main())
