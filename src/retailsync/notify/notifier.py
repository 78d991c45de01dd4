"""
ChangeNotifier: polls today's orders and announces status transitions.

Flow for one tick:
  1. Fetch orders modified today (Idle → Fetching)
  2. Diff them against the snapshot from the previous tick (Diffing)
  3. Notify every MODIFIED order whose status is now Completed/Cancelled
     (Notifying); sends run concurrently, bounded by a semaphore
  4. Replace the snapshot with this tick's fetch and return to Idle

The first tick after start has no snapshot, so everything is NEW and
nothing is sent. A failed fetch keeps the old snapshot. A failed send is
logged and counted; it neither stops the other sends nor the snapshot
update, and the transition is not announced again on a later tick.
"""
import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

from apscheduler.jobstores.base import JobLookupError

from retailsync.core.detector import ORDER_RULES, ComparisonRules, detect_changes
from retailsync.core.records import Change, ChangeKind, Snapshot
from retailsync.notify.sinks import NotificationSink

logger = logging.getLogger(__name__)

DEFAULT_JOB_ID = "order_notifier"


class NotifierState(str, Enum):
    IDLE = "idle"
    FETCHING = "fetching"
    DIFFING = "diffing"
    NOTIFYING = "notifying"


@dataclass
class TickResult:
    fetched: int = 0
    changes: int = 0
    notified: int = 0
    failed: int = 0
    skipped: bool = False
    error: Optional[str] = None


class ChangeNotifier:
    """Owns the order snapshot and the notify-on-transition loop."""

    def __init__(
        self,
        fetch: Callable[[], Awaitable[List[Dict[str, Any]]]],
        sink: NotificationSink,
        *,
        rules: ComparisonRules = ORDER_RULES,
        notify_statuses: Iterable[int] = (3, 4),
        interval_seconds: int = 15,
        max_concurrency: int = 5,
        job_id: str = DEFAULT_JOB_ID,
    ):
        """
        Args:
            fetch: Zero-argument coroutine returning the current order list.
            sink: Where notifications go.
            rules: Keying and comparison fields for the diff.
            notify_statuses: New status values that trigger a notification.
            interval_seconds: Poll period once started.
            max_concurrency: Upper bound on in-flight sends.
            job_id: APScheduler job id used by start()/stop().
        """
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self._fetch = fetch
        self.sink = sink
        self.rules = rules
        self.notify_statuses = frozenset(notify_statuses)
        self.interval_seconds = interval_seconds
        self.max_concurrency = max_concurrency
        self.job_id = job_id

        self.state = NotifierState.IDLE
        self._snapshot = Snapshot.empty(key_field=rules.key_field)
        self._busy = False
        self._scheduler = None

    @property
    def snapshot(self) -> Snapshot:
        return self._snapshot

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    def start(self, scheduler) -> None:
        """Register the polling job on ``scheduler`` (started or not)."""
        scheduler.add_job(
            self.tick,
            trigger="interval",
            seconds=self.interval_seconds,
            id=self.job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler = scheduler
        logger.info("Order notifier scheduled every %ds", self.interval_seconds)

    def stop(self) -> None:
        """Remove the polling job. A tick already running is left to finish."""
        if self._scheduler is None:
            return
        try:
            self._scheduler.remove_job(self.job_id)
        except JobLookupError:
            pass
        self._scheduler = None
        logger.info("Order notifier stopped")

    # ─── Tick ─────────────────────────────────────────────────────────────────

    async def tick(self) -> TickResult:
        """Run one poll-diff-notify cycle. Never raises."""
        if self._busy:
            logger.warning("Previous notifier tick still running, skipping this one")
            return TickResult(skipped=True)

        self._busy = True
        try:
            self.state = NotifierState.FETCHING
            try:
                records = await self._fetch()
            except Exception as exc:
                logger.error("Order notifier fetch failed: %s", exc)
                return TickResult(error=str(exc))

            self.state = NotifierState.DIFFING
            current = Snapshot(records, key_field=self.rules.key_field)
            changes = detect_changes(current, self._snapshot, self.rules)
            targets = [c for c in changes if self._should_notify(c)]
            if targets:
                logger.info(
                    "Found %d modified orders with status in %s",
                    len(targets),
                    sorted(self.notify_statuses),
                )

            self.state = NotifierState.NOTIFYING
            notified, failed = await self._dispatch(targets)

            self._snapshot = current
            return TickResult(
                fetched=len(current),
                changes=len(changes),
                notified=notified,
                failed=failed,
            )
        finally:
            self.state = NotifierState.IDLE
            self._busy = False

    def _should_notify(self, change: Change) -> bool:
        return (
            change.kind is ChangeKind.MODIFIED
            and change.record.get(self.rules.status_field) in self.notify_statuses
        )

    async def _dispatch(self, changes: List[Change]) -> Tuple[int, int]:
        if not changes:
            return 0, 0
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def send(change: Change) -> None:
            async with semaphore:
                await self.sink.notify(change)

        results = await asyncio.gather(*(send(c) for c in changes), return_exceptions=True)

        notified = failed = 0
        for change, result in zip(changes, results):
            if isinstance(result, BaseException):
                failed += 1
                logger.error("Error sending notification for order %s: %s", change.key, result)
            else:
                notified += 1
                logger.info("Sent notification for order %s", change.key)
        return notified, failed
