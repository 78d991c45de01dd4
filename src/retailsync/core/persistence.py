"""
Batch persistence: idempotent, last-write-wins upserts inside one transaction.

Flow for one ``persist(records)`` call:
  1. Open one Session; the whole call is a single transaction.
  2. Walk the records in fixed-size batches, preserving input order.
  3. Per record: sanitize → look up by unique key → decide NEW / UPDATED /
     skip → upsert scalar columns → replace child rows.
  4. Commit. Any engine-level error rolls back everything.

Each record's writes run inside a SAVEPOINT so a bad record (validation
error, integrity violation) is undone on its own and counted as failed
while the rest of the transaction carries on.

Idempotency: a stored row is only rewritten when the incoming
``modified_date`` is strictly newer, so replaying the same batch writes
nothing.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import DataError, DBAPIError, IntegrityError, StatementError
from sqlmodel import Session, SQLModel, select

from retailsync.core.descriptor import ChildCollection, EntityDescriptor
from retailsync.core.sanitize import raw_payload, sanitize
from retailsync.exceptions import RecordValidationError

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 50

# Errors confined to one record; anything else aborts the transaction.
RECORD_ERRORS = (RecordValidationError, ValueError, TypeError, IntegrityError, DataError)

NEW = "new"
UPDATED = "updated"


@dataclass
class RecordError:
    key: Any
    message: str


@dataclass
class PersistenceOutcome:
    """Aggregate result of one persistence run.

    Skipped records (already current) count toward ``total`` only, so
    ``succeeded + failed <= total``.
    """

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    new_count: int = 0
    updated_count: int = 0
    skipped: int = 0
    committed: bool = False
    error: Optional[str] = None
    errors: List[RecordError] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.committed and self.failed == 0

    @property
    def has_new_data(self) -> bool:
        return self.new_count > 0

    @classmethod
    def rolled_back(cls, total: int, exc: BaseException) -> "PersistenceOutcome":
        return cls(total=total, failed=total, committed=False, error=str(exc))

    def merge(self, other: "PersistenceOutcome") -> "PersistenceOutcome":
        """Sum two outcomes (used to total up backfill chunks)."""
        return PersistenceOutcome(
            total=self.total + other.total,
            succeeded=self.succeeded + other.succeeded,
            failed=self.failed + other.failed,
            new_count=self.new_count + other.new_count,
            updated_count=self.updated_count + other.updated_count,
            skipped=self.skipped + other.skipped,
            committed=self.committed and other.committed,
            error=other.error or self.error,
            errors=self.errors + other.errors,
        )


class BatchPersister:
    """Persists records of one entity type described by an EntityDescriptor."""

    def __init__(
        self,
        engine: Engine,
        descriptor: EntityDescriptor,
        *,
        batch_size: int = DEFAULT_BATCH_SIZE,
        pause: float = 0.1,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            engine: SQLAlchemy engine; its pool hands out one connection per run.
            descriptor: Field mapping, table and child collections.
            batch_size: Records per batch.
            pause: Seconds to yield between batches.
            sleep: Awaitable sleep, injectable for tests.
        """
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.engine = engine
        self.descriptor = descriptor
        self.batch_size = batch_size
        self.pause = pause
        self._sleep = sleep

    async def persist(self, records: Iterable[Dict[str, Any]]) -> PersistenceOutcome:
        """
        Upsert ``records`` and return aggregate statistics.

        Never raises for data problems: record-level errors are counted in
        ``failed`` and a transaction-level failure is reported through
        ``committed=False`` / ``error``.
        """
        records = list(records)
        entity = self.descriptor.entity_type
        outcome = PersistenceOutcome(total=len(records))
        if not records:
            outcome.committed = True
            return outcome

        n_batches = (len(records) + self.batch_size - 1) // self.batch_size

        with Session(self.engine) as session:
            try:
                for batch_no, start in enumerate(range(0, len(records), self.batch_size), 1):
                    for record in records[start:start + self.batch_size]:
                        self._persist_one(session, record, outcome)

                    logger.info("Processed %s batch %d/%d", entity, batch_no, n_batches)
                    if batch_no < n_batches:
                        await self._sleep(self.pause)

                session.commit()
            except Exception as exc:
                session.rollback()
                logger.error("%s transaction failed, rolled back: %s", entity, exc)
                return PersistenceOutcome.rolled_back(len(records), exc)

        outcome.committed = True
        logger.info(
            "%s sync persisted: %d new, %d updated, %d unchanged, %d failed",
            entity,
            outcome.new_count,
            outcome.updated_count,
            outcome.skipped,
            outcome.failed,
        )
        return outcome

    # ─── Internal helpers ─────────────────────────────────────────────────────

    def _persist_one(self, session: Session, record: Dict[str, Any], outcome: PersistenceOutcome) -> None:
        d = self.descriptor
        key = record.get(d.key_spec.path) if isinstance(record, dict) else None
        try:
            columns = sanitize(record, d.fields)
            key = columns[d.key_column]
            if d.raw_column:
                columns[d.raw_column] = raw_payload(record)

            with session.begin_nested():
                existing = self._find(session, key)
                decision = self._decide(existing, columns)
                if decision is None:
                    outcome.skipped += 1
                    return
                row = self._upsert(session, existing, columns)
                for child in d.children:
                    if child.source in record:
                        self._replace_children(session, child, row, record[child.source])
        except RECORD_ERRORS as exc:
            outcome.failed += 1
            outcome.errors.append(RecordError(key=key, message=str(exc)))
            logger.warning("Error processing %s %s: %s", d.entity_type, key, exc)
            return

        outcome.succeeded += 1
        if decision == NEW:
            outcome.new_count += 1
        else:
            outcome.updated_count += 1

    def _find(self, session: Session, key: Any) -> Optional[SQLModel]:
        model = self.descriptor.model
        return session.exec(
            select(model).where(getattr(model, self.descriptor.key_column) == key)
        ).first()

    def _decide(self, existing: Optional[SQLModel], columns: Dict[str, Any]) -> Optional[str]:
        """NEW, UPDATED, or None to skip (stored row is current or newer)."""
        if existing is None:
            return NEW
        ts_column = self.descriptor.timestamp_column
        if ts_column is None:
            return UPDATED
        incoming = columns.get(ts_column)
        stored = getattr(existing, ts_column)
        if incoming is None:
            return None
        if stored is None or stored < incoming:
            return UPDATED
        return None

    def _upsert(self, session: Session, existing: Optional[SQLModel], columns: Dict[str, Any]) -> SQLModel:
        if existing is None:
            row = self.descriptor.model(**columns)
        else:
            # Update scalar fields in-place (keeps same id)
            for k, v in columns.items():
                setattr(existing, k, v)
            if hasattr(existing, "synced_at"):
                existing.synced_at = datetime.utcnow()
            row = existing
        session.add(row)
        _flush(session)
        return row

    def _replace_children(self, session: Session, child: ChildCollection, parent: SQLModel, raw: Any) -> None:
        """Delete the parent's existing child rows and insert fresh ones."""
        if child.many:
            items = raw or []
            if not isinstance(items, list):
                raise RecordValidationError(f"{child.source} must be a list")
        else:
            items = [raw] if raw is not None else []

        parent_col = getattr(child.model, child.parent_column)
        for old in session.exec(select(child.model).where(parent_col == parent.id)).all():
            session.delete(old)
        _flush(session)

        for item in items:
            if not isinstance(item, dict):
                raise RecordValidationError(f"{child.source} item must be an object")
            fields = sanitize(item, child.fields)
            fields[child.parent_column] = parent.id
            session.add(child.model(**fields))
        _flush(session)


def _flush(session: Session) -> None:
    """Flush, turning errors raised while binding parameters into record errors.

    A value the driver cannot bind (e.g. an int too large for SQLite) surfaces
    as a bare OverflowError, or a StatementError when SQLAlchemy wraps it.
    Errors raised by the database itself are DBAPIError subclasses and pass
    through unchanged.
    """
    try:
        session.flush()
    except StatementError as exc:
        if isinstance(exc, DBAPIError):
            raise
        raise RecordValidationError(str(exc.orig or exc)) from exc
    except OverflowError as exc:
        raise RecordValidationError(str(exc)) from exc
