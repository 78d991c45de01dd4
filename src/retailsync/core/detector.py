"""
Change detector: diff a freshly fetched Snapshot against the previous one.

Pure functions, no I/O. Records are classified as NEW, MODIFIED or
UNCHANGED by comparing a small set of fields (status, total, modification
timestamp) plus a positional walk over the nested item list.

Records that exist only in the previous snapshot are not reported: the
detector is driven by what was fetched, not by what disappeared.
"""
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from retailsync.core.records import Change, ChangeKind, Record, Snapshot, record_key

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ComparisonRules:
    """Which fields identify a record and which ones count as a change."""

    key_field: str = "code"
    status_field: str = "status"
    total_field: str = "total"
    timestamp_field: str = "modifiedDate"
    items_field: Optional[str] = "orderDetails"
    item_fields: Tuple[str, ...] = ("productId", "quantity", "price")

    @property
    def scalar_fields(self) -> Tuple[str, ...]:
        return (self.status_field, self.total_field, self.timestamp_field)


ORDER_RULES = ComparisonRules()


def _items_differ(current: Sequence[Record], previous: Sequence[Record], item_fields) -> bool:
    # Positional and order-sensitive: a reorder with identical values still
    # counts as a change.
    if len(current) != len(previous):
        return True
    for cur_item, prev_item in zip(current, previous):
        for name in item_fields:
            if (cur_item or {}).get(name) != (prev_item or {}).get(name):
                return True
    return False


def changed_fields(current: Record, previous: Record, rules: ComparisonRules = ORDER_RULES) -> frozenset:
    """Return the compared field names whose values differ."""
    changed = {
        name for name in rules.scalar_fields
        if current.get(name) != previous.get(name)
    }
    if rules.items_field:
        cur_items = current.get(rules.items_field)
        prev_items = previous.get(rules.items_field)
        if isinstance(cur_items, list) and isinstance(prev_items, list):
            if _items_differ(cur_items, prev_items, rules.item_fields):
                changed.add(rules.items_field)
    return frozenset(changed)


def classify(
    current: Record,
    previous: Optional[Record],
    rules: ComparisonRules = ORDER_RULES,
) -> Change:
    """Classify a single record against its previous version (or absence)."""
    key = record_key(current, rules.key_field)
    if previous is None:
        return Change(kind=ChangeKind.NEW, key=key, record=current)

    diff = changed_fields(current, previous, rules)
    kind = ChangeKind.MODIFIED if diff else ChangeKind.UNCHANGED
    return Change(kind=kind, key=key, record=current, previous=previous, changed_fields=diff)


def detect_changes(
    current: Snapshot,
    previous: Optional[Snapshot],
    rules: ComparisonRules = ORDER_RULES,
    *,
    include_unchanged: bool = False,
) -> List[Change]:
    """
    Diff ``current`` against ``previous`` and return the classified records.

    Args:
        current: The snapshot produced by this cycle's fetch.
        previous: Last cycle's snapshot; None or empty means bootstrap, so
            every current record is NEW.
        rules: Field names used for keying and comparison.
        include_unchanged: Keep UNCHANGED entries in the output (for logging
            a full diff). Dropped by default.

    Returns:
        Changes in the iteration order of ``current``. With
        ``include_unchanged=True`` there is exactly one Change per current
        record.
    """
    if previous is None or previous.is_empty():
        logger.debug("No previous snapshot, treating %d records as new", len(current))
        return [classify(record, None, rules) for record in current]

    changes: List[Change] = []
    counts = {kind: 0 for kind in ChangeKind}
    for record in current:
        key = record_key(record, rules.key_field)
        if key is None:
            logger.warning("Record without %r cannot be matched, treating as new", rules.key_field)
            prior = None
        else:
            prior = previous.get(key)

        change = classify(record, prior, rules)
        counts[change.kind] += 1
        if change.kind is ChangeKind.UNCHANGED and not include_unchanged:
            continue
        changes.append(change)

    logger.debug(
        "Compared %d current with %d previous records: %d new, %d modified, %d unchanged",
        len(current),
        len(previous),
        counts[ChangeKind.NEW],
        counts[ChangeKind.MODIFIED],
        counts[ChangeKind.UNCHANGED],
    )
    return changes
