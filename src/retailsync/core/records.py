"""
Record, Snapshot and Change types.

A Record is the plain dict the upstream API returns for one entity instance.
A Snapshot is an immutable, ordered set of Records captured by one fetch and
indexed by a unique key field. A Change pairs a Record with its
classification relative to a previous Snapshot.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, Optional, Tuple

Record = Dict[str, Any]


class ChangeKind(str, Enum):
    NEW = "new"
    MODIFIED = "modified"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class Change:
    """One classified record. ``changed_fields`` is empty unless MODIFIED."""

    kind: ChangeKind
    key: Any
    record: Record
    previous: Optional[Record] = None
    changed_fields: FrozenSet[str] = field(default_factory=frozenset)


def record_key(record: Record, key_field: str) -> Optional[Any]:
    """Return the record's unique key, or None when missing or blank."""
    value = record.get(key_field)
    if value is None or value == "":
        return None
    return value


class Snapshot:
    """
    Point-in-time collection of records keyed for O(1) lookup.

    Never mutated after construction; the next poll builds a new one.
    When two records share a key the later one is the one indexed.
    """

    def __init__(self, records: Iterable[Record] = (), key_field: str = "id"):
        self.key_field = key_field
        self._records: Tuple[Record, ...] = tuple(records)
        self._index: Dict[Any, Record] = {}
        for record in self._records:
            key = record_key(record, key_field)
            if key is not None:
                self._index[key] = record

    @classmethod
    def empty(cls, key_field: str = "id") -> "Snapshot":
        return cls((), key_field=key_field)

    @property
    def records(self) -> Tuple[Record, ...]:
        return self._records

    def is_empty(self) -> bool:
        return not self._records

    def get(self, key: Any) -> Optional[Record]:
        return self._index.get(key)

    def __contains__(self, key: Any) -> bool:
        return key in self._index

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __repr__(self) -> str:
        return f"Snapshot({len(self._records)} records, key_field={self.key_field!r})"
