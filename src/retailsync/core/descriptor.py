"""Entity descriptors: the per-entity data that parameterizes the generic engine."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Type

from sqlmodel import SQLModel

from retailsync.core.sanitize import FieldSpec


@dataclass(frozen=True)
class ChildCollection:
    """
    Nested rows replaced wholesale whenever the parent is written.

    ``source`` names the record field holding the nested list (or a single
    object when ``many`` is False). Child rows point at the parent's
    surrogate id through ``parent_column``.
    """

    source: str
    model: Type[SQLModel]
    fields: Tuple[FieldSpec, ...]
    parent_column: str
    many: bool = True


@dataclass(frozen=True)
class EntityDescriptor:
    """
    Everything the engine needs to fetch, sanitize and store one entity type.

    ``key_column`` is the unique column holding the upstream key and must
    appear among ``fields`` (marked required). ``timestamp_column`` drives
    last-write-wins; ``raw_column`` keeps the full payload.
    """

    entity_type: str
    endpoint: str
    model: Type[SQLModel]
    fields: Tuple[FieldSpec, ...]
    key_column: str = "kiot_id"
    timestamp_column: Optional[str] = "modified_date"
    raw_column: Optional[str] = "raw_json"
    children: Tuple[ChildCollection, ...] = ()
    fetch_params: Dict[str, Any] = field(default_factory=dict)
    supports_modified_filter: bool = True

    @property
    def key_spec(self) -> FieldSpec:
        for spec in self.fields:
            if spec.column == self.key_column:
                return spec
        raise ValueError(f"{self.entity_type}: no FieldSpec for key column {self.key_column!r}")
