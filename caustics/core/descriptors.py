"""Entity metadata and relation descriptors.

Descriptors are built once per mapped class (see ``build_entity_meta``) and are
immutable afterwards. They can also be constructed by hand for tables that are
not mapped through the ORM.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import MANYTOONE, ONETOMANY

from ..errors import DescriptorMismatch, QueryValidationError, RelationNotFound
from ..keys import Key, key_of
from .records import Record, RelationResult

logger = logging.getLogger(__name__)


class RelationKind(Enum):
    BELONGS_TO = 'belongs_to'
    HAS_MANY = 'has_many'


@dataclass(frozen=True)
class RelationDescriptor:
    name: str
    kind: RelationKind
    target_entity: str
    # physical FK column: on the current table for belongs-to, on the target for has-many
    foreign_key_column: str
    # logical (mapped attribute) name of that column
    foreign_key_field: str
    target_table_name: str
    current_primary_key_column: str
    current_primary_key_field: str
    target_primary_key_column: str
    target_primary_key_field: str
    is_foreign_key_nullable: bool = False

    @property
    def is_has_many(self) -> bool:
        return self.kind is RelationKind.HAS_MANY

    @property
    def link_field(self) -> str:
        """Field of the current record whose value selects the related rows."""
        return self.current_primary_key_field if self.is_has_many else self.foreign_key_field

    @property
    def target_match_field(self) -> str:
        """Field of the target entity compared against ``link_field``."""
        return self.foreign_key_field if self.is_has_many else self.target_primary_key_field

    def get_foreign_key(self, record: Record) -> Optional[Key]:
        return key_of(record.get(self.link_field))

    def set_field(self, record: Record, result: RelationResult) -> None:
        if self.is_has_many and not result.is_many:
            raise DescriptorMismatch(self.name, RelationResult.MANY, result.shape)
        if not self.is_has_many and result.is_many:
            raise DescriptorMismatch(self.name, RelationResult.ONE, result.shape)
        record.set_relation(self.name, result.value)


@dataclass
class EntityMeta:
    name: str
    model: Any
    table: Any
    primary_key: str
    primary_key_column: str
    columns: Dict[str, Any]
    relations: Tuple[RelationDescriptor, ...] = ()
    _by_relation: Dict[str, RelationDescriptor] = field(default_factory=dict, repr=False)
    _by_column: Dict[str, str] = field(default_factory=dict, repr=False)

    def __post_init__(self):
        for desc in self.relations:
            if desc.name in self._by_relation:
                raise ValueError(f"Duplicate relation '{desc.name}' on entity '{self.name}'")
            self._by_relation[desc.name] = desc
        for alias, col in self.columns.items():
            self._by_column[col.name] = alias

    @property
    def scalar_fields(self) -> List[str]:
        return list(self.columns)

    @property
    def pk_column(self):
        return self.columns[self.primary_key]

    def field_name(self, name: str) -> str:
        """Resolve a mapped attribute name or a physical column name to the attribute name."""
        if name in self.columns:
            return name
        alias = self._by_column.get(name)
        if alias is None:
            raise QueryValidationError(f"Unknown field '{name}' on entity '{self.name}'")
        return alias

    def column(self, name: str):
        return self.columns[self.field_name(name)]

    def relation_descriptors(self) -> Tuple[RelationDescriptor, ...]:
        return self.relations

    def get_relation_descriptor(self, name: str) -> Optional[RelationDescriptor]:
        return self._by_relation.get(name)

    def require_relation(self, name: str) -> RelationDescriptor:
        desc = self._by_relation.get(name)
        if desc is None:
            raise RelationNotFound(name, self.name)
        return desc

    def column_values(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Map attribute-keyed values to table column keys for INSERT/UPDATE."""
        return {self.column(k).key: v for k, v in values.items()}


def _attr_for_column(mapper, col) -> str:
    return mapper.get_property_by_column(col).key


def build_entity_meta(model_cls: Any, name: Optional[str] = None) -> EntityMeta:
    """Introspect a SQLAlchemy mapped class into an ``EntityMeta``."""
    mapper = sa_inspect(model_cls)
    pk_cols = list(mapper.primary_key)
    if len(pk_cols) != 1:
        raise ValueError(f"{model_cls.__name__} must have exactly one primary key column")
    pk_col = pk_cols[0]
    columns: Dict[str, Any] = {}
    for attr in mapper.column_attrs:
        col = attr.columns[0]
        # column_property expressions are not writable storage columns
        if getattr(col, 'table', None) is not mapper.local_table:
            continue
        columns[attr.key] = col
    relations: List[RelationDescriptor] = []
    for rel in mapper.relationships:
        if rel.direction not in (MANYTOONE, ONETOMANY) or len(rel.local_remote_pairs) != 1:
            logger.debug(f"Skipping unsupported relationship {model_cls.__name__}.{rel.key}")
            continue
        local, remote = rel.local_remote_pairs[0]
        target_mapper = rel.mapper
        target_pk = list(target_mapper.primary_key)[0]
        if rel.direction is MANYTOONE:
            kind = RelationKind.BELONGS_TO
            fk_col = local
            fk_field = _attr_for_column(mapper, local)
        else:
            kind = RelationKind.HAS_MANY
            fk_col = remote
            fk_field = _attr_for_column(target_mapper, remote)
        relations.append(RelationDescriptor(
            name=rel.key,
            kind=kind,
            target_entity=target_mapper.class_.__name__,
            foreign_key_column=fk_col.name,
            foreign_key_field=fk_field,
            target_table_name=target_mapper.local_table.name,
            current_primary_key_column=pk_col.name,
            current_primary_key_field=_attr_for_column(mapper, pk_col),
            target_primary_key_column=target_pk.name,
            target_primary_key_field=_attr_for_column(target_mapper, target_pk),
            is_foreign_key_nullable=bool(fk_col.nullable),
        ))
    return EntityMeta(
        name=name or model_cls.__name__,
        model=model_cls,
        table=mapper.local_table,
        primary_key=_attr_for_column(mapper, pk_col),
        primary_key_column=pk_col.name,
        columns=columns,
        relations=tuple(relations),
    )
