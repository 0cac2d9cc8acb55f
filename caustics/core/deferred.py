"""Write-time foreign key resolution.

Relation writes that cannot be applied while the statement is being built are
recorded as pending resolutions:

* ``DeferredLookup``: resolve a unique condition on the target entity to its
  primary key and assign it to the FK field of the row being written. Runs
  before the INSERT/UPDATE.
* ``NestedCreate``: insert child rows of a has-many relation once the parent's
  key is known. Runs after the INSERT.

A ``PendingDispatcher`` processes them strictly in enqueue order on the
connection or transaction the write runs on.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import select

from ..adapters import adapter_for
from ..errors import NotFoundForCondition, QueryValidationError
from ..input_types import (
    Connect, CreateNested, Disconnect, NestedRow, SetRelation, UniqueCondition,
    describe_condition, is_primary_key_condition,
)
from ..keys import Key
from ..sql.builders import StatementBuilders
from .connection import Transaction
from .utils import coerce_where_value

logger = logging.getLogger(__name__)


class PendingKind(Enum):
    FOREIGN_KEY_LOOKUP = 'foreign_key_lookup'
    NESTED_CREATE = 'nested_create'


@dataclass(frozen=True)
class DeferredLookup:
    target_entity: str
    condition: UniqueCondition
    assign_field: str
    relation: str = ''

    kind = PendingKind.FOREIGN_KEY_LOOKUP

    def assign(self, values: Dict[str, Any], key: Key) -> None:
        values[self.assign_field] = key.to_db_value()

    async def resolve_on_connection(self, conn: Any, registry) -> Key:
        return await resolve_lookup(conn, registry, self)

    async def resolve_on_transaction(self, txn: Transaction, registry) -> Key:
        return await resolve_lookup(txn, registry, self)


@dataclass(frozen=True)
class NestedCreate:
    relation: str
    target_entity: str
    foreign_key_field: str
    rows: Tuple[NestedRow, ...]

    kind = PendingKind.NESTED_CREATE


PendingResolution = Union[DeferredLookup, NestedCreate]


async def resolve_lookup(executor: Any, registry, lookup: DeferredLookup) -> Key:
    """``SELECT pk FROM target WHERE <condition> LIMIT 1`` as a ``Key``."""
    meta = registry.meta_for(lookup.target_entity)
    sb = StatementBuilders(registry, adapter_for(executor))
    stmt = sb.apply_where(select(meta.pk_column).select_from(meta.table), meta, lookup.condition).limit(1)
    value = (await executor.execute(stmt)).scalar_one_or_none()
    if value is None:
        raise NotFoundForCondition(meta.name, describe_condition(lookup.condition))
    key = Key.from_value(value)
    logger.debug(f"Resolved {meta.name} where {describe_condition(lookup.condition)} -> {key}")
    return key


@dataclass
class WritePlan:
    """Scalar values plus the relation work a create/update still has to do."""
    values: Dict[str, Any] = field(default_factory=dict)
    lookups: List[DeferredLookup] = field(default_factory=list)
    post_insert: List[NestedCreate] = field(default_factory=list)
    set_ops: List[SetRelation] = field(default_factory=list)

    @property
    def has_relation_work(self) -> bool:
        return bool(self.lookups or self.post_insert or self.set_ops)


def plan_write(registry, meta, data: Optional[Dict[str, Any]], params: Iterable[Any] = ()) -> WritePlan:
    plan = WritePlan()
    for name, value in (data or {}).items():
        if meta.get_relation_descriptor(name) is not None:
            raise QueryValidationError(f"'{name}' is a relation; use connect/create_nested/set_relation")
        plan.values[meta.field_name(name)] = value
    for p in params:
        if isinstance(p, (Connect, Disconnect, CreateNested, SetRelation)):
            desc = meta.require_relation(p.relation)
        else:
            raise QueryValidationError(f"Unsupported write parameter: {p!r}")
        if isinstance(p, Connect):
            if desc.is_has_many:
                raise QueryValidationError(f"Use set_relation for has-many relation '{desc.name}'")
            target = registry.meta_for(desc.target_entity)
            if is_primary_key_condition(target, p.condition):
                plan.values[desc.foreign_key_field] = coerce_where_value(target.pk_column, Key.from_value(p.condition[0].value))
            else:
                plan.lookups.append(DeferredLookup(target.name, p.condition, desc.foreign_key_field, desc.name))
        elif isinstance(p, Disconnect):
            if desc.is_has_many or not desc.is_foreign_key_nullable:
                raise QueryValidationError(f"Relation '{desc.name}' cannot be disconnected")
            plan.values[desc.foreign_key_field] = None
        elif isinstance(p, CreateNested):
            if not desc.is_has_many:
                raise QueryValidationError(f"Nested create is only supported on has-many relations ('{desc.name}')")
            plan.post_insert.append(NestedCreate(desc.name, desc.target_entity, desc.foreign_key_field, p.rows))
        else:
            if not desc.is_has_many:
                raise QueryValidationError(f"set_relation needs a has-many relation ('{desc.name}')")
            plan.set_ops.append(p)
    return plan


CreateRow = Callable[[Any, str, Dict[str, Any], Tuple[Any, ...]], Awaitable[Any]]


class PendingDispatcher:
    def __init__(self, registry, executor: Any, create_row: Optional[CreateRow] = None):
        self.registry = registry
        self.executor = executor
        self.create_row = create_row
        self._handlers = {
            PendingKind.FOREIGN_KEY_LOOKUP: self._run_lookup,
            PendingKind.NESTED_CREATE: self._run_nested_create,
        }

    async def run(self, pending: Iterable[PendingResolution], values: Dict[str, Any], parent_key: Optional[Key] = None) -> None:
        for item in pending:
            await self._handlers[item.kind](item, values, parent_key)

    async def _run_lookup(self, item: DeferredLookup, values: Dict[str, Any], parent_key: Optional[Key]) -> None:
        if isinstance(self.executor, Transaction):
            key = await item.resolve_on_transaction(self.executor, self.registry)
        else:
            key = await item.resolve_on_connection(self.executor, self.registry)
        item.assign(values, key)

    async def _run_nested_create(self, item: NestedCreate, values: Dict[str, Any], parent_key: Optional[Key]) -> None:
        if parent_key is None:
            raise QueryValidationError(f"Nested create on '{item.relation}' needs the parent key")
        if self.create_row is None:
            raise QueryValidationError("Nested creates are not supported here")
        for nested in item.rows:
            data = dict(nested.data)
            data[item.foreign_key_field] = parent_key.to_db_value()
            await self.create_row(self.executor, item.target_entity, data, nested.params)
