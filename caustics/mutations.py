"""Write builders: create, update, upsert, delete.

Writes run in a transaction. Relation parameters are planned up front
(``plan_write``), deferred lookups are resolved right before the row is
written, and nested has-many creates run after the parent key is known.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, insert, select, update

from .adapters import adapter_for
from .core.deferred import DeferredLookup, PendingDispatcher, WritePlan, plan_write, resolve_lookup
from .core.records import ModelWithRelations
from .core.utils import coerce_where_value
from .errors import QueryValidationError, RecordNotFound
from .input_types import SetRelation, describe_condition, is_primary_key_condition, unique_condition
from .keys import Key
from .queries import QueryBuilder, fetch_by_key, split_where
from .sql.builders import StatementBuilders

logger = logging.getLogger(__name__)


def _column_values(meta, values: Dict[str, Any]) -> Dict[str, Any]:
    return {meta.column(k).key: coerce_where_value(meta.column(k), v) for k, v in values.items()}


async def insert_row(client, executor: Any, meta, data: Optional[Dict[str, Any]], params: Sequence[Any] = ()) -> Key:
    """Insert one row (plus nested creates) and return its primary key."""
    plan = plan_write(client.registry, meta, data, params)
    if plan.set_ops:
        raise QueryValidationError("set_relation is only valid on update")
    dispatcher = PendingDispatcher(client.registry, executor, create_row=_nested_creator(client))
    await dispatcher.run(plan.lookups, plan.values)
    result = await executor.execute(insert(meta.table).values(_column_values(meta, plan.values)))
    inserted = result.inserted_primary_key
    pk_value = inserted[0] if inserted and inserted[0] is not None else plan.values.get(meta.primary_key)
    if pk_value is None:
        raise QueryValidationError(f"Could not determine the primary key of the new {meta.name}")
    key = Key.from_value(pk_value)
    logger.debug(f"Inserted {meta.name} {key}")
    await dispatcher.run(plan.post_insert, plan.values, parent_key=key)
    return key


def _nested_creator(client):
    async def _create(executor: Any, entity: str, data: Dict[str, Any], params: Tuple[Any, ...]):
        return await insert_row(client, executor, client.registry.meta_for(entity), data, params)
    return _create


async def find_key(client, executor: Any, meta, condition) -> Optional[Key]:
    sb = StatementBuilders(client.registry, adapter_for(executor))
    stmt = sb.apply_where(select(meta.pk_column).select_from(meta.table), meta, condition).limit(1)
    value = (await executor.execute(stmt)).scalar_one_or_none()
    return None if value is None else Key.from_value(value)


async def _target_ids(client, executor: Any, target, op: SetRelation) -> List[Any]:
    ids: List[Any] = []
    for condition in op.conditions:
        if is_primary_key_condition(target, condition):
            ids.append(coerce_where_value(target.pk_column, condition[0].value))
        else:
            key = await resolve_lookup(executor, client.registry, DeferredLookup(target.name, condition, target.primary_key, op.relation))
            ids.append(key.to_db_value())
    return ids


async def apply_has_many_set(client, executor: Any, meta, parent_key: Key, op: SetRelation) -> None:
    """Make exactly the given rows the children of ``parent_key``.

    Current children outside the set are detached (nullable FK) or deleted
    (required FK); the targets are then re-pointed at the parent.
    """
    desc = meta.require_relation(op.relation)
    target = client.registry.meta_for(desc.target_entity)
    ids = await _target_ids(client, executor, target, op)
    fk_col = target.column(desc.foreign_key_field)
    pk_col = target.pk_column
    parent_value = coerce_where_value(fk_col, parent_key)
    if desc.is_foreign_key_nullable:
        stmt = update(target.table).where(fk_col == parent_value).values({fk_col.key: None})
    else:
        stmt = delete(target.table).where(fk_col == parent_value)
    if ids:
        stmt = stmt.where(pk_col.not_in(ids))
    await executor.execute(stmt)
    if ids:
        await executor.execute(update(target.table).where(pk_col.in_(ids)).values({fk_col.key: parent_value}))
    logger.debug(f"Set {meta.name}.{op.relation} of {parent_key} to {len(ids)} row(s)")


async def update_row(client, executor: Any, meta, key: Key, plan: WritePlan) -> None:
    dispatcher = PendingDispatcher(client.registry, executor, create_row=_nested_creator(client))
    await dispatcher.run(plan.lookups, plan.values)
    # nested creates, then has-many sets, then the scalar row; never in one statement
    await dispatcher.run(plan.post_insert, plan.values, parent_key=key)
    for op in plan.set_ops:
        await apply_has_many_set(client, executor, meta, key, op)
    if plan.values:
        stmt = update(meta.table).where(meta.pk_column == key.to_db_value()).values(_column_values(meta, plan.values))
        await executor.execute(stmt)


class _WriteBuilder(QueryBuilder):
    writes = True

    def __init__(self, client, meta):
        super().__init__(client, meta)
        self._includes: List[Any] = []

    def include(self, *relations: Any):
        """Relations to load on the returned record."""
        self._includes.extend(relations)
        return self

    async def _reload(self, executor: Any, key: Key) -> Optional[ModelWithRelations]:
        return await fetch_by_key(self._client, executor, self._meta, key, self._includes)


class CreateQueryBuilder(_WriteBuilder):
    kind = 'create'

    def __init__(self, client, meta, data: Dict[str, Any], params: Iterable[Any] = ()):
        super().__init__(client, meta)
        self._data = dict(data or {})
        self._params = tuple(params)

    def _details(self) -> Dict[str, Any]:
        return {'fields': sorted(self._data)}

    async def _execute(self, executor: Any) -> Optional[ModelWithRelations]:
        key = await insert_row(self._client, executor, self._meta, self._data, self._params)
        return await self._reload(executor, key)


class CreateManyQueryBuilder(_WriteBuilder):
    kind = 'create_many'

    def __init__(self, client, meta, rows: Iterable[Dict[str, Any]]):
        super().__init__(client, meta)
        self._rows = [dict(r) for r in rows]

    async def _execute(self, executor: Any) -> int:
        for data in self._rows:
            await insert_row(self._client, executor, self._meta, data)
        return len(self._rows)


class UpdateQueryBuilder(_WriteBuilder):
    kind = 'update'

    def __init__(self, client, meta, where: Any, data: Dict[str, Any], params: Iterable[Any] = ()):
        super().__init__(client, meta)
        self._where = unique_condition(where)
        self._data = dict(data or {})
        self._params = tuple(params)

    def _details(self) -> Dict[str, Any]:
        return {'where': describe_condition(self._where), 'fields': sorted(self._data)}

    async def _execute(self, executor: Any) -> Optional[ModelWithRelations]:
        plan = plan_write(self.registry, self._meta, self._data, self._params)
        key = await find_key(self._client, executor, self._meta, self._where)
        if key is None:
            raise RecordNotFound(self._meta.name, "No record found to update")
        await update_row(self._client, executor, self._meta, key, plan)
        return await self._reload(executor, key)


class UpdateManyQueryBuilder(_WriteBuilder):
    kind = 'update_many'

    def __init__(self, client, meta, filters: Iterable[Any], data: Dict[str, Any]):
        super().__init__(client, meta)
        self._filters, self._conditions = split_where(filters)
        self._data = dict(data or {})

    async def _execute(self, executor: Any) -> int:
        plan = plan_write(self.registry, self._meta, self._data)
        if not plan.values:
            return 0
        sb = self._builders(executor)
        stmt = sb.apply_where(update(self._meta.table), self._meta, self._filters, self._conditions)
        result = await executor.execute(stmt.values(_column_values(self._meta, plan.values)))
        return int(result.rowcount or 0)


class UpsertQueryBuilder(_WriteBuilder):
    kind = 'upsert'

    def __init__(self, client, meta, where: Any, create: Dict[str, Any], update: Dict[str, Any],
                 create_params: Iterable[Any] = (), update_params: Iterable[Any] = ()):
        super().__init__(client, meta)
        self._where = unique_condition(where)
        self._create = dict(create or {})
        self._update = dict(update or {})
        self._create_params = tuple(create_params)
        self._update_params = tuple(update_params)

    def _details(self) -> Dict[str, Any]:
        return {'where': describe_condition(self._where)}

    async def _execute(self, executor: Any) -> Optional[ModelWithRelations]:
        key = await find_key(self._client, executor, self._meta, self._where)
        if key is None:
            key = await insert_row(self._client, executor, self._meta, self._create, self._create_params)
        else:
            plan = plan_write(self.registry, self._meta, self._update, self._update_params)
            await update_row(self._client, executor, self._meta, key, plan)
        return await self._reload(executor, key)


class DeleteQueryBuilder(_WriteBuilder):
    kind = 'delete'

    def __init__(self, client, meta, where: Any):
        super().__init__(client, meta)
        self._where = unique_condition(where)

    def _details(self) -> Dict[str, Any]:
        return {'where': describe_condition(self._where)}

    async def _execute(self, executor: Any) -> ModelWithRelations:
        key = await find_key(self._client, executor, self._meta, self._where)
        record = await self._reload(executor, key) if key is not None else None
        if record is None:
            raise RecordNotFound(self._meta.name, "No record found to delete")
        await executor.execute(delete(self._meta.table).where(self._meta.pk_column == key.to_db_value()))
        return record


class DeleteManyQueryBuilder(_WriteBuilder):
    kind = 'delete_many'

    def __init__(self, client, meta, filters: Iterable[Any] = ()):
        super().__init__(client, meta)
        self._filters, self._conditions = split_where(filters)

    async def _execute(self, executor: Any) -> int:
        sb = self._builders(executor)
        stmt = sb.apply_where(delete(self._meta.table), self._meta, self._filters, self._conditions)
        result = await executor.execute(stmt)
        return int(result.rowcount or 0)
