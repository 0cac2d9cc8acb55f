"""Read builders and the execution base shared by every builder.

A builder only describes an operation; ``await builder.exec()`` (or simply
``await builder``) runs it on a fresh connection, ``exec_in_txn(txn)`` runs it on
a caller-owned transaction.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from sqlalchemy import func, select

from .adapters import adapter_for
from .core.connection import Transaction, begin_transaction, open_connection
from .core.filters import (
    Filter, OrderBy, RelationCondition, SortOrder, normalize_filters, normalize_order, to_relation_filter,
)
from .core.includes import apply_includes
from .core.records import ModelWithRelations, Record
from .core.selection import fill_selected, required_fields
from .errors import QueryValidationError
from .hooks import QueryEvent, row_count_of
from .input_types import unique_condition
from .keys import Key, key_of
from .sql.builders import StatementBuilders

logger = logging.getLogger(__name__)


def split_where(raw: Iterable[Any]) -> Tuple[List[Filter], List[RelationCondition]]:
    filters: List[Filter] = []
    conditions: List[RelationCondition] = []
    for item in raw or []:
        if isinstance(item, RelationCondition):
            conditions.append(item)
        else:
            filters.extend(normalize_filters(item))
    return filters, conditions


class QueryBuilder:
    kind = 'query'
    writes = False

    def __init__(self, client, meta):
        self._client = client
        self._meta = meta

    @property
    def registry(self):
        return self._client.registry

    def _builders(self, executor: Any) -> StatementBuilders:
        return StatementBuilders(self.registry, adapter_for(executor))

    def _details(self) -> Dict[str, Any]:
        return {}

    async def exec(self) -> Any:
        bound = self._client.bound_transaction
        if bound is not None:
            return await self.exec_in_txn(bound)
        if self.writes:
            async with begin_transaction(self._client.engine) as txn:
                return await self._run(txn)
        async with open_connection(self._client.engine) as conn:
            return await self._run(conn)

    async def exec_in_txn(self, txn: Transaction) -> Any:
        return await self._run(txn)

    async def _run(self, executor: Any) -> Any:
        event = QueryEvent(self.kind, self._meta.name, self._details())
        async with self._client.hooks.around(event) as meta:
            result = await self._execute(executor)
            meta.row_count = row_count_of(result)
        return result

    async def _execute(self, executor: Any) -> Any:
        raise NotImplementedError

    def __await__(self):
        return self.exec().__await__()


@dataclass(frozen=True)
class RelationCountOrder:
    relation: str
    order: SortOrder = SortOrder.ASC


async def fetch_by_key(client, executor: Any, meta, key: Key, includes: Sequence[Any] = ()) -> Optional[ModelWithRelations]:
    sb = StatementBuilders(client.registry, adapter_for(executor))
    pk = meta.pk_column
    stmt = select(*sb.projection(meta)).select_from(meta.table).where(pk == key.to_db_value())
    row = (await executor.execute(stmt)).mappings().first()
    if row is None:
        return None
    record = ModelWithRelations.from_row(meta, row)
    if includes:
        await apply_includes([record], executor, [to_relation_filter(i) for i in includes], client.registry)
    return record


class FindManyQueryBuilder(QueryBuilder):
    kind = 'find_many'

    def __init__(self, client, meta, filters: Iterable[Any] = ()):
        super().__init__(client, meta)
        self._filters, self._conditions = split_where(filters)
        self._includes: List[Any] = []
        self._order: List[Union[OrderBy, RelationCountOrder]] = []
        self._take: Optional[int] = None
        self._skip: Optional[int] = None
        self._cursor: Optional[Key] = None
        self._distinct = False
        self._distinct_on: List[str] = []
        self._select: Optional[List[str]] = None

    # --- fluent state --------------------------------------------------------
    def where(self, *filters: Any):
        f, c = split_where(filters)
        self._filters.extend(f)
        self._conditions.extend(c)
        return self

    def include(self, *relations: Any):
        self._includes.extend(to_relation_filter(r) for r in relations)
        return self

    def order_by(self, spec: Any, order: Any = None, nulls: Any = None):
        ob = normalize_order(spec, order)
        if nulls is not None:
            ob = normalize_order((ob.field, ob.order, nulls))
        self._order.append(ob)
        return self

    def order_by_relation_count(self, relation: str, order: SortOrder = SortOrder.ASC):
        self._order.append(RelationCountOrder(relation, order))
        return self

    def take(self, n: int):
        self._take = n
        return self

    def skip(self, n: int):
        self._skip = n
        return self

    def cursor(self, value: Any):
        self._cursor = key_of(value)
        return self

    def distinct(self, enabled: bool = True):
        self._distinct = enabled
        return self

    def distinct_on(self, *fields: str):
        self._distinct_on = [self._meta.field_name(f) for f in fields]
        return self

    def select(self, *aliases: str):
        self._select = list(aliases)
        return self

    def _details(self) -> Dict[str, Any]:
        return {
            'filters': [str(f) for f in self._filters],
            'take': self._take,
            'skip': self._skip,
            'includes': [i.relation for i in self._includes],
        }

    # --- statement -----------------------------------------------------------
    def _effective_take(self) -> Optional[int]:
        return self._take

    @property
    def _reverse(self) -> bool:
        take = self._effective_take()
        return take is not None and isinstance(take, int) and take < 0

    def _fields(self) -> Optional[List[str]]:
        if self._select is None:
            return None
        return required_fields(self._meta, self._select, self._includes)

    def _order_terms(self, sb: StatementBuilders) -> list:
        terms: list = []
        field_orders: List[OrderBy] = []
        for o in self._order:
            if isinstance(o, RelationCountOrder):
                order = o.order.reversed() if self._reverse else o.order
                terms.extend(sb.adapter.order_clauses(sb.relation_count_expr(self._meta, o.relation), order))
            else:
                field_orders.append(o)
                terms.extend(sb.order_terms(self._meta, [o], reverse=self._reverse, pk_tiebreak=False))
        if not any(self._meta.field_name(o.field) == self._meta.primary_key for o in field_orders):
            terms.extend(sb.order_terms(self._meta, [], reverse=self._reverse))
        return terms

    def statement(self, executor: Any):
        meta = self._meta
        sb = self._builders(executor)
        stmt = select(*sb.projection(meta, self._fields())).select_from(meta.table)
        stmt = sb.apply_where(stmt, meta, self._filters, self._conditions)
        field_orders = [o for o in self._order if isinstance(o, OrderBy)]
        if self._cursor is not None:
            if len(field_orders) != len(self._order):
                raise QueryValidationError("cursor cannot be combined with relation count ordering")
            stmt = stmt.where(sb.cursor_clause(meta, self._cursor, field_orders, reverse=self._reverse))
        terms = self._order_terms(sb)
        if self._distinct_on:
            def _where(src):
                return sb.where_clause(meta, self._filters, self._conditions, source=src)
            stmt = stmt.where(sb.distinct_on_clause(meta, self._distinct_on, _where))
        elif self._distinct:
            stmt = stmt.distinct()
        stmt = stmt.order_by(*terms)
        return sb.apply_pagination(stmt, self._effective_take(), self._skip)

    async def _fetch_records(self, executor: Any) -> List[Record]:
        rows = (await executor.execute(self.statement(executor))).mappings().all()
        fields = self._fields()
        if fields is not None:
            records: List[Record] = [fill_selected(self._meta, row, fields) for row in rows]
        else:
            records = [ModelWithRelations.from_row(self._meta, row) for row in rows]
        if self._reverse:
            records.reverse()
        if self._includes:
            await apply_includes(records, executor, self._includes, self.registry)
        return records

    async def _execute(self, executor: Any) -> List[Record]:
        return await self._fetch_records(executor)


class FindFirstQueryBuilder(FindManyQueryBuilder):
    kind = 'find_first'

    def _effective_take(self) -> Optional[int]:
        return -1 if self._take is not None and self._take < 0 else 1

    async def _execute(self, executor: Any) -> Optional[Record]:
        records = await self._fetch_records(executor)
        return records[0] if records else None


class FindUniqueQueryBuilder(FindManyQueryBuilder):
    kind = 'find_unique'

    def __init__(self, client, meta, where: Any):
        super().__init__(client, meta, unique_condition(where))

    def _effective_take(self) -> Optional[int]:
        return 1

    async def _execute(self, executor: Any) -> Optional[Record]:
        records = await self._fetch_records(executor)
        return records[0] if records else None


class CountQueryBuilder(QueryBuilder):
    kind = 'count'

    def __init__(self, client, meta, filters: Iterable[Any] = ()):
        super().__init__(client, meta)
        self._filters, self._conditions = split_where(filters)

    def where(self, *filters: Any):
        f, c = split_where(filters)
        self._filters.extend(f)
        self._conditions.extend(c)
        return self

    def _details(self) -> Dict[str, Any]:
        return {'filters': [str(f) for f in self._filters]}

    async def _execute(self, executor: Any) -> int:
        sb = self._builders(executor)
        stmt = select(func.count()).select_from(self._meta.table)
        stmt = sb.apply_where(stmt, self._meta, self._filters, self._conditions)
        return int((await executor.execute(stmt)).scalar_one())

