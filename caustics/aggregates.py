from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

from sqlalchemy import func, select

from .core.filters import OrderBy, SortOrder, normalize_order
from .errors import QueryValidationError
from .queries import QueryBuilder, split_where

_FUNCS = {
    'count': func.count,
    'sum': func.sum,
    'avg': func.avg,
    'min': func.min,
    'max': func.max,
}


class AggregateExpr:
    """``sum_('rate')``, ``count()`` ... usable in select lists, HAVING and ORDER BY."""

    def __init__(self, fn: str, field_name: Optional[str] = None):
        if fn not in _FUNCS:
            raise ValueError(f"Unknown aggregate function: {fn}")
        if fn != 'count' and field_name is None:
            raise ValueError(f"{fn} needs a field")
        self.fn = fn
        self.field = field_name

    @property
    def label(self) -> str:
        return f"_{self.fn}__{self.field or '_all'}"

    def expression(self, meta):
        if self.field is None:
            return func.count()
        return _FUNCS[self.fn](meta.column(self.field))

    def _cmp(self, op: str, value: Any) -> "HavingPredicate":
        return HavingPredicate(self, op, value)

    def gt(self, value: Any) -> "HavingPredicate":
        return self._cmp('gt', value)

    def lt(self, value: Any) -> "HavingPredicate":
        return self._cmp('lt', value)

    def gte(self, value: Any) -> "HavingPredicate":
        return self._cmp('gte', value)

    def lte(self, value: Any) -> "HavingPredicate":
        return self._cmp('lte', value)

    def equals(self, value: Any) -> "HavingPredicate":
        return self._cmp('equals', value)

    def __repr__(self) -> str:
        return f"{self.fn}({self.field or '*'})"


def count(field_name: Optional[str] = None) -> AggregateExpr:
    return AggregateExpr('count', field_name)


def sum_(field_name: str) -> AggregateExpr:
    return AggregateExpr('sum', field_name)


def avg(field_name: str) -> AggregateExpr:
    return AggregateExpr('avg', field_name)


def min_(field_name: str) -> AggregateExpr:
    return AggregateExpr('min', field_name)


def max_(field_name: str) -> AggregateExpr:
    return AggregateExpr('max', field_name)


_HAVING_OPS = {
    'gt': lambda e, v: e > v,
    'lt': lambda e, v: e < v,
    'gte': lambda e, v: e >= v,
    'lte': lambda e, v: e <= v,
    'equals': lambda e, v: e == v,
}


@dataclass(frozen=True)
class HavingPredicate:
    expr: AggregateExpr
    op: str
    value: Any

    def clause(self, meta):
        return _HAVING_OPS[self.op](self.expr.expression(meta), self.value)


@dataclass
class AggregateResult:
    count: Optional[int] = None
    count_fields: Dict[str, int] = field(default_factory=dict)
    sum: Dict[str, Any] = field(default_factory=dict)
    avg: Dict[str, Any] = field(default_factory=dict)
    min: Dict[str, Any] = field(default_factory=dict)
    max: Dict[str, Any] = field(default_factory=dict)


@dataclass
class GroupByRow(AggregateResult):
    keys: Dict[str, Any] = field(default_factory=dict)


class _AggregatingBuilder(QueryBuilder):
    def __init__(self, client, meta, filters: Iterable[Any] = ()):
        super().__init__(client, meta)
        self._filters, self._conditions = split_where(filters)
        self._aggregates: List[AggregateExpr] = []

    def where(self, *filters: Any):
        f, c = split_where(filters)
        self._filters.extend(f)
        self._conditions.extend(c)
        return self

    def aggregate(self, *exprs: AggregateExpr):
        for e in exprs:
            if e.field is not None:
                self._meta.field_name(e.field)
            if all(e.label != x.label for x in self._aggregates):
                self._aggregates.append(e)
        return self

    def count(self):
        return self.aggregate(count())

    def sum(self, *fields: str):
        return self.aggregate(*(sum_(f) for f in fields))

    def avg(self, *fields: str):
        return self.aggregate(*(avg(f) for f in fields))

    def min(self, *fields: str):
        return self.aggregate(*(min_(f) for f in fields))

    def max(self, *fields: str):
        return self.aggregate(*(max_(f) for f in fields))

    def _columns(self) -> list:
        return [e.expression(self._meta).label(e.label) for e in self._aggregates]

    def _fill(self, result: AggregateResult, row) -> AggregateResult:
        for e in self._aggregates:
            value = row[e.label]
            if e.fn == 'count':
                if e.field is None:
                    result.count = int(value or 0)
                else:
                    result.count_fields[e.field] = int(value or 0)
            else:
                getattr(result, e.fn)[e.field] = value
        return result


class AggregateQueryBuilder(_AggregatingBuilder):
    kind = 'aggregate'

    async def _execute(self, executor: Any) -> AggregateResult:
        if not self._aggregates:
            self.count()
        sb = self._builders(executor)
        stmt = select(*self._columns()).select_from(self._meta.table)
        stmt = sb.apply_where(stmt, self._meta, self._filters, self._conditions)
        row = (await executor.execute(stmt)).mappings().one()
        return self._fill(AggregateResult(), row)


class GroupByQueryBuilder(_AggregatingBuilder):
    kind = 'group_by'

    def __init__(self, client, meta, by: Iterable[str], filters: Iterable[Any] = ()):
        super().__init__(client, meta, filters)
        self._by = [meta.field_name(b) for b in by]
        if not self._by:
            raise QueryValidationError("group_by needs at least one field")
        self._having: List[HavingPredicate] = []
        self._order: List[Tuple[Union[str, AggregateExpr], SortOrder]] = []
        self._take: Optional[int] = None
        self._skip: Optional[int] = None

    def having(self, *predicates: HavingPredicate):
        self._having.extend(predicates)
        return self

    def having_count_gt(self, n: int):
        return self.having(count().gt(n))

    def having_count_lt(self, n: int):
        return self.having(count().lt(n))

    def having_count_eq(self, n: int):
        return self.having(count().equals(n))

    def order_by(self, spec: Any, order: Any = None):
        if isinstance(spec, AggregateExpr):
            self._order.append((spec, normalize_order(spec.label, order).order))
        else:
            ob: OrderBy = normalize_order(spec, order)
            if self._meta.field_name(ob.field) not in self._by:
                raise QueryValidationError(f"Cannot order by '{ob.field}': it is not grouped")
            self._order.append((self._meta.field_name(ob.field), ob.order))
        return self

    def take(self, n: int):
        self._take = n
        return self

    def skip(self, n: int):
        self._skip = n
        return self

    def _details(self) -> Dict[str, Any]:
        return {'by': list(self._by), 'aggregates': [repr(a) for a in self._aggregates]}

    async def _execute(self, executor: Any) -> List[GroupByRow]:
        meta = self._meta
        sb = self._builders(executor)
        by_cols = [meta.column(b) for b in self._by]
        stmt = select(*[c.label(b) for c, b in zip(by_cols, self._by)], *self._columns()).select_from(meta.table)
        stmt = sb.apply_where(stmt, meta, self._filters, self._conditions)
        stmt = stmt.group_by(*by_cols)
        if self._having:
            stmt = stmt.having(*[h.clause(meta) for h in self._having])
        terms: list = []
        for target, order in self._order:
            expr = target.expression(meta) if isinstance(target, AggregateExpr) else meta.column(target)
            terms.extend(sb.adapter.order_clauses(expr, order))
        if not terms:
            terms = [c.asc() for c in by_cols]
        stmt = stmt.order_by(*terms)
        # negative pagination values clamp to zero for grouped results
        if self._skip is not None:
            stmt = stmt.offset(max(0, int(self._skip)))
        if self._take is not None:
            stmt = stmt.limit(max(0, int(self._take)))
        rows = (await executor.execute(stmt)).mappings().all()
        out: List[GroupByRow] = []
        for row in rows:
            item = GroupByRow(keys={b: row[b] for b in self._by})
            out.append(self._fill(item, row))
        return out
