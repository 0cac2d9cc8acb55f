from __future__ import annotations
from typing import Any, Iterable, List, Optional, Sequence

from sqlalchemy import and_, exists, false, func, literal, not_, or_, select, true

from ..core.filters import FieldOp, Filter, OrderBy, RelationCondition, RelationConditionKind, SortOrder, apply_operator
from ..core.utils import coerce_where_value
from ..errors import QueryValidationError
from ..keys import Key

# Centralized statement builders shared by root queries, relation fetches and writes.


class StatementBuilders:
    def __init__(self, registry, adapter):
        self.registry = registry
        self.adapter = adapter

    # --- helpers -------------------------------------------------------------
    @staticmethod
    def _col(meta, name: str, source=None):
        col = meta.column(name)
        if source is None:
            return col
        return source.c[col.key]

    def projection(self, meta, fields: Optional[Sequence[str]] = None, source=None) -> list:
        """Columns labelled with their attribute names; full row when ``fields`` is empty."""
        names = list(fields or []) or meta.scalar_fields
        return [self._col(meta, n, source).label(meta.field_name(n)) for n in names]

    # --- where ---------------------------------------------------------------
    def filter_clause(self, meta, f: Filter, source=None):
        col = self._col(meta, f.field, source)
        if f.op.is_json:
            return self.adapter.json_filter(col, f)
        value = f.value
        if f.op not in (FieldOp.IS_NULL, FieldOp.IS_NOT_NULL):
            value = coerce_where_value(col, value)
        try:
            return apply_operator(f.op, col, value, f.mode)
        except ValueError as e:
            raise QueryValidationError(str(e)) from e

    def where_clause(self, meta, filters: Iterable[Filter] = (), conditions: Iterable[RelationCondition] = (), source=None):
        clauses = [self.filter_clause(meta, f, source) for f in (filters or [])]
        clauses.extend(self.relation_condition_clause(meta, c, source) for c in (conditions or []))
        if not clauses:
            return None
        return and_(*clauses) if len(clauses) > 1 else clauses[0]

    def apply_where(self, stmt, meta, filters: Iterable[Filter] = (), conditions: Iterable[RelationCondition] = (), source=None):
        clause = self.where_clause(meta, filters, conditions, source)
        return stmt if clause is None else stmt.where(clause)

    def _related(self, meta, relation: str, source=None):
        """(target meta, target table alias, correlation predicate) for a relation."""
        desc = meta.require_relation(relation)
        target = self.registry.meta_for(desc.target_entity)
        target_src = target.table.alias() if target.table is meta.table else target.table
        outer = self._col(meta, desc.link_field, source)
        inner = self._col(target, desc.target_match_field, target_src)
        return target, target_src, inner == outer

    def relation_condition_clause(self, meta, cond: RelationCondition, source=None):
        target, target_src, link = self._related(meta, cond.relation, source)
        inner = self.where_clause(target, cond.filters, source=target_src)
        if cond.kind is RelationConditionKind.EVERY:
            # every: no related row fails the predicate
            failing = not_(inner) if inner is not None else false()
            return ~exists(select(literal(1)).select_from(target_src).where(link, failing))
        sub = exists(select(literal(1)).select_from(target_src).where(link, inner if inner is not None else true()))
        return ~sub if cond.kind is RelationConditionKind.NONE else sub

    def relation_count_expr(self, meta, relation: str, source=None):
        desc = meta.require_relation(relation)
        if not desc.is_has_many:
            raise QueryValidationError(f"Cannot order by count of to-one relation '{relation}'")
        target, target_src, link = self._related(meta, relation, source)
        return select(func.count()).select_from(target_src).where(link).scalar_subquery()

    # --- ordering ------------------------------------------------------------
    @staticmethod
    def _effective(ob: OrderBy, reverse: bool):
        if not reverse:
            return ob.order, ob.nulls
        return ob.order.reversed(), ob.nulls.reversed() if ob.nulls is not None else None

    def order_terms(self, meta, order_by: Iterable[OrderBy], *, reverse: bool = False, pk_tiebreak: bool = True, source=None) -> list:
        terms: list = []
        seen_pk = False
        for ob in order_by or []:
            name = meta.field_name(ob.field)
            order, nulls = self._effective(ob, reverse)
            terms.extend(self.adapter.order_clauses(self._col(meta, name, source), order, nulls))
            seen_pk = seen_pk or name == meta.primary_key
        if pk_tiebreak and not seen_pk:
            order = SortOrder.DESC if reverse else SortOrder.ASC
            terms.extend(self.adapter.order_clauses(self._col(meta, meta.primary_key, source), order))
        return terms

    def apply_ordering(self, stmt, meta, order_by: Iterable[OrderBy], **kw):
        terms = self.order_terms(meta, order_by, **kw)
        return stmt.order_by(*terms) if terms else stmt

    @staticmethod
    def apply_pagination(stmt, take: Optional[int], skip: Optional[int]):
        if skip is not None:
            if not isinstance(skip, int) or isinstance(skip, bool):
                raise QueryValidationError("skip must be an integer")
            if skip < 0:
                raise QueryValidationError("skip must be >= 0")
            if skip:
                stmt = stmt.offset(skip)
        if take is not None:
            if not isinstance(take, int) or isinstance(take, bool):
                raise QueryValidationError("take must be an integer")
            stmt = stmt.limit(abs(take))
        return stmt

    def _after(self, col, value, order: SortOrder, nulls_first: bool):
        """``col`` sorts strictly after ``value``, NULLs placed as the ordering places them."""
        cmp = col > value if order is SortOrder.ASC else col < value
        if nulls_first:
            # any value follows a NULL cursor value
            return or_(cmp, and_(value.is_(None), col.is_not(None)))
        return or_(cmp, and_(col.is_(None), value.is_not(None)))

    def cursor_clause(self, meta, cursor: Key, order_by: Sequence[OrderBy], *, reverse: bool = False, source=None):
        """Rows strictly after the cursor row in the effective ordering."""
        pk = self._col(meta, meta.primary_key, source)
        pk_value = coerce_where_value(pk, cursor)
        src = source if source is not None else meta.table
        cursor_src = src.alias()
        keys: List[Any] = []
        for ob in order_by or []:
            name = meta.field_name(ob.field)
            if name == meta.primary_key:
                continue
            col = self._col(meta, name, source)
            order, nulls = self._effective(ob, reverse)
            value = (
                select(cursor_src.c[col.key])
                .where(cursor_src.c[meta.pk_column.key] == pk_value)
                .scalar_subquery()
            )
            keys.append((col, value, order, self.adapter.nulls_first(order, nulls)))

        pk_order = SortOrder.DESC if reverse else SortOrder.ASC
        branches = []
        for i, (col, value, order, nulls_first) in enumerate(keys):
            eqs = [c.is_not_distinct_from(v) for c, v, _, _ in keys[:i]]
            branches.append(and_(*eqs, self._after(col, value, order, nulls_first)))
        last = pk > pk_value if pk_order is SortOrder.ASC else pk < pk_value
        eqs = [c.is_not_distinct_from(v) for c, v, _, _ in keys]
        branches.append(and_(*eqs, last) if eqs else last)
        if not keys:
            return last
        cursor_exists = exists(select(literal(1)).select_from(cursor_src).where(cursor_src.c[meta.pk_column.key] == pk_value))
        return and_(cursor_exists, or_(*branches))

    def distinct_on_clause(self, meta, fields: Sequence[str], where=None):
        """Keep the lowest-pk row per distinct value tuple among rows matching ``where``."""
        inner_src = meta.table.alias()
        group_cols = [self._col(meta, f, inner_src) for f in fields]
        pk = self._col(meta, meta.primary_key, inner_src)
        if self.adapter.supports_distinct_on():
            inner = select(pk).select_from(inner_src).distinct(*group_cols).order_by(*group_cols, pk)
        else:
            inner = select(func.min(pk)).select_from(inner_src).group_by(*group_cols)
        clause = where(inner_src) if where is not None else None
        if clause is not None:
            inner = inner.where(clause)
        return meta.pk_column.in_(inner)
