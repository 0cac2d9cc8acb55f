from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

from sqlalchemy import func

from ..keys import Key, key_of

_dc_field = dataclasses.field


class FieldOp(str, Enum):
    EQUALS = 'equals'
    NOT_EQUALS = 'not_equals'
    GT = 'gt'
    LT = 'lt'
    GTE = 'gte'
    LTE = 'lte'
    IN = 'in'
    NOT_IN = 'not_in'
    CONTAINS = 'contains'
    STARTS_WITH = 'starts_with'
    ENDS_WITH = 'ends_with'
    IS_NULL = 'is_null'
    IS_NOT_NULL = 'is_not_null'
    JSON_PATH = 'json_path'
    JSON_STRING_CONTAINS = 'json_string_contains'
    JSON_STRING_STARTS_WITH = 'json_string_starts_with'
    JSON_STRING_ENDS_WITH = 'json_string_ends_with'
    JSON_ARRAY_CONTAINS = 'json_array_contains'
    JSON_OBJECT_CONTAINS = 'json_object_contains'

    @property
    def is_json(self) -> bool:
        return self.value.startswith('json_')


class QueryMode(Enum):
    DEFAULT = 'default'
    INSENSITIVE = 'insensitive'


class SortOrder(Enum):
    ASC = 'asc'
    DESC = 'desc'

    def reversed(self) -> "SortOrder":
        return SortOrder.DESC if self is SortOrder.ASC else SortOrder.ASC


class NullsOrder(Enum):
    FIRST = 'first'
    LAST = 'last'

    def reversed(self) -> "NullsOrder":
        return NullsOrder.LAST if self is NullsOrder.FIRST else NullsOrder.FIRST


def _seq(v: Any) -> list:
    return list(v) if isinstance(v, (list, tuple, set, frozenset)) else [v]


# Global operator registry (extensible); JSON operators are dialect specific
# and live on the adapters.
OPERATOR_REGISTRY: Dict[str, Callable[[Any, Any], Any]] = {
    'equals': lambda col, v: col.is_(None) if v is None else col == v,
    'not_equals': lambda col, v: col.is_not(None) if v is None else col != v,
    'gt': lambda col, v: col > v,
    'lt': lambda col, v: col < v,
    'gte': lambda col, v: col >= v,
    'lte': lambda col, v: col <= v,
    'in': lambda col, v: col.in_(_seq(v)),
    'not_in': lambda col, v: ~col.in_(_seq(v)),
    'contains': lambda col, v: col.contains(v, autoescape=True),
    'starts_with': lambda col, v: col.startswith(v, autoescape=True),
    'ends_with': lambda col, v: col.endswith(v, autoescape=True),
    'is_null': lambda col, v: col.is_(None),
    'is_not_null': lambda col, v: col.is_not(None),
}

_STRING_OPS = {'equals', 'not_equals', 'in', 'not_in', 'contains', 'starts_with', 'ends_with'}


def register_operator(name: str, fn: Callable[[Any, Any], Any]):
    OPERATOR_REGISTRY[name] = fn


def apply_operator(op: Union[FieldOp, str], col: Any, value: Any, mode: "QueryMode" = QueryMode.DEFAULT):
    name = op.value if isinstance(op, FieldOp) else str(op)
    fn = OPERATOR_REGISTRY.get(name)
    if fn is None:
        raise ValueError(f"Unknown filter operator: {name}")
    if mode is QueryMode.INSENSITIVE and name in _STRING_OPS:
        if isinstance(value, (list, tuple, set)):
            value = [v.lower() if isinstance(v, str) else v for v in value]
        elif isinstance(value, str):
            value = value.lower()
        col = func.lower(col)
    return fn(col, value)


@dataclass(frozen=True)
class Filter:
    """A single predicate on one field of an entity."""
    field: str
    op: FieldOp = FieldOp.EQUALS
    value: Any = None
    mode: QueryMode = QueryMode.DEFAULT
    path: Tuple[str, ...] = ()

    def __str__(self) -> str:
        where = f"{self.field}{''.join(f'.{p}' for p in self.path)}"
        if self.op in (FieldOp.IS_NULL, FieldOp.IS_NOT_NULL):
            return f"{where} {self.op.value}"
        return f"{where} {self.op.value} {self.value!r}"

    @property
    def is_equality(self) -> bool:
        return self.op is FieldOp.EQUALS and not self.path


class FieldRef:
    """``field('email').equals('a@b.c')`` style filter factory."""

    def __init__(self, name: str):
        self.name = name

    def _f(self, op: FieldOp, value: Any = None, mode: QueryMode = QueryMode.DEFAULT, path: Iterable[str] = ()) -> Filter:
        return Filter(self.name, op, value, mode, tuple(path))

    def equals(self, value: Any, mode: QueryMode = QueryMode.DEFAULT) -> Filter:
        return self._f(FieldOp.EQUALS, value, mode)

    def not_equals(self, value: Any, mode: QueryMode = QueryMode.DEFAULT) -> Filter:
        return self._f(FieldOp.NOT_EQUALS, value, mode)

    def gt(self, value: Any) -> Filter:
        return self._f(FieldOp.GT, value)

    def lt(self, value: Any) -> Filter:
        return self._f(FieldOp.LT, value)

    def gte(self, value: Any) -> Filter:
        return self._f(FieldOp.GTE, value)

    def lte(self, value: Any) -> Filter:
        return self._f(FieldOp.LTE, value)

    def in_(self, values: Iterable[Any], mode: QueryMode = QueryMode.DEFAULT) -> Filter:
        return self._f(FieldOp.IN, tuple(values), mode)

    def not_in(self, values: Iterable[Any], mode: QueryMode = QueryMode.DEFAULT) -> Filter:
        return self._f(FieldOp.NOT_IN, tuple(values), mode)

    def contains(self, value: str, mode: QueryMode = QueryMode.DEFAULT) -> Filter:
        return self._f(FieldOp.CONTAINS, value, mode)

    def starts_with(self, value: str, mode: QueryMode = QueryMode.DEFAULT) -> Filter:
        return self._f(FieldOp.STARTS_WITH, value, mode)

    def ends_with(self, value: str, mode: QueryMode = QueryMode.DEFAULT) -> Filter:
        return self._f(FieldOp.ENDS_WITH, value, mode)

    def is_null(self) -> Filter:
        return self._f(FieldOp.IS_NULL)

    def is_not_null(self) -> Filter:
        return self._f(FieldOp.IS_NOT_NULL)

    # JSON columns: ``path`` walks object keys (str) and array indexes (int)
    def json_path(self, path: Iterable[Any], value: Any) -> Filter:
        return self._f(FieldOp.JSON_PATH, value, path=path)

    def json_string_contains(self, path: Iterable[Any], value: str) -> Filter:
        return self._f(FieldOp.JSON_STRING_CONTAINS, value, path=path)

    def json_string_starts_with(self, path: Iterable[Any], value: str) -> Filter:
        return self._f(FieldOp.JSON_STRING_STARTS_WITH, value, path=path)

    def json_string_ends_with(self, path: Iterable[Any], value: str) -> Filter:
        return self._f(FieldOp.JSON_STRING_ENDS_WITH, value, path=path)

    def json_array_contains(self, path: Iterable[Any], value: Any) -> Filter:
        return self._f(FieldOp.JSON_ARRAY_CONTAINS, value, path=path)

    def json_object_contains(self, path: Iterable[Any], key: str) -> Filter:
        return self._f(FieldOp.JSON_OBJECT_CONTAINS, key, path=path)

    def asc(self, nulls: Optional[NullsOrder] = None) -> "OrderBy":
        return OrderBy(self.name, SortOrder.ASC, nulls)

    def desc(self, nulls: Optional[NullsOrder] = None) -> "OrderBy":
        return OrderBy(self.name, SortOrder.DESC, nulls)


def field(name: str) -> FieldRef:
    return FieldRef(name)


class OrderBy(NamedTuple):
    field: str
    order: SortOrder = SortOrder.ASC
    nulls: Optional[NullsOrder] = None


def normalize_order(raw: Any, order: Any = None) -> OrderBy:
    """Accept ``OrderBy``, ``(field, order[, nulls])``, ``'field'`` or ``'field:desc'``."""
    if isinstance(raw, OrderBy):
        return raw
    if isinstance(raw, (tuple, list)):
        if not raw:
            raise TypeError("Empty order_by spec")
        nulls = raw[2] if len(raw) > 2 else None
        if nulls is not None and not isinstance(nulls, NullsOrder):
            nulls = NullsOrder(str(nulls).lower())
        return normalize_order(raw[0], raw[1] if len(raw) > 1 else order)._replace(nulls=nulls)
    if isinstance(raw, str):
        name, _, direction = raw.partition(':')
        if order is None:
            order = direction or 'asc'
        if not isinstance(order, SortOrder):
            order = SortOrder(str(getattr(order, 'value', order)).lower())
        return OrderBy(name, order, None)
    raise TypeError(f"Unsupported order_by form: {raw!r}")


def normalize_filter(raw: Any) -> Filter:
    if isinstance(raw, Filter):
        return raw
    if isinstance(raw, tuple) and len(raw) in (2, 3):
        if len(raw) == 2:
            return Filter(str(raw[0]), FieldOp.EQUALS, raw[1])
        return Filter(str(raw[0]), FieldOp(getattr(raw[1], 'value', raw[1])), raw[2])
    if isinstance(raw, dict) and 'field' in raw:
        return Filter(
            raw['field'],
            FieldOp(raw.get('op', 'equals')),
            raw.get('value'),
            QueryMode(raw.get('mode', 'default')),
            tuple(raw.get('path') or ()),
        )
    raise TypeError(f"Unsupported filter form: {raw!r}")


def normalize_filters(raw: Any) -> List[Filter]:
    """Flatten filters given as Filter objects, tuples, lists or ``{field: value}`` maps."""
    if raw is None:
        return []
    if isinstance(raw, (Filter, tuple)):
        return [normalize_filter(raw)]
    if isinstance(raw, dict) and 'field' not in raw:
        return [Filter(str(k), FieldOp.EQUALS, v) for k, v in raw.items()]
    if isinstance(raw, dict):
        return [normalize_filter(raw)]
    out: List[Filter] = []
    for item in raw:
        out.extend(normalize_filters(item))
    return out


@dataclass
class RelationFilter:
    """Recursive include request: what to fetch for one relation and below."""
    relation: str
    filters: List[Filter] = _dc_field(default_factory=list)
    nested_select_aliases: Optional[List[str]] = None
    nested_includes: List["RelationFilter"] = _dc_field(default_factory=list)
    take: Optional[int] = None
    skip: Optional[int] = None
    order_by: List[OrderBy] = _dc_field(default_factory=list)
    cursor: Optional[Key] = None
    include_count: bool = False
    distinct: bool = False

    def clone_with(self, **overrides: Any) -> "RelationFilter":
        return dataclasses.replace(self, **overrides)

    @property
    def count_only(self) -> bool:
        return self.include_count and not self.nested_includes


class IncludeBuilder:
    """Fluent construction of a ``RelationFilter``; see ``fetch``."""

    def __init__(self, relation: str, filters: Any = None):
        self._rf = RelationFilter(relation, normalize_filters(filters))

    def where(self, *filters: Any) -> "IncludeBuilder":
        self._rf.filters.extend(normalize_filters(list(filters)))
        return self

    def take(self, n: int) -> "IncludeBuilder":
        self._rf.take = n
        return self

    def skip(self, n: int) -> "IncludeBuilder":
        self._rf.skip = n
        return self

    def order_by(self, spec: Any, order: Any = None) -> "IncludeBuilder":
        self._rf.order_by.append(normalize_order(spec, order))
        return self

    def cursor(self, value: Any) -> "IncludeBuilder":
        self._rf.cursor = key_of(value)
        return self

    def select(self, *aliases: str) -> "IncludeBuilder":
        self._rf.nested_select_aliases = list(aliases)
        return self

    def include(self, *children: Any) -> "IncludeBuilder":
        self._rf.nested_includes.extend(to_relation_filter(c) for c in children)
        return self

    def count(self, enabled: bool = True) -> "IncludeBuilder":
        self._rf.include_count = enabled
        return self

    def distinct(self, enabled: bool = True) -> "IncludeBuilder":
        self._rf.distinct = enabled
        return self

    def build(self) -> RelationFilter:
        return self._rf.clone_with(
            filters=list(self._rf.filters),
            order_by=list(self._rf.order_by),
            nested_includes=list(self._rf.nested_includes),
        )


def fetch(relation: str, *filters: Any) -> IncludeBuilder:
    return IncludeBuilder(relation, list(filters))


def to_relation_filter(raw: Any) -> RelationFilter:
    if isinstance(raw, RelationFilter):
        return raw
    if isinstance(raw, IncludeBuilder):
        return raw.build()
    if isinstance(raw, str):
        return RelationFilter(raw)
    raise TypeError(f"Unsupported include form: {raw!r}")


class RelationConditionKind(Enum):
    SOME = 'some'
    EVERY = 'every'
    NONE = 'none'


@dataclass(frozen=True)
class RelationCondition:
    """Filter a query by the existence of related rows."""
    relation: str
    kind: RelationConditionKind
    filters: Tuple[Filter, ...] = ()

    @classmethod
    def some(cls, relation: str, *filters: Any) -> "RelationCondition":
        return cls(relation, RelationConditionKind.SOME, tuple(normalize_filters(list(filters))))

    @classmethod
    def every(cls, relation: str, *filters: Any) -> "RelationCondition":
        return cls(relation, RelationConditionKind.EVERY, tuple(normalize_filters(list(filters))))

    @classmethod
    def none(cls, relation: str, *filters: Any) -> "RelationCondition":
        return cls(relation, RelationConditionKind.NONE, tuple(normalize_filters(list(filters))))
