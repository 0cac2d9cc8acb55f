"""Relation write parameters accepted by create/update builders.

    client.entity('Post').create(
        {'title': 'Hello'},
        connect('author', {'email': 'ada@example.com'}),
        create_nested('post_comments', row({'content': 'first'}, connect('author', {'id': 1}))),
    )
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Tuple

from .core.filters import FieldOp, Filter, normalize_filters
from .errors import QueryValidationError

UniqueCondition = Tuple[Filter, ...]


def unique_condition(raw: Any) -> UniqueCondition:
    filters = tuple(normalize_filters(raw))
    if not filters:
        raise QueryValidationError("A unique condition needs at least one field")
    for f in filters:
        if f.op is not FieldOp.EQUALS or f.path:
            raise QueryValidationError(f"Unique conditions only support equality, got {f}")
    return filters


def describe_condition(condition: UniqueCondition) -> str:
    return ' AND '.join(str(f) for f in condition)


def is_primary_key_condition(meta, condition: UniqueCondition) -> bool:
    return len(condition) == 1 and meta.field_name(condition[0].field) == meta.primary_key


@dataclass(frozen=True)
class NestedRow:
    data: Dict[str, Any]
    params: Tuple[Any, ...] = ()


@dataclass(frozen=True)
class Connect:
    relation: str
    condition: UniqueCondition


@dataclass(frozen=True)
class Disconnect:
    relation: str


@dataclass(frozen=True)
class CreateNested:
    relation: str
    rows: Tuple[NestedRow, ...]


@dataclass(frozen=True)
class SetRelation:
    relation: str
    conditions: Tuple[UniqueCondition, ...]


def connect(relation: str, condition: Any) -> Connect:
    return Connect(relation, unique_condition(condition))


def disconnect(relation: str) -> Disconnect:
    return Disconnect(relation)


def row(data: Dict[str, Any], *params: Any) -> NestedRow:
    return NestedRow(dict(data), tuple(params))


def create_nested(relation: str, *rows: Any) -> CreateNested:
    return CreateNested(relation, tuple(r if isinstance(r, NestedRow) else NestedRow(dict(r)) for r in rows))


def set_relation(relation: str, *conditions: Any) -> SetRelation:
    return SetRelation(relation, tuple(unique_condition(c) for c in conditions))
