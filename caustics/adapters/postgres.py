from __future__ import annotations
from sqlalchemy import cast, func
from sqlalchemy.dialects.postgresql import JSONB
from .base import BaseAdapter

class PostgresAdapter(BaseAdapter):
    name = 'postgres'

    def supports_distinct_on(self) -> bool:
        return True

    def nulls_first(self, order, nulls=None):
        # NULLs compare as the largest value unless placed explicitly
        if nulls is not None:
            return nulls.value == 'first'
        return order.value == 'desc'

    def order_clauses(self, expr, order, nulls=None):
        term = expr.desc() if order.value == 'desc' else expr.asc()
        if nulls is not None:
            term = term.nulls_first() if nulls.value == 'first' else term.nulls_last()
        return [term]

    def json_array_contains(self, col, path, value):
        target = cast(col, JSONB)[tuple(path)] if path else cast(col, JSONB)
        return target.contains([value])

    def json_object_contains(self, col, path, key):
        return func.jsonb_extract_path(cast(col, JSONB), *[str(p) for p in path], key).is_not(None)
