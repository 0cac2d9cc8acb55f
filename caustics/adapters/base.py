from __future__ import annotations
from typing import Any, List, Optional, Sequence
from sqlalchemy import case, exists, func, literal, select

from ..core.filters import FieldOp, Filter, NullsOrder, SortOrder
from ..errors import QueryValidationError


def sqlite_json_path(path: Sequence[Any]) -> str:
    out = '$'
    for p in path:
        if isinstance(p, int):
            out += f'[{p}]'
        else:
            out += '."' + str(p).replace('"', '\\"') + '"'
    return out


class BaseAdapter:
    name = 'base'

    def supports_distinct_on(self) -> bool:
        return False

    def nulls_first(self, order: SortOrder, nulls: Optional[NullsOrder] = None) -> bool:
        """Whether NULLs sort before values; unspecified NULLs compare as the smallest value."""
        if nulls is not None:
            return nulls is NullsOrder.FIRST
        return order is SortOrder.ASC

    # --- ordering ------------------------------------------------------------
    def order_clauses(self, expr, order: SortOrder, nulls: Optional[NullsOrder] = None) -> List[Any]:
        """ORDER BY terms for ``expr``; NULLS FIRST/LAST emulated with an is-null key."""
        clauses: List[Any] = []
        if nulls is not None:
            null_key = case((expr.is_(None), 0), else_=1)
            clauses.append(null_key.asc() if nulls is NullsOrder.FIRST else null_key.desc())
        clauses.append(expr.desc() if order is SortOrder.DESC else expr.asc())
        return clauses

    # --- JSON predicates -----------------------------------------------------
    def json_element(self, col, path: Sequence[Any]):
        if not path:
            raise QueryValidationError(f"JSON filter on '{col.key}' requires a path")
        return col[tuple(path)]

    def json_scalar(self, col, path: Sequence[Any], sample: Any):
        el = self.json_element(col, path)
        if isinstance(sample, bool):
            return el.as_boolean()
        if isinstance(sample, int):
            return el.as_integer()
        if isinstance(sample, float):
            return el.as_float()
        return el.as_string()

    def json_array_contains(self, col, path: Sequence[Any], value: Any):
        raise NotImplementedError

    def json_object_contains(self, col, path: Sequence[Any], key: str):
        raise NotImplementedError

    def json_filter(self, col, f: Filter):
        op = f.op
        if op is FieldOp.JSON_PATH:
            if f.value is None:
                return self.json_element(col, f.path).as_string().is_(None)
            return self.json_scalar(col, f.path, f.value) == f.value
        if op is FieldOp.JSON_STRING_CONTAINS:
            return self.json_element(col, f.path).as_string().contains(f.value, autoescape=True)
        if op is FieldOp.JSON_STRING_STARTS_WITH:
            return self.json_element(col, f.path).as_string().startswith(f.value, autoescape=True)
        if op is FieldOp.JSON_STRING_ENDS_WITH:
            return self.json_element(col, f.path).as_string().endswith(f.value, autoescape=True)
        if op is FieldOp.JSON_ARRAY_CONTAINS:
            return self.json_array_contains(col, f.path, f.value)
        if op is FieldOp.JSON_OBJECT_CONTAINS:
            return self.json_object_contains(col, f.path, f.value)
        raise QueryValidationError(f"Unsupported JSON operator: {op.value}")

    def _each_contains(self, fn_name: str, col, path_text: str, value: Any):
        each = getattr(func, fn_name)(col, path_text).table_valued('value')
        return exists(select(literal(1)).select_from(each).where(each.c.value == value))
