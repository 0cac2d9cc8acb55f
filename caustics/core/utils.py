from __future__ import annotations
import uuid
from datetime import date, datetime

from sqlalchemy.sql.sqltypes import Date, DateTime, Float, Integer, Numeric, Uuid

from ..keys import Key


def coerce_where_value(col, val):
    """Coerce a filter/write value to the python type the column binds."""
    if isinstance(val, Key):
        val = val.to_db_value()
    if isinstance(val, (list, tuple, set, frozenset)):
        return [coerce_where_value(col, v) for v in val]
    ctype = getattr(col, 'type', None)
    if ctype is None or val is None:
        return val
    if isinstance(ctype, DateTime) and isinstance(val, str):
        s = val.replace('Z', '+00:00') if val.endswith('Z') else val
        try:
            dv = datetime.fromisoformat(s)
        except ValueError:
            return val
        if getattr(ctype, 'timezone', False) is False and dv.tzinfo is not None:
            dv = dv.replace(tzinfo=None)
        return dv
    if isinstance(ctype, Date) and isinstance(val, str):
        try:
            return date.fromisoformat(val)
        except ValueError:
            return val
    if isinstance(ctype, Integer) and isinstance(val, str):
        try:
            return int(val)
        except ValueError:
            return val
    if isinstance(ctype, (Float, Numeric)) and isinstance(val, str):
        try:
            return float(val)
        except ValueError:
            return val
    if isinstance(ctype, Uuid) and isinstance(val, str):
        try:
            return uuid.UUID(val)
        except ValueError:
            return val
    return val

