from __future__ import annotations
from sqlalchemy import func
from .base import BaseAdapter, sqlite_json_path

class MSSQLAdapter(BaseAdapter):
    name = 'mssql'

    def json_array_contains(self, col, path, value):
        # SQL Server JSON paths use the same $."key"[n] syntax as SQLite
        return self._each_contains('openjson', col, sqlite_json_path(path), value)

    def json_object_contains(self, col, path, key):
        full = sqlite_json_path(list(path) + [key])
        return func.coalesce(func.json_value(col, full), func.json_query(col, full)).is_not(None)
