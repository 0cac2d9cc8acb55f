from __future__ import annotations
from sqlalchemy import func
from .base import BaseAdapter, sqlite_json_path

class SQLiteAdapter(BaseAdapter):
    name = 'sqlite'

    def json_array_contains(self, col, path, value):
        # json_each walks the array at the path; "value" is the element column
        return self._each_contains('json_each', col, sqlite_json_path(path), value)

    def json_object_contains(self, col, path, key):
        # json_type is NULL only when the key is absent (JSON null yields 'null')
        return func.json_type(col, sqlite_json_path(list(path) + [key])).is_not(None)
