from __future__ import annotations

import logging

from .base import BaseAdapter
from .sqlite import SQLiteAdapter
from .postgres import PostgresAdapter
from .mssql import MSSQLAdapter

logger = logging.getLogger(__name__)


def get_adapter(dialect_name: str) -> BaseAdapter:
    dn = (dialect_name or '').lower()
    if dn.startswith('postgres'):
        return PostgresAdapter()
    if dn.startswith('mssql') or 'pyodbc' in dn:
        return MSSQLAdapter()
    if dn and not dn.startswith('sqlite'):
        logger.warning(f"Unsupported database dialect: {dialect_name}. Falling back to SQLite adapter.")
    return SQLiteAdapter()


def adapter_for(executor) -> BaseAdapter:
    """Adapter matching the dialect of an engine, connection or transaction."""
    dialect = getattr(executor, 'dialect', None)
    return get_adapter(getattr(dialect, 'name', '') or '')


__all__ = [
    'BaseAdapter',
    'SQLiteAdapter',
    'PostgresAdapter',
    'MSSQLAdapter',
    'get_adapter',
    'adapter_for',
]
