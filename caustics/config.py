"""Settings and engine construction.

Values come from the environment; a ``.env`` file in the working directory is
loaded first when present.

- ``CAUSTICS_DATABASE_URL``: async SQLAlchemy URL (default: in-memory SQLite)
- ``CAUSTICS_ECHO_SQL``: ``1``/``true`` to echo statements
- ``CAUSTICS_LOG_LEVEL``: level for the ``caustics`` logger (default ``WARNING``)
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = 'sqlite+aiosqlite:///:memory:'


def _as_bool(value: Optional[str]) -> bool:
    return str(value or '').strip().lower() in ('1', 'true', 'yes', 'on')


@dataclass(frozen=True)
class CausticsSettings:
    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    log_level: str = 'WARNING'


def load_settings(dotenv: bool = True) -> CausticsSettings:
    if dotenv:
        load_dotenv()
    return CausticsSettings(
        database_url=os.getenv('CAUSTICS_DATABASE_URL') or DEFAULT_DATABASE_URL,
        echo_sql=_as_bool(os.getenv('CAUSTICS_ECHO_SQL')),
        log_level=(os.getenv('CAUSTICS_LOG_LEVEL') or 'WARNING').upper(),
    )


def create_engine_from_settings(settings: CausticsSettings) -> AsyncEngine:
    url = settings.database_url
    lowered = url.lower()
    if lowered.startswith('postgresql'):
        engine = create_async_engine(url, echo=settings.echo_sql, pool_size=5, max_overflow=10, pool_pre_ping=True)
    elif lowered.startswith('mssql+aioodbc'):
        # aioodbc does not cope with pre-ping from sync pool contexts
        engine = create_async_engine(url, echo=settings.echo_sql, poolclass=NullPool)
    else:
        engine = create_async_engine(url, echo=settings.echo_sql)
    logger.info(f"Detected database dialect: {engine.dialect.name}")
    return engine


def configure_logging(level: Optional[str] = None) -> logging.Logger:
    """Attach a stream handler to the ``caustics`` logger (applications usually configure their own)."""
    root = logging.getLogger('caustics')
    root.setLevel((level or load_settings(dotenv=False).log_level).upper())
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter('%(asctime)s %(name)s %(levelname)s %(message)s'))
        root.addHandler(handler)
    return root
