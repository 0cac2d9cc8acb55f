from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncTransaction

logger = logging.getLogger(__name__)


class Transaction:
    """Caller-owned transaction: every statement runs on the same connection."""

    def __init__(self, conn: AsyncConnection, trans: AsyncTransaction):
        self.connection = conn
        self._trans = trans

    @property
    def dialect(self):
        return self.connection.dialect

    @property
    def is_active(self) -> bool:
        return self._trans.is_active

    async def execute(self, statement: Any, parameters: Optional[Any] = None):
        return await self.connection.execute(statement, parameters)

    async def commit(self) -> None:
        await self._trans.commit()

    async def rollback(self) -> None:
        if self._trans.is_active:
            await self._trans.rollback()


@asynccontextmanager
async def begin_transaction(engine: AsyncEngine) -> AsyncIterator[Transaction]:
    """Commit when the block exits normally, roll back on any exception."""
    async with engine.connect() as conn:
        txn = Transaction(conn, await conn.begin())
        try:
            yield txn
        except BaseException:
            logger.debug("Rolling back transaction")
            await txn.rollback()
            raise
        if txn.is_active:
            await txn.commit()


@asynccontextmanager
async def open_connection(engine: AsyncEngine) -> AsyncIterator[AsyncConnection]:
    async with engine.connect() as conn:
        yield conn
