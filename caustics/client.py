"""Client entry point.

    registry = EntityRegistry()
    registry.register_all(Base)
    client = Client(engine, registry)

    user = await client.entity('User').find_unique({'email': 'ada@example.com'}).include(fetch('posts').take(5))
    async with client.transaction() as tx:
        await tx.entity('Post').create({'title': 'x'}, connect('author', {'email': 'ada@example.com'}))
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Iterable, Optional, Sequence, TypeVar, Union

from sqlalchemy.ext.asyncio import AsyncEngine

from .aggregates import AggregateQueryBuilder, GroupByQueryBuilder
from .config import CausticsSettings, create_engine_from_settings
from .core.connection import Transaction, begin_transaction
from .hooks import QueryHooks
from .mutations import (
    CreateManyQueryBuilder, CreateQueryBuilder, DeleteManyQueryBuilder, DeleteQueryBuilder,
    UpdateManyQueryBuilder, UpdateQueryBuilder, UpsertQueryBuilder,
)
from .queries import CountQueryBuilder, FindFirstQueryBuilder, FindManyQueryBuilder, FindUniqueQueryBuilder, QueryBuilder
from .registry import EntityRegistry

logger = logging.getLogger(__name__)

T = TypeVar('T')


class EntityClient:
    """Builder factory for one entity."""

    def __init__(self, client: "Client", meta):
        self._client = client
        self.meta = meta

    def find_unique(self, where: Any) -> FindUniqueQueryBuilder:
        return FindUniqueQueryBuilder(self._client, self.meta, where)

    def find_first(self, *filters: Any) -> FindFirstQueryBuilder:
        return FindFirstQueryBuilder(self._client, self.meta, filters)

    def find_many(self, *filters: Any) -> FindManyQueryBuilder:
        return FindManyQueryBuilder(self._client, self.meta, filters)

    def count(self, *filters: Any) -> CountQueryBuilder:
        return CountQueryBuilder(self._client, self.meta, filters)

    def create(self, data: Dict[str, Any], *params: Any) -> CreateQueryBuilder:
        return CreateQueryBuilder(self._client, self.meta, data, params)

    def create_many(self, rows: Iterable[Dict[str, Any]]) -> CreateManyQueryBuilder:
        return CreateManyQueryBuilder(self._client, self.meta, rows)

    def update(self, where: Any, data: Dict[str, Any], *params: Any) -> UpdateQueryBuilder:
        return UpdateQueryBuilder(self._client, self.meta, where, data, params)

    def update_many(self, filters: Any, data: Dict[str, Any]) -> UpdateManyQueryBuilder:
        return UpdateManyQueryBuilder(self._client, self.meta, [filters], data)

    def upsert(self, where: Any, create: Dict[str, Any], update: Dict[str, Any], *,
               create_params: Iterable[Any] = (), update_params: Iterable[Any] = ()) -> UpsertQueryBuilder:
        return UpsertQueryBuilder(self._client, self.meta, where, create, update, create_params, update_params)

    def delete(self, where: Any) -> DeleteQueryBuilder:
        return DeleteQueryBuilder(self._client, self.meta, where)

    def delete_many(self, *filters: Any) -> DeleteManyQueryBuilder:
        return DeleteManyQueryBuilder(self._client, self.meta, filters)

    def group_by(self, *fields: str) -> GroupByQueryBuilder:
        return GroupByQueryBuilder(self._client, self.meta, fields)

    def aggregate(self, *filters: Any) -> AggregateQueryBuilder:
        return AggregateQueryBuilder(self._client, self.meta, filters)


class Client:
    def __init__(self, engine: AsyncEngine, registry: EntityRegistry, hooks: Optional[QueryHooks] = None,
                 *, transaction: Optional[Transaction] = None):
        self.engine = engine
        self.registry = registry
        self.hooks = hooks or QueryHooks()
        self._transaction = transaction

    @classmethod
    def from_settings(cls, settings: CausticsSettings, registry: EntityRegistry, hooks: Optional[QueryHooks] = None) -> "Client":
        return cls(create_engine_from_settings(settings), registry, hooks)

    @property
    def bound_transaction(self) -> Optional[Transaction]:
        return self._transaction

    def entity(self, name: Any) -> EntityClient:
        return EntityClient(self, self.registry.meta_for(name))

    def __getattr__(self, name: str) -> EntityClient:
        if name.startswith('_'):
            raise AttributeError(name)
        meta = self.registry.get_meta(name)
        if meta is None:
            raise AttributeError(f"'Client' has no entity '{name}'")
        return EntityClient(self, meta)

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator["Client"]:
        """Client whose builders all run on one transaction, committed on exit."""
        if self._transaction is not None:
            yield self
            return
        async with begin_transaction(self.engine) as txn:
            yield Client(self.engine, self.registry, self.hooks, transaction=txn)

    async def run_transaction(self, fn: Callable[["Client"], Awaitable[T]]) -> T:
        async with self.transaction() as tx:
            return await fn(tx)

    async def batch(self, builders: Union[Sequence[QueryBuilder], tuple]) -> Union[list, tuple]:
        """Run builders in order inside one transaction; any failure rolls back all of them."""
        async with self.transaction() as tx:
            txn = tx.bound_transaction
            results = []
            for i, builder in enumerate(builders):
                try:
                    results.append(await builder.exec_in_txn(txn))
                except Exception:
                    logger.debug(f"Batch operation {i} ({builder.kind}) failed; rolling back")
                    raise
        return tuple(results) if isinstance(builders, tuple) else results
