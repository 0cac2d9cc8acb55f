"""Entity registry and relation fetchers.

The registry is an ordinary object: build it once at startup, register the
mapped classes, and hand it to the ``Client`` (and from there to every builder).
"""
from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Type

from sqlalchemy import func, select

from .adapters import adapter_for
from .core.descriptors import EntityMeta, RelationDescriptor, build_entity_meta
from .core.filters import RelationFilter
from .core.naming import entity_name_candidates
from .core.records import ModelWithRelations, RelationResult
from .core.selection import fill_selected, required_fields
from .core.utils import coerce_where_value
from .errors import EntityFetcherMissing, RelationNotFound
from .keys import Key
from .sql.builders import StatementBuilders

logger = logging.getLogger(__name__)


class EntityFetcher:
    """Fetches the related rows of one entity's relations."""

    def __init__(self, registry: "EntityRegistry", meta: EntityMeta):
        self.registry = registry
        self.meta = meta

    def builders(self, executor: Any) -> StatementBuilders:
        return StatementBuilders(self.registry, adapter_for(executor))

    def _descriptor(self, relation_name: str, target_entity: Optional[str]) -> RelationDescriptor:
        desc = self.meta.require_relation(relation_name)
        if target_entity is not None:
            if self.registry.meta_for(target_entity) is not self.registry.meta_for(desc.target_entity):
                raise RelationNotFound(f"{relation_name} -> {target_entity}", self.meta.name)
        return desc

    def relation_statement(self, executor: Any, desc: RelationDescriptor, fk: Key, rf: RelationFilter, fields: Optional[Sequence[str]] = None):
        target = self.registry.meta_for(desc.target_entity)
        sb = self.builders(executor)
        match_col = target.column(desc.target_match_field)
        stmt = select(*sb.projection(target, fields)).select_from(target.table)
        stmt = stmt.where(match_col == coerce_where_value(match_col, fk))
        stmt = sb.apply_where(stmt, target, rf.filters)
        if not desc.is_has_many:
            return stmt.limit(1)
        reverse = rf.take is not None and rf.take < 0
        if rf.cursor is not None:
            stmt = stmt.where(sb.cursor_clause(target, rf.cursor, rf.order_by, reverse=reverse))
        if rf.distinct:
            stmt = stmt.distinct()
        stmt = sb.apply_ordering(stmt, target, rf.order_by, reverse=reverse)
        return sb.apply_pagination(stmt, rf.take, rf.skip)

    async def _fetch(self, conn: Any, fk: Optional[Key], relation_name: str, target_entity: Optional[str], rf: RelationFilter, selection: bool) -> RelationResult:
        desc = self._descriptor(relation_name, target_entity)
        if fk is None:
            # nothing to join on: absent belongs-to, or a parent row without a key
            return RelationResult.many([]) if desc.is_has_many else RelationResult.one(None)
        target = self.registry.meta_for(desc.target_entity)
        fields = required_fields(target, rf.nested_select_aliases, rf.nested_includes) if selection else None
        stmt = self.relation_statement(conn, desc, fk, rf, fields)
        logger.debug(f"Fetching {self.meta.name}.{relation_name} for key {fk}")
        rows = (await conn.execute(stmt)).mappings().all()
        if selection:
            records = [fill_selected(target, row, fields) for row in rows]
        else:
            records = [ModelWithRelations.from_row(target, row) for row in rows]
        if desc.is_has_many:
            if rf.take is not None and rf.take < 0:
                records.reverse()
            return RelationResult.many(records)
        return RelationResult.one(records[0] if records else None)

    async def fetch_by_foreign_key(self, conn: Any, fk: Optional[Key], fk_column: Optional[str], target_entity: Optional[str], relation_name: str, filter: RelationFilter) -> RelationResult:
        return await self._fetch(conn, fk, relation_name, target_entity, filter, selection=False)

    async def fetch_by_foreign_key_with_selection(self, conn: Any, fk: Optional[Key], fk_column: Optional[str], target_entity: Optional[str], relation_name: str, filter: RelationFilter) -> RelationResult:
        return await self._fetch(conn, fk, relation_name, target_entity, filter, selection=True)

    async def count_by_foreign_key(self, conn: Any, fk: Optional[Key], relation_name: str, filter: RelationFilter) -> int:
        """COUNT of related rows matching the filter predicate; pagination is ignored."""
        desc = self.meta.require_relation(relation_name)
        if fk is None:
            return 0
        target = self.registry.meta_for(desc.target_entity)
        sb = self.builders(conn)
        match_col = target.column(desc.target_match_field)
        stmt = select(func.count()).select_from(target.table).where(match_col == coerce_where_value(match_col, fk))
        stmt = sb.apply_where(stmt, target, filter.filters)
        return int((await conn.execute(stmt)).scalar_one())


class EntityRegistry:
    def __init__(self, models: Iterable[Any] = ()):
        self._entities: Dict[str, EntityMeta] = {}
        self._aliases: Dict[str, str] = {}
        self._fetchers: Dict[str, EntityFetcher] = {}
        for m in models:
            self.register(m)

    def register(self, model_cls: Any, name: Optional[str] = None, fetcher_cls: Type[EntityFetcher] = EntityFetcher) -> EntityMeta:
        return self.register_meta(build_entity_meta(model_cls, name), fetcher_cls)

    def register_meta(self, meta: EntityMeta, fetcher_cls: Type[EntityFetcher] = EntityFetcher) -> EntityMeta:
        if meta.name in self._entities:
            raise ValueError(f"Entity '{meta.name}' is already registered")
        self._entities[meta.name] = meta
        cls_name = getattr(meta.model, '__name__', None)
        if cls_name and cls_name != meta.name:
            self._aliases.setdefault(cls_name, meta.name)
        self._fetchers[meta.name] = fetcher_cls(self, meta)
        logger.debug(f"Registered entity {meta.name} with {len(meta.relations)} relation(s)")
        return meta

    def register_all(self, base: Any) -> List[EntityMeta]:
        """Register every class mapped on a declarative base."""
        mappers = sorted(base.registry.mappers, key=lambda m: m.class_.__name__)
        return [self.register(m.class_) for m in mappers]

    def resolve_name(self, name: Any) -> Optional[str]:
        if isinstance(name, type):
            for meta in self._entities.values():
                if meta.model is name:
                    return meta.name
            name = name.__name__
        for candidate in entity_name_candidates(str(name)):
            if candidate in self._entities:
                return candidate
            if candidate in self._aliases:
                return self._aliases[candidate]
        return None

    def get_meta(self, name: Any) -> Optional[EntityMeta]:
        resolved = self.resolve_name(name)
        return self._entities.get(resolved) if resolved else None

    def meta_for(self, name: Any) -> EntityMeta:
        meta = self.get_meta(name)
        if meta is None:
            raise EntityFetcherMissing(str(getattr(name, '__name__', name)))
        return meta

    def get_fetcher(self, name: Any) -> Optional[EntityFetcher]:
        resolved = self.resolve_name(name)
        return self._fetchers.get(resolved) if resolved else None

    def fetcher_for(self, name: Any) -> EntityFetcher:
        fetcher = self.get_fetcher(name)
        if fetcher is None:
            raise EntityFetcherMissing(str(getattr(name, '__name__', name)))
        return fetcher

    def validate(self) -> None:
        """Every relation must point at a registered entity."""
        for meta in self._entities.values():
            for desc in meta.relations:
                if self.resolve_name(desc.target_entity) is None:
                    raise EntityFetcherMissing(desc.target_entity)

    @property
    def entity_names(self) -> List[str]:
        return list(self._entities)

    def __contains__(self, name: Any) -> bool:
        return self.resolve_name(name) is not None
