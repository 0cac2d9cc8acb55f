"""Nested include traversal.

Walks a ``RelationFilter`` tree depth-first, one relation at a time, fetching
related rows through the registry and attaching them to the parent record.
The walk is the same for full rows and partial projections; only the fetch
differs, and that part is delegated to an ``IncludeVisitor``.
"""
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional, Sequence, Set, Tuple

from ..errors import InvalidIncludePath, RelationNotFound
from ..keys import Key
from .descriptors import RelationDescriptor
from .filters import RelationFilter
from .records import Record, RelationResult

logger = logging.getLogger(__name__)


class IncludeVisitor:
    async def fetch(self, fetcher, conn: Any, fk: Optional[Key], desc: RelationDescriptor, rf: RelationFilter) -> RelationResult:
        raise NotImplementedError


class FullModelVisitor(IncludeVisitor):
    async def fetch(self, fetcher, conn, fk, desc, rf):
        return await fetcher.fetch_by_foreign_key(conn, fk, desc.foreign_key_column, desc.target_entity, desc.name, rf)


class SelectionVisitor(IncludeVisitor):
    async def fetch(self, fetcher, conn, fk, desc, rf):
        return await fetcher.fetch_by_foreign_key_with_selection(conn, fk, desc.foreign_key_column, desc.target_entity, desc.name, rf)


FULL_MODEL = FullModelVisitor()
SELECTION = SelectionVisitor()


def visitor_for(record: Record) -> IncludeVisitor:
    return SELECTION if record.selected else FULL_MODEL


def validate_includes(registry, meta, includes: Sequence[RelationFilter], _path: str = '') -> None:
    """Check every relation name in the tree before any query runs."""
    for rf in includes or []:
        desc = meta.get_relation_descriptor(rf.relation)
        path = f"{_path}.{rf.relation}" if _path else rf.relation
        if desc is None:
            if not _path:
                raise RelationNotFound(rf.relation, meta.name)
            raise InvalidIncludePath(path, f"'{meta.name}' has no relation '{rf.relation}'")
        if rf.nested_includes:
            validate_includes(registry, registry.meta_for(desc.target_entity), rf.nested_includes, path)


class IncludeTraversal:
    """One traversal over a set of root records; never fetches a (record, relation) pair twice."""

    def __init__(self, registry, conn: Any, visitor: Optional[IncludeVisitor] = None):
        self.registry = registry
        self.conn = conn
        self.visitor = visitor
        self._seen: Set[Tuple[int, str]] = set()

    async def apply(self, record: Record, rf: RelationFilter) -> None:
        meta = record.entity_meta
        desc = meta.require_relation(rf.relation)
        marker = (id(record), rf.relation)
        if marker in self._seen:
            logger.debug(f"Skipping repeated include {meta.name}.{rf.relation}")
            return
        self._seen.add(marker)
        fk = desc.get_foreign_key(record)
        if fk is None and not desc.is_has_many:
            return
        fetcher = self.registry.fetcher_for(meta.name)
        if rf.include_count:
            count = await fetcher.count_by_foreign_key(self.conn, fk, rf.relation, rf)
            record.set_count(rf.relation, count)
            if rf.count_only:
                return
        visitor = self.visitor or visitor_for(record)
        result = await visitor.fetch(fetcher, self.conn, fk, desc, rf)
        if rf.nested_includes:
            for child in result.records():
                for nested in rf.nested_includes:
                    await self.apply(child, nested)
        desc.set_field(record, result)


async def apply_relation_filter(record: Record, conn: Any, rf: RelationFilter, registry, visitor: Optional[IncludeVisitor] = None) -> None:
    validate_includes(registry, record.entity_meta, [rf])
    await IncludeTraversal(registry, conn, visitor).apply(record, rf)


async def apply_includes(records: Iterable[Record], conn: Any, includes: Sequence[RelationFilter], registry, visitor: Optional[IncludeVisitor] = None) -> List[Record]:
    records = list(records)
    if not records or not includes:
        return records
    validate_includes(registry, records[0].entity_meta, includes)
    traversal = IncludeTraversal(registry, conn, visitor)
    for record in records:
        for rf in includes:
            await traversal.apply(record, rf)
    return records
