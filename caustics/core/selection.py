"""Partial projection.

The required field set of a projected fetch is the requested aliases plus the
primary key plus the link field of every nested include, so a caller that
selected two columns can still traverse the relations it asked for.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Mapping, Optional, Sequence

from ..errors import InvalidIncludePath, QueryValidationError
from .naming import dedupe
from .records import Selected


def required_fields(meta, aliases: Optional[Iterable[str]], nested_includes: Sequence[Any] = ()) -> List[str]:
    """Fields a projected fetch must read; ``aliases=None`` means every scalar field."""
    if aliases is None:
        base = list(meta.scalar_fields)
    else:
        base = []
        for a in aliases:
            try:
                base.append(meta.field_name(a))
            except QueryValidationError:
                if meta.get_relation_descriptor(a) is not None:
                    raise QueryValidationError(
                        f"'{a}' is a relation on '{meta.name}'; include it instead of selecting it"
                    ) from None
                raise
    out = [*base, meta.primary_key]
    for inc in nested_includes or []:
        desc = meta.get_relation_descriptor(inc.relation)
        if desc is None:
            raise InvalidIncludePath(inc.relation, f"no such relation on '{meta.name}'")
        out.append(desc.link_field)
    return dedupe(out)


def fill_selected(meta, row: Mapping[str, Any], fields: Iterable[str]) -> Selected:
    return Selected.from_row(meta, row, fields)
