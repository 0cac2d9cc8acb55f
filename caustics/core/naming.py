from __future__ import annotations

import re
from typing import Iterable, List, Optional

__all__ = [
    'from_camel',
    'to_pascal',
    'strip_namespace',
    'entity_name_candidates',
    'dedupe',
]

_camel_to_snake_pattern = re.compile(r'(?<!^)(?=[A-Z])')
_namespace_sep = re.compile(r'::|\.')


def from_camel(name: str) -> str:
    """Convert lower/upper camelCase to snake_case."""
    if not name:
        return name
    return _camel_to_snake_pattern.sub('_', str(name)).lower()


def to_pascal(name: str) -> str:
    """Convert snake_case (or already Pascal) names to PascalCase."""
    if not name:
        return name
    if '_' not in name:
        return name[0].upper() + name[1:]
    return ''.join(p.capitalize() for p in str(name).split('_') if p)


def strip_namespace(name: str) -> str:
    """``app.models.User`` / ``entities::user`` -> last segment."""
    if not name:
        return name
    return _namespace_sep.split(str(name))[-1]


def entity_name_candidates(name: str) -> List[str]:
    """Names tried, in order, when resolving an entity reference."""
    out: List[str] = []

    def _add(candidate: Optional[str]):
        if candidate and candidate not in out:
            out.append(candidate)

    _add(name)
    short = strip_namespace(name)
    _add(short)
    _add(to_pascal(short))
    _add(from_camel(short))
    _add(short.lower() if short else None)
    return out


def dedupe(values: Iterable[str]) -> List[str]:
    seen: set = set()
    out: List[str] = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out
