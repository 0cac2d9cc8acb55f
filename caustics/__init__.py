"""caustics public API and lightweight lazy exports.

Submodules that pull in SQLAlchemy statement machinery are imported on first
attribute access, so model modules can import ``caustics.keys`` or
``caustics.core.filters`` without loading the whole client.

Exposes:
- Key, Filter/RelationFilter vocabulary (field, fetch, RelationCondition, SortOrder, NullsOrder, QueryMode)
- EntityRegistry, Client
- write parameters: connect, disconnect, create_nested, row, set_relation
- aggregate helpers: count, sum_, avg, min_, max_
- errors
"""
from __future__ import annotations

from typing import Any

_LAZY = {
    'Key': '.keys',
    'KeyKind': '.keys',
    'Filter': '.core.filters',
    'FieldOp': '.core.filters',
    'RelationFilter': '.core.filters',
    'RelationCondition': '.core.filters',
    'SortOrder': '.core.filters',
    'NullsOrder': '.core.filters',
    'QueryMode': '.core.filters',
    'field': '.core.filters',
    'fetch': '.core.filters',
    'UNSET': '.core.records',
    'ModelWithRelations': '.core.records',
    'Selected': '.core.records',
    'RelationKind': '.core.descriptors',
    'RelationDescriptor': '.core.descriptors',
    'EntityRegistry': '.registry',
    'EntityFetcher': '.registry',
    'Client': '.client',
    'QueryHooks': '.hooks',
    'connect': '.input_types',
    'disconnect': '.input_types',
    'create_nested': '.input_types',
    'row': '.input_types',
    'set_relation': '.input_types',
    'count': '.aggregates',
    'sum_': '.aggregates',
    'avg': '.aggregates',
    'min_': '.aggregates',
    'max_': '.aggregates',
    'CausticsSettings': '.config',
    'load_settings': '.config',
}

_ERRORS = {
    'CausticsError', 'RelationNotFound', 'InvalidIncludePath', 'EntityFetcherMissing',
    'NotFoundForCondition', 'RelationNotFetched', 'RecordNotFound', 'QueryValidationError',
    'DescriptorMismatch',
}


def __getattr__(name: str) -> Any:  # PEP 562 lazy exports
    import importlib as _importlib
    if name in _ERRORS:
        return getattr(_importlib.import_module(__name__ + '.errors'), name)
    mod = _LAZY.get(name)
    if mod is None:
        raise AttributeError(name)
    return getattr(_importlib.import_module(mod, __name__), name)


__all__ = sorted([*_LAZY, *_ERRORS])
