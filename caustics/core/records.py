"""Row containers produced by reads.

``ModelWithRelations`` holds a full row; ``Selected`` holds a partial projection
where columns that were not fetched hold ``UNSET`` (SQL NULL is ``None``).
Relation slots start unset in both and are filled by the include traversal.
"""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

from ..errors import RelationNotFetched


class _Unset:
    _instance: Optional["_Unset"] = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'UNSET'

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


class RelationResult:
    """Outcome of a relation fetch, tagged by shape."""

    MANY = 'many'
    ONE = 'one'

    __slots__ = ('shape', 'value')

    def __init__(self, shape: str, value: Any):
        self.shape = shape
        self.value = value

    @classmethod
    def many(cls, items: Iterable["Record"]) -> "RelationResult":
        return cls(cls.MANY, list(items))

    @classmethod
    def one(cls, item: Optional["Record"]) -> "RelationResult":
        return cls(cls.ONE, item)

    @property
    def is_many(self) -> bool:
        return self.shape == self.MANY

    def records(self) -> List["Record"]:
        if self.is_many:
            return list(self.value)
        return [] if self.value is None else [self.value]

    def __repr__(self) -> str:
        return f"RelationResult.{self.shape}({self.value!r})"


class Record:
    __slots__ = ('_entity', '_values', '_relations', '_counts')

    selected = False

    def __init__(self, entity: Any, values: Optional[Dict[str, Any]] = None):
        self._entity = entity
        self._values: Dict[str, Any] = dict(values or {})
        self._relations: Dict[str, Any] = {}
        self._counts: Optional[Dict[str, int]] = None

    @property
    def entity_name(self) -> str:
        return self._entity.name

    @property
    def entity_meta(self) -> Any:
        return self._entity

    @property
    def values(self) -> Dict[str, Any]:
        return dict(self._values)

    def __getattr__(self, name: str) -> Any:
        if name.startswith('_'):
            raise AttributeError(name)
        values = object.__getattribute__(self, '_values')
        if name in values:
            return values[name]
        relations = object.__getattribute__(self, '_relations')
        if name in relations:
            return relations[name]
        entity = object.__getattribute__(self, '_entity')
        if entity.get_relation_descriptor(name) is not None:
            raise RelationNotFetched(name)
        raise AttributeError(f"'{entity.name}' has no field '{name}'")

    def __getitem__(self, name: str) -> Any:
        if name in self._values:
            return self._values[name]
        return self.relation(name)

    def get(self, name: str, default: Any = None) -> Any:
        v = self._values.get(name, default)
        return default if v is UNSET else v

    def is_loaded(self, relation: str) -> bool:
        return relation in self._relations

    def relation(self, name: str) -> Any:
        if name not in self._relations:
            raise RelationNotFetched(name)
        return self._relations[name]

    def set_relation(self, name: str, value: Any) -> None:
        self._relations[name] = value

    @property
    def counts(self) -> Optional[Dict[str, int]]:
        return None if self._counts is None else dict(self._counts)

    def set_count(self, relation: str, value: int) -> None:
        if self._counts is None:
            self._counts = {}
        self._counts[relation] = int(value)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {k: v for k, v in self._values.items() if v is not UNSET}
        for name, rel in self._relations.items():
            if isinstance(rel, list):
                out[name] = [r.to_dict() for r in rel]
            else:
                out[name] = rel.to_dict() if rel is not None else None
        if self._counts is not None:
            out['_count'] = dict(self._counts)
        return out

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Record):
            return NotImplemented
        return (
            type(self) is type(other)
            and self._entity.name == other._entity.name
            and self._values == other._values
            and self._relations == other._relations
            and self._counts == other._counts
        )

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        shown = ', '.join(f"{k}={v!r}" for k, v in self._values.items() if v is not UNSET)
        return f"{type(self).__name__}<{self._entity.name}>({shown})"


class ModelWithRelations(Record):
    __slots__ = ()

    @classmethod
    def from_row(cls, entity: Any, row: Mapping[str, Any]) -> "ModelWithRelations":
        return cls(entity, {alias: row[alias] for alias in entity.scalar_fields if alias in row})


class Selected(Record):
    __slots__ = ()

    selected = True

    @classmethod
    def from_row(cls, entity: Any, row: Mapping[str, Any], fields: Iterable[str]) -> "Selected":
        wanted = set(fields)
        wanted.add(entity.primary_key)
        values = {
            alias: (row[alias] if alias in wanted and alias in row else UNSET)
            for alias in entity.scalar_fields
        }
        return cls(entity, values)

    def is_fetched(self, name: str) -> bool:
        return self._values.get(name, UNSET) is not UNSET
