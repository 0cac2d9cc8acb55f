"""Primary/foreign key values.

A ``Key`` is an immutable tagged value used wherever the runtime needs to
carry a primary or foreign key without knowing the concrete column type:
relation traversal, deferred lookups, has-many set operations.

Canonical text form (stable, lossless)::

    I32(1)  I64(9000000000)  String("abc")  Uuid(1b4e28ba-2fa1-11d2-883f-0016d3cca427)

``Key.parse`` also accepts ``Int(..)``/``BigInt(..)`` aliases, ``Equals(..)`` and
``Some(..)`` wrappers and bare integer/UUID text. It never raises.
"""
from __future__ import annotations

import json
import re
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

_I32_MIN = -(2 ** 31)
_I32_MAX = 2 ** 31 - 1

_TAGGED = re.compile(r'^\s*([A-Za-z0-9_]+)\((.*)\)\s*$', re.DOTALL)
_WRAPPERS = {'Equals', 'Some'}


class KeyKind(Enum):
    I32 = 'I32'
    I64 = 'I64'
    STRING = 'String'
    UUID = 'Uuid'


@dataclass(frozen=True)
class Key:
    kind: KeyKind
    value: Any

    # --- constructors --------------------------------------------------------
    @classmethod
    def int32(cls, value: int) -> "Key":
        v = int(value)
        if v < _I32_MIN or v > _I32_MAX:
            raise ValueError(f"{v} does not fit into a 32-bit key")
        return cls(KeyKind.I32, v)

    @classmethod
    def int64(cls, value: int) -> "Key":
        return cls(KeyKind.I64, int(value))

    @classmethod
    def string(cls, value: str) -> "Key":
        return cls(KeyKind.STRING, str(value))

    @classmethod
    def uuid(cls, value: Any) -> "Key":
        return cls(KeyKind.UUID, value if isinstance(value, uuid.UUID) else uuid.UUID(str(value)))

    @classmethod
    def from_value(cls, value: Any) -> "Key":
        """Typed extraction from a write parameter or a decoded column value."""
        if isinstance(value, Key):
            return value
        if isinstance(value, bool):
            raise TypeError("bool is not a valid key value")
        if isinstance(value, int):
            if _I32_MIN <= value <= _I32_MAX:
                return cls(KeyKind.I32, value)
            return cls(KeyKind.I64, value)
        if isinstance(value, uuid.UUID):
            return cls(KeyKind.UUID, value)
        if isinstance(value, str):
            return cls(KeyKind.STRING, value)
        raise TypeError(f"Unsupported key value type: {type(value).__name__}")

    @classmethod
    def from_db_value(cls, value: Any) -> Optional["Key"]:
        if value is None or isinstance(value, bool):
            return None
        if isinstance(value, str):
            try:
                return cls(KeyKind.UUID, uuid.UUID(value))
            except ValueError:
                return cls(KeyKind.STRING, value)
        try:
            return cls.from_value(value)
        except TypeError:
            return None

    def to_db_value(self) -> Any:
        return self.value

    # --- text form -----------------------------------------------------------
    def __str__(self) -> str:
        if self.kind is KeyKind.STRING:
            return f"String({json.dumps(self.value)})"
        return f"{self.kind.value}({self.value})"

    @classmethod
    def parse(cls, text: Any) -> Optional["Key"]:
        if not isinstance(text, str):
            return None
        m = _TAGGED.match(text)
        if m is None:
            return cls._parse_bare(text.strip())
        tag, inner = m.group(1), m.group(2).strip()
        if tag in _WRAPPERS:
            return cls.parse(inner)
        try:
            if tag in ('I32', 'Int'):
                return cls.int32(int(inner))
            if tag in ('I64', 'BigInt'):
                return cls.int64(int(inner))
            if tag == 'Uuid':
                return cls.uuid(inner.strip('"'))
            if tag == 'String':
                if inner.startswith('"'):
                    decoded = json.loads(inner)
                    return cls.string(decoded) if isinstance(decoded, str) else None
                return cls.string(inner)
        except ValueError:
            return None
        return None

    @classmethod
    def _parse_bare(cls, text: str) -> Optional["Key"]:
        if not text:
            return None
        try:
            return cls.from_value(int(text))
        except ValueError:
            pass
        try:
            return cls(KeyKind.UUID, uuid.UUID(text))
        except ValueError:
            return None


def key_of(value: Any) -> Optional[Key]:
    """``Key.from_value`` that maps ``None`` to ``None``."""
    if value is None:
        return None
    return Key.from_value(value)
