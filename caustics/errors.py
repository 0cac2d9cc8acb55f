from __future__ import annotations

from typing import Any, Optional


class CausticsError(Exception):
    """Base class for every error raised by the runtime itself.

    Storage-layer (SQLAlchemy/driver) errors are never wrapped.
    """

    def user_message(self) -> str:
        return str(self)


class RelationNotFound(CausticsError, LookupError):
    def __init__(self, relation: str, entity: Optional[str] = None):
        self.relation = relation
        self.entity = entity
        where = f" on entity '{entity}'" if entity else ''
        super().__init__(f"Relation '{relation}' not found{where}")

    def user_message(self) -> str:
        return f"Unknown relation '{self.relation}'"


class InvalidIncludePath(CausticsError, ValueError):
    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid include path '{path}': {reason}")


class EntityFetcherMissing(CausticsError, LookupError):
    def __init__(self, entity: str):
        self.entity = entity
        super().__init__(f"No fetcher registered for entity '{entity}'")

    def user_message(self) -> str:
        return "Internal configuration error"


class NotFoundForCondition(CausticsError, LookupError):
    def __init__(self, entity: str, condition: Any):
        self.entity = entity
        self.condition = condition
        super().__init__(f"No {entity} found for condition: {condition}")

    def user_message(self) -> str:
        return f"Related {self.entity} not found"


class RelationNotFetched(CausticsError):
    def __init__(self, relation: str, reason: str = 'relation was not included'):
        self.relation = relation
        self.reason = reason
        super().__init__(f"Relation '{relation}' not fetched: {reason}")


class RecordNotFound(CausticsError, LookupError):
    def __init__(self, entity: str, message: str = 'No record found'):
        self.entity = entity
        super().__init__(f"{message} ({entity})")


class QueryValidationError(CausticsError, ValueError):
    pass


class DescriptorMismatch(CausticsError, TypeError):
    """A relation result does not have the shape its descriptor declares."""

    def __init__(self, relation: str, expected: str, got: str):
        self.relation = relation
        self.expected = expected
        self.got = got
        super().__init__(f"Relation '{relation}' expects a {expected} result, got {got}")

    def user_message(self) -> str:
        return "Internal configuration error"
