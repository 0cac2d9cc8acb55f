from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class QueryEvent:
    builder: str
    entity: str
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class QueryResultMeta:
    row_count: Optional[int] = None
    error: Optional[str] = None
    elapsed_ms: float = 0.0


BeforeListener = Callable[[QueryEvent], Any]
AfterListener = Callable[[QueryEvent, QueryResultMeta], Any]


class QueryHooks:
    """Before/after listeners around every builder execution."""

    def __init__(self):
        self.before: List[BeforeListener] = []
        self.after: List[AfterListener] = []

    def on_before(self, fn: BeforeListener) -> BeforeListener:
        self.before.append(fn)
        return fn

    def on_after(self, fn: AfterListener) -> AfterListener:
        self.after.append(fn)
        return fn

    def emit_before(self, event: QueryEvent) -> None:
        logger.debug(f"{event.builder} {event.entity} {event.details}")
        for fn in self.before:
            fn(event)

    def emit_after(self, event: QueryEvent, meta: QueryResultMeta) -> None:
        if meta.error:
            logger.debug(f"{event.builder} {event.entity} failed after {meta.elapsed_ms:.1f}ms: {meta.error}")
        else:
            logger.debug(f"{event.builder} {event.entity} -> {meta.row_count} row(s) in {meta.elapsed_ms:.1f}ms")
        for fn in self.after:
            fn(event, meta)

    @asynccontextmanager
    async def around(self, event: QueryEvent) -> AsyncIterator[QueryResultMeta]:
        """Emit both events; the caller fills ``row_count`` on the yielded meta."""
        self.emit_before(event)
        meta = QueryResultMeta()
        started = time.perf_counter()
        try:
            yield meta
        except Exception as e:
            meta.error = str(e) or type(e).__name__
            meta.elapsed_ms = (time.perf_counter() - started) * 1000.0
            self.emit_after(event, meta)
            raise
        meta.elapsed_ms = (time.perf_counter() - started) * 1000.0
        self.emit_after(event, meta)


def row_count_of(result: Any) -> Optional[int]:
    if result is None:
        return 0
    if isinstance(result, list):
        return len(result)
    if isinstance(result, int) and not isinstance(result, bool):
        return result
    return 1
