"""Structured cache/auth events.

Every cache lookup and session check produces a CacheEvent that is handed
to an EventSink. Emission is fire-and-forget: a failing sink is logged and
otherwise ignored, and never slows down or breaks the caller.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class EventCategory(str, Enum):
    CACHE = "cache"
    AUTH = "auth"


@dataclass(frozen=True)
class CacheEvent:
    """One observed cache or auth operation."""

    category: EventCategory
    operation: str
    key: str
    hit: bool
    latency_ms: float
    backend: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        return data


class EventSink(Protocol):
    def emit(self, event: CacheEvent) -> None: ...


class LoggingEventSink:
    """Writes events as DEBUG records with the event fields as `extra`."""

    def __init__(self, logger_name: str = "bizcache.events") -> None:
        self._logger = logging.getLogger(logger_name)

    def emit(self, event: CacheEvent) -> None:
        if not self._logger.isEnabledFor(logging.DEBUG):
            return
        self._logger.debug(
            "%s %s %s",
            event.category.value,
            event.operation,
            "hit" if event.hit else "miss",
            extra=event.to_dict(),
        )


class NullEventSink:
    def emit(self, event: CacheEvent) -> None:
        pass


def emit_event(
    sink: EventSink,
    category: EventCategory,
    operation: str,
    key: str,
    hit: bool,
    latency_ms: float,
    backend: str | None = None,
) -> None:
    """Build an event and hand it to the sink.

    Callers pass keys through keys.redact_key first.
    """
    event = CacheEvent(
        category=category,
        operation=operation,
        key=key,
        hit=hit,
        latency_ms=round(latency_ms, 3),
        backend=backend,
    )
    try:
        sink.emit(event)
    except Exception:
        logger.exception("Event sink %s failed", type(sink).__name__)
