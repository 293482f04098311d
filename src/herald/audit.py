"""Activity sinks that receive one entry per delivery attempt.

The sink is write-only. QdrantStorage also implements AuditSink and
persists entries to its activity collection.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from herald.logging import get_logger
from herald.models import ActivityEntry

logger = get_logger(__name__)


@runtime_checkable
class AuditSink(Protocol):
    """Receives activity entries."""

    async def record(self, entry: ActivityEntry) -> None: ...


class LoggingAuditSink:
    """AuditSink that writes entries to the structured log."""

    async def record(self, entry: ActivityEntry) -> None:
        fields = entry.model_dump(mode="json", exclude_none=True, exclude={"type"})
        if entry.type == "webhook_delivered":
            logger.info(entry.type, **fields)
        else:
            logger.warning(entry.type, **fields)


class MemoryAuditSink:
    """AuditSink that keeps entries in a list. Useful for tests and demos."""

    def __init__(self) -> None:
        self.entries: list[ActivityEntry] = []

    async def record(self, entry: ActivityEntry) -> None:
        self.entries.append(entry)
