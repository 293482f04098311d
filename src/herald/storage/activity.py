"""Activity log operations for Herald storage.

Provides methods to record and query per-attempt activity entries.
"""

from __future__ import annotations

from typing import Any

from qdrant_client import models

from herald.models import ActivityEntry

from .base import to_ts


class ActivityMixin:
    """Mixin providing AuditSink.record and activity queries for QdrantStorage.

    This mixin expects the following attributes/methods from the base class:
    - _upsert_payloads(record_type, items)
    - _scroll_all(record_type, scroll_filter)
    """

    # These will be provided by the base class
    _upsert_payloads: Any
    _scroll_all: Any

    async def record(self, entry: ActivityEntry) -> None:
        """Persist an activity entry.

        Raises:
            PersistenceError: If the write fails.
        """
        payload = entry.model_dump(mode="json")
        payload["timestamp_ts"] = to_ts(entry.timestamp)
        await self._upsert_payloads("activity", [(entry.id, payload)])

    async def get_activity(
        self,
        domain: str | None = None,
        activity_type: str | None = None,
        limit: int = 100,
    ) -> list[ActivityEntry]:
        """Get activity entries.

        Args:
            domain: Optional domain filter.
            activity_type: Optional type filter (webhook_delivered, etc.)
            limit: Maximum entries to return.

        Returns:
            List of ActivityEntry sorted by timestamp (newest first).
        """
        filters: list[models.FieldCondition] = []
        if domain is not None:
            filters.append(
                models.FieldCondition(key="domain", match=models.MatchValue(value=domain))
            )
        if activity_type is not None:
            filters.append(
                models.FieldCondition(key="type", match=models.MatchValue(value=activity_type))
            )

        payloads = await self._scroll_all(
            "activity", models.Filter(must=filters) if filters else None
        )
        entries = []
        for payload in payloads:
            payload.pop("timestamp_ts", None)
            entries.append(ActivityEntry.model_validate(payload))

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]


__all__ = ["ActivityMixin"]
