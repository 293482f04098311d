"""Qdrant storage client for Herald.

This module provides the QdrantStorage class that combines the delivery
table, endpoint registry, and activity log through mixins.

Example:
    ```python
    from herald.storage import QdrantStorage

    async with QdrantStorage() as storage:
        await storage.upsert_endpoint(Endpoint(domain="shop.example", callback_url=url))
        await storage.insert(delivery)
        due = await storage.fetch_due(utc_now(), limit=50)
    ```
"""

from __future__ import annotations

from typing import Any

from .activity import ActivityMixin
from .base import StorageBase
from .deliveries import DeliveryMixin
from .endpoints import EndpointMixin
from .protocols import DeliveryStore, EndpointRegistry


class QdrantStorage(
    DeliveryMixin,
    EndpointMixin,
    ActivityMixin,
    StorageBase,
    DeliveryStore,
    EndpointRegistry,
):
    """Async Qdrant storage for Herald deliveries, endpoints, and activity.

    This class combines functionality from multiple mixins:
    - DeliveryMixin: insert, claim, complete, cancel, reopen, purge, counts
    - EndpointMixin: get_endpoint, list_endpoints, record_delivery_result
    - ActivityMixin: record (AuditSink), get_activity

    Attributes:
        client: Async Qdrant client instance.
    """

    async def __aenter__(self) -> QdrantStorage:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


__all__ = ["QdrantStorage"]
