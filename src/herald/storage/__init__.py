"""Storage backends for Herald.

This module provides the delivery table and endpoint registry, either
in process or persisted to Qdrant.

Example:
    ```python
    from herald.storage import QdrantStorage

    async with QdrantStorage() as storage:
        await storage.insert(delivery)
        claimed = await storage.claim(delivery.id, token, utc_now())
    ```
"""

from .base import COLLECTION_NAMES
from .client import QdrantStorage
from .memory import InMemoryDeliveryStore, InMemoryEndpointRegistry
from .protocols import DeliveryStore, EndpointRegistry

__all__ = [
    "COLLECTION_NAMES",
    "DeliveryStore",
    "EndpointRegistry",
    "InMemoryDeliveryStore",
    "InMemoryEndpointRegistry",
    "QdrantStorage",
]
