"""Core Herald service layer.

This module provides the WebhookService facade that combines the delivery
store, endpoint registry, dispatcher, and fan-out behind the management
operations used by producers, operators, and the scheduler.

Example:
    ```python
    from herald.service import WebhookService

    async with WebhookService.create() as herald:
        await herald.enqueue("shop.example", "code_validated", {"code": "SAVE10"})
        report = await herald.dispatch()
        status = await herald.queue_status()
    ```
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from herald.audit import AuditSink, LoggingAuditSink
from herald.config import Settings
from herald.models import Endpoint
from herald.storage import (
    DeliveryStore,
    EndpointRegistry,
    InMemoryDeliveryStore,
    InMemoryEndpointRegistry,
    QdrantStorage,
)
from herald.webhooks import Broadcaster, Dispatcher

from .endpoints import EndpointAdminMixin
from .enqueue import EnqueueMixin
from .operations import OperationsMixin
from .reporting import ReportingMixin


@dataclass
class WebhookService(EnqueueMixin, OperationsMixin, ReportingMixin, EndpointAdminMixin):
    """High-level Herald service.

    This service provides:
    - enqueue(), broadcast(): Queue events for delivery
    - send_test(), send_test_to_url(): Synchronous test sends
    - retry(), cancel(), bulk_cancel(), purge(): Operator actions
    - queue_status(), statistics(): Reporting
    - dispatch(), sweep(): Scheduler entry points
    - register_endpoint(), list_endpoints(), set_endpoint_active(): Registry admin

    Uses dependency injection for the store and registry, making it easy
    to test and configure.

    Attributes:
        store: Delivery table.
        endpoints: Endpoint registry.
        settings: Configuration settings.
        audit: Activity sink (defaults to the structured log).
        client: Shared HTTP client (created by the dispatcher if None).
        storage: Qdrant backend whose lifecycle this service owns, if any.
    """

    store: DeliveryStore
    endpoints: EndpointRegistry
    settings: Settings
    audit: AuditSink | None = None
    client: httpx.AsyncClient | None = None
    storage: QdrantStorage | None = None

    _dispatcher: Dispatcher = field(init=False, repr=False)
    _broadcaster: Broadcaster = field(init=False, repr=False)

    def __post_init__(self) -> None:
        """Wire the dispatcher and fan-out after dataclass construction."""
        if self.audit is None:
            self.audit = LoggingAuditSink()
        self._dispatcher = Dispatcher(
            self.store,
            endpoints=self.endpoints,
            audit=self.audit,
            settings=self.settings,
            client=self.client,
        )
        self._broadcaster = Broadcaster(self.store, self.endpoints, self.settings)

    @classmethod
    def create(cls, settings: Settings | None = None) -> WebhookService:
        """Create a WebhookService backed by Qdrant.

        The same QdrantStorage serves as delivery table, endpoint registry,
        and activity sink.

        Args:
            settings: Optional settings. Uses defaults if None.

        Returns:
            Configured WebhookService instance.
        """
        if settings is None:
            settings = Settings()

        storage = QdrantStorage(
            url=settings.qdrant_url,
            api_key=settings.qdrant_api_key,
            prefix=settings.collection_prefix,
            page_size=settings.storage_scroll_page_size,
        )
        return cls(
            store=storage,
            endpoints=storage,
            settings=settings,
            audit=storage,
            storage=storage,
        )

    @classmethod
    def in_memory(
        cls,
        settings: Settings | None = None,
        endpoints: Sequence[Endpoint] = (),
        **kwargs: Any,
    ) -> WebhookService:
        """Create a WebhookService with in-process stores.

        Args:
            settings: Optional settings. Uses defaults if None.
            endpoints: Endpoints to register up front.
            **kwargs: Passed through (audit, client).
        """
        return cls(
            store=InMemoryDeliveryStore(),
            endpoints=InMemoryEndpointRegistry(endpoints),
            settings=settings or Settings(),
            **kwargs,
        )

    async def initialize(self) -> None:
        """Initialize the service (storage collections, etc.)."""
        if self.storage is not None:
            await self.storage.initialize()

    async def close(self) -> None:
        """Release the HTTP client and storage connection."""
        await self._dispatcher.close()
        if self.storage is not None:
            await self.storage.close()

    async def __aenter__(self) -> WebhookService:
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


__all__ = ["WebhookService"]
