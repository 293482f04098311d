"""Broadcast fan-out: one event to every eligible endpoint."""

from __future__ import annotations

import logging
from typing import Any

from herald.config import Settings
from herald.config import settings as default_settings
from herald.models import (
    Delivery,
    EventKind,
    parse_event_kind,
    utc_now,
    validate_event_data,
)
from herald.storage import DeliveryStore, EndpointRegistry

from .payload import build_envelope, new_delivery

logger = logging.getLogger(__name__)


class Broadcaster:
    """Enqueues one delivery per active endpoint subscribed to an event.

    Each endpoint gets its own envelope, scoped to its domain and with its
    own id. Ineligible endpoints are skipped silently.
    """

    def __init__(
        self,
        store: DeliveryStore,
        endpoints: EndpointRegistry,
        settings: Settings | None = None,
    ) -> None:
        self._store = store
        self._endpoints = endpoints
        self._settings = settings or default_settings

    async def broadcast(
        self,
        event_kind: str | EventKind,
        data: dict[str, Any] | None = None,
        *,
        max_attempts: int | None = None,
    ) -> int:
        """Fan an event out to all eligible endpoints.

        Args:
            event_kind: Event name or EventKind.
            data: Event data, shared by every envelope.
            max_attempts: Attempt ceiling. Defaults to settings.default_max_attempts.

        Returns:
            Number of deliveries enqueued.

        Raises:
            UnsupportedEventError: Unknown event kind (nothing is enqueued).
            ValidationError: Missing required data keys (nothing is enqueued).
            PersistenceError: The deliveries could not be written.
        """
        kind = parse_event_kind(event_kind)
        validate_event_data(kind, data or {})
        ceiling = max_attempts or self._settings.default_max_attempts
        now = utc_now()

        deliveries: list[Delivery] = []
        for endpoint in await self._endpoints.list_endpoints(active_only=True):
            if not endpoint.is_eligible(kind):
                continue
            envelope = build_envelope(
                endpoint.domain,
                kind,
                data,
                source=self._settings.source_identity,
                timestamp=now,
            )
            deliveries.append(new_delivery(endpoint, envelope, ceiling, now=now))

        if deliveries:
            await self._store.insert_many(deliveries)
        logger.info("Broadcast %s to %d endpoints", kind.value, len(deliveries))
        return len(deliveries)


__all__ = ["Broadcaster"]
