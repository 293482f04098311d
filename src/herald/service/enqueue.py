"""Enqueue mixin for WebhookService.

Provides single-target enqueue, broadcast, and synchronous test sends.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from herald.exceptions import EndpointNotConfiguredError
from herald.models import (
    EventKind,
    TestResult,
    generate_id,
    parse_event_kind,
    utc_now,
)
from herald.models import supported_events as event_catalog
from herald.webhooks import build_envelope, new_delivery

if TYPE_CHECKING:
    from herald.config import Settings
    from herald.storage import DeliveryStore, EndpointRegistry
    from herald.webhooks import Broadcaster, Dispatcher

logger = logging.getLogger(__name__)


class EnqueueMixin:
    """Mixin providing the producer-facing operations.

    Expects these attributes from the base class:
    - store: DeliveryStore
    - endpoints: EndpointRegistry
    - settings: Settings
    - _dispatcher: Dispatcher
    - _broadcaster: Broadcaster
    """

    store: DeliveryStore
    endpoints: EndpointRegistry
    settings: Settings
    _dispatcher: Dispatcher
    _broadcaster: Broadcaster

    async def enqueue(
        self,
        domain: str,
        event_kind: str | EventKind,
        data: dict[str, Any] | None = None,
        *,
        max_attempts: int | None = None,
    ) -> bool:
        """Queue one event for one domain.

        Everything is validated before the delivery is written.

        Args:
            domain: Target domain.
            event_kind: Event name or EventKind.
            data: Event data.
            max_attempts: Attempt ceiling. Defaults to settings.default_max_attempts.

        Returns:
            True once the delivery is persisted.

        Raises:
            UnsupportedEventError: Unknown event kind.
            ValidationError: Missing required data keys.
            EndpointNotConfiguredError: Unknown, inactive, URL-less, or filtering endpoint.
            PersistenceError: The delivery could not be written.

        Example:
            ```python
            await herald.enqueue("shop.example", "code_validated", {"code": "SAVE10"})
            ```
        """
        kind = parse_event_kind(event_kind)

        endpoint = await self.endpoints.get_endpoint(domain)
        if endpoint is None:
            raise EndpointNotConfiguredError(domain, "no_endpoint")
        if not endpoint.active:
            raise EndpointNotConfiguredError(domain, "inactive")
        if not endpoint.callback_url:
            raise EndpointNotConfiguredError(domain, "missing_callback_url")
        if not endpoint.accepts(kind):
            raise EndpointNotConfiguredError(domain, "event_not_subscribed")

        envelope = build_envelope(domain, kind, data, source=self.settings.source_identity)
        delivery = new_delivery(
            endpoint,
            envelope,
            max_attempts or self.settings.default_max_attempts,
        )
        await self.store.insert(delivery)
        logger.debug("Queued %s for %s as %s", kind.value, domain, delivery.id)
        return True

    async def broadcast(
        self,
        event_kind: str | EventKind,
        data: dict[str, Any] | None = None,
        *,
        max_attempts: int | None = None,
    ) -> int:
        """Queue an event for every eligible endpoint.

        Returns:
            Number of deliveries enqueued.
        """
        return await self._broadcaster.broadcast(event_kind, data, max_attempts=max_attempts)

    async def send_test(self, domain: str) -> TestResult:
        """Send a webhook_test event to a registered domain right now.

        Bypasses the queue and ignores the active flag and event filter so
        operators can probe a suspended endpoint.

        Raises:
            EndpointNotConfiguredError: Unknown domain or no callback URL.
        """
        endpoint = await self.endpoints.get_endpoint(domain)
        if endpoint is None:
            raise EndpointNotConfiguredError(domain, "no_endpoint")
        if not endpoint.callback_url:
            raise EndpointNotConfiguredError(domain, "missing_callback_url")
        return await self._send_test(endpoint.callback_url, endpoint.secret, domain)

    async def send_test_to_url(self, url: str, secret: str | None = None) -> TestResult:
        """Send a webhook_test event to an arbitrary URL right now."""
        return await self._send_test(url, secret, "test")

    async def _send_test(self, url: str, secret: str | None, domain: str) -> TestResult:
        now = utc_now()
        envelope = build_envelope(
            domain,
            EventKind.WEBHOOK_TEST,
            {
                "message": "This is a test webhook from Herald",
                "test_id": generate_id("test"),
                "test_time": now.isoformat(),
            },
            source=self.settings.source_identity,
            timestamp=now,
        )
        result = await self._dispatcher.send_now(
            url,
            envelope.serialize(),
            secret=secret,
            domain=domain,
            event_kind=EventKind.WEBHOOK_TEST.value,
        )
        logger.info(
            "Test webhook to %s: success=%s code=%d", url, result.success, result.response_code
        )
        return result

    def supported_events(self) -> dict[str, str]:
        """Event kinds and their descriptions."""
        return event_catalog()


__all__ = ["EnqueueMixin"]
