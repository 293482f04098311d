"""Operations mixin for WebhookService.

Provides operator actions (retry, cancel, purge) and the scheduler
entry points (dispatch, sweep).
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import timedelta
from typing import TYPE_CHECKING

from herald.exceptions import NotFoundError, ValidationError
from herald.models import Delivery, DispatchReport, utc_now

if TYPE_CHECKING:
    from herald.config import Settings
    from herald.storage import DeliveryStore
    from herald.webhooks import Dispatcher

logger = logging.getLogger(__name__)


class OperationsMixin:
    """Mixin providing operator and scheduler operations.

    Expects these attributes from the base class:
    - store: DeliveryStore
    - settings: Settings
    - _dispatcher: Dispatcher
    """

    store: DeliveryStore
    settings: Settings
    _dispatcher: Dispatcher

    async def get_delivery(self, delivery_id: str) -> Delivery:
        """Fetch a delivery record.

        Raises:
            NotFoundError: Unknown delivery id.
        """
        delivery = await self.store.get(delivery_id)
        if delivery is None:
            raise NotFoundError("delivery", delivery_id)
        return delivery

    async def retry(self, delivery_id: str) -> bool:
        """Reopen a failed (or pending) delivery with a fresh attempt budget.

        Returns:
            False if the delivery is unknown, sent, cancelled, or in flight.
        """
        reopened = await self.store.reopen(delivery_id, utc_now())
        if reopened:
            logger.info("Delivery %s reopened by operator", delivery_id)
        return reopened

    async def cancel(self, delivery_id: str) -> bool:
        """Cancel a pending delivery.

        Returns:
            False if the delivery is unknown or no longer pending.
        """
        cancelled = await self.store.cancel(delivery_id)
        if cancelled:
            logger.info("Delivery %s cancelled by operator", delivery_id)
        return cancelled

    async def bulk_cancel(self, delivery_ids: Iterable[str]) -> int:
        """Cancel several pending deliveries.

        Returns:
            Number actually cancelled.
        """
        count = 0
        for delivery_id in dict.fromkeys(delivery_ids):
            if await self.store.cancel(delivery_id):
                count += 1
        return count

    async def purge(self, days_old: int) -> int:
        """Delete terminal deliveries created more than `days_old` days ago.

        Pending and processing deliveries are never deleted.

        Raises:
            ValidationError: days_old is less than 1.
        """
        if days_old < 1:
            raise ValidationError("days_old", "must be at least 1")
        cutoff = utc_now() - timedelta(days=days_old)
        deleted = await self.store.purge(cutoff)
        logger.info("Purged %d deliveries older than %d days", deleted, days_old)
        return deleted

    async def dispatch(self) -> DispatchReport:
        """Run one dispatch batch."""
        return await self._dispatcher.run_once()

    async def sweep(self) -> int:
        """Requeue idle failed deliveries and release abandoned claims.

        Failed deliveries are only requeued while attempts remain, so this
        is a no-op unless max_attempts was raised. Claims older than
        stale_claim_seconds belong to a dispatch run that died and go back
        to pending without counting an attempt.

        Returns:
            Number of deliveries returned to pending.
        """
        now = utc_now()
        requeued = await self.store.requeue_failed(
            now - timedelta(seconds=self.settings.sweep_quiet_period_seconds), now
        )
        released = await self.store.release_stale_claims(
            now - timedelta(seconds=self.settings.stale_claim_seconds), now
        )
        if requeued or released:
            logger.info("Sweep requeued %d failed and released %d stale claims", requeued, released)
        return requeued + released


__all__ = ["OperationsMixin"]
