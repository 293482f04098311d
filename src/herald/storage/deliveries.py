"""Delivery operations for Herald storage.

Deliveries are stored as whole payloads with a few derived numeric
fields for range filtering. Every state change is a compare-and-swap on
the record's revision, so concurrent dispatch runs cannot both claim the
same delivery.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from datetime import datetime
from typing import Any

from qdrant_client import models

from herald.models import TERMINAL_STATUSES, Delivery, DeliveryStatus

from .base import to_ts

logger = logging.getLogger(__name__)

# Payload fields derived from the model, stripped before validation
DERIVED_FIELDS = (
    "revision",
    "attempts_remaining",
    "created_ts",
    "next_attempt_ts",
    "last_attempt_ts",
    "claimed_ts",
)

# Conflicting writers are retried this many times before giving up
CAS_RETRIES = 5


def _status_is(*statuses: DeliveryStatus) -> models.FieldCondition:
    if len(statuses) == 1:
        return models.FieldCondition(
            key="status", match=models.MatchValue(value=statuses[0].value)
        )
    return models.FieldCondition(
        key="status", match=models.MatchAny(any=[s.value for s in statuses])
    )


class DeliveryMixin:
    """Mixin providing DeliveryStore operations for QdrantStorage.

    This mixin expects the following attributes/methods from the base class:
    - _upsert_payloads, _retrieve_payload, _scroll_all, _count
    - _compare_and_swap, _delete_where, _new_revision
    """

    # These will be provided by the base class
    _upsert_payloads: Any
    _retrieve_payload: Any
    _scroll_all: Any
    _count: Any
    _compare_and_swap: Any
    _delete_where: Any
    _new_revision: Any
    _key_to_point_id: Any

    @staticmethod
    def _delivery_to_payload(delivery: Delivery, revision: str) -> dict[str, Any]:
        """Convert a delivery to a Qdrant payload with filter fields."""
        data = delivery.model_dump(mode="json")
        next_attempt = delivery.next_attempt_at
        if next_attempt is None and delivery.status == DeliveryStatus.PENDING:
            next_attempt = delivery.created_at
        data["revision"] = revision
        data["attempts_remaining"] = delivery.attempts_remaining
        data["created_ts"] = to_ts(delivery.created_at)
        data["next_attempt_ts"] = to_ts(next_attempt)
        data["last_attempt_ts"] = to_ts(delivery.last_attempt_at)
        data["claimed_ts"] = to_ts(delivery.claimed_at)
        return data

    @staticmethod
    def _payload_to_delivery(payload: dict[str, Any]) -> Delivery:
        """Convert a Qdrant payload back to a delivery."""
        data = dict(payload)
        for field in DERIVED_FIELDS:
            data.pop(field, None)
        return Delivery.model_validate(data)

    async def insert(self, delivery: Delivery) -> str:
        """Persist a new delivery.

        Raises:
            PersistenceError: If the write fails.
        """
        await self.insert_many([delivery])
        return delivery.id

    async def insert_many(self, deliveries: Sequence[Delivery]) -> list[str]:
        """Persist several deliveries in a single upsert.

        Raises:
            PersistenceError: If the write fails.
        """
        if not deliveries:
            return []
        await self._upsert_payloads(
            "deliveries",
            [(d.id, self._delivery_to_payload(d, self._new_revision())) for d in deliveries],
        )
        return [d.id for d in deliveries]

    async def _get_with_revision(self, delivery_id: str) -> tuple[Delivery, str] | None:
        payload = await self._retrieve_payload("deliveries", delivery_id)
        if payload is None:
            return None
        return self._payload_to_delivery(payload), str(payload.get("revision", ""))

    async def get(self, delivery_id: str) -> Delivery | None:
        """Fetch a delivery by id."""
        found = await self._get_with_revision(delivery_id)
        return found[0] if found else None

    async def _update_delivery(
        self,
        delivery_id: str,
        condition: Callable[[Delivery], bool],
        apply: Callable[[Delivery], object],
    ) -> Delivery | None:
        """Read, check, modify, and compare-and-swap one delivery.

        Re-reads on a lost race until the condition fails or the write
        lands.

        Returns:
            The stored delivery, or None when the condition did not hold.
        """
        for _ in range(CAS_RETRIES):
            found = await self._get_with_revision(delivery_id)
            if found is None:
                return None
            delivery, revision = found
            if not condition(delivery):
                return None
            apply(delivery)
            payload = self._delivery_to_payload(delivery, revision)
            if await self._compare_and_swap("deliveries", delivery_id, revision, payload):
                return delivery
            logger.debug("Lost compare-and-swap on delivery %s, retrying", delivery_id)
        return None

    async def fetch_due(self, now: datetime, limit: int) -> list[Delivery]:
        """Pending deliveries due at `now` with attempts left, oldest first."""
        payloads = await self._scroll_all(
            "deliveries",
            models.Filter(
                must=[
                    _status_is(DeliveryStatus.PENDING),
                    models.FieldCondition(
                        key="attempts_remaining", range=models.Range(gt=0)
                    ),
                    models.FieldCondition(
                        key="next_attempt_ts", range=models.Range(lte=now.timestamp())
                    ),
                ]
            ),
        )
        due = [self._payload_to_delivery(p) for p in payloads]
        due.sort(key=lambda d: d.created_at)
        return due[:limit]

    async def claim(self, delivery_id: str, token: str, now: datetime) -> Delivery | None:
        """Atomically move a due pending delivery to processing."""
        return await self._update_delivery(
            delivery_id,
            lambda d: d.is_due(now),
            lambda d: d.claim(token, now),
        )

    async def complete(self, delivery: Delivery, token: str) -> bool:
        """Write back an attempt outcome while the claim is still held.

        Raises:
            PersistenceError: If the write fails.
        """
        found = await self._get_with_revision(delivery.id)
        if found is None:
            return False
        current, revision = found
        if current.status != DeliveryStatus.PROCESSING or current.claim_token != token:
            return False
        payload = self._delivery_to_payload(delivery, revision)
        return await self._compare_and_swap("deliveries", delivery.id, revision, payload)

    async def cancel(self, delivery_id: str) -> bool:
        """Atomically move a pending delivery to cancelled."""
        updated = await self._update_delivery(
            delivery_id,
            lambda d: d.status == DeliveryStatus.PENDING,
            lambda d: d.cancel(),
        )
        return updated is not None

    async def reopen(self, delivery_id: str, now: datetime) -> bool:
        """Reset a failed or pending delivery to attempts 0, due at `now`."""
        updated = await self._update_delivery(
            delivery_id,
            lambda d: d.status in (DeliveryStatus.FAILED, DeliveryStatus.PENDING),
            lambda d: d.reopen(now),
        )
        return updated is not None

    async def requeue_failed(self, idle_before: datetime, now: datetime) -> int:
        """Return failed deliveries with attempts left to pending."""

        def eligible(d: Delivery) -> bool:
            last = d.last_attempt_at or d.created_at
            return (
                d.status == DeliveryStatus.FAILED
                and d.attempts < d.max_attempts
                and last <= idle_before
            )

        payloads = await self._scroll_all(
            "deliveries",
            models.Filter(
                must=[
                    _status_is(DeliveryStatus.FAILED),
                    models.FieldCondition(
                        key="attempts_remaining", range=models.Range(gt=0)
                    ),
                ]
            ),
        )
        count = 0
        for payload in payloads:
            delivery_id = payload["id"]
            if await self._update_delivery(delivery_id, eligible, lambda d: d.requeue(now)):
                count += 1
        return count

    async def release_stale_claims(self, claimed_before: datetime, now: datetime) -> int:
        """Return deliveries stuck in processing to pending."""

        def stale(d: Delivery) -> bool:
            return (
                d.status == DeliveryStatus.PROCESSING
                and d.claimed_at is not None
                and d.claimed_at <= claimed_before
            )

        payloads = await self._scroll_all(
            "deliveries",
            models.Filter(
                must=[
                    _status_is(DeliveryStatus.PROCESSING),
                    models.FieldCondition(
                        key="claimed_ts", range=models.Range(lte=claimed_before.timestamp())
                    ),
                ]
            ),
        )
        count = 0
        for payload in payloads:
            if await self._update_delivery(payload["id"], stale, lambda d: d.release(now)):
                count += 1
        return count

    async def count_by_status(self) -> dict[DeliveryStatus, int]:
        """Number of deliveries in each status."""
        return {
            status: await self._count("deliveries", models.Filter(must=[_status_is(status)]))
            for status in DeliveryStatus
        }

    async def count_retry_needed(self) -> int:
        """Pending deliveries that have failed at least once."""
        payloads = await self._scroll_all(
            "deliveries", models.Filter(must=[_status_is(DeliveryStatus.PENDING)])
        )
        return sum(1 for p in payloads if p.get("attempts", 0) > 0)

    async def recent(self, limit: int) -> list[Delivery]:
        """Most recently created deliveries, newest first."""
        if limit <= 0:
            return []
        deliveries = [self._payload_to_delivery(p) for p in await self._scroll_all("deliveries")]
        deliveries.sort(key=lambda d: d.created_at, reverse=True)
        return deliveries[:limit]

    async def list_created_since(self, since: datetime) -> list[Delivery]:
        """Deliveries created at or after `since`."""
        payloads = await self._scroll_all(
            "deliveries",
            models.Filter(
                must=[
                    models.FieldCondition(
                        key="created_ts", range=models.Range(gte=since.timestamp())
                    )
                ]
            ),
        )
        return [self._payload_to_delivery(p) for p in payloads]

    async def purge(self, older_than: datetime) -> int:
        """Delete terminal deliveries created before `older_than`.

        The delete repeats the status condition, so a record reopened
        between the scan and the delete survives and is not counted.
        """
        terminal = models.FieldCondition(
            key="status",
            match=models.MatchAny(any=[s.value for s in TERMINAL_STATUSES]),
        )
        old = models.FieldCondition(
            key="created_ts", range=models.Range(lt=older_than.timestamp())
        )
        payloads = await self._scroll_all("deliveries", models.Filter(must=[terminal, old]))
        if not payloads:
            return 0

        point_ids = [self._key_to_point_id(p["id"]) for p in payloads]
        await self._delete_where(
            "deliveries",
            models.Filter(must=[models.HasIdCondition(has_id=point_ids), terminal, old]),
        )
        survivors = await self._count(
            "deliveries", models.Filter(must=[models.HasIdCondition(has_id=point_ids)])
        )
        deleted = len(point_ids) - survivors
        logger.info("Purged %d deliveries created before %s", deleted, older_than)
        return deleted


__all__ = ["DeliveryMixin"]
