"""In-process stores for tests, demos, and single-worker deployments.

Records are deep-copied in and out so callers never share state with the
store. Every conditional update runs under one asyncio.Lock with no await
between the check and the write, which makes claim atomic across
concurrent dispatch runs on the same event loop.
"""

from __future__ import annotations

import asyncio
from collections import Counter
from collections.abc import Callable, Sequence
from datetime import datetime

from herald.models import (
    TERMINAL_STATUSES,
    Delivery,
    DeliveryStatus,
    Endpoint,
)

from .protocols import DeliveryStore, EndpointRegistry


class InMemoryDeliveryStore(DeliveryStore):
    """DeliveryStore backed by a dict keyed by delivery id."""

    def __init__(self) -> None:
        self._records: dict[str, Delivery] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._records)

    async def insert(self, delivery: Delivery) -> str:
        async with self._lock:
            self._records[delivery.id] = delivery.model_copy(deep=True)
        return delivery.id

    async def insert_many(self, deliveries: Sequence[Delivery]) -> list[str]:
        async with self._lock:
            for delivery in deliveries:
                self._records[delivery.id] = delivery.model_copy(deep=True)
        return [d.id for d in deliveries]

    async def get(self, delivery_id: str) -> Delivery | None:
        record = self._records.get(delivery_id)
        return record.model_copy(deep=True) if record else None

    async def fetch_due(self, now: datetime, limit: int) -> list[Delivery]:
        due = [r for r in self._records.values() if r.is_due(now)]
        due.sort(key=lambda r: r.created_at)
        return [r.model_copy(deep=True) for r in due[:limit]]

    async def _update_if(
        self,
        delivery_id: str,
        condition: Callable[[Delivery], bool],
        apply: Callable[[Delivery], object],
    ) -> Delivery | None:
        """Apply `apply` to a copy of the record if `condition` holds.

        Returns the stored record, or None when the condition failed.
        """
        async with self._lock:
            current = self._records.get(delivery_id)
            if current is None or not condition(current):
                return None
            updated = current.model_copy(deep=True)
            apply(updated)
            self._records[delivery_id] = updated
            return updated.model_copy(deep=True)

    async def claim(self, delivery_id: str, token: str, now: datetime) -> Delivery | None:
        return await self._update_if(
            delivery_id,
            lambda r: r.is_due(now),
            lambda r: r.claim(token, now),
        )

    async def complete(self, delivery: Delivery, token: str) -> bool:
        async with self._lock:
            current = self._records.get(delivery.id)
            if (
                current is None
                or current.status != DeliveryStatus.PROCESSING
                or current.claim_token != token
            ):
                return False
            self._records[delivery.id] = delivery.model_copy(deep=True)
            return True

    async def cancel(self, delivery_id: str) -> bool:
        updated = await self._update_if(
            delivery_id,
            lambda r: r.status == DeliveryStatus.PENDING,
            lambda r: r.cancel(),
        )
        return updated is not None

    async def reopen(self, delivery_id: str, now: datetime) -> bool:
        updated = await self._update_if(
            delivery_id,
            lambda r: r.status in (DeliveryStatus.FAILED, DeliveryStatus.PENDING),
            lambda r: r.reopen(now),
        )
        return updated is not None

    async def requeue_failed(self, idle_before: datetime, now: datetime) -> int:
        def eligible(r: Delivery) -> bool:
            last = r.last_attempt_at or r.created_at
            return (
                r.status == DeliveryStatus.FAILED
                and r.attempts < r.max_attempts
                and last <= idle_before
            )

        count = 0
        for delivery_id in [i for i, r in self._records.items() if eligible(r)]:
            if await self._update_if(delivery_id, eligible, lambda r: r.requeue(now)):
                count += 1
        return count

    async def release_stale_claims(self, claimed_before: datetime, now: datetime) -> int:
        def stale(r: Delivery) -> bool:
            return (
                r.status == DeliveryStatus.PROCESSING
                and r.claimed_at is not None
                and r.claimed_at <= claimed_before
            )

        count = 0
        for delivery_id in [i for i, r in self._records.items() if stale(r)]:
            if await self._update_if(delivery_id, stale, lambda r: r.release(now)):
                count += 1
        return count

    async def count_by_status(self) -> dict[DeliveryStatus, int]:
        counts = Counter(r.status for r in self._records.values())
        return {status: counts.get(status, 0) for status in DeliveryStatus}

    async def count_retry_needed(self) -> int:
        return sum(
            1
            for r in self._records.values()
            if r.status == DeliveryStatus.PENDING and r.attempts > 0
        )

    async def recent(self, limit: int) -> list[Delivery]:
        records = sorted(self._records.values(), key=lambda r: r.created_at, reverse=True)
        return [r.model_copy(deep=True) for r in records[:limit]]

    async def list_created_since(self, since: datetime) -> list[Delivery]:
        return [
            r.model_copy(deep=True) for r in self._records.values() if r.created_at >= since
        ]

    async def purge(self, older_than: datetime) -> int:
        async with self._lock:
            doomed = [
                i
                for i, r in self._records.items()
                if r.status in TERMINAL_STATUSES and r.created_at < older_than
            ]
            for delivery_id in doomed:
                del self._records[delivery_id]
        return len(doomed)


class InMemoryEndpointRegistry(EndpointRegistry):
    """EndpointRegistry backed by a dict keyed by domain."""

    def __init__(self, endpoints: Sequence[Endpoint] = ()) -> None:
        self._endpoints: dict[str, Endpoint] = {
            e.domain: e.model_copy(deep=True) for e in endpoints
        }
        self._lock = asyncio.Lock()

    async def get_endpoint(self, domain: str) -> Endpoint | None:
        endpoint = self._endpoints.get(domain)
        return endpoint.model_copy(deep=True) if endpoint else None

    async def list_endpoints(self, active_only: bool = False) -> list[Endpoint]:
        return [
            e.model_copy(deep=True)
            for _, e in sorted(self._endpoints.items())
            if e.active or not active_only
        ]

    async def upsert_endpoint(self, endpoint: Endpoint) -> str:
        async with self._lock:
            self._endpoints[endpoint.domain] = endpoint.model_copy(deep=True)
        return endpoint.domain

    async def remove_endpoint(self, domain: str) -> bool:
        async with self._lock:
            return self._endpoints.pop(domain, None) is not None

    async def record_delivery_result(
        self, domain: str, success: bool, now: datetime
    ) -> Endpoint | None:
        async with self._lock:
            endpoint = self._endpoints.get(domain)
            if endpoint is None:
                return None
            if success:
                endpoint.consecutive_failures = 0
                endpoint.last_sent_at = now
            else:
                endpoint.consecutive_failures += 1
            return endpoint.model_copy(deep=True)

    async def set_active(self, domain: str, active: bool) -> bool:
        async with self._lock:
            endpoint = self._endpoints.get(domain)
            if endpoint is None:
                return False
            endpoint.active = active
            return True


__all__ = ["InMemoryDeliveryStore", "InMemoryEndpointRegistry"]
