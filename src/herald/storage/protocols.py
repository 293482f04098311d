"""Repository interfaces for deliveries and endpoints.

The dispatcher, fan-out, and reporting code depend only on these
interfaces, so any durable backend can be substituted.

Every state-changing method on DeliveryStore is a conditional update:
it succeeds only if the record is still in the expected state at the
moment of writing, and reports whether it did. Implementations must make
the check and the write a single atomic step. A read followed by a
separate write lets two overlapping dispatch runs both claim (and send)
the same delivery.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from datetime import datetime

from herald.models import Delivery, DeliveryStatus, Endpoint


class DeliveryStore(ABC):
    """Durable table of delivery records."""

    @abstractmethod
    async def insert(self, delivery: Delivery) -> str:
        """Persist a new delivery.

        Raises:
            PersistenceError: If the write fails.
        """

    @abstractmethod
    async def insert_many(self, deliveries: Sequence[Delivery]) -> list[str]:
        """Persist several new deliveries in one write.

        Raises:
            PersistenceError: If the write fails.
        """

    @abstractmethod
    async def get(self, delivery_id: str) -> Delivery | None:
        """Fetch a delivery by id."""

    @abstractmethod
    async def fetch_due(self, now: datetime, limit: int) -> list[Delivery]:
        """Pending deliveries due at `now` with attempts left, oldest first."""

    @abstractmethod
    async def claim(self, delivery_id: str, token: str, now: datetime) -> Delivery | None:
        """Atomically move a due pending delivery to processing.

        Returns:
            The claimed delivery, or None if another run claimed it first
            or it is no longer due.
        """

    @abstractmethod
    async def complete(self, delivery: Delivery, token: str) -> bool:
        """Write back the outcome of an attempt.

        Applies only while the stored record is still processing under
        `token`.

        Raises:
            PersistenceError: If the write fails.
        """

    @abstractmethod
    async def cancel(self, delivery_id: str) -> bool:
        """Atomically move a pending delivery to cancelled."""

    @abstractmethod
    async def reopen(self, delivery_id: str, now: datetime) -> bool:
        """Reset a failed or pending delivery: attempts 0, due at `now`."""

    @abstractmethod
    async def requeue_failed(self, idle_before: datetime, now: datetime) -> int:
        """Return failed deliveries idle since `idle_before` to pending.

        Only deliveries with attempts left are requeued; attempts are kept.
        """

    @abstractmethod
    async def release_stale_claims(self, claimed_before: datetime, now: datetime) -> int:
        """Return deliveries stuck in processing since `claimed_before` to pending."""

    @abstractmethod
    async def count_by_status(self) -> dict[DeliveryStatus, int]:
        """Number of deliveries in each status."""

    @abstractmethod
    async def count_retry_needed(self) -> int:
        """Pending deliveries that have failed at least once."""

    @abstractmethod
    async def recent(self, limit: int) -> list[Delivery]:
        """Most recently created deliveries, newest first."""

    @abstractmethod
    async def list_created_since(self, since: datetime) -> list[Delivery]:
        """Deliveries created at or after `since`."""

    @abstractmethod
    async def purge(self, older_than: datetime) -> int:
        """Delete terminal deliveries created before `older_than`.

        Pending and processing deliveries are never deleted.
        """


class EndpointRegistry(ABC):
    """Registry of target domains and their webhook endpoints."""

    @abstractmethod
    async def get_endpoint(self, domain: str) -> Endpoint | None:
        """Fetch the endpoint for a domain."""

    @abstractmethod
    async def list_endpoints(self, active_only: bool = False) -> list[Endpoint]:
        """All endpoints, ordered by domain."""

    @abstractmethod
    async def upsert_endpoint(self, endpoint: Endpoint) -> str:
        """Register or replace an endpoint."""

    @abstractmethod
    async def remove_endpoint(self, domain: str) -> bool:
        """Remove an endpoint."""

    @abstractmethod
    async def record_delivery_result(
        self, domain: str, success: bool, now: datetime
    ) -> Endpoint | None:
        """Update the consecutive failure counter after an attempt.

        Success resets the counter and stamps last_sent_at; failure
        increments it.

        Returns:
            The updated endpoint, or None if the domain is unknown.
        """

    @abstractmethod
    async def set_active(self, domain: str, active: bool) -> bool:
        """Activate or suspend an endpoint."""
