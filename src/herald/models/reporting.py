"""Result models returned by management and reporting operations."""

from __future__ import annotations

from datetime import date, datetime

from pydantic import BaseModel, ConfigDict, Field

from .delivery import Delivery, DeliveryStatus


class DeliverySummary(BaseModel):
    """Operator-facing view of a delivery; omits payload and secret."""

    model_config = ConfigDict(extra="forbid")

    id: str
    domain: str
    event_kind: str
    status: DeliveryStatus
    attempts: int
    max_attempts: int
    created_at: datetime
    last_attempt_at: datetime | None = None
    next_attempt_at: datetime | None = None
    sent_at: datetime | None = None
    response_code: int | None = None
    error_message: str | None = None

    @classmethod
    def from_delivery(cls, delivery: Delivery) -> DeliverySummary:
        return cls(
            id=delivery.id,
            domain=delivery.domain,
            event_kind=delivery.event_kind.value,
            status=delivery.status,
            attempts=delivery.attempts,
            max_attempts=delivery.max_attempts,
            created_at=delivery.created_at,
            last_attempt_at=delivery.last_attempt_at,
            next_attempt_at=delivery.next_attempt_at,
            sent_at=delivery.sent_at,
            response_code=delivery.response_code,
            error_message=delivery.error_message,
        )


class QueueStatus(BaseModel):
    """Snapshot of the delivery queue.

    Attributes:
        pending: Deliveries waiting for their next attempt.
        processing: Deliveries claimed by a running dispatch.
        sent: Delivered successfully.
        failed: Exhausted their attempts.
        cancelled: Cancelled by an operator.
        retry_needed: Pending deliveries that already failed at least once.
        recent: Most recently created deliveries, newest first.
    """

    model_config = ConfigDict(extra="forbid")

    pending: int = Field(default=0, ge=0)
    processing: int = Field(default=0, ge=0)
    sent: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    cancelled: int = Field(default=0, ge=0)
    retry_needed: int = Field(default=0, ge=0)
    recent: list[DeliverySummary] = Field(default_factory=list)


class RankedCount(BaseModel):
    """A key with its delivery volume."""

    key: str
    count: int = Field(ge=0)


class DailyBreakdown(BaseModel):
    """Delivery outcomes for one calendar day (UTC)."""

    day: date
    total: int = Field(default=0, ge=0)
    successful: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)


class DeliveryStatistics(BaseModel):
    """Aggregated delivery outcomes over a time window.

    Attributes:
        window_days: Size of the window in days.
        since: Start of the window.
        total: Deliveries created in the window.
        successful: Of those, delivered.
        failed: Of those, exhausted their attempts.
        pending: Of those, still queued or in flight.
        cancelled: Of those, cancelled.
        success_rate: successful / total as a percentage (0 when empty).
        top_events: Event kinds by volume.
        top_domains: Domains by volume.
        daily: Per-day breakdown, oldest first.
    """

    model_config = ConfigDict(extra="forbid")

    window_days: int = Field(ge=1)
    since: datetime
    total: int = Field(default=0, ge=0)
    successful: int = Field(default=0, ge=0)
    failed: int = Field(default=0, ge=0)
    pending: int = Field(default=0, ge=0)
    cancelled: int = Field(default=0, ge=0)
    success_rate: float = Field(default=0.0, ge=0.0, le=100.0)
    top_events: list[RankedCount] = Field(default_factory=list)
    top_domains: list[RankedCount] = Field(default_factory=list)
    daily: list[DailyBreakdown] = Field(default_factory=list)


class DispatchReport(BaseModel):
    """Outcome counts of one dispatch run."""

    claimed: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0
    skipped: int = 0


class TestResult(BaseModel):
    """Raw outcome of a synchronous test send."""

    __test__ = False  # keep pytest from collecting this model

    success: bool
    response_code: int = 0
    elapsed_ms: int = 0
    body: str | None = None
    error: str | None = None


__all__ = [
    "DailyBreakdown",
    "DeliveryStatistics",
    "DeliverySummary",
    "DispatchReport",
    "QueueStatus",
    "RankedCount",
    "TestResult",
]
