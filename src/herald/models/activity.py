"""ActivityEntry model - per-attempt delivery log for the audit sink."""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from .base import generate_id, utc_now

ActivityType = Literal["webhook_delivered", "webhook_failed", "endpoint_suspended"]


class ActivityEntry(BaseModel):
    """One line in the activity log.

    Every delivery attempt, success or failure, produces one entry.

    Attributes:
        id: Unique identifier for this entry.
        timestamp: When the attempt finished.
        type: webhook_delivered, webhook_failed, or endpoint_suspended.
        domain: Target domain.
        event_kind: Event delivered (None for endpoint entries).
        delivery_id: Delivery record (None for endpoint entries).
        attempt: Attempt number (1-indexed).
        response_code: HTTP status if a response was received.
        elapsed_ms: Wall time of the HTTP call.
        error: Error message for failed attempts.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("act"))
    timestamp: datetime = Field(default_factory=utc_now)
    type: ActivityType
    domain: str
    event_kind: str | None = None
    delivery_id: str | None = None
    attempt: int | None = Field(default=None, ge=1)
    response_code: int | None = None
    elapsed_ms: int | None = Field(default=None, ge=0)
    error: str | None = None

    @classmethod
    def for_attempt(
        cls,
        *,
        success: bool,
        domain: str,
        event_kind: str,
        delivery_id: str,
        attempt: int,
        response_code: int | None = None,
        elapsed_ms: int | None = None,
        error: str | None = None,
    ) -> "ActivityEntry":
        """Create an entry for a delivery attempt."""
        return cls(
            type="webhook_delivered" if success else "webhook_failed",
            domain=domain,
            event_kind=event_kind,
            delivery_id=delivery_id,
            attempt=attempt,
            response_code=response_code,
            elapsed_ms=elapsed_ms,
            error=error,
        )

    @classmethod
    def for_suspension(cls, domain: str, failures: int) -> "ActivityEntry":
        """Create an entry for an endpoint suspended after repeated failures."""
        return cls(
            type="endpoint_suspended",
            domain=domain,
            error=f"Suspended after {failures} consecutive failures",
        )


__all__ = ["ActivityEntry", "ActivityType"]
