"""Delivery model and its lifecycle state machine.

A Delivery is one queued attempt-set to notify one endpoint of one event.
The serialized envelope, callback URL, and secret are captured when the
delivery is enqueued and never re-read, so later changes to event data or
secret rotation do not alter a delivery already in flight.

State machine:

    pending ──claim──▶ processing ──2xx──▶ sent
       │                   │
       │                   ├─failure, attempts < max──▶ pending
       │                   └─failure, attempts == max─▶ failed
       └──cancel──▶ cancelled                             │
                                   pending ◀──retry/sweep─┘
"""

from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from herald.exceptions import InvalidTransitionError

from .base import generate_id, utc_now
from .events import EventKind


class DeliveryStatus(str, Enum):
    """Lifecycle status of a delivery."""

    PENDING = "pending"
    PROCESSING = "processing"
    SENT = "sent"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: frozenset[DeliveryStatus] = frozenset(
    {DeliveryStatus.SENT, DeliveryStatus.FAILED, DeliveryStatus.CANCELLED}
)

# Statuses whose records must never change again
IMMUTABLE_STATUSES: frozenset[DeliveryStatus] = frozenset(
    {DeliveryStatus.SENT, DeliveryStatus.CANCELLED}
)

ALLOWED_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.PROCESSING, DeliveryStatus.CANCELLED}),
    DeliveryStatus.PROCESSING: frozenset(
        {DeliveryStatus.SENT, DeliveryStatus.PENDING, DeliveryStatus.FAILED}
    ),
    DeliveryStatus.FAILED: frozenset({DeliveryStatus.PENDING}),
    DeliveryStatus.SENT: frozenset(),
    DeliveryStatus.CANCELLED: frozenset(),
}


class Delivery(BaseModel):
    """Durable record of a webhook delivery.

    Attributes:
        id: Unique identifier (dlv_ prefix).
        domain: Target domain.
        event_kind: Event being delivered.
        event_id: Envelope id, for receiver-side deduplication.
        payload: Serialized envelope, sent byte for byte.
        callback_url: Endpoint URL captured at enqueue.
        secret: Signing secret captured at enqueue.
        attempts: Attempts made so far.
        max_attempts: Attempt ceiling fixed at enqueue.
        status: Lifecycle status.
        created_at: When the delivery was enqueued.
        last_attempt_at: When the last attempt finished.
        next_attempt_at: Earliest time for the next attempt (pending only).
        sent_at: When the delivery succeeded.
        response_code: HTTP status of the last attempt.
        response_body: Response body of the last attempt (truncated).
        error_message: Error of the last attempt.
        claim_token: Token of the dispatch run currently holding the claim.
        claimed_at: When the current claim was taken.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: generate_id("dlv"))
    domain: str = Field(min_length=1, description="Target domain")
    event_kind: EventKind = Field(description="Event kind")
    event_id: str = Field(description="Envelope id")
    payload: str = Field(description="Serialized envelope")
    callback_url: str = Field(min_length=1, description="Endpoint URL")
    secret: str | None = Field(default=None, description="Signing secret")
    attempts: int = Field(default=0, ge=0, description="Attempts made")
    max_attempts: int = Field(default=3, ge=1, description="Attempt ceiling")
    status: DeliveryStatus = Field(default=DeliveryStatus.PENDING)
    created_at: datetime = Field(default_factory=utc_now)
    last_attempt_at: datetime | None = None
    next_attempt_at: datetime | None = None
    sent_at: datetime | None = None
    response_code: int | None = None
    response_body: str | None = None
    error_message: str | None = None
    claim_token: str | None = None
    claimed_at: datetime | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> Delivery:
        if self.attempts > self.max_attempts:
            raise ValueError(
                f"attempts ({self.attempts}) exceeds max_attempts ({self.max_attempts})"
            )
        if self.next_attempt_at is not None and self.status != DeliveryStatus.PENDING:
            raise ValueError("next_attempt_at may only be set while pending")
        if self.claim_token is not None and self.status != DeliveryStatus.PROCESSING:
            raise ValueError("claim_token may only be set while processing")
        if self.claimed_at is not None and self.status != DeliveryStatus.PROCESSING:
            raise ValueError("claimed_at may only be set while processing")
        return self

    @property
    def attempts_remaining(self) -> int:
        """Attempts left before the ceiling."""
        return self.max_attempts - self.attempts

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_due(self, now: datetime) -> bool:
        """Whether a dispatch run at `now` may claim this delivery."""
        return (
            self.status == DeliveryStatus.PENDING
            and self.attempts < self.max_attempts
            and (self.next_attempt_at is None or self.next_attempt_at <= now)
        )

    def _transition(self, target: DeliveryStatus) -> None:
        if target not in ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.id, self.status.value, target.value)
        self.status = target

    def claim(self, token: str, now: datetime) -> Delivery:
        """Move pending -> processing under the given claim token."""
        self._transition(DeliveryStatus.PROCESSING)
        self.next_attempt_at = None
        self.claim_token = token
        self.claimed_at = now
        return self

    def _release_claim(self) -> None:
        self.claim_token = None
        self.claimed_at = None

    def release(self, now: datetime) -> Delivery:
        """Return an abandoned claim to pending without counting an attempt.

        Used for claims whose dispatch run died before recording an outcome.
        """
        self._transition(DeliveryStatus.PENDING)
        self.next_attempt_at = now
        self._release_claim()
        return self

    def mark_sent(
        self,
        now: datetime,
        response_code: int,
        response_body: str | None = None,
    ) -> Delivery:
        """Record a successful attempt."""
        self._transition(DeliveryStatus.SENT)
        self.attempts += 1
        self.last_attempt_at = now
        self.sent_at = now
        self.response_code = response_code
        self.response_body = response_body
        self.error_message = None
        self._release_claim()
        return self

    def mark_attempt_failed(
        self,
        now: datetime,
        error: str,
        retry_delay_seconds: float,
        response_code: int | None = None,
        response_body: str | None = None,
    ) -> Delivery:
        """Record a failed attempt and schedule the next one or give up.

        Args:
            now: When the attempt finished.
            error: Diagnostic message for the attempt.
            retry_delay_seconds: Delay before the next attempt, if one remains.
            response_code: HTTP status, if a response was received.
            response_body: Response body, if a response was received.
        """
        attempts = self.attempts + 1
        if attempts < self.max_attempts:
            self._transition(DeliveryStatus.PENDING)
            self.next_attempt_at = now + timedelta(seconds=retry_delay_seconds)
        else:
            self._transition(DeliveryStatus.FAILED)
            self.next_attempt_at = None
        self.attempts = attempts
        self.last_attempt_at = now
        self.response_code = response_code
        self.response_body = response_body
        self.error_message = error
        self._release_claim()
        return self

    def cancel(self) -> Delivery:
        """Operator cancel, only valid while pending."""
        self._transition(DeliveryStatus.CANCELLED)
        self.next_attempt_at = None
        return self

    def reopen(self, now: datetime) -> Delivery:
        """Operator retry: reset attempts and diagnostics, due immediately.

        Valid from failed, and from pending to pull a scheduled retry forward.
        """
        if self.status != DeliveryStatus.PENDING:
            self._transition(DeliveryStatus.PENDING)
        self.attempts = 0
        self.next_attempt_at = now
        self.response_code = None
        self.response_body = None
        self.error_message = None
        return self

    def requeue(self, now: datetime) -> Delivery:
        """Sweep: return a failed delivery to pending with attempts unchanged.

        Only valid while attempts remain, i.e. after max_attempts was raised.
        """
        if self.attempts >= self.max_attempts:
            raise InvalidTransitionError(self.id, self.status.value, DeliveryStatus.PENDING.value)
        self._transition(DeliveryStatus.PENDING)
        self.next_attempt_at = now
        return self


__all__ = [
    "ALLOWED_TRANSITIONS",
    "IMMUTABLE_STATUSES",
    "TERMINAL_STATUSES",
    "Delivery",
    "DeliveryStatus",
]
