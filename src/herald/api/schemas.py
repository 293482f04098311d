"""Pydantic schemas for API request/response models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

from herald.models import Delivery, DeliveryStatus, Endpoint


class HealthResponse(BaseModel):
    """Response for the health check."""

    status: Literal["healthy", "unhealthy"]
    version: str
    storage_connected: bool


class EventsResponse(BaseModel):
    """Supported event kinds and their descriptions."""

    events: dict[str, str]


class EnqueueRequest(BaseModel):
    """Request body for queueing one event for one domain.

    Attributes:
        domain: Target domain.
        event: Event kind, e.g. "code_validated".
        data: Event data.
        max_attempts: Attempt ceiling (defaults to the configured value).
    """

    model_config = ConfigDict(extra="forbid")

    domain: str = Field(min_length=1, description="Target domain")
    event: str = Field(min_length=1, description="Event kind")
    data: dict[str, Any] = Field(default_factory=dict, description="Event data")
    max_attempts: int | None = Field(default=None, ge=1, le=20, description="Attempt ceiling")


class EnqueueResponse(BaseModel):
    queued: bool


class BroadcastRequest(BaseModel):
    """Request body for fanning an event out to every eligible endpoint."""

    model_config = ConfigDict(extra="forbid")

    event: str = Field(min_length=1, description="Event kind")
    data: dict[str, Any] = Field(default_factory=dict, description="Event data")
    max_attempts: int | None = Field(default=None, ge=1, le=20, description="Attempt ceiling")


class BroadcastResponse(BaseModel):
    queued: int = Field(ge=0, description="Deliveries enqueued")


class TestSendRequest(BaseModel):
    """Request body for a synchronous test send.

    Exactly one of domain (a registered endpoint) or url must be given.
    """

    __test__ = False  # keep pytest from collecting this model

    model_config = ConfigDict(extra="forbid")

    domain: str | None = Field(default=None, description="Registered domain to probe")
    url: str | None = Field(default=None, description="Raw URL to probe")
    secret: str | None = Field(default=None, description="Secret for a raw URL")

    @model_validator(mode="after")
    def _exactly_one_target(self) -> TestSendRequest:
        if (self.domain is None) == (self.url is None):
            raise ValueError("provide exactly one of domain or url")
        return self


class ActionResponse(BaseModel):
    """Outcome of an operator action on one delivery."""

    delivery_id: str
    success: bool


class BulkCancelRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    delivery_ids: list[str] = Field(min_length=1, max_length=1000)


class BulkCancelResponse(BaseModel):
    requested: int
    cancelled: int


class PurgeRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    days_old: int = Field(ge=1, description="Delete terminal deliveries older than this")


class PurgeResponse(BaseModel):
    deleted: int


class SweepResponse(BaseModel):
    requeued: int


class DeliveryResponse(BaseModel):
    """Full delivery record minus its secret."""

    id: str
    domain: str
    event_kind: str
    event_id: str
    status: DeliveryStatus
    callback_url: str
    signed: bool = Field(description="Whether deliveries carry an X-Signature header")
    payload: str
    attempts: int
    max_attempts: int
    created_at: datetime
    last_attempt_at: datetime | None = None
    next_attempt_at: datetime | None = None
    sent_at: datetime | None = None
    response_code: int | None = None
    response_body: str | None = None
    error_message: str | None = None

    @classmethod
    def from_delivery(cls, delivery: Delivery) -> DeliveryResponse:
        return cls(
            id=delivery.id,
            domain=delivery.domain,
            event_kind=delivery.event_kind.value,
            event_id=delivery.event_id,
            status=delivery.status,
            callback_url=delivery.callback_url,
            signed=bool(delivery.secret),
            payload=delivery.payload,
            attempts=delivery.attempts,
            max_attempts=delivery.max_attempts,
            created_at=delivery.created_at,
            last_attempt_at=delivery.last_attempt_at,
            next_attempt_at=delivery.next_attempt_at,
            sent_at=delivery.sent_at,
            response_code=delivery.response_code,
            response_body=delivery.response_body,
            error_message=delivery.error_message,
        )


class EndpointRequest(BaseModel):
    """Request body for registering an endpoint."""

    model_config = ConfigDict(extra="forbid")

    callback_url: str = Field(min_length=1, description="Webhook endpoint URL")
    secret: str | None = Field(default=None, description="Shared HMAC secret")
    enabled_events: list[str] = Field(
        default_factory=list, description="Subscribed event names; empty subscribes to all"
    )
    active: bool = True


class EndpointResponse(BaseModel):
    """Registered endpoint minus its secret."""

    domain: str
    callback_url: str | None
    signed: bool
    enabled_events: list[str]
    active: bool
    consecutive_failures: int
    last_sent_at: datetime | None = None

    @classmethod
    def from_endpoint(cls, endpoint: Endpoint) -> EndpointResponse:
        return cls(
            domain=endpoint.domain,
            callback_url=endpoint.callback_url,
            signed=bool(endpoint.secret),
            enabled_events=list(endpoint.enabled_events),
            active=endpoint.active,
            consecutive_failures=endpoint.consecutive_failures,
            last_sent_at=endpoint.last_sent_at,
        )


class EndpointActiveRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    active: bool
