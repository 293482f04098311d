"""Endpoint model: a registered remote domain that receives webhooks."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from .events import WILDCARD_EVENT, EventKind


class Endpoint(BaseModel):
    """Webhook endpoint registered for a target domain.

    Owned by the endpoint registry. Herald only maintains the
    consecutive_failures counter, last_sent_at, and suspends the endpoint
    (active=False) when failures pile up.

    Attributes:
        domain: Unique domain key, e.g. "shop.example".
        callback_url: URL that receives POSTed envelopes.
        secret: Shared secret for HMAC-SHA256 signatures (optional).
        enabled_events: Event names this endpoint accepts. Empty or "*" means all.
        active: Whether the endpoint receives deliveries.
        consecutive_failures: Failed attempts since the last success.
        last_sent_at: Last successful delivery.
    """

    model_config = ConfigDict(extra="forbid")

    domain: str = Field(min_length=1, description="Unique domain key")
    callback_url: str | None = Field(default=None, description="Webhook endpoint URL")
    secret: str | None = Field(default=None, description="Shared HMAC secret")
    enabled_events: list[str] = Field(
        default_factory=list,
        description="Subscribed event names; empty subscribes to all",
    )
    active: bool = Field(default=True, description="Whether the endpoint is active")
    consecutive_failures: int = Field(default=0, ge=0, description="Failures since last success")
    last_sent_at: datetime | None = Field(default=None, description="Last successful delivery")

    def accepts(self, kind: EventKind) -> bool:
        """Whether this endpoint's filter admits the event kind."""
        if not self.enabled_events or WILDCARD_EVENT in self.enabled_events:
            return True
        return kind.value in self.enabled_events

    def is_eligible(self, kind: EventKind) -> bool:
        """Active, has a callback URL, and subscribes to the event."""
        return self.active and bool(self.callback_url) and self.accepts(kind)


__all__ = ["Endpoint"]
