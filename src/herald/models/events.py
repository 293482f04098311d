"""Event kinds and the envelope sent to webhook endpoints.

Every event a producer can emit is an EventKind member. The catalog maps
each kind to its human-readable description and the data keys a producer
must supply, so an unknown or malformed event is rejected before a
delivery is ever persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from herald.exceptions import UnsupportedEventError, ValidationError

from .base import generate_id, utc_now


class EventKind(str, Enum):
    """Business events that can be delivered to endpoints."""

    CODE_VALIDATED = "code_validated"
    CODE_USED = "code_used"
    CONVERSION_TRACKED = "conversion_tracked"
    DOMAIN_STATUS_CHANGED = "domain_status_changed"
    DOMAIN_REGISTERED = "domain_registered"
    AFFILIATE_STATUS_CHANGED = "affiliate_status_changed"
    CODE_CREATED = "code_created"
    CODE_UPDATED = "code_updated"
    CODE_DELETED = "code_deleted"
    BULK_OPERATION_COMPLETED = "bulk_operation_completed"
    SECURITY_ALERT = "security_alert"
    WEBHOOK_TEST = "webhook_test"


@dataclass(frozen=True)
class EventSpec:
    """Description and data contract for one event kind."""

    description: str
    required_keys: tuple[str, ...] = ()


EVENT_CATALOG: dict[EventKind, EventSpec] = {
    EventKind.CODE_VALIDATED: EventSpec(
        "A vanity code was validated on a client domain", ("code",)
    ),
    EventKind.CODE_USED: EventSpec("A vanity code was redeemed", ("code",)),
    EventKind.CONVERSION_TRACKED: EventSpec(
        "A conversion was attributed to a code", ("code", "amount")
    ),
    EventKind.DOMAIN_STATUS_CHANGED: EventSpec(
        "An authorized domain changed status", ("status",)
    ),
    EventKind.DOMAIN_REGISTERED: EventSpec("A new domain was registered"),
    EventKind.AFFILIATE_STATUS_CHANGED: EventSpec(
        "An affiliate account changed status", ("affiliate_id", "status")
    ),
    EventKind.CODE_CREATED: EventSpec("A vanity code was created", ("code",)),
    EventKind.CODE_UPDATED: EventSpec("A vanity code was updated", ("code",)),
    EventKind.CODE_DELETED: EventSpec("A vanity code was deleted", ("code",)),
    EventKind.BULK_OPERATION_COMPLETED: EventSpec(
        "A bulk operation finished", ("operation",)
    ),
    EventKind.SECURITY_ALERT: EventSpec(
        "Suspicious activity was detected", ("alert_type",)
    ),
    EventKind.WEBHOOK_TEST: EventSpec("Connectivity test sent by an operator"),
}

# Endpoint filters may contain this to subscribe to everything
WILDCARD_EVENT = "*"


def parse_event_kind(value: str | EventKind) -> EventKind:
    """Resolve a raw event name to an EventKind.

    Raises:
        UnsupportedEventError: If the name is not a supported event.
    """
    if isinstance(value, EventKind):
        return value
    try:
        return EventKind(value)
    except ValueError:
        raise UnsupportedEventError(str(value)) from None


def validate_event_data(kind: EventKind, data: dict[str, Any]) -> None:
    """Check that a producer supplied every key the event kind requires.

    Raises:
        ValidationError: If a required key is absent.
    """
    missing = [key for key in EVENT_CATALOG[kind].required_keys if key not in data]
    if missing:
        raise ValidationError(
            "data", f"{kind.value} requires keys: {', '.join(sorted(missing))}"
        )


def supported_events() -> dict[str, str]:
    """Map of event name to description, in declaration order."""
    return {kind.value: spec.description for kind, spec in EVENT_CATALOG.items()}


class EnvelopeMeta(BaseModel):
    """Identity of the system that produced an envelope."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    source: str = Field(description="Source identity")
    version: str = Field(description="Herald version that built the envelope")


class EventEnvelope(BaseModel):
    """Canonical payload delivered to an endpoint.

    The serialized form of this model is signed and transmitted verbatim.
    Field order here is the key order on the wire.

    Attributes:
        id: Unique event id. Receivers deduplicate on this.
        event: Event kind.
        domain: Target domain the envelope is scoped to.
        timestamp: When the envelope was built (UTC).
        data: Event-specific payload.
        meta: Source identity and version.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: generate_id("evt"))
    event: EventKind = Field(description="Event kind")
    domain: str = Field(min_length=1, description="Target domain")
    timestamp: datetime = Field(default_factory=utc_now, description="When the event occurred")
    data: dict[str, Any] = Field(default_factory=dict, description="Event-specific payload")
    meta: EnvelopeMeta

    def serialize(self) -> str:
        """Compact JSON form used for signing and transmission."""
        return self.model_dump_json()


__all__ = [
    "EVENT_CATALOG",
    "WILDCARD_EVENT",
    "EnvelopeMeta",
    "EventEnvelope",
    "EventKind",
    "EventSpec",
    "parse_event_kind",
    "supported_events",
    "validate_event_data",
]
