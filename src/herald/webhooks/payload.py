"""Envelope construction and delivery snapshots.

Everything here runs before persistence: an unsupported event kind or
malformed data raises here and nothing is queued.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic_core import PydanticSerializationError

from herald._version import __version__
from herald.exceptions import EndpointNotConfiguredError, ValidationError
from herald.models import (
    Delivery,
    Endpoint,
    EnvelopeMeta,
    EventEnvelope,
    EventKind,
    parse_event_kind,
    utc_now,
    validate_event_data,
)


def build_envelope(
    domain: str,
    event_kind: str | EventKind,
    data: dict[str, Any] | None = None,
    *,
    source: str = "herald",
    timestamp: datetime | None = None,
) -> EventEnvelope:
    """Build the canonical envelope for one event and one domain.

    Args:
        domain: Target domain the envelope is scoped to.
        event_kind: Event name or EventKind.
        data: Event-specific key-value map.
        source: Source identity for the meta block.
        timestamp: Override the envelope timestamp (defaults to now).

    Returns:
        A frozen EventEnvelope.

    Raises:
        UnsupportedEventError: Unknown event kind.
        ValidationError: Missing required keys or non-serializable data.
    """
    kind = parse_event_kind(event_kind)
    payload_data = dict(data or {})
    validate_event_data(kind, payload_data)

    envelope = EventEnvelope(
        event=kind,
        domain=domain,
        timestamp=timestamp or utc_now(),
        data=payload_data,
        meta=EnvelopeMeta(source=source, version=__version__),
    )

    # Fail now rather than at dispatch time
    try:
        envelope.serialize()
    except PydanticSerializationError as e:
        raise ValidationError("data", f"not JSON serializable: {e}") from e

    return envelope


def new_delivery(
    endpoint: Endpoint,
    envelope: EventEnvelope,
    max_attempts: int,
    now: datetime | None = None,
) -> Delivery:
    """Snapshot an envelope and endpoint into a pending delivery.

    The payload, callback URL, and secret are copied so later changes to
    the endpoint do not affect this delivery.

    Raises:
        EndpointNotConfiguredError: Endpoint has no callback URL.
    """
    if not endpoint.callback_url:
        raise EndpointNotConfiguredError(endpoint.domain, "missing_callback_url")

    created = now or utc_now()
    return Delivery(
        domain=endpoint.domain,
        event_kind=envelope.event,
        event_id=envelope.id,
        payload=envelope.serialize(),
        callback_url=endpoint.callback_url,
        secret=endpoint.secret or None,
        max_attempts=max_attempts,
        created_at=created,
        next_attempt_at=created,
    )
