"""Herald: outbound webhook delivery you can rely on.

Queues business events for remote endpoints, signs every payload with
HMAC-SHA256, and retries failed deliveries on a fixed backoff schedule
until they succeed or exhaust their attempts.

Quick Start:
    from herald.service import WebhookService

    async with WebhookService.create() as herald:
        # Queue one event for one domain
        await herald.enqueue("shop.example", "code_validated", {"code": "SAVE10"})

        # Or fan out to every subscribed endpoint
        await herald.broadcast("security_alert", {"alert_type": "brute_force"})

        # Send what is due
        report = await herald.dispatch()

Delivery States:
    - pending: Waiting for its next attempt
    - processing: Claimed by a dispatch run
    - sent: Delivered (2xx)
    - failed: Exhausted its attempts, reopen with retry()
    - cancelled: Cancelled by an operator
"""

from ._version import __version__

# Configuration
from .config import Settings, settings

# Exceptions
from .exceptions import (
    ConfigurationError,
    DeliveryError,
    DeliveryHTTPError,
    EndpointNotConfiguredError,
    HeraldError,
    InvalidTransitionError,
    MaxAttemptsExceededError,
    NotFoundError,
    PersistenceError,
    TransportError,
    UnsupportedEventError,
    ValidationError,
)

# Logging
from .logging import (
    bind_context,
    configure_logging,
    get_logger,
    logger,
    unbind_context,
)

# Models
from .models import (
    ActivityEntry,
    Delivery,
    DeliveryStatus,
    Endpoint,
    EventEnvelope,
    EventKind,
)

# Receivers verify signatures with this
from .webhooks.signing import compute_signature, verify_signature

__all__ = [
    # Version
    "__version__",
    # Configuration
    "Settings",
    "settings",
    # Exceptions
    "HeraldError",
    "ValidationError",
    "UnsupportedEventError",
    "EndpointNotConfiguredError",
    "NotFoundError",
    "InvalidTransitionError",
    "DeliveryError",
    "TransportError",
    "DeliveryHTTPError",
    "MaxAttemptsExceededError",
    "PersistenceError",
    "ConfigurationError",
    # Logging
    "configure_logging",
    "get_logger",
    "logger",
    "bind_context",
    "unbind_context",
    # Models
    "ActivityEntry",
    "Delivery",
    "DeliveryStatus",
    "Endpoint",
    "EventEnvelope",
    "EventKind",
    # Signing
    "compute_signature",
    "verify_signature",
]
