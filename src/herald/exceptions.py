"""Herald exception hierarchy.

Provides structured exceptions for error handling throughout the codebase.
All exceptions inherit from HeraldError for easy catching.

Validation errors (UnsupportedEventError, EndpointNotConfiguredError,
ValidationError) are raised synchronously to producers before anything is
persisted. Delivery-time errors (TransportError, DeliveryHTTPError,
MaxAttemptsExceededError) are captured into a delivery record's diagnostics
and never reach the producer.
"""

from __future__ import annotations


class HeraldError(Exception):
    """Base exception for all Herald errors.

    Attributes:
        message: Human-readable error description.
        code: Machine-readable error code for API responses.
    """

    code: str = "herald_error"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
            }
        }


class ValidationError(HeraldError):
    """Invalid input provided.

    Attributes:
        field: The field that failed validation.
        message: Description of the validation failure.
    """

    code: str = "validation_error"

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        super().__init__(f"{field}: {message}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "field": self.field,
                "message": self.message,
            }
        }


class UnsupportedEventError(HeraldError):
    """Event kind is not in the supported set.

    Attributes:
        event_kind: The rejected event kind.
    """

    code: str = "unsupported_event"

    def __init__(self, event_kind: str) -> None:
        self.event_kind = event_kind
        super().__init__(f"Unsupported event: {event_kind}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "event_kind": self.event_kind,
                "message": self.message,
            }
        }


class EndpointNotConfiguredError(HeraldError):
    """Target domain has no usable endpoint.

    Raised when the domain is unknown, inactive, lacks a callback URL,
    or has filtered out the event.

    Attributes:
        domain: The target domain.
        reason: Short machine-readable reason.
    """

    code: str = "endpoint_not_configured"

    def __init__(self, domain: str, reason: str = "no_endpoint") -> None:
        self.domain = domain
        self.reason = reason
        super().__init__(f"No usable endpoint for domain {domain} ({reason})")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "domain": self.domain,
                "reason": self.reason,
                "message": self.message,
            }
        }


class NotFoundError(HeraldError):
    """Resource not found.

    Attributes:
        resource_type: Type of resource (e.g., "delivery", "endpoint").
        resource_id: ID of the missing resource.
    """

    code: str = "not_found"

    def __init__(self, resource_type: str, resource_id: str) -> None:
        self.resource_type = resource_type
        self.resource_id = resource_id
        super().__init__(f"{resource_type} not found: {resource_id}")

    def to_dict(self) -> dict[str, object]:
        """Convert exception to API-friendly dictionary."""
        return {
            "error": {
                "code": self.code,
                "resource_type": self.resource_type,
                "resource_id": self.resource_id,
                "message": self.message,
            }
        }


class InvalidTransitionError(HeraldError):
    """A delivery was asked to move between states that are not connected."""

    code: str = "invalid_transition"

    def __init__(self, delivery_id: str, current: str, target: str) -> None:
        self.delivery_id = delivery_id
        self.current = current
        self.target = target
        super().__init__(f"Delivery {delivery_id} cannot move from {current} to {target}")


class DeliveryError(HeraldError):
    """Base for errors raised while sending a delivery.

    These are always retryable and are recorded on the delivery record.
    """

    code: str = "delivery_error"


class TransportError(DeliveryError):
    """Network-level failure, no HTTP response was received."""

    code: str = "transport_error"


class DeliveryHTTPError(DeliveryError):
    """Endpoint answered with a non-2xx status.

    Attributes:
        status_code: HTTP status returned by the endpoint.
    """

    code: str = "http_error"

    def __init__(self, status_code: int, message: str | None = None) -> None:
        self.status_code = status_code
        super().__init__(message or f"HTTP {status_code}")


class MaxAttemptsExceededError(HeraldError):
    """Delivery exhausted its attempt ceiling and is now failed."""

    code: str = "max_attempts_exceeded"

    def __init__(self, delivery_id: str, attempts: int, last_error: str | None = None) -> None:
        self.delivery_id = delivery_id
        self.attempts = attempts
        self.last_error = last_error
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"Max attempts exceeded after {attempts} attempts{detail}")


class PersistenceError(HeraldError):
    """The store could not complete a read or write.

    Always propagated to the caller: a lost write means the event is never
    delivered and never retried.
    """

    code: str = "persistence_error"


class ConfigurationError(HeraldError):
    """Configuration error.

    Raised when required configuration is missing or invalid.
    """

    code: str = "configuration_error"
