"""Data models for Herald.

Delivery Types:
    - Delivery: Durable record of one event queued for one endpoint
    - DeliveryStatus: Lifecycle status (pending, processing, sent, failed, cancelled)
    - EventEnvelope: Canonical signed payload
    - EventKind: Supported business events

Supporting Types:
    - Endpoint: Registered target domain
    - ActivityEntry: Per-attempt log line for the audit sink
    - QueueStatus, DeliveryStatistics, DispatchReport, TestResult: Reporting results
"""

from .activity import ActivityEntry, ActivityType
from .base import generate_id, utc_now
from .delivery import (
    ALLOWED_TRANSITIONS,
    IMMUTABLE_STATUSES,
    TERMINAL_STATUSES,
    Delivery,
    DeliveryStatus,
)
from .endpoint import Endpoint
from .events import (
    EVENT_CATALOG,
    WILDCARD_EVENT,
    EnvelopeMeta,
    EventEnvelope,
    EventKind,
    EventSpec,
    parse_event_kind,
    supported_events,
    validate_event_data,
)
from .reporting import (
    DailyBreakdown,
    DeliveryStatistics,
    DeliverySummary,
    DispatchReport,
    QueueStatus,
    RankedCount,
    TestResult,
)

__all__ = [
    # Helpers
    "generate_id",
    "utc_now",
    # Events
    "EVENT_CATALOG",
    "WILDCARD_EVENT",
    "EnvelopeMeta",
    "EventEnvelope",
    "EventKind",
    "EventSpec",
    "parse_event_kind",
    "supported_events",
    "validate_event_data",
    # Deliveries
    "ALLOWED_TRANSITIONS",
    "IMMUTABLE_STATUSES",
    "TERMINAL_STATUSES",
    "Delivery",
    "DeliveryStatus",
    # Endpoints
    "Endpoint",
    # Activity
    "ActivityEntry",
    "ActivityType",
    # Reporting
    "DailyBreakdown",
    "DeliveryStatistics",
    "DeliverySummary",
    "DispatchReport",
    "QueueStatus",
    "RankedCount",
    "TestResult",
]
