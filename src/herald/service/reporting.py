"""Reporting mixin for WebhookService.

Queue snapshots and windowed delivery statistics. Read-only.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING

from herald.exceptions import ValidationError
from herald.models import (
    DailyBreakdown,
    Delivery,
    DeliveryStatistics,
    DeliveryStatus,
    DeliverySummary,
    QueueStatus,
    RankedCount,
    utc_now,
)

if TYPE_CHECKING:
    from herald.config import Settings
    from herald.storage import DeliveryStore

# Length of the top_events and top_domains rankings
TOP_N = 10


def _ranked(counter: Counter[str], limit: int = TOP_N) -> list[RankedCount]:
    # Ties break alphabetically so results are stable
    ordered = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    return [RankedCount(key=key, count=count) for key, count in ordered[:limit]]


def compute_statistics(
    deliveries: Iterable[Delivery],
    window_days: int,
    since: datetime,
) -> DeliveryStatistics:
    """Aggregate deliveries created in a window.

    Args:
        deliveries: Deliveries created at or after `since`.
        window_days: Size of the window, echoed in the result.
        since: Start of the window.

    Returns:
        Totals, success rate, top event kinds and domains, and a per-day
        breakdown (UTC days, oldest first).
    """
    status_counts: Counter[DeliveryStatus] = Counter()
    events: Counter[str] = Counter()
    domains: Counter[str] = Counter()
    days: dict[date, DailyBreakdown] = {}

    for delivery in deliveries:
        status_counts[delivery.status] += 1
        events[delivery.event_kind.value] += 1
        domains[delivery.domain] += 1

        day = delivery.created_at.date()
        row = days.setdefault(day, DailyBreakdown(day=day))
        row.total += 1
        if delivery.status == DeliveryStatus.SENT:
            row.successful += 1
        elif delivery.status == DeliveryStatus.FAILED:
            row.failed += 1

    total = sum(status_counts.values())
    successful = status_counts[DeliveryStatus.SENT]
    success_rate = round(successful / total * 100, 2) if total else 0.0

    return DeliveryStatistics(
        window_days=window_days,
        since=since,
        total=total,
        successful=successful,
        failed=status_counts[DeliveryStatus.FAILED],
        pending=status_counts[DeliveryStatus.PENDING] + status_counts[DeliveryStatus.PROCESSING],
        cancelled=status_counts[DeliveryStatus.CANCELLED],
        success_rate=success_rate,
        top_events=_ranked(events),
        top_domains=_ranked(domains),
        daily=[days[d] for d in sorted(days)],
    )


class ReportingMixin:
    """Mixin providing queue status and statistics.

    Expects these attributes from the base class:
    - store: DeliveryStore
    - settings: Settings
    """

    store: DeliveryStore
    settings: Settings

    async def queue_status(self) -> QueueStatus:
        """Counts by status, retries outstanding, and the newest deliveries."""
        counts = await self.store.count_by_status()
        recent = await self.store.recent(self.settings.recent_deliveries_limit)
        return QueueStatus(
            pending=counts.get(DeliveryStatus.PENDING, 0),
            processing=counts.get(DeliveryStatus.PROCESSING, 0),
            sent=counts.get(DeliveryStatus.SENT, 0),
            failed=counts.get(DeliveryStatus.FAILED, 0),
            cancelled=counts.get(DeliveryStatus.CANCELLED, 0),
            retry_needed=await self.store.count_retry_needed(),
            recent=[DeliverySummary.from_delivery(d) for d in recent],
        )

    async def statistics(self, window_days: int = 30) -> DeliveryStatistics:
        """Delivery outcomes for deliveries created in the last `window_days` days.

        Raises:
            ValidationError: window_days is less than 1.
        """
        if window_days < 1:
            raise ValidationError("window_days", "must be at least 1")
        since = utc_now() - timedelta(days=window_days)
        deliveries = await self.store.list_created_since(since)
        return compute_statistics(deliveries, window_days, since)


__all__ = ["TOP_N", "ReportingMixin", "compute_statistics"]
