"""Dispatcher: claims due deliveries and performs the HTTP POST.

One run_once() call processes up to one batch:

1. Fetch due deliveries, oldest first.
2. Claim each one atomically right before sending it. A lost claim means
   another run owns the delivery and it is skipped.
3. POST the stored payload, classify the outcome, and write it back while
   the claim is still held.
4. Report the attempt to the audit sink and update endpoint health.

Delivery problems never propagate: they are recorded on the delivery and
retried by later runs. Only delivery store failures escape run_once().
Audit and endpoint health failures are logged and the batch continues.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime

import httpx

from herald.audit import AuditSink, LoggingAuditSink
from herald.config import Settings
from herald.config import settings as default_settings
from herald.exceptions import HeraldError, MaxAttemptsExceededError
from herald.logging import bind_context, unbind_context
from herald.models import (
    ActivityEntry,
    Delivery,
    DeliveryStatus,
    DispatchReport,
    TestResult,
    generate_id,
    utc_now,
)
from herald.storage import DeliveryStore, EndpointRegistry

from .backoff import backoff
from .transport import AttemptOutcome, build_headers, post_payload

logger = logging.getLogger(__name__)


class Dispatcher:
    """Sends due deliveries and records their outcomes.

    Example:
        ```python
        dispatcher = Dispatcher(store, endpoints=registry)
        report = await dispatcher.run_once()
        print(report.sent, report.retried, report.failed)
        ```
    """

    def __init__(
        self,
        store: DeliveryStore,
        *,
        endpoints: EndpointRegistry | None = None,
        audit: AuditSink | None = None,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """Initialize the dispatcher.

        Args:
            store: Delivery table.
            endpoints: Registry whose failure counters are maintained. Optional.
            audit: Activity sink. Defaults to the structured log.
            settings: Settings override. Defaults to the global settings.
            client: Shared HTTP client. One is created (and owned) if omitted.
            clock: Source of the current time.
        """
        self._store = store
        self._endpoints = endpoints
        self._audit = audit or LoggingAuditSink()
        self._settings = settings or default_settings
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient()
        self._clock = clock

    async def close(self) -> None:
        """Close the HTTP client if this dispatcher created it."""
        if self._owns_client:
            await self._client.aclose()

    async def run_once(self) -> DispatchReport:
        """Process one batch of due deliveries.

        Returns:
            Counts of claimed, sent, retried, failed, and skipped deliveries.

        Raises:
            PersistenceError: If an outcome could not be written back.
        """
        now = self._clock()
        due = await self._store.fetch_due(now, self._settings.dispatch_batch_size)
        report = DispatchReport()
        if not due:
            return report

        token = generate_id("claim")
        bind_context(dispatch_run=token)
        try:
            await self._process_batch(due, token, report)
        finally:
            unbind_context("dispatch_run")

        logger.info(
            "Dispatch run finished: %d claimed, %d sent, %d retried, %d failed, %d skipped",
            report.claimed,
            report.sent,
            report.retried,
            report.failed,
            report.skipped,
        )
        return report

    async def _process_batch(
        self, due: list[Delivery], token: str, report: DispatchReport
    ) -> None:
        limit = self._settings.max_concurrent_deliveries
        if limit <= 1:
            for delivery in due:
                await self._process(delivery.id, token, report)
            return

        semaphore = asyncio.Semaphore(limit)

        async def bounded(delivery_id: str) -> None:
            async with semaphore:
                await self._process(delivery_id, token, report)

        # Every task finishes before the first store failure is raised
        results = await asyncio.gather(*(bounded(d.id) for d in due), return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _process(self, delivery_id: str, token: str, report: DispatchReport) -> None:
        delivery = await self._store.claim(delivery_id, token, self._clock())
        if delivery is None:
            report.skipped += 1
            return
        report.claimed += 1

        try:
            outcome = await self._send(delivery)
        except Exception as e:
            # Any send failure still records an attempt
            logger.exception("Unexpected error sending delivery %s", delivery.id)
            outcome = AttemptOutcome(success=False)
            outcome_error = f"Unexpected error: {e}"
        else:
            outcome_error = outcome.error_message

        finished_at = self._clock()
        self._apply_outcome(delivery, outcome, outcome_error, finished_at)

        if not await self._store.complete(delivery, token):
            logger.warning("Claim on delivery %s was lost before completion", delivery.id)
            report.skipped += 1
            return

        if delivery.status == DeliveryStatus.SENT:
            report.sent += 1
        elif delivery.status == DeliveryStatus.FAILED:
            report.failed += 1
        else:
            report.retried += 1

        await self._report_attempt(delivery, outcome, finished_at)

    async def _report_attempt(
        self, delivery: Delivery, outcome: AttemptOutcome, finished_at: datetime
    ) -> None:
        try:
            await self._audit.record(
                ActivityEntry.for_attempt(
                    success=outcome.success,
                    domain=delivery.domain,
                    event_kind=delivery.event_kind.value,
                    delivery_id=delivery.id,
                    attempt=delivery.attempts,
                    response_code=outcome.response_code or None,
                    elapsed_ms=outcome.elapsed_ms,
                    error=delivery.error_message,
                )
            )
        except HeraldError as e:
            logger.error("Could not record attempt on delivery %s: %s", delivery.id, e.message)

        try:
            await self._update_endpoint_health(delivery.domain, outcome.success, finished_at)
        except HeraldError as e:
            logger.error("Could not update health of %s: %s", delivery.domain, e.message)

    async def _send(self, delivery: Delivery) -> AttemptOutcome:
        headers = build_headers(
            payload=delivery.payload,
            event_kind=delivery.event_kind.value,
            domain=delivery.domain,
            secret=delivery.secret,
            sent_at=self._clock(),
            delivery_id=delivery.id,
        )
        return await post_payload(
            self._client,
            delivery.callback_url,
            delivery.payload,
            headers,
            self._settings.delivery_timeout_seconds,
        )

    def _apply_outcome(
        self,
        delivery: Delivery,
        outcome: AttemptOutcome,
        error: str | None,
        now: datetime,
    ) -> None:
        body = self._truncate(outcome.body)
        code = outcome.response_code or None

        if outcome.success:
            delivery.mark_sent(now, outcome.response_code, body)
            return

        message = error or "Delivery failed"
        attempt = delivery.attempts + 1
        if attempt >= delivery.max_attempts:
            message = MaxAttemptsExceededError(delivery.id, attempt, message).message
            logger.warning("Delivery %s failed permanently: %s", delivery.id, message)
        delivery.mark_attempt_failed(
            now,
            message,
            retry_delay_seconds=backoff(
                attempt,
                self._settings.backoff_schedule,
                self._settings.backoff_default_seconds,
            ),
            response_code=code,
            response_body=body,
        )

    def _truncate(self, body: str | None) -> str | None:
        if body is None:
            return None
        return body[: self._settings.response_body_max_chars]

    async def _update_endpoint_health(self, domain: str, success: bool, now: datetime) -> None:
        if self._endpoints is None:
            return
        endpoint = await self._endpoints.record_delivery_result(domain, success, now)
        threshold = self._settings.endpoint_failure_threshold
        if (
            endpoint is None
            or success
            or threshold <= 0
            or not endpoint.active
            or endpoint.consecutive_failures < threshold
        ):
            return

        if await self._endpoints.set_active(domain, False):
            logger.warning(
                "Suspended endpoint %s after %d consecutive failures",
                domain,
                endpoint.consecutive_failures,
            )
            await self._audit.record(
                ActivityEntry.for_suspension(domain, endpoint.consecutive_failures)
            )

    async def send_now(
        self,
        url: str,
        payload: str,
        *,
        secret: str | None,
        domain: str,
        event_kind: str,
    ) -> TestResult:
        """POST a payload immediately, bypassing the queue.

        Nothing is persisted and endpoint health is untouched.

        Returns:
            The raw outcome of the attempt.
        """
        headers = build_headers(
            payload=payload,
            event_kind=event_kind,
            domain=domain,
            secret=secret,
            sent_at=self._clock(),
        )
        outcome = await post_payload(
            self._client, url, payload, headers, self._settings.delivery_timeout_seconds
        )
        return TestResult(
            success=outcome.success,
            response_code=outcome.response_code,
            elapsed_ms=outcome.elapsed_ms,
            body=self._truncate(outcome.body),
            error=outcome.error_message,
        )


__all__ = ["Dispatcher"]
