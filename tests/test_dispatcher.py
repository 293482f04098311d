"""Tests for the dispatcher: claiming, sending, and recording outcomes."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import AsyncMock, patch

import httpx
import pytest
import structlog
from helpers import FakeClock, RecordingHandler

from herald.audit import MemoryAuditSink
from herald.config import Settings
from herald.exceptions import PersistenceError
from herald.models import DeliveryStatus, Endpoint
from herald.storage import InMemoryDeliveryStore, InMemoryEndpointRegistry
from herald.webhooks import Dispatcher, verify_signature


def make_dispatcher(
    store: InMemoryDeliveryStore,
    registry: InMemoryEndpointRegistry,
    audit: MemoryAuditSink,
    settings: Settings,
    clock: FakeClock,
    handler: RecordingHandler,
) -> Dispatcher:
    return Dispatcher(
        store,
        endpoints=registry,
        audit=audit,
        settings=settings,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        clock=clock,
    )


class RacingStore(InMemoryDeliveryStore):
    """Store where another run claims every due delivery first."""

    async def fetch_due(self, now, limit):
        due = await super().fetch_due(now, limit)
        for delivery in due:
            await self.claim(delivery.id, "claim_other", now)
        return due


class TestDispatchOutcomes:
    """End-to-end delivery outcomes against a mocked endpoint."""

    @pytest.mark.asyncio
    async def test_first_attempt_succeeds(self, store, registry, audit, settings, clock, make_delivery):
        """A 200 on the first attempt should leave the record sent with one attempt."""
        delivery = make_delivery()
        await store.insert(delivery)
        handler = RecordingHandler((200, "thanks"))
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)

        report = await dispatcher.run_once()

        assert report.claimed == 1
        assert report.sent == 1
        stored = await store.get(delivery.id)
        assert stored.status == DeliveryStatus.SENT
        assert stored.attempts == 1
        assert stored.response_code == 200
        assert stored.response_body == "thanks"
        assert stored.sent_at == clock.now
        assert [e.type for e in audit.entries] == ["webhook_delivered"]

    @pytest.mark.asyncio
    async def test_request_is_signed(self, store, registry, audit, settings, clock, make_delivery):
        delivery = make_delivery()
        await store.insert(delivery)
        handler = RecordingHandler(200)
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)

        await dispatcher.run_once()

        request = handler.requests[0]
        assert request.url == "https://shop.example/hooks"
        assert request.content == delivery.payload.encode()
        assert request.headers["X-Event"] == "code_validated"
        assert request.headers["X-Domain"] == "shop.example"
        assert request.headers["X-Delivery"] == delivery.id
        assert verify_signature(request.content, "s3cret", request.headers["X-Signature"])

    @pytest.mark.asyncio
    async def test_three_failures_exhaust_attempts(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        """Three 500s should follow the backoff schedule and end failed."""
        delivery = make_delivery()
        await store.insert(delivery)
        handler = RecordingHandler((500, "down"))
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)

        report = await dispatcher.run_once()
        assert report.retried == 1
        stored = await store.get(delivery.id)
        assert stored.status == DeliveryStatus.PENDING
        assert stored.next_attempt_at == clock.now + timedelta(seconds=60)

        # Not due yet
        assert (await dispatcher.run_once()).claimed == 0

        clock.advance(60)
        await dispatcher.run_once()
        stored = await store.get(delivery.id)
        assert stored.attempts == 2
        assert stored.next_attempt_at == clock.now + timedelta(seconds=300)

        clock.advance(300)
        report = await dispatcher.run_once()
        assert report.failed == 1

        stored = await store.get(delivery.id)
        assert stored.status == DeliveryStatus.FAILED
        assert stored.attempts == 3
        assert stored.next_attempt_at is None
        assert stored.response_code == 500
        assert "Max attempts exceeded" in stored.error_message
        assert len(handler.requests) == 3
        assert [e.attempt for e in audit.entries] == [1, 2, 3]

        # Failed deliveries are never picked up again
        clock.advance(86400)
        assert (await dispatcher.run_once()).claimed == 0

    @pytest.mark.asyncio
    async def test_backoff_past_schedule_uses_default_delay(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        """Five failures should wait 60, 300, 900, then the 3600 default."""
        delivery = make_delivery(max_attempts=5)
        await store.insert(delivery)
        dispatcher = make_dispatcher(
            store, registry, audit, settings, clock, RecordingHandler(503)
        )

        delays = []
        for _ in range(4):
            await dispatcher.run_once()
            stored = await store.get(delivery.id)
            assert stored.status == DeliveryStatus.PENDING
            delay = (stored.next_attempt_at - clock.now).total_seconds()
            delays.append(delay)
            clock.advance(delay)

        assert delays == [60, 300, 900, 3600]
        assert (await dispatcher.run_once()).failed == 1
        stored = await store.get(delivery.id)
        assert stored.status == DeliveryStatus.FAILED
        assert stored.attempts == 5

    @pytest.mark.asyncio
    async def test_cancelled_delivery_is_not_sent(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        delivery = make_delivery()
        await store.insert(delivery)
        assert await store.cancel(delivery.id)
        handler = RecordingHandler(200)
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)

        report = await dispatcher.run_once()

        assert report.claimed == 0
        assert handler.requests == []
        assert (await store.get(delivery.id)).status == DeliveryStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_reopened_delivery_is_sent_again(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        delivery = make_delivery(max_attempts=1)
        await store.insert(delivery)
        handler = RecordingHandler(500, 200)
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)

        await dispatcher.run_once()
        assert (await store.get(delivery.id)).status == DeliveryStatus.FAILED

        assert await store.reopen(delivery.id, clock.now)
        reopened = await store.get(delivery.id)
        assert reopened.attempts == 0
        assert reopened.next_attempt_at <= clock.now

        await dispatcher.run_once()
        assert (await store.get(delivery.id)).status == DeliveryStatus.SENT

    @pytest.mark.asyncio
    async def test_transport_error_is_recorded(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        delivery = make_delivery()
        await store.insert(delivery)
        handler = RecordingHandler(httpx.ConnectError("connection refused"))
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)

        await dispatcher.run_once()

        stored = await store.get(delivery.id)
        assert stored.status == DeliveryStatus.PENDING
        assert stored.response_code is None
        assert "connection refused" in stored.error_message

    @pytest.mark.asyncio
    async def test_unexpected_error_still_counts_attempt(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        delivery = make_delivery()
        await store.insert(delivery)
        dispatcher = make_dispatcher(
            store, registry, audit, settings, clock, RecordingHandler(200)
        )

        with patch.object(dispatcher, "_send", AsyncMock(side_effect=RuntimeError("boom"))):
            report = await dispatcher.run_once()

        assert report.retried == 1
        stored = await store.get(delivery.id)
        assert stored.attempts == 1
        assert stored.error_message == "Unexpected error: boom"

    @pytest.mark.asyncio
    async def test_response_body_is_truncated(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        delivery = make_delivery()
        await store.insert(delivery)
        settings = settings.model_copy(update={"response_body_max_chars": 10})
        handler = RecordingHandler((500, "x" * 5000))
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)

        await dispatcher.run_once()

        assert (await store.get(delivery.id)).response_body == "x" * 10


class TestClaiming:
    """Tests for batch selection and claim handling."""

    @pytest.mark.asyncio
    async def test_lost_claims_are_skipped(self, registry, audit, settings, clock, make_delivery):
        store = RacingStore()
        await store.insert_many([make_delivery(), make_delivery()])
        handler = RecordingHandler(200)
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)

        report = await dispatcher.run_once()

        assert report.skipped == 2
        assert report.claimed == 0
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_batch_size_limits_claims(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        await store.insert_many([make_delivery() for _ in range(5)])
        settings = settings.model_copy(update={"dispatch_batch_size": 2})
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, RecordingHandler(200))

        assert (await dispatcher.run_once()).sent == 2
        assert (await dispatcher.run_once()).sent == 2
        assert (await dispatcher.run_once()).sent == 1

    @pytest.mark.asyncio
    async def test_concurrent_sends(self, store, registry, audit, settings, clock, make_delivery):
        await store.insert_many([make_delivery() for _ in range(4)])
        settings = settings.model_copy(update={"max_concurrent_deliveries": 3})
        handler = RecordingHandler(200)
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)

        report = await dispatcher.run_once()

        assert report.sent == 4
        assert len(handler.requests) == 4

    @pytest.mark.asyncio
    async def test_empty_queue(self, store, registry, audit, settings, clock):
        handler = RecordingHandler(200)
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)
        report = await dispatcher.run_once()
        assert report.model_dump() == {
            "claimed": 0,
            "sent": 0,
            "retried": 0,
            "failed": 0,
            "skipped": 0,
        }


class TestEndpointHealth:
    """Tests for consecutive failure tracking and suspension."""

    @pytest.mark.asyncio
    async def test_success_resets_failures(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        await registry.record_delivery_result("shop.example", False, clock.now)
        await store.insert(make_delivery())
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, RecordingHandler(200))

        await dispatcher.run_once()

        endpoint = await registry.get_endpoint("shop.example")
        assert endpoint.consecutive_failures == 0
        assert endpoint.last_sent_at == clock.now

    @pytest.mark.asyncio
    async def test_endpoint_suspended_at_threshold(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        settings = settings.model_copy(update={"endpoint_failure_threshold": 2})
        await store.insert_many([make_delivery() for _ in range(3)])
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, RecordingHandler(500))

        await dispatcher.run_once()

        endpoint = await registry.get_endpoint("shop.example")
        assert endpoint.active is False
        assert endpoint.consecutive_failures == 3
        suspensions = [e for e in audit.entries if e.type == "endpoint_suspended"]
        assert len(suspensions) == 1

    @pytest.mark.asyncio
    async def test_zero_threshold_never_suspends(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        settings = settings.model_copy(update={"endpoint_failure_threshold": 0})
        await store.insert_many([make_delivery() for _ in range(3)])
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, RecordingHandler(500))

        await dispatcher.run_once()

        assert (await registry.get_endpoint("shop.example")).active is True

    @pytest.mark.asyncio
    async def test_removed_endpoint_does_not_block_delivery(
        self, store, registry, audit, settings, clock, make_delivery
    ):
        """Deliveries carry their own URL, so removing the endpoint is harmless."""
        delivery = make_delivery()
        await store.insert(delivery)
        await registry.remove_endpoint("shop.example")
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, RecordingHandler(200))

        await dispatcher.run_once()

        assert (await store.get(delivery.id)).status == DeliveryStatus.SENT


class FailingAuditSink(MemoryAuditSink):
    """Sink whose writes always fail."""

    async def record(self, entry):
        raise PersistenceError("activity write failed")


class ContextCapturingSink(MemoryAuditSink):
    """Sink that remembers the logging context active at each write."""

    def __init__(self):
        super().__init__()
        self.contexts = []

    async def record(self, entry):
        self.contexts.append(structlog.contextvars.get_contextvars())
        await super().record(entry)


class TestReporting:
    """Tests for the audit and health side effects of an attempt."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("concurrency", [1, 3])
    async def test_failing_audit_sink_does_not_stop_batch(
        self, store, registry, settings, clock, make_delivery, concurrency
    ):
        deliveries = [make_delivery() for _ in range(2)]
        await store.insert_many(deliveries)
        settings = settings.model_copy(update={"max_concurrent_deliveries": concurrency})
        handler = RecordingHandler(200)
        dispatcher = make_dispatcher(
            store, registry, FailingAuditSink(), settings, clock, handler
        )

        report = await dispatcher.run_once()

        assert report.sent == 2
        assert len(handler.requests) == 2
        for delivery in deliveries:
            assert (await store.get(delivery.id)).status == DeliveryStatus.SENT
        assert (await registry.get_endpoint("shop.example")).last_sent_at == clock.now

    @pytest.mark.asyncio
    async def test_failing_suspension_record_keeps_endpoint_suspended(
        self, store, registry, settings, clock, make_delivery
    ):
        settings = settings.model_copy(update={"endpoint_failure_threshold": 1})
        await store.insert_many([make_delivery() for _ in range(2)])
        dispatcher = make_dispatcher(
            store, registry, FailingAuditSink(), settings, clock, RecordingHandler(500)
        )

        report = await dispatcher.run_once()

        assert report.retried == 2
        assert (await registry.get_endpoint("shop.example")).active is False

    @pytest.mark.asyncio
    async def test_run_is_bound_to_log_context(
        self, store, registry, settings, clock, make_delivery
    ):
        await store.insert_many([make_delivery() for _ in range(2)])
        sink = ContextCapturingSink()
        dispatcher = make_dispatcher(store, registry, sink, settings, clock, RecordingHandler(200))

        await dispatcher.run_once()

        runs = {context.get("dispatch_run") for context in sink.contexts}
        assert len(runs) == 1
        assert runs.pop().startswith("claim_")
        assert "dispatch_run" not in structlog.contextvars.get_contextvars()


class TestSendNow:
    """Tests for synchronous sends that bypass the queue."""

    @pytest.mark.asyncio
    async def test_send_now(self, store, registry, audit, settings, clock):
        handler = RecordingHandler((200, "pong"))
        dispatcher = make_dispatcher(store, registry, audit, settings, clock, handler)

        result = await dispatcher.send_now(
            "https://probe.example/h",
            '{"ping":true}',
            secret=None,
            domain="test",
            event_kind="webhook_test",
        )

        assert result.success
        assert result.response_code == 200
        assert result.body == "pong"
        assert "X-Signature" not in handler.requests[0].headers
        assert len(store) == 0
        assert audit.entries == []

    @pytest.mark.asyncio
    async def test_close_keeps_injected_client(self, store, registry, audit, settings, clock):
        client = httpx.AsyncClient(transport=httpx.MockTransport(RecordingHandler(200)))
        dispatcher = Dispatcher(store, settings=settings, client=client)
        await dispatcher.close()
        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    async def test_close_owned_client(self, store, settings):
        dispatcher = Dispatcher(store, settings=settings)
        await dispatcher.close()
        assert dispatcher._client.is_closed


@pytest.fixture
def inactive_endpoint() -> Endpoint:
    return Endpoint(domain="off.example", callback_url="https://off.example/h", active=False)


@pytest.mark.asyncio
async def test_inactive_endpoint_queued_deliveries_still_sent(
    store, audit, settings, clock, make_delivery, inactive_endpoint
):
    """Suspension only stops new enqueues; queued deliveries keep their schedule."""
    registry = InMemoryEndpointRegistry([inactive_endpoint])
    delivery = make_delivery(endpoint=inactive_endpoint)
    await store.insert(delivery)
    dispatcher = make_dispatcher(store, registry, audit, settings, clock, RecordingHandler(200))

    await dispatcher.run_once()

    assert (await store.get(delivery.id)).status == DeliveryStatus.SENT
