"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import httpx
import pytest

# Add tests directory to path so helpers can be imported
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from helpers import T0, FakeClock, RecordingHandler  # noqa: E402

from herald.audit import MemoryAuditSink  # noqa: E402
from herald.config import Settings  # noqa: E402
from herald.models import Delivery, Endpoint, EventKind  # noqa: E402
from herald.storage import InMemoryDeliveryStore, InMemoryEndpointRegistry  # noqa: E402
from herald.webhooks import build_envelope, new_delivery  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    """Settings with the default schedule and a small failure threshold."""
    return Settings(
        env="test",
        backoff_schedule=[60, 300, 900],
        backoff_default_seconds=3600,
        default_max_attempts=3,
        endpoint_failure_threshold=5,
        response_body_max_chars=1000,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def shop_endpoint() -> Endpoint:
    """An active, signed endpoint subscribed to everything."""
    return Endpoint(
        domain="shop.example",
        callback_url="https://shop.example/hooks",
        secret="s3cret",
    )


@pytest.fixture
def store() -> InMemoryDeliveryStore:
    return InMemoryDeliveryStore()


@pytest.fixture
def registry(shop_endpoint: Endpoint) -> InMemoryEndpointRegistry:
    return InMemoryEndpointRegistry([shop_endpoint])


@pytest.fixture
def audit() -> MemoryAuditSink:
    return MemoryAuditSink()


@pytest.fixture
def make_client() -> Callable[[RecordingHandler], httpx.AsyncClient]:
    """Build an AsyncClient whose requests are answered by a handler."""

    def factory(handler: RecordingHandler) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory


@pytest.fixture
def make_delivery(shop_endpoint: Endpoint) -> Callable[..., Delivery]:
    """Build a pending delivery for shop.example."""

    def factory(
        event_kind: EventKind = EventKind.CODE_VALIDATED,
        data: dict[str, Any] | None = None,
        *,
        endpoint: Endpoint | None = None,
        max_attempts: int = 3,
        created_at: datetime = T0,
    ) -> Delivery:
        target = endpoint or shop_endpoint
        envelope = build_envelope(
            target.domain,
            event_kind,
            data if data is not None else {"code": "SAVE10"},
            timestamp=created_at,
        )
        return new_delivery(target, envelope, max_attempts, now=created_at)

    return factory
