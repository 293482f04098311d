"""Test doubles shared across test modules."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any

import httpx

T0 = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class FakeClock:
    """Controllable clock for dispatcher tests."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now = self.now + timedelta(seconds=seconds)
        return self.now


class RecordingHandler:
    """httpx.MockTransport handler that replays canned responses.

    Each call pops the next entry of `responses`; the last entry repeats.
    An entry is a status code, a (status, body) pair, or an exception
    instance to raise.
    """

    def __init__(self, *responses: Any) -> None:
        self.responses = list(responses) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        spec = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(spec, Exception):
            raise spec
        if isinstance(spec, tuple):
            status, body = spec
            return httpx.Response(status, text=body)
        return httpx.Response(spec, text="ok")
