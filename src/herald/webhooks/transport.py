"""HTTP transport for webhook deliveries.

Builds the outbound headers and performs one POST, classifying the result
into success, transport failure, or HTTP failure. Never raises for
delivery problems: the outcome carries the error instead.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime

import httpx

from herald._version import __version__
from herald.exceptions import DeliveryError, DeliveryHTTPError, TransportError

from .signing import compute_signature

USER_AGENT = f"Herald/{__version__}"


@dataclass
class AttemptOutcome:
    """Result of one HTTP POST.

    Attributes:
        success: True for a 2xx response.
        response_code: HTTP status, 0 when no response was received.
        body: Response body (untruncated).
        elapsed_ms: Wall time of the request.
        error: Retryable error for unsuccessful attempts.
    """

    success: bool
    response_code: int = 0
    body: str | None = None
    elapsed_ms: int = 0
    error: DeliveryError | None = None

    @property
    def error_message(self) -> str | None:
        return self.error.message if self.error else None


def build_headers(
    *,
    payload: str,
    event_kind: str,
    domain: str,
    secret: str | None,
    sent_at: datetime,
    delivery_id: str | None = None,
) -> dict[str, str]:
    """Headers for a webhook POST.

    X-Signature is present only when a secret is configured.
    """
    headers = {
        "Content-Type": "application/json",
        "User-Agent": USER_AGENT,
        "X-Event": event_kind,
        "X-Domain": domain,
        "X-Timestamp": str(int(sent_at.timestamp())),
    }
    if delivery_id:
        headers["X-Delivery"] = delivery_id
    if secret:
        headers["X-Signature"] = compute_signature(payload, secret)
    return headers


async def post_payload(
    client: httpx.AsyncClient,
    url: str,
    payload: str,
    headers: dict[str, str],
    timeout: float,
) -> AttemptOutcome:
    """POST the payload bytes and classify the response.

    Args:
        client: Shared async HTTP client.
        url: Callback URL.
        payload: Serialized envelope, sent byte for byte.
        headers: Headers from build_headers().
        timeout: Per-request timeout in seconds.

    Returns:
        AttemptOutcome describing the attempt.
    """
    start = time.monotonic()
    try:
        response = await client.post(
            url,
            content=payload.encode("utf-8"),
            headers=headers,
            timeout=timeout,
            follow_redirects=False,
        )
    except httpx.TimeoutException:
        return AttemptOutcome(
            success=False,
            elapsed_ms=_elapsed_ms(start),
            error=TransportError("Request timeout"),
        )
    except (httpx.RequestError, httpx.InvalidURL) as e:
        return AttemptOutcome(
            success=False,
            elapsed_ms=_elapsed_ms(start),
            error=TransportError(str(e) or type(e).__name__),
        )

    elapsed = _elapsed_ms(start)
    body = response.text or None
    if 200 <= response.status_code < 300:
        return AttemptOutcome(
            success=True,
            response_code=response.status_code,
            body=body,
            elapsed_ms=elapsed,
        )

    return AttemptOutcome(
        success=False,
        response_code=response.status_code,
        body=body,
        elapsed_ms=elapsed,
        error=DeliveryHTTPError(response.status_code),
    )


def _elapsed_ms(start: float) -> int:
    return int(round((time.monotonic() - start) * 1000))
