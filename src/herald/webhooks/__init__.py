"""Webhook delivery engine for Herald.

Provides envelope construction, HMAC signing, the dispatcher that sends
queued deliveries with backoff retry, and broadcast fan-out.

Example:
    ```python
    from herald.webhooks import Dispatcher, build_envelope, new_delivery

    envelope = build_envelope("shop.example", "code_validated", {"code": "SAVE10"})
    await store.insert(new_delivery(endpoint, envelope, max_attempts=3))

    dispatcher = Dispatcher(store, endpoints=registry)
    await dispatcher.run_once()
    ```
"""

from .backoff import DEFAULT_BACKOFF_SCHEDULE, DEFAULT_BACKOFF_SECONDS, backoff
from .broadcast import Broadcaster
from .dispatcher import Dispatcher
from .payload import build_envelope, new_delivery
from .signing import compute_signature, verify_signature
from .transport import USER_AGENT, AttemptOutcome, build_headers, post_payload

__all__ = [
    "DEFAULT_BACKOFF_SCHEDULE",
    "DEFAULT_BACKOFF_SECONDS",
    "USER_AGENT",
    "AttemptOutcome",
    "Broadcaster",
    "Dispatcher",
    "backoff",
    "build_envelope",
    "build_headers",
    "compute_signature",
    "new_delivery",
    "post_payload",
    "verify_signature",
]
