"""Herald service layer.

Provides the high-level WebhookService for queueing, dispatching, and
reporting on webhook deliveries.

Example:
    ```python
    from herald.service import WebhookService

    async with WebhookService.create() as herald:
        await herald.enqueue("shop.example", "code_validated", {"code": "SAVE10"})
        await herald.dispatch()
    ```
"""

from .base import WebhookService
from .reporting import compute_statistics

__all__ = ["WebhookService", "compute_statistics"]
