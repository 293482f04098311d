"""Endpoint administration mixin for WebhookService.

Thin pass-through to the registry so the admin surface can manage
endpoints when Herald hosts the registry itself.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from herald.exceptions import NotFoundError
from herald.models import Endpoint

if TYPE_CHECKING:
    from herald.storage import EndpointRegistry


class EndpointAdminMixin:
    """Mixin providing endpoint registration.

    Expects these attributes from the base class:
    - endpoints: EndpointRegistry
    """

    endpoints: EndpointRegistry

    async def register_endpoint(self, endpoint: Endpoint) -> Endpoint:
        """Register or replace the endpoint for a domain."""
        await self.endpoints.upsert_endpoint(endpoint)
        return endpoint

    async def list_endpoints(self, active_only: bool = False) -> list[Endpoint]:
        return await self.endpoints.list_endpoints(active_only=active_only)

    async def get_endpoint(self, domain: str) -> Endpoint:
        """Fetch a registered endpoint.

        Raises:
            NotFoundError: Unknown domain.
        """
        endpoint = await self.endpoints.get_endpoint(domain)
        if endpoint is None:
            raise NotFoundError("endpoint", domain)
        return endpoint

    async def remove_endpoint(self, domain: str) -> bool:
        return await self.endpoints.remove_endpoint(domain)

    async def set_endpoint_active(self, domain: str, active: bool) -> bool:
        """Suspend or reactivate an endpoint.

        Reactivation also resets the failure counter so the endpoint is not
        suspended again by its next failure.
        """
        endpoint = await self.endpoints.get_endpoint(domain)
        if endpoint is None:
            return False
        if active and endpoint.consecutive_failures:
            endpoint.consecutive_failures = 0
            endpoint.active = True
            await self.endpoints.upsert_endpoint(endpoint)
            return True
        return await self.endpoints.set_active(domain, active)


__all__ = ["EndpointAdminMixin"]
