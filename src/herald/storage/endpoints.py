"""Endpoint registry operations for Herald storage."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from qdrant_client import models

from herald.models import Endpoint

CAS_RETRIES = 5


class EndpointMixin:
    """Mixin providing EndpointRegistry operations for QdrantStorage.

    Endpoints are keyed by domain. Counter updates are compare-and-swap
    on the record revision so concurrent attempts never lose a failure.
    """

    # These will be provided by the base class
    _upsert_payloads: Any
    _retrieve_payload: Any
    _scroll_all: Any
    _compare_and_swap: Any
    _delete_where: Any
    _new_revision: Any
    _key_to_point_id: Any

    @staticmethod
    def _endpoint_key(domain: str) -> str:
        return f"endpoint/{domain}"

    async def get_endpoint(self, domain: str) -> Endpoint | None:
        """Fetch the endpoint for a domain."""
        payload = await self._retrieve_payload("endpoints", self._endpoint_key(domain))
        if payload is None:
            return None
        payload.pop("revision", None)
        return Endpoint.model_validate(payload)

    async def list_endpoints(self, active_only: bool = False) -> list[Endpoint]:
        """All endpoints, ordered by domain."""
        scroll_filter = None
        if active_only:
            scroll_filter = models.Filter(
                must=[models.FieldCondition(key="active", match=models.MatchValue(value=True))]
            )
        endpoints = []
        for payload in await self._scroll_all("endpoints", scroll_filter):
            payload.pop("revision", None)
            endpoints.append(Endpoint.model_validate(payload))
        return sorted(endpoints, key=lambda e: e.domain)

    async def upsert_endpoint(self, endpoint: Endpoint) -> str:
        """Register or replace an endpoint."""
        payload = endpoint.model_dump(mode="json")
        payload["revision"] = self._new_revision()
        await self._upsert_payloads("endpoints", [(self._endpoint_key(endpoint.domain), payload)])
        return endpoint.domain

    async def remove_endpoint(self, domain: str) -> bool:
        """Remove an endpoint."""
        key = self._endpoint_key(domain)
        if await self._retrieve_payload("endpoints", key) is None:
            return False
        await self._delete_where(
            "endpoints",
            models.Filter(must=[models.HasIdCondition(has_id=[self._key_to_point_id(key)])]),
        )
        return True

    async def _update_endpoint(
        self, domain: str, apply: Callable[[Endpoint], None]
    ) -> Endpoint | None:
        key = self._endpoint_key(domain)
        for _ in range(CAS_RETRIES):
            payload = await self._retrieve_payload("endpoints", key)
            if payload is None:
                return None
            revision = str(payload.pop("revision", ""))
            endpoint = Endpoint.model_validate(payload)
            apply(endpoint)
            if await self._compare_and_swap(
                "endpoints", key, revision, endpoint.model_dump(mode="json")
            ):
                return endpoint
        return None

    async def record_delivery_result(
        self, domain: str, success: bool, now: datetime
    ) -> Endpoint | None:
        """Reset or increment the consecutive failure counter."""

        def apply(endpoint: Endpoint) -> None:
            if success:
                endpoint.consecutive_failures = 0
                endpoint.last_sent_at = now
            else:
                endpoint.consecutive_failures += 1

        return await self._update_endpoint(domain, apply)

    async def set_active(self, domain: str, active: bool) -> bool:
        """Activate or suspend an endpoint."""

        def apply(endpoint: Endpoint) -> None:
            endpoint.active = active

        return await self._update_endpoint(domain, apply) is not None


__all__ = ["EndpointMixin"]
