"""FastAPI router for Herald webhook management endpoints.

HeraldError subclasses raised by the service propagate to the exception
handlers registered in create_app(), which map them to status codes.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from herald._version import __version__
from herald.exceptions import NotFoundError
from herald.models import DeliveryStatistics, DispatchReport, Endpoint, QueueStatus, TestResult
from herald.service import WebhookService

from .schemas import (
    ActionResponse,
    BroadcastRequest,
    BroadcastResponse,
    BulkCancelRequest,
    BulkCancelResponse,
    DeliveryResponse,
    EndpointActiveRequest,
    EndpointRequest,
    EndpointResponse,
    EnqueueRequest,
    EnqueueResponse,
    EventsResponse,
    HealthResponse,
    PurgeRequest,
    PurgeResponse,
    SweepResponse,
    TestSendRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()

# Service instance (set by app lifespan)
_service: WebhookService | None = None


def set_service(service: WebhookService | None) -> None:
    """Set the global service instance."""
    global _service
    _service = service


async def get_service() -> WebhookService:
    """Dependency to get the WebhookService instance."""
    if _service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service not initialized",
        )
    return _service


ServiceDep = Annotated[WebhookService, Depends(get_service)]


@router.get("/health", response_model=HealthResponse, tags=["system"])
async def health_check() -> HealthResponse:
    """Check service health."""
    storage_connected = _service is not None
    return HealthResponse(
        status="healthy" if storage_connected else "unhealthy",
        version=__version__,
        storage_connected=storage_connected,
    )


@router.get("/webhooks/events", response_model=EventsResponse, tags=["webhooks"])
async def list_events(service: ServiceDep) -> EventsResponse:
    """List supported event kinds."""
    return EventsResponse(events=service.supported_events())


@router.post(
    "/webhooks/enqueue",
    response_model=EnqueueResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def enqueue(request: EnqueueRequest, service: ServiceDep) -> EnqueueResponse:
    """Queue one event for one domain.

    Returns 400 for an unknown event or missing data keys and 422 when the
    domain has no usable endpoint. Nothing is queued in either case.
    """
    queued = await service.enqueue(
        request.domain,
        request.event,
        request.data,
        max_attempts=request.max_attempts,
    )
    return EnqueueResponse(queued=queued)


@router.post(
    "/webhooks/broadcast",
    response_model=BroadcastResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["webhooks"],
)
async def broadcast(request: BroadcastRequest, service: ServiceDep) -> BroadcastResponse:
    """Queue an event for every eligible endpoint."""
    queued = await service.broadcast(
        request.event, request.data, max_attempts=request.max_attempts
    )
    return BroadcastResponse(queued=queued)


@router.post("/webhooks/test", response_model=TestResult, tags=["webhooks"])
async def send_test(request: TestSendRequest, service: ServiceDep) -> TestResult:
    """Send a webhook_test event immediately and return the raw outcome."""
    if request.domain is not None:
        return await service.send_test(request.domain)
    return await service.send_test_to_url(str(request.url), request.secret)


@router.get("/webhooks/queue", response_model=QueueStatus, tags=["reporting"])
async def queue_status(service: ServiceDep) -> QueueStatus:
    """Counts by status plus the most recent deliveries."""
    return await service.queue_status()


@router.get("/webhooks/statistics", response_model=DeliveryStatistics, tags=["reporting"])
async def statistics(
    service: ServiceDep,
    window_days: Annotated[int, Query(ge=1, le=365)] = 30,
) -> DeliveryStatistics:
    """Delivery outcomes over the last `window_days` days."""
    return await service.statistics(window_days)


@router.get(
    "/webhooks/deliveries/{delivery_id}",
    response_model=DeliveryResponse,
    tags=["deliveries"],
)
async def get_delivery(delivery_id: str, service: ServiceDep) -> DeliveryResponse:
    """Fetch one delivery record."""
    return DeliveryResponse.from_delivery(await service.get_delivery(delivery_id))


@router.post(
    "/webhooks/deliveries/{delivery_id}/retry",
    response_model=ActionResponse,
    tags=["deliveries"],
)
async def retry_delivery(delivery_id: str, service: ServiceDep) -> ActionResponse:
    """Reopen a failed or pending delivery with a fresh attempt budget."""
    return ActionResponse(delivery_id=delivery_id, success=await service.retry(delivery_id))


@router.post(
    "/webhooks/deliveries/{delivery_id}/cancel",
    response_model=ActionResponse,
    tags=["deliveries"],
)
async def cancel_delivery(delivery_id: str, service: ServiceDep) -> ActionResponse:
    """Cancel a pending delivery."""
    return ActionResponse(delivery_id=delivery_id, success=await service.cancel(delivery_id))


@router.post(
    "/webhooks/deliveries/bulk-cancel",
    response_model=BulkCancelResponse,
    tags=["deliveries"],
)
async def bulk_cancel(request: BulkCancelRequest, service: ServiceDep) -> BulkCancelResponse:
    """Cancel several pending deliveries."""
    cancelled = await service.bulk_cancel(request.delivery_ids)
    return BulkCancelResponse(requested=len(request.delivery_ids), cancelled=cancelled)


@router.post("/webhooks/purge", response_model=PurgeResponse, tags=["maintenance"])
async def purge(request: PurgeRequest, service: ServiceDep) -> PurgeResponse:
    """Delete terminal deliveries older than `days_old` days."""
    return PurgeResponse(deleted=await service.purge(request.days_old))


@router.post("/webhooks/dispatch", response_model=DispatchReport, tags=["maintenance"])
async def dispatch(service: ServiceDep) -> DispatchReport:
    """Run one dispatch batch now."""
    return await service.dispatch()


@router.post("/webhooks/sweep", response_model=SweepResponse, tags=["maintenance"])
async def sweep(service: ServiceDep) -> SweepResponse:
    """Requeue idle failed deliveries and release abandoned claims now."""
    return SweepResponse(requeued=await service.sweep())


@router.get("/webhooks/endpoints", response_model=list[EndpointResponse], tags=["endpoints"])
async def list_endpoints(
    service: ServiceDep,
    active_only: bool = False,
) -> list[EndpointResponse]:
    """List registered endpoints."""
    endpoints = await service.list_endpoints(active_only=active_only)
    return [EndpointResponse.from_endpoint(e) for e in endpoints]


@router.get(
    "/webhooks/endpoints/{domain}", response_model=EndpointResponse, tags=["endpoints"]
)
async def get_endpoint(domain: str, service: ServiceDep) -> EndpointResponse:
    """Fetch one registered endpoint."""
    return EndpointResponse.from_endpoint(await service.get_endpoint(domain))


@router.put(
    "/webhooks/endpoints/{domain}", response_model=EndpointResponse, tags=["endpoints"]
)
async def register_endpoint(
    domain: str, request: EndpointRequest, service: ServiceDep
) -> EndpointResponse:
    """Register or replace the endpoint for a domain."""
    endpoint = await service.register_endpoint(
        Endpoint(domain=domain, **request.model_dump())
    )
    return EndpointResponse.from_endpoint(endpoint)


@router.post(
    "/webhooks/endpoints/{domain}/active",
    response_model=EndpointResponse,
    tags=["endpoints"],
)
async def set_endpoint_active(
    domain: str, request: EndpointActiveRequest, service: ServiceDep
) -> EndpointResponse:
    """Suspend or reactivate an endpoint."""
    if not await service.set_endpoint_active(domain, request.active):
        raise NotFoundError("endpoint", domain)
    return EndpointResponse.from_endpoint(await service.get_endpoint(domain))


@router.delete(
    "/webhooks/endpoints/{domain}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["endpoints"],
)
async def remove_endpoint(domain: str, service: ServiceDep) -> None:
    """Remove a registered endpoint. Queued deliveries are unaffected."""
    if not await service.remove_endpoint(domain):
        raise NotFoundError("endpoint", domain)
    logger.info("Removed endpoint %s", domain)
