"""
Custom Order API Endpoints.

Merchant pricing workbench, the merchant realtime stream, and the
customer side of the request lifecycle.
"""

from fastapi import APIRouter, Depends, Path, Query, status
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from backoffice.app.core.clock import utcnow
from backoffice.app.core.guards import get_current_provider, require_role
from backoffice.app.core.redis_client import get_redis
from backoffice.app.db.session import get_db
from backoffice.app.domain.pricing.pricing_service import CustomOrderService
from backoffice.app.domain.pricing.summary import summarize
from backoffice.app.models.enums import CustomRequestStatus, UserRole
from backoffice.app.models.provider import Provider
from backoffice.app.schemas.custom_order import (
    CustomerResponseRequest, CustomOrderRequestCreate, CustomOrderRequestResponse, PriceHistoryEntry,
    PricingSummary, PricingWorkbenchResponse, SubmitPricingRequest, SummarizeRequest
)
from backoffice.app.services.realtime import stream_request_changes

router = APIRouter(prefix="/provider/custom-orders", tags=["Provider - Custom Orders"])
customer_router = APIRouter(prefix="/customer/custom-orders", tags=["Customer - Custom Orders"])


@router.get("", response_model=List[CustomOrderRequestResponse])
async def list_requests(
    request_status: Optional[CustomRequestStatus] = Query(None, alias="status"),
    provider: Provider = Depends(get_current_provider),
    db: AsyncSession = Depends(get_db)
):
    return await CustomOrderService.list_requests(db, provider, request_status)


@router.get("/stream")
async def stream_changes(
    provider: Provider = Depends(get_current_provider),
    redis=Depends(get_redis)
):
    """
    Server-Sent Events stream of change notifications for this store.

    Events carry only the table, event type and id; clients reload.
    """
    return StreamingResponse(
        stream_request_changes(redis, provider.id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@router.get("/price-history", response_model=List[PriceHistoryEntry])
async def price_history(
    name: str = Query(..., min_length=1),
    limit: int = Query(10, ge=1, le=50),
    provider: Provider = Depends(get_current_provider),
    db: AsyncSession = Depends(get_db)
):
    return await CustomOrderService.price_history_lookup(db, provider.id, name, limit)


@router.post("/summary", response_model=PricingSummary)
async def preview_summary(
    data: SummarizeRequest,
    provider: Provider = Depends(get_current_provider)
):
    """Live totals for the workbench; nothing is stored."""
    return summarize(data.items, data.delivery_fee)


@router.get("/{request_id}", response_model=PricingWorkbenchResponse)
async def get_request(
    request_id: int = Path(...),
    provider: Provider = Depends(get_current_provider),
    db: AsyncSession = Depends(get_db)
):
    request = await CustomOrderService.get_request(db, provider, request_id)
    return PricingWorkbenchResponse(
        request=CustomOrderRequestResponse.model_validate(request),
        time_remaining=CustomOrderService.countdown(request, utcnow()),
    )


@router.post("/{request_id}/pricing", response_model=CustomOrderRequestResponse)
async def submit_pricing(
    data: SubmitPricingRequest,
    request_id: int = Path(...),
    provider: Provider = Depends(get_current_provider),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    return await CustomOrderService.submit_pricing(db, redis, provider, request_id, data)


# Customer side

@customer_router.post("", response_model=CustomOrderRequestResponse, status_code=status.HTTP_201_CREATED)
async def create_request(
    data: CustomOrderRequestCreate,
    current_user: dict = Depends(require_role([UserRole.CUSTOMER])),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    return await CustomOrderService.create_request(db, redis, current_user["user_id"], data)


@customer_router.post("/{request_id}/respond", response_model=CustomOrderRequestResponse)
async def respond_to_pricing(
    data: CustomerResponseRequest,
    request_id: int = Path(...),
    current_user: dict = Depends(require_role([UserRole.CUSTOMER])),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    return await CustomOrderService.customer_respond(
        db, redis, current_user["user_id"], request_id, data.decision
    )
