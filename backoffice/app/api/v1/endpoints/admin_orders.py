"""
Admin Order API Endpoints.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from backoffice.app.api.v1.results import unwrap
from backoffice.app.core.guards import require_admin
from backoffice.app.db.session import get_db
from backoffice.app.domain.admin import order_admin
from backoffice.app.models.enums import OrderStatus
from backoffice.app.schemas.admin import (
    OrderResponse, OrderStats, OrderStatusUpdateRequest, ReasonRequest, RefundRequest, RefundResponse
)
from backoffice.app.schemas.common import PagedResponse

router = APIRouter(prefix="/admin/orders", tags=["Admin - Orders"])


@router.get("", response_model=PagedResponse)
async def list_orders(
    order_status: Optional[OrderStatus] = Query(None, alias="status"),
    provider_id: Optional[int] = Query(None),
    customer_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    data = unwrap(await order_admin.list_orders(
        db, order_status, provider_id, customer_id, search, page, page_size
    ))
    return PagedResponse(
        items=[OrderResponse.model_validate(row) for row in data["items"]],
        meta=data["meta"],
    )


@router.get("/stats", response_model=OrderStats)
async def order_stats(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await order_admin.order_stats(db))


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await order_admin.get_order(db, order_id))


@router.post("/{order_id}/cancel", response_model=OrderResponse)
async def cancel_order(
    data: ReasonRequest,
    order_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await order_admin.cancel_order(db, current_user["user_id"], order_id, data.reason))


@router.post("/{order_id}/refund")
async def initiate_refund(
    data: RefundRequest,
    order_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    outcome = unwrap(await order_admin.initiate_refund(
        db, current_user["user_id"], order_id, data.amount, data.reason
    ))
    return {
        "order": OrderResponse.model_validate(outcome["order"]),
        "refund": RefundResponse.model_validate(outcome["refund"]),
    }


@router.patch("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    data: OrderStatusUpdateRequest,
    order_id: int = Path(...),
    note: Optional[str] = Query(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await order_admin.update_order_status(
        db, current_user["user_id"], order_id, data.status, note
    ))
