"""
Admin Provider API Endpoints.

Store approval workflow, commission and featuring.
"""

from fastapi import APIRouter, Body, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from backoffice.app.api.v1.results import unwrap
from backoffice.app.core.guards import require_admin
from backoffice.app.db.session import get_db
from backoffice.app.domain.admin import provider_admin
from backoffice.app.models.enums import ProviderStatus
from backoffice.app.schemas.admin import (
    ApproveProviderRequest, CommissionUpdateRequest, ProviderResponse, ProviderStats, ReasonRequest
)
from backoffice.app.schemas.common import PagedResponse

router = APIRouter(prefix="/admin/providers", tags=["Admin - Providers"])


@router.get("", response_model=PagedResponse)
async def list_providers(
    provider_status: Optional[ProviderStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    governorate_id: Optional[int] = Query(None),
    category: Optional[str] = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    data = unwrap(await provider_admin.list_providers(
        db, provider_status, search, governorate_id, category, page, page_size
    ))
    return PagedResponse(
        items=[ProviderResponse.model_validate(row) for row in data["items"]],
        meta=data["meta"],
    )


@router.get("/stats", response_model=ProviderStats)
async def provider_stats(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await provider_admin.provider_stats(db))


@router.get("/{provider_id}", response_model=ProviderResponse)
async def get_provider(
    provider_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await provider_admin.get_provider(db, provider_id))


@router.post("/{provider_id}/approve", response_model=ProviderResponse)
async def approve_provider(
    provider_id: int = Path(...),
    data: Optional[ApproveProviderRequest] = Body(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    rate = data.commission_rate if data else None
    return unwrap(await provider_admin.approve_provider(db, current_user["user_id"], provider_id, rate))


@router.post("/{provider_id}/reject", response_model=ProviderResponse)
async def reject_provider(
    data: ReasonRequest,
    provider_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await provider_admin.reject_provider(db, current_user["user_id"], provider_id, data.reason))


@router.post("/{provider_id}/suspend", response_model=ProviderResponse)
async def suspend_provider(
    data: ReasonRequest,
    provider_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await provider_admin.suspend_provider(db, current_user["user_id"], provider_id, data.reason))


@router.post("/{provider_id}/reactivate", response_model=ProviderResponse)
async def reactivate_provider(
    provider_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await provider_admin.reactivate_provider(db, current_user["user_id"], provider_id))


@router.patch("/{provider_id}/commission", response_model=ProviderResponse)
async def update_commission(
    data: CommissionUpdateRequest,
    provider_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await provider_admin.update_provider_commission(
        db, current_user["user_id"], provider_id, data.commission_rate
    ))


@router.post("/{provider_id}/featured", response_model=ProviderResponse)
async def toggle_featured(
    provider_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return unwrap(await provider_admin.toggle_provider_featured(db, current_user["user_id"], provider_id))
