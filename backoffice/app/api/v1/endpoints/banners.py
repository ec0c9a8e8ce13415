"""
Banner API Endpoints.

Admin management of homepage banners, and partner banner submissions
from merchants.
"""

from fastapi import APIRouter, Depends, File, Path, Query, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from backoffice.app.core.clock import utcnow
from backoffice.app.core.guards import require_admin, get_current_provider
from backoffice.app.db.session import get_db
from backoffice.app.domain.banners.banner_service import BannerService, to_response
from backoffice.app.models.enums import BannerType, BannerStatus
from backoffice.app.models.provider import Provider
from backoffice.app.schemas.banner import (
    BannerCreate, BannerUpdate, BannerResponse, BannerListResponse, BannerReorderRequest,
    BannerReorderResponse, BannerRejectRequest, BannerUploadResponse, PartnerBannerSubmit
)
from backoffice.app.schemas.common import MessageResponse
from backoffice.app.services.audit import log_audit_action, AuditAction, AuditResource

router = APIRouter(prefix="/admin/banners", tags=["Admin - Banners"])
provider_router = APIRouter(prefix="/provider/banners", tags=["Provider - Banners"])


@router.get("", response_model=BannerListResponse)
async def list_banners(
    banner_type: Optional[BannerType] = Query(None),
    banner_status: Optional[BannerStatus] = Query(None, alias="status"),
    search: Optional[str] = Query(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """List banners in display order with per-status counts."""
    banners, counts = await BannerService.list_banners(db, banner_type, banner_status, search)
    return BannerListResponse(banners=banners, counts=counts)


@router.post("", response_model=BannerResponse, status_code=status.HTTP_201_CREATED)
async def create_banner(
    data: BannerCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    banner = await BannerService.create_banner(db, data, created_by=current_user["user_id"])
    return to_response(banner, utcnow())


@router.post("/reorder", response_model=BannerReorderResponse)
async def reorder_banners(
    data: BannerReorderRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """
    Save a new display order.

    The list is always reloaded from the database, so after a partial
    failure the client sees what was actually stored.
    """
    error = await BannerService.reorder_banners(db, data.banner_ids)
    banners, _ = await BannerService.list_banners(db)
    return BannerReorderResponse(success=error is None, error=error, banners=banners)


@router.post("/upload", response_model=BannerUploadResponse)
async def upload_banner_image(
    file: UploadFile = File(...),
    current_user: dict = Depends(require_admin)
):
    content = await file.read()
    url, path = await BannerService.upload_banner_image(content, file.content_type)
    return BannerUploadResponse(url=url, path=path)


@router.get("/{banner_id}", response_model=BannerResponse)
async def get_banner(
    banner_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    banner = await BannerService.get_banner(db, banner_id)
    return to_response(banner, utcnow())


@router.patch("/{banner_id}", response_model=BannerResponse)
async def update_banner(
    data: BannerUpdate,
    banner_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    banner = await BannerService.update_banner(db, banner_id, data)
    return to_response(banner, utcnow())


@router.post("/{banner_id}/toggle", response_model=BannerResponse)
async def toggle_banner(
    banner_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    banner = await BannerService.toggle_active(db, banner_id)
    return to_response(banner, utcnow())


@router.delete("/{banner_id}", response_model=MessageResponse)
async def delete_banner(
    banner_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await BannerService.delete_banner(db, banner_id)
    return MessageResponse(message="Banner deleted")


@router.post("/{banner_id}/approve", response_model=BannerResponse)
async def approve_partner_banner(
    banner_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    banner = await BannerService.approve_partner_banner(db, banner_id, current_user["user_id"])

    await log_audit_action(
        db,
        admin_id=current_user["user_id"],
        resource_code=AuditResource.BANNERS,
        action_code=AuditAction.BANNER_APPROVE,
        entity_type="banner",
        entity_id=banner.id,
        entity_name=banner.title_en,
        old_data={"approval_status": "pending"},
        new_data={"approval_status": banner.approval_status.value},
    )
    return to_response(banner, utcnow())


@router.post("/{banner_id}/reject", response_model=BannerResponse)
async def reject_partner_banner(
    data: BannerRejectRequest,
    banner_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    banner = await BannerService.reject_partner_banner(db, banner_id, current_user["user_id"], data.reason)

    await log_audit_action(
        db,
        admin_id=current_user["user_id"],
        resource_code=AuditResource.BANNERS,
        action_code=AuditAction.BANNER_REJECT,
        entity_type="banner",
        entity_id=banner.id,
        entity_name=banner.title_en,
        old_data={"approval_status": "pending"},
        new_data={"approval_status": banner.approval_status.value},
        reason=data.reason,
    )
    return to_response(banner, utcnow())


# Partner submissions

@provider_router.get("", response_model=List[BannerResponse])
async def list_my_banners(
    provider: Provider = Depends(get_current_provider),
    db: AsyncSession = Depends(get_db)
):
    now = utcnow()
    return [to_response(banner, now) for banner in await BannerService.list_provider_banners(db, provider)]


@provider_router.post("", response_model=BannerResponse, status_code=status.HTTP_201_CREATED)
async def submit_partner_banner(
    data: PartnerBannerSubmit,
    provider: Provider = Depends(get_current_provider),
    db: AsyncSession = Depends(get_db)
):
    banner = await BannerService.submit_partner_banner(db, provider, data)
    return to_response(banner, utcnow())


@provider_router.post("/{banner_id}/cancel", response_model=BannerResponse)
async def cancel_partner_banner(
    banner_id: int = Path(...),
    provider: Provider = Depends(get_current_provider),
    db: AsyncSession = Depends(get_db)
):
    banner = await BannerService.cancel_partner_banner(db, banner_id, provider)
    return to_response(banner, utcnow())
