"""
Banner Service (Domain Logic).

Admin management of homepage banners plus the review flow for banners
submitted by partner stores.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional, List, Dict, Tuple

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.clock import utcnow
from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import (
    ResourceNotFoundError, ValidationFailedError, InvalidStatusTransitionError,
    ForbiddenActionError
)
from backoffice.app.domain.banners.display import derive_status, gradient_text_color
from backoffice.app.models.banner import HomepageBanner
from backoffice.app.models.enums import BannerType, BannerApprovalStatus, BannerStatus
from backoffice.app.models.provider import Provider
from backoffice.app.schemas.banner import (
    BannerCreate, BannerUpdate, BannerResponse, PartnerBannerSubmit
)
from backoffice.app.services.storage import storage_service

logger = logging.getLogger("backoffice.banners")

ALLOWED_IMAGE_TYPES = {
    "image/png": "png",
    "image/jpeg": "jpg",
    "image/webp": "webp",
    "image/gif": "gif",
}

PARTNER_DURATION_DAYS = {
    "1_day": 1,
    "3_days": 3,
    "1_week": 7,
    "1_month": 30,
}


def to_response(banner: HomepageBanner, now: datetime) -> BannerResponse:
    return BannerResponse.model_validate(banner).model_copy(update={
        "status": derive_status(banner, now),
        "text_color": gradient_text_color(banner.gradient_start, banner.gradient_end),
    })


def _require_titles(title_ar: Optional[str], title_en: Optional[str]) -> None:
    if not (title_ar or "").strip() or not (title_en or "").strip():
        raise ValidationFailedError(
            "Both Arabic and English titles are required",
            details={"fields": ["title_ar", "title_en"]}
        )


class BannerService:

    @staticmethod
    async def _get(db: AsyncSession, banner_id: int) -> HomepageBanner:
        result = await db.execute(select(HomepageBanner).where(HomepageBanner.id == banner_id))
        banner = result.scalar_one_or_none()
        if not banner:
            raise ResourceNotFoundError("Banner", banner_id)
        return banner

    @staticmethod
    async def _next_display_order(db: AsyncSession) -> int:
        result = await db.execute(select(func.max(HomepageBanner.display_order)))
        current = result.scalar()
        return 0 if current is None else current + 1

    @staticmethod
    async def list_banners(
        db: AsyncSession,
        banner_type: Optional[BannerType] = None,
        status: Optional[BannerStatus] = None,
        search: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> Tuple[List[BannerResponse], Dict[str, int]]:
        """
        List banners ordered by display_order.

        Returns:
            (banners matching every filter, counts per derived status over the
            type/search selection before the status filter is applied)
        """
        now = now or utcnow()
        query = select(HomepageBanner)

        if banner_type:
            query = query.where(HomepageBanner.banner_type == banner_type)
        if search and search.strip():
            pattern = f"%{search.strip()}%"
            query = query.where(or_(
                HomepageBanner.title_ar.ilike(pattern),
                HomepageBanner.title_en.ilike(pattern),
                HomepageBanner.description_ar.ilike(pattern),
                HomepageBanner.description_en.ilike(pattern),
            ))

        query = query.order_by(HomepageBanner.display_order, HomepageBanner.id)
        result = await db.execute(query)
        rows = [to_response(banner, now) for banner in result.scalars().all()]

        counts = {"all": len(rows)}
        for member in BannerStatus:
            counts[member.value] = sum(1 for row in rows if row.status == member)

        if status:
            rows = [row for row in rows if row.status == status]

        return rows, counts

    @staticmethod
    async def get_banner(db: AsyncSession, banner_id: int) -> HomepageBanner:
        return await BannerService._get(db, banner_id)

    @staticmethod
    async def create_banner(db: AsyncSession, data: BannerCreate, created_by: Optional[int] = None) -> HomepageBanner:
        _require_titles(data.title_ar, data.title_en)

        values = data.model_dump()
        values["title_ar"] = data.title_ar.strip()
        values["title_en"] = data.title_en.strip()
        values["starts_at"] = data.starts_at or utcnow()

        banner = HomepageBanner(
            **values,
            display_order=await BannerService._next_display_order(db),
            created_by=created_by,
        )
        db.add(banner)
        await db.commit()
        await db.refresh(banner)

        logger.info("Banner %s created at position %s", banner.id, banner.display_order)
        return banner

    @staticmethod
    async def update_banner(db: AsyncSession, banner_id: int, data: BannerUpdate) -> HomepageBanner:
        banner = await BannerService._get(db, banner_id)
        changes = data.model_dump(exclude_unset=True)

        _require_titles(
            changes.get("title_ar", banner.title_ar),
            changes.get("title_en", banner.title_en),
        )
        if "starts_at" in changes and changes["starts_at"] is None:
            changes.pop("starts_at")

        for field, value in changes.items():
            setattr(banner, field, value.strip() if field in ("title_ar", "title_en") else value)

        await db.commit()
        await db.refresh(banner)
        return banner

    @staticmethod
    async def toggle_active(db: AsyncSession, banner_id: int) -> HomepageBanner:
        banner = await BannerService._get(db, banner_id)
        banner.is_active = not banner.is_active
        await db.commit()
        await db.refresh(banner)
        return banner

    @staticmethod
    async def delete_banner(db: AsyncSession, banner_id: int) -> None:
        banner = await BannerService._get(db, banner_id)
        await db.delete(banner)
        await db.commit()
        logger.info("Banner %s deleted", banner_id)

    @staticmethod
    async def reorder_banners(db: AsyncSession, banner_ids: List[int]) -> Optional[str]:
        """
        Persist display_order = position for each id, one commit per row.

        Returns:
            None on success, otherwise the failure message. Rows written before
            the failure keep their new position.
        """
        result = await db.execute(select(HomepageBanner.id).where(HomepageBanner.id.in_(banner_ids)))
        known = set(result.scalars().all())
        missing = [banner_id for banner_id in banner_ids if banner_id not in known]
        if missing:
            raise ResourceNotFoundError("Banner", missing[0])

        for index, banner_id in enumerate(banner_ids):
            try:
                await db.execute(
                    update(HomepageBanner)
                    .where(HomepageBanner.id == banner_id)
                    .values(display_order=index)
                )
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                logger.error("Reorder stopped at banner %s (position %s): %s", banner_id, index, e)
                return f"Failed to reorder banner {banner_id}"

        return None

    @staticmethod
    async def upload_banner_image(content: bytes, content_type: Optional[str]) -> Tuple[str, str]:
        """
        Validate and upload a banner image.

        Returns:
            (public url, object key)
        """
        extension = ALLOWED_IMAGE_TYPES.get(content_type or "")
        if not extension:
            raise ValidationFailedError(
                "Unsupported image type",
                details={"allowed": sorted(ALLOWED_IMAGE_TYPES), "received": content_type}
            )
        if len(content) > settings.banner_image_max_bytes:
            raise ValidationFailedError(
                "Image exceeds the maximum size",
                details={"max_bytes": settings.banner_image_max_bytes, "size": len(content)}
            )

        key = f"banners/{uuid.uuid4()}.{extension}"
        url = await storage_service.upload_bytes(key, content, content_type)
        return url, key

    # Partner banners

    @staticmethod
    async def submit_partner_banner(db: AsyncSession, provider: Provider, data: PartnerBannerSubmit) -> HomepageBanner:
        _require_titles(data.title_ar, data.title_en)

        now = utcnow()
        starts_at = data.starts_at or now
        banner = HomepageBanner(
            title_ar=data.title_ar.strip(),
            title_en=data.title_en.strip(),
            description_ar=data.description_ar,
            description_en=data.description_en,
            image_url=data.image_url,
            gradient_start=data.gradient_start,
            gradient_end=data.gradient_end,
            banner_type=BannerType.PARTNER,
            provider_id=provider.id,
            governorate_id=provider.governorate_id,
            city_id=provider.city_id,
            is_active=False,
            approval_status=BannerApprovalStatus.PENDING,
            duration_type=data.duration_type,
            submitted_at=now,
            starts_at=starts_at,
            ends_at=starts_at + timedelta(days=PARTNER_DURATION_DAYS[data.duration_type]),
            display_order=await BannerService._next_display_order(db),
            created_by=provider.owner_id,
        )
        db.add(banner)
        await db.commit()
        await db.refresh(banner)

        logger.info("Partner banner %s submitted by provider %s", banner.id, provider.id)
        return banner

    @staticmethod
    async def _get_pending_partner_banner(db: AsyncSession, banner_id: int, target: str) -> HomepageBanner:
        banner = await BannerService._get(db, banner_id)
        if banner.banner_type != BannerType.PARTNER:
            raise ValidationFailedError("Only partner banners go through review")
        if banner.approval_status != BannerApprovalStatus.PENDING:
            current = banner.approval_status.value if banner.approval_status else "none"
            raise InvalidStatusTransitionError("banner", current, target)
        return banner

    @staticmethod
    async def approve_partner_banner(db: AsyncSession, banner_id: int, admin_id: int) -> HomepageBanner:
        banner = await BannerService._get_pending_partner_banner(db, banner_id, BannerApprovalStatus.APPROVED.value)
        banner.approval_status = BannerApprovalStatus.APPROVED
        banner.is_active = True
        banner.rejection_reason = None
        banner.reviewed_at = utcnow()
        banner.reviewed_by = admin_id
        await db.commit()
        await db.refresh(banner)
        return banner

    @staticmethod
    async def reject_partner_banner(db: AsyncSession, banner_id: int, admin_id: int, reason: str) -> HomepageBanner:
        if not (reason or "").strip():
            raise ValidationFailedError("Rejection reason is required")

        banner = await BannerService._get_pending_partner_banner(db, banner_id, BannerApprovalStatus.REJECTED.value)
        banner.approval_status = BannerApprovalStatus.REJECTED
        banner.is_active = False
        banner.rejection_reason = reason.strip()
        banner.reviewed_at = utcnow()
        banner.reviewed_by = admin_id
        await db.commit()
        await db.refresh(banner)
        return banner

    @staticmethod
    async def cancel_partner_banner(db: AsyncSession, banner_id: int, provider: Provider) -> HomepageBanner:
        banner = await BannerService._get(db, banner_id)
        if banner.provider_id != provider.id:
            raise ForbiddenActionError("You can only cancel your own banners")

        banner = await BannerService._get_pending_partner_banner(db, banner_id, BannerApprovalStatus.CANCELLED.value)
        banner.approval_status = BannerApprovalStatus.CANCELLED
        banner.is_active = False
        await db.commit()
        await db.refresh(banner)
        return banner

    @staticmethod
    async def list_provider_banners(db: AsyncSession, provider: Provider) -> List[HomepageBanner]:
        result = await db.execute(
            select(HomepageBanner)
            .where(HomepageBanner.provider_id == provider.id)
            .order_by(HomepageBanner.created_at.desc(), HomepageBanner.id.desc())
        )
        return list(result.scalars().all())
