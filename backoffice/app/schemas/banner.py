"""
Homepage Banner Schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List, Dict
from backoffice.app.models.enums import BannerType, BannerApprovalStatus, BannerStatus


class BannerBase(BaseModel):
    title_ar: str = Field(..., max_length=200)
    title_en: str = Field(..., max_length=200)
    description_ar: Optional[str] = None
    description_en: Optional[str] = None
    badge_text_ar: Optional[str] = Field(None, max_length=100)
    badge_text_en: Optional[str] = Field(None, max_length=100)
    cta_text_ar: Optional[str] = Field(None, max_length=100)
    cta_text_en: Optional[str] = Field(None, max_length=100)
    image_url: Optional[str] = None
    image_position: str = Field("end", pattern="^(start|end|background)$")
    gradient_start: str = Field("#009DE0", max_length=9)
    gradient_end: str = Field("#0088CC", max_length=9)
    has_glassmorphism: bool = False
    link_url: Optional[str] = None
    link_type: Optional[str] = None
    governorate_id: Optional[int] = None
    city_id: Optional[int] = None


class BannerCreate(BannerBase):
    """Schema for creating a banner from the admin console."""
    banner_type: BannerType = BannerType.CUSTOMER
    is_active: bool = True
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class BannerUpdate(BaseModel):
    """Partial update; unset fields are left untouched."""
    title_ar: Optional[str] = Field(None, max_length=200)
    title_en: Optional[str] = Field(None, max_length=200)
    description_ar: Optional[str] = None
    description_en: Optional[str] = None
    badge_text_ar: Optional[str] = None
    badge_text_en: Optional[str] = None
    cta_text_ar: Optional[str] = None
    cta_text_en: Optional[str] = None
    image_url: Optional[str] = None
    image_position: Optional[str] = Field(None, pattern="^(start|end|background)$")
    gradient_start: Optional[str] = Field(None, max_length=9)
    gradient_end: Optional[str] = Field(None, max_length=9)
    has_glassmorphism: Optional[bool] = None
    link_url: Optional[str] = None
    link_type: Optional[str] = None
    governorate_id: Optional[int] = None
    city_id: Optional[int] = None
    is_active: Optional[bool] = None
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None


class PartnerBannerSubmit(BaseModel):
    """Banner submitted by a merchant for admin review."""
    title_ar: str = Field(..., max_length=200)
    title_en: str = Field(..., max_length=200)
    description_ar: Optional[str] = None
    description_en: Optional[str] = None
    image_url: Optional[str] = None
    gradient_start: str = Field("#009DE0", max_length=9)
    gradient_end: str = Field("#0088CC", max_length=9)
    duration_type: str = Field(..., pattern="^(1_day|3_days|1_week|1_month)$")
    starts_at: Optional[datetime] = None


class BannerRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1)


class BannerResponse(BannerBase):
    """Schema for displaying a banner, with its derived display fields."""
    id: int
    banner_type: BannerType
    provider_id: Optional[int] = None
    display_order: int
    is_active: bool
    approval_status: Optional[BannerApprovalStatus] = None
    rejection_reason: Optional[str] = None
    duration_type: Optional[str] = None
    starts_at: datetime
    ends_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    status: Optional[BannerStatus] = None
    text_color: Optional[str] = None

    class Config:
        from_attributes = True


class BannerListResponse(BaseModel):
    banners: List[BannerResponse]
    counts: Dict[str, int]


class BannerReorderRequest(BaseModel):
    banner_ids: List[int] = Field(..., min_length=1)


class BannerReorderResponse(BaseModel):
    success: bool
    error: Optional[str] = None
    banners: List[BannerResponse]


class BannerUploadResponse(BaseModel):
    url: str
    path: str
