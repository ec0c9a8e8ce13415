"""
Location Schemas (governorates, cities, districts).
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List


class GovernorateResponse(BaseModel):
    id: int
    name_ar: str
    name_en: str
    is_active: bool
    commission_override: Optional[float] = None
    created_at: datetime

    class Config:
        from_attributes = True


class CityResponse(BaseModel):
    id: int
    governorate_id: int
    name_ar: str
    name_en: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class DistrictResponse(BaseModel):
    id: int
    city_id: int
    governorate_id: int
    name_ar: str
    name_en: str
    is_active: bool
    created_at: datetime

    class Config:
        from_attributes = True


class BreadcrumbItem(BaseModel):
    level: str
    id: int
    name_ar: str
    name_en: str


class LocationListResponse(BaseModel):
    """One level of the hierarchy plus the path that leads to it."""
    level: str
    breadcrumb: List[BreadcrumbItem]
    items: List[dict]


class ActivateGovernorateRequest(BaseModel):
    commission_override: Optional[float] = Field(None, ge=0, le=100)


class DistrictCreate(BaseModel):
    name_ar: str = Field(..., min_length=1, max_length=150)
    name_en: str = Field(..., min_length=1, max_length=150)
    is_active: bool = True


class LocationUpdate(BaseModel):
    name_ar: Optional[str] = Field(None, min_length=1, max_length=150)
    name_en: Optional[str] = Field(None, min_length=1, max_length=150)
    is_active: Optional[bool] = None
    commission_override: Optional[float] = Field(None, ge=0, le=100)


class LevelStats(BaseModel):
    total: int
    active: int


class LocationStatsResponse(BaseModel):
    governorates: LevelStats
    cities: LevelStats
    districts: LevelStats


class RegionAnalytics(BaseModel):
    """Per-governorate marketplace metrics."""
    governorate_id: int
    name_ar: str
    name_en: str
    is_active: bool
    providers: int
    active_providers: int
    customers: int
    orders: int
    completed_orders: int
    revenue: float
    cities: int
    districts: int
    orders_this_month: int
    orders_last_month: int
    growth_rate: float
    readiness_score: int


class RegionAnalyticsResponse(BaseModel):
    regions: List[RegionAnalytics]
    generated_at: datetime
