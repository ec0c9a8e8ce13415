"""
Location API Endpoints.

Browse and manage the governorate -> city -> district hierarchy, and the
regional analytics dashboard.
"""

from fastapi import APIRouter, Body, Depends, Path, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from backoffice.app.core.guards import require_admin
from backoffice.app.db.session import get_db
from backoffice.app.domain.locations.analytics import region_analytics
from backoffice.app.domain.locations.location_service import LocationService
from backoffice.app.schemas.common import MessageResponse
from backoffice.app.schemas.location import (
    ActivateGovernorateRequest, CityResponse, DistrictCreate, DistrictResponse, GovernorateResponse,
    LocationListResponse, LocationStatsResponse, LocationUpdate, RegionAnalyticsResponse
)

router = APIRouter(prefix="/admin/locations", tags=["Admin - Locations"])

LEVEL_PATTERN = "^(governorates|cities|districts)$"


@router.get("/governorates", response_model=LocationListResponse)
async def list_governorates(
    active_only: bool = Query(False),
    search: Optional[str] = Query(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await LocationService.list_governorates(db, active_only, search)


@router.get("/governorates/{governorate_id}/cities", response_model=LocationListResponse)
async def list_cities(
    governorate_id: int = Path(...),
    active_only: bool = Query(False),
    search: Optional[str] = Query(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await LocationService.list_cities(db, governorate_id, active_only, search)


@router.get("/cities/{city_id}/districts", response_model=LocationListResponse)
async def list_districts(
    city_id: int = Path(...),
    active_only: bool = Query(False),
    search: Optional[str] = Query(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await LocationService.list_districts(db, city_id, active_only, search)


@router.post("/governorates/{governorate_id}/activate", response_model=GovernorateResponse)
async def activate_governorate(
    governorate_id: int = Path(...),
    data: Optional[ActivateGovernorateRequest] = Body(None),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Add a pre-seeded governorate to the service area."""
    override = data.commission_override if data else None
    return await LocationService.activate_governorate(db, governorate_id, override)


@router.post("/cities/{city_id}/activate", response_model=CityResponse)
async def activate_city(
    city_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await LocationService.activate_city(db, city_id)


@router.post("/cities/{city_id}/districts", response_model=DistrictResponse, status_code=status.HTTP_201_CREATED)
async def create_district(
    data: DistrictCreate,
    city_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await LocationService.create_district(db, city_id, data)


@router.get("/stats", response_model=LocationStatsResponse)
async def location_stats(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await LocationService.location_stats(db)


@router.get("/analytics", response_model=RegionAnalyticsResponse)
async def get_region_analytics(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Per-governorate metrics and readiness scores, recomputed on every call."""
    return await region_analytics(db)


@router.patch("/{level}/{location_id}")
async def update_location(
    data: LocationUpdate,
    level: str = Path(..., pattern=LEVEL_PATTERN),
    location_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    row = await LocationService.update_location(db, level, location_id, data)
    return LocationService.response_for(level, row)


@router.post("/{level}/{location_id}/toggle")
async def toggle_location(
    level: str = Path(..., pattern=LEVEL_PATTERN),
    location_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    row = await LocationService.toggle_active(db, level, location_id)
    return LocationService.response_for(level, row)


@router.delete("/{level}/{location_id}", response_model=MessageResponse)
async def delete_location(
    level: str = Path(..., pattern=LEVEL_PATTERN),
    location_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    await LocationService.delete_location(db, level, location_id)
    return MessageResponse(message="Location deleted")
