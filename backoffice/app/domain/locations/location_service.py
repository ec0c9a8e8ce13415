"""
Location Service (Domain Logic).

Governorates and cities are pre-seeded and only activated by admins;
districts are created freely under a city.
"""

import logging
from typing import Optional, Type

from sqlalchemy import select, func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.exceptions import (
    ResourceNotFoundError, ConflictError, DatabaseError, ValidationFailedError
)
from backoffice.app.models.location import Governorate, City, District
from backoffice.app.schemas.location import (
    GovernorateResponse, CityResponse, DistrictResponse, BreadcrumbItem,
    LocationListResponse, DistrictCreate, LocationUpdate, LevelStats, LocationStatsResponse
)

logger = logging.getLogger("backoffice.locations")

LEVELS = {
    "governorates": (Governorate, GovernorateResponse, "Governorate"),
    "cities": (City, CityResponse, "City"),
    "districts": (District, DistrictResponse, "District"),
}


def _resolve_level(level: str):
    if level not in LEVELS:
        raise ValidationFailedError(f"Unknown location level: {level}", details={"allowed": list(LEVELS)})
    return LEVELS[level]


def _crumb(level: str, row) -> BreadcrumbItem:
    return BreadcrumbItem(level=level, id=row.id, name_ar=row.name_ar, name_en=row.name_en)


def _apply_filters(query, model: Type, active_only: bool, search: Optional[str]):
    if active_only:
        query = query.where(model.is_active.is_(True))
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.where(or_(model.name_ar.ilike(pattern), model.name_en.ilike(pattern)))
    return query.order_by(model.name_en)


class LocationService:

    @staticmethod
    async def _get(db: AsyncSession, level: str, location_id: int):
        model, _, label = _resolve_level(level)
        result = await db.execute(select(model).where(model.id == location_id))
        row = result.scalar_one_or_none()
        if not row:
            raise ResourceNotFoundError(label, location_id)
        return row

    # Browse

    @staticmethod
    async def list_governorates(
        db: AsyncSession, active_only: bool = False, search: Optional[str] = None
    ) -> LocationListResponse:
        query = _apply_filters(select(Governorate), Governorate, active_only, search)
        result = await db.execute(query)
        items = [GovernorateResponse.model_validate(row).model_dump() for row in result.scalars().all()]
        return LocationListResponse(level="governorates", breadcrumb=[], items=items)

    @staticmethod
    async def list_cities(
        db: AsyncSession, governorate_id: int, active_only: bool = False, search: Optional[str] = None
    ) -> LocationListResponse:
        governorate = await LocationService._get(db, "governorates", governorate_id)

        query = _apply_filters(
            select(City).where(City.governorate_id == governorate_id), City, active_only, search
        )
        result = await db.execute(query)
        items = [CityResponse.model_validate(row).model_dump() for row in result.scalars().all()]
        return LocationListResponse(
            level="cities",
            breadcrumb=[_crumb("governorate", governorate)],
            items=items,
        )

    @staticmethod
    async def list_districts(
        db: AsyncSession, city_id: int, active_only: bool = False, search: Optional[str] = None
    ) -> LocationListResponse:
        city = await LocationService._get(db, "cities", city_id)
        governorate = await LocationService._get(db, "governorates", city.governorate_id)

        query = _apply_filters(
            select(District).where(District.city_id == city_id), District, active_only, search
        )
        result = await db.execute(query)
        items = [DistrictResponse.model_validate(row).model_dump() for row in result.scalars().all()]
        return LocationListResponse(
            level="districts",
            breadcrumb=[_crumb("governorate", governorate), _crumb("city", city)],
            items=items,
        )

    # Activation ("add" for pre-seeded levels)

    @staticmethod
    async def activate_governorate(
        db: AsyncSession, governorate_id: int, commission_override: Optional[float] = None
    ) -> Governorate:
        governorate = await LocationService._get(db, "governorates", governorate_id)
        if governorate.is_active:
            raise ConflictError(
                f"Governorate {governorate.name_en} is already active",
                details={"id": governorate_id}
            )

        governorate.is_active = True
        if commission_override is not None:
            governorate.commission_override = commission_override

        await db.commit()
        await db.refresh(governorate)
        logger.info("Governorate %s activated", governorate_id)
        return governorate

    @staticmethod
    async def activate_city(db: AsyncSession, city_id: int) -> City:
        city = await LocationService._get(db, "cities", city_id)
        if city.is_active:
            raise ConflictError(f"City {city.name_en} is already active", details={"id": city_id})

        city.is_active = True
        await db.commit()
        await db.refresh(city)
        logger.info("City %s activated", city_id)
        return city

    @staticmethod
    async def create_district(db: AsyncSession, city_id: int, data: DistrictCreate) -> District:
        city = await LocationService._get(db, "cities", city_id)

        district = District(
            city_id=city.id,
            governorate_id=city.governorate_id,
            name_ar=data.name_ar.strip(),
            name_en=data.name_en.strip(),
            is_active=data.is_active,
        )
        db.add(district)
        await db.commit()
        await db.refresh(district)
        return district

    # Edit

    @staticmethod
    async def update_location(db: AsyncSession, level: str, location_id: int, data: LocationUpdate):
        row = await LocationService._get(db, level, location_id)
        changes = data.model_dump(exclude_unset=True)

        if "commission_override" in changes and level != "governorates":
            raise ValidationFailedError("Commission override applies to governorates only")

        for field, value in changes.items():
            setattr(row, field, value)

        await db.commit()
        await db.refresh(row)
        return row

    @staticmethod
    async def toggle_active(db: AsyncSession, level: str, location_id: int):
        row = await LocationService._get(db, level, location_id)
        row.is_active = not row.is_active
        await db.commit()
        await db.refresh(row)
        return row

    @staticmethod
    async def delete_location(db: AsyncSession, level: str, location_id: int) -> None:
        row = await LocationService._get(db, level, location_id)
        _, _, label = LEVELS[level]

        try:
            await db.delete(row)
            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            logger.warning("Delete of %s %s refused: %s", label, location_id, e.orig)
            raise DatabaseError(
                f"{label} has dependent rows and cannot be deleted",
                details={"level": level, "id": location_id}
            )

    @staticmethod
    async def location_stats(db: AsyncSession) -> LocationStatsResponse:
        async def level_stats(model) -> LevelStats:
            total = await db.scalar(select(func.count()).select_from(model))
            active = await db.scalar(select(func.count()).select_from(model).where(model.is_active.is_(True)))
            return LevelStats(total=total or 0, active=active or 0)

        return LocationStatsResponse(
            governorates=await level_stats(Governorate),
            cities=await level_stats(City),
            districts=await level_stats(District),
        )

    @staticmethod
    def response_for(level: str, row):
        _, schema, _ = _resolve_level(level)
        return schema.model_validate(row)
