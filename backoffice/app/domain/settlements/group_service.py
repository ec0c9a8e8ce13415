"""
Settlement groups.

A group fixes how often its providers are settled (daily, every 3 days or
weekly). Providers without a group belong to the default group.
"""

import logging
from typing import Optional, List, Tuple

from sqlalchemy import select, update, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.exceptions import ResourceNotFoundError, ValidationFailedError
from backoffice.app.models.enums import SettlementFrequency
from backoffice.app.models.provider import Provider
from backoffice.app.models.settlement import SettlementGroup
from backoffice.app.schemas.settlement import SettlementGroupCreate, SettlementGroupUpdate

logger = logging.getLogger("backoffice.settlements.groups")

FREQUENCY_PERIOD_DAYS = {
    SettlementFrequency.DAILY: 1,
    SettlementFrequency.THREE_DAYS: 3,
    SettlementFrequency.WEEKLY: 7,
}


def _clean_name(value: Optional[str], field: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValidationFailedError(f"{field} is required", details={"field": field})
    return cleaned


def group_members(group: SettlementGroup):
    """WHERE clause selecting the providers settled with this group."""
    if group.is_default:
        return or_(Provider.settlement_group_id == group.id, Provider.settlement_group_id.is_(None))
    return Provider.settlement_group_id == group.id


class SettlementGroupService:

    @staticmethod
    async def get_group(db: AsyncSession, group_id: int) -> SettlementGroup:
        group = await db.get(SettlementGroup, group_id)
        if not group:
            raise ResourceNotFoundError("Settlement group", group_id)
        return group

    @staticmethod
    async def list_groups(db: AsyncSession) -> List[Tuple[SettlementGroup, int]]:
        """Groups in creation order, each with its number of assigned providers."""
        counts = await db.execute(
            select(Provider.settlement_group_id, func.count(Provider.id))
            .where(Provider.settlement_group_id.is_not(None))
            .group_by(Provider.settlement_group_id)
        )
        assigned = dict(counts.all())

        result = await db.execute(select(SettlementGroup).order_by(SettlementGroup.created_at, SettlementGroup.id))
        return [(group, assigned.get(group.id, 0)) for group in result.scalars().all()]

    @staticmethod
    async def _clear_other_defaults(db: AsyncSession, keep_id: int) -> None:
        await db.execute(
            update(SettlementGroup)
            .where(SettlementGroup.id != keep_id, SettlementGroup.is_default.is_(True))
            .values(is_default=False)
            .execution_options(synchronize_session=False)
        )

    @staticmethod
    async def create_group(db: AsyncSession, data: SettlementGroupCreate) -> SettlementGroup:
        group = SettlementGroup(
            name_ar=_clean_name(data.name_ar, "name_ar"),
            name_en=_clean_name(data.name_en, "name_en"),
            description_ar=data.description_ar or None,
            description_en=data.description_en or None,
            frequency=data.frequency,
            is_default=data.is_default,
            is_active=True,
        )
        db.add(group)
        await db.flush()
        if group.is_default:
            await SettlementGroupService._clear_other_defaults(db, group.id)

        await db.commit()
        await db.refresh(group)
        logger.info("Settlement group %s created (%s)", group.id, group.frequency.value)
        return group

    @staticmethod
    async def update_group(db: AsyncSession, group_id: int, data: SettlementGroupUpdate) -> SettlementGroup:
        group = await SettlementGroupService.get_group(db, group_id)
        changes = data.model_dump(exclude_unset=True)

        for field in ("name_ar", "name_en"):
            if field in changes:
                changes[field] = _clean_name(changes[field], field)
        for field in ("description_ar", "description_en"):
            if field in changes:
                changes[field] = changes[field] or None
        if changes.get("frequency") is None:
            changes.pop("frequency", None)
        if changes.get("is_default") is None:
            changes.pop("is_default", None)

        for field, value in changes.items():
            setattr(group, field, value)
        if changes.get("is_default"):
            await SettlementGroupService._clear_other_defaults(db, group.id)

        await db.commit()
        await db.refresh(group)
        return group

    @staticmethod
    async def toggle_active(db: AsyncSession, group_id: int) -> SettlementGroup:
        group = await SettlementGroupService.get_group(db, group_id)
        group.is_active = not group.is_active
        await db.commit()
        await db.refresh(group)
        return group

    @staticmethod
    async def delete_group(db: AsyncSession, group_id: int) -> int:
        """Delete a group. Its providers fall back to the default group; returns how many."""
        group = await SettlementGroupService.get_group(db, group_id)

        released = await db.execute(
            update(Provider)
            .where(Provider.settlement_group_id == group.id)
            .values(settlement_group_id=None)
            .execution_options(synchronize_session=False)
        )
        await db.delete(group)
        await db.commit()

        logger.info("Settlement group %s deleted, %s providers unassigned", group_id, released.rowcount)
        return released.rowcount or 0

    @staticmethod
    async def assign_provider(db: AsyncSession, provider_id: int, group_id: Optional[int]) -> Provider:
        provider = await db.get(Provider, provider_id)
        if not provider:
            raise ResourceNotFoundError("Provider", provider_id)
        if group_id is not None:
            await SettlementGroupService.get_group(db, group_id)

        provider.settlement_group_id = group_id
        await db.commit()
        await db.refresh(provider)
        return provider

    @staticmethod
    async def active_groups(db: AsyncSession, frequency: Optional[SettlementFrequency] = None) -> List[SettlementGroup]:
        query = select(SettlementGroup).where(SettlementGroup.is_active.is_(True))
        if frequency:
            query = query.where(SettlementGroup.frequency == frequency)
        result = await db.execute(query.order_by(SettlementGroup.id))
        return list(result.scalars().all())
