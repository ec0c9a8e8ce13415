"""
Regional analytics.

Per-governorate marketplace metrics and a 0-100 readiness score used to
decide where to expand. Everything is recomputed from grouped scans on
each call; there is no cache.
"""

from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.clock import utcnow, month_start, previous_month_start
from backoffice.app.models.enums import ACTIVE_PROVIDER_STATUSES, OrderStatus, UserRole
from backoffice.app.models.location import Governorate, City, District
from backoffice.app.models.order import Order
from backoffice.app.models.profile import Profile
from backoffice.app.models.provider import Provider
from backoffice.app.schemas.location import RegionAnalytics, RegionAnalyticsResponse


def readiness_score(active_providers: int, customers: int, completed_orders: int, cities: int, districts: int) -> int:
    """
    Weighted readiness out of 100:
    providers up to 40, customers up to 30, completed orders up to 20,
    coverage (cities + districts) up to 10.
    """
    score = (
        min(active_providers * 10, 40)
        + min(customers * 3, 30)
        + min(completed_orders * 2, 20)
        + min((cities + districts) * 2, 10)
    )
    return max(0, min(score, 100))


def growth_rate(this_month: int, last_month: int) -> float:
    if last_month <= 0:
        return 0.0
    return round((this_month - last_month) / last_month * 100, 2)


async def _grouped_counts(db: AsyncSession, column, *criteria) -> Dict[int, int]:
    query = select(column, func.count()).where(column.is_not(None))
    for criterion in criteria:
        query = query.where(criterion)
    result = await db.execute(query.group_by(column))
    return {key: count for key, count in result.all()}


async def region_analytics(db: AsyncSession, now: Optional[datetime] = None) -> RegionAnalyticsResponse:
    now = now or utcnow()
    this_month = month_start(now)
    last_month = previous_month_start(now)

    providers = await _grouped_counts(db, Provider.governorate_id)
    active_providers = await _grouped_counts(
        db, Provider.governorate_id, Provider.status.in_(ACTIVE_PROVIDER_STATUSES)
    )
    customers = await _grouped_counts(db, Profile.governorate_id, Profile.role == UserRole.CUSTOMER)
    orders = await _grouped_counts(db, Order.governorate_id)
    completed = await _grouped_counts(db, Order.governorate_id, Order.status == OrderStatus.DELIVERED)
    orders_this_month = await _grouped_counts(db, Order.governorate_id, Order.created_at >= this_month)
    orders_last_month = await _grouped_counts(
        db, Order.governorate_id, Order.created_at >= last_month, Order.created_at < this_month
    )
    cities = await _grouped_counts(db, City.governorate_id)
    districts = await _grouped_counts(db, District.governorate_id)

    revenue_result = await db.execute(
        select(Order.governorate_id, func.coalesce(func.sum(Order.total), 0.0))
        .where(Order.governorate_id.is_not(None), Order.status == OrderStatus.DELIVERED)
        .group_by(Order.governorate_id)
    )
    revenue = {key: float(total) for key, total in revenue_result.all()}

    result = await db.execute(select(Governorate).order_by(Governorate.name_en))
    regions: List[RegionAnalytics] = []
    for governorate in result.scalars().all():
        gid = governorate.id
        current = orders_this_month.get(gid, 0)
        previous = orders_last_month.get(gid, 0)
        regions.append(RegionAnalytics(
            governorate_id=gid,
            name_ar=governorate.name_ar,
            name_en=governorate.name_en,
            is_active=governorate.is_active,
            providers=providers.get(gid, 0),
            active_providers=active_providers.get(gid, 0),
            customers=customers.get(gid, 0),
            orders=orders.get(gid, 0),
            completed_orders=completed.get(gid, 0),
            revenue=round(revenue.get(gid, 0.0), 2),
            cities=cities.get(gid, 0),
            districts=districts.get(gid, 0),
            orders_this_month=current,
            orders_last_month=previous,
            growth_rate=growth_rate(current, previous),
            readiness_score=readiness_score(
                active_providers.get(gid, 0),
                customers.get(gid, 0),
                completed.get(gid, 0),
                cities.get(gid, 0),
                districts.get(gid, 0),
            ),
        ))

    return RegionAnalyticsResponse(regions=regions, generated_at=now)
