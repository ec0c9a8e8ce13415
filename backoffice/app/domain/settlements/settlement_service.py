"""
Settlement Service (Domain Logic).

Generates periodic settlements from delivered orders and tracks their
payment lifecycle.

Generation flow for one provider (runs under `settlement-lock:<provider_id>`):
1. Build the set of order ids already included in any settlement
2. Fetch delivered, still-eligible orders of the period minus that set
3. Compute the COD / online breakdown
4. Insert the settlement and mark its orders settled in one transaction

Scheduled runs either cover every provider for a fixed period or follow the
frequency of each settlement group.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, List, Set, Dict, Any

from sqlalchemy import select, update, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.clock import utcnow, ensure_utc
from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import (
    ResourceNotFoundError, ValidationFailedError, InvalidStatusTransitionError, DatabaseError
)
from backoffice.app.domain.settlements.breakdown import compute_breakdown
from backoffice.app.domain.settlements.group_service import (
    SettlementGroupService, FREQUENCY_PERIOD_DAYS, group_members
)
from backoffice.app.models.enums import (
    OrderStatus, OrderSettlementStatus, SettlementStatus, SettlementFrequency, DeliveryResponsibility
)
from backoffice.app.models.order import Order
from backoffice.app.models.profile import Profile
from backoffice.app.models.provider import Provider
from backoffice.app.models.settlement import Settlement
from backoffice.app.services.locks import acquire_lock, release_lock, settlement_lock_key
from backoffice.app.services.mailer import EmailService

logger = logging.getLogger("backoffice.settlements")

ALLOWED_PERIOD_DAYS = (1, 3, 7)

# Manual status changes; paid and waived are terminal
SETTLEMENT_TRANSITIONS = {
    SettlementStatus.PENDING: {
        SettlementStatus.PARTIALLY_PAID, SettlementStatus.PAID, SettlementStatus.OVERDUE,
        SettlementStatus.DISPUTED, SettlementStatus.WAIVED,
    },
    SettlementStatus.PARTIALLY_PAID: {
        SettlementStatus.PAID, SettlementStatus.OVERDUE, SettlementStatus.DISPUTED, SettlementStatus.WAIVED,
    },
    SettlementStatus.OVERDUE: {
        SettlementStatus.PARTIALLY_PAID, SettlementStatus.PAID, SettlementStatus.DISPUTED, SettlementStatus.WAIVED,
    },
    SettlementStatus.DISPUTED: {
        SettlementStatus.PENDING, SettlementStatus.PAID, SettlementStatus.WAIVED,
    },
    SettlementStatus.PAID: set(),
    SettlementStatus.WAIVED: set(),
}

PAYABLE_STATUSES = (
    SettlementStatus.PENDING,
    SettlementStatus.PARTIALLY_PAID,
    SettlementStatus.OVERDUE,
    SettlementStatus.DISPUTED,
)


def _eligible_criteria(period_start: datetime, period_end: datetime):
    completed_at = func.coalesce(Order.delivered_at, Order.created_at)
    return (
        Order.status == OrderStatus.DELIVERED,
        or_(Order.settlement_status == OrderSettlementStatus.ELIGIBLE, Order.settlement_status.is_(None)),
        completed_at >= period_start,
        completed_at <= period_end,
    )


def _empty_result() -> Dict[str, Any]:
    return {
        "settlements_created": 0,
        "providers_processed": 0,
        "skipped": [],
        "errors": [],
        "settlements": [],
    }


class SettlementService:

    # Generation

    @staticmethod
    async def _settled_order_ids(db: AsyncSession) -> Set[int]:
        result = await db.execute(select(Settlement.orders_included))
        settled: Set[int] = set()
        for included in result.scalars().all():
            settled.update(included or [])
        return settled

    @staticmethod
    async def _eligible_orders(
        db: AsyncSession, provider_id: int, period_start: datetime, period_end: datetime, excluded: Set[int]
    ) -> List[Order]:
        result = await db.execute(
            select(Order)
            .where(Order.provider_id == provider_id, *_eligible_criteria(period_start, period_end))
            .order_by(Order.id)
        )
        return [order for order in result.scalars().all() if order.id not in excluded]

    @staticmethod
    async def _settle_provider(
        db: AsyncSession,
        provider: Provider,
        period_start: datetime,
        period_end: datetime,
        created_by: str
    ) -> Optional[Settlement]:
        """Steps 1-4 for one provider. Caller holds the provider lock."""
        excluded = await SettlementService._settled_order_ids(db)
        orders = await SettlementService._eligible_orders(db, provider.id, period_start, period_end, excluded)
        if not orders:
            return None

        breakdown = compute_breakdown(
            orders, provider.delivery_responsibility == DeliveryResponsibility.MERCHANT
        )

        settlement = Settlement(
            provider_id=provider.id,
            period_start=period_start,
            period_end=period_end,
            status=SettlementStatus.PENDING,
            orders_included=breakdown.order_ids,
            created_by=created_by,
            **breakdown.model_fields(),
        )

        try:
            db.add(settlement)
            await db.execute(
                update(Order)
                .where(Order.id.in_(breakdown.order_ids))
                .values(settlement_status=OrderSettlementStatus.SETTLED)
                .execution_options(synchronize_session=False)
            )
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise

        await db.refresh(settlement)
        logger.info(
            "Settlement %s created for provider %s: %s orders, net balance %s (%s)",
            settlement.id, provider.id, settlement.total_orders,
            settlement.net_balance, settlement.settlement_direction.value
        )
        return settlement

    @staticmethod
    async def _run(
        db: AsyncSession,
        redis,
        provider_ids: List[int],
        period_start: datetime,
        period_end: datetime,
        created_by: str
    ) -> Dict[str, Any]:
        """Shared generation path for batch and custom-range runs."""
        outcome = _empty_result()

        for provider_id in provider_ids:
            key = settlement_lock_key(provider_id)
            token = await acquire_lock(redis, key, settings.settlement_lock_ttl_seconds)
            if not token:
                outcome["skipped"].append({
                    "provider_id": provider_id,
                    "reason": "Settlement generation already running for this provider",
                })
                continue

            try:
                provider = await db.get(Provider, provider_id)
                if not provider:
                    raise ResourceNotFoundError("Provider", provider_id)

                outcome["providers_processed"] += 1
                settlement = await SettlementService._settle_provider(
                    db, provider, period_start, period_end, created_by
                )
            except (SQLAlchemyError, ResourceNotFoundError) as e:
                logger.error("Settlement generation failed for provider %s: %s", provider_id, e)
                outcome["errors"].append({"provider_id": provider_id, "error": str(e)})
                continue
            finally:
                await release_lock(redis, key, token)

            if settlement is None:
                continue

            outcome["settlements_created"] += 1
            outcome["settlements"].append(settlement)
            await EmailService.send_settlement_created_email(settlement, provider.email, provider.name_en)

        return outcome

    @staticmethod
    async def _generate_for_period(
        db: AsyncSession,
        redis,
        period_days: int,
        now: Optional[datetime],
        created_by: str,
        members=None
    ) -> Dict[str, Any]:
        period_end = now or utcnow()
        period_start = period_end - timedelta(days=period_days)

        query = select(Order.provider_id).where(*_eligible_criteria(period_start, period_end))
        if members is not None:
            query = query.join(Provider, Provider.id == Order.provider_id).where(members)
        result = await db.execute(query.distinct().order_by(Order.provider_id))
        provider_ids = list(result.scalars().all())
        # Release the read transaction before taking per-provider locks
        await db.commit()

        logger.info("Generating %s-day settlements for %d providers", period_days, len(provider_ids))
        return await SettlementService._run(db, redis, provider_ids, period_start, period_end, created_by)

    @staticmethod
    async def generate_settlements(
        db: AsyncSession,
        redis,
        period_days: int = 7,
        now: Optional[datetime] = None,
        created_by: str = "system"
    ) -> Dict[str, Any]:
        """
        Settle every provider with eligible orders in the last `period_days` days.
        """
        if period_days not in ALLOWED_PERIOD_DAYS:
            raise ValidationFailedError(
                "Unsupported settlement period",
                details={"allowed": list(ALLOWED_PERIOD_DAYS), "received": period_days}
            )
        return await SettlementService._generate_for_period(db, redis, period_days, now, created_by)

    @staticmethod
    async def generate_group_settlements(
        db: AsyncSession,
        redis,
        group_id: int,
        now: Optional[datetime] = None,
        created_by: str = "system"
    ) -> Dict[str, Any]:
        """
        Settle the providers of one group over the period its frequency sets.

        Raises:
            ResourceNotFoundError: unknown group
            ValidationFailedError: the group is inactive
        """
        group = await SettlementGroupService.get_group(db, group_id)
        if not group.is_active:
            raise ValidationFailedError("Settlement group is inactive", details={"group_id": group_id})

        return await SettlementService._generate_for_period(
            db, redis, FREQUENCY_PERIOD_DAYS[group.frequency], now, created_by, group_members(group)
        )

    @staticmethod
    async def generate_due_groups(
        db: AsyncSession,
        redis,
        frequency: SettlementFrequency,
        now: Optional[datetime] = None,
        created_by: str = "cron"
    ) -> Dict[str, Any]:
        """Run every active group with the given frequency and merge the outcomes."""
        outcome = _empty_result()
        for group in await SettlementGroupService.active_groups(db, frequency):
            group_outcome = await SettlementService._generate_for_period(
                db, redis, FREQUENCY_PERIOD_DAYS[group.frequency], now, created_by, group_members(group)
            )
            outcome["settlements_created"] += group_outcome["settlements_created"]
            outcome["providers_processed"] += group_outcome["providers_processed"]
            for key in ("skipped", "errors", "settlements"):
                outcome[key].extend(group_outcome[key])
        return outcome

    @staticmethod
    async def generate_provider_settlement(
        db: AsyncSession,
        redis,
        provider_id: int,
        start_date: date,
        end_date: date,
        created_by: str = "system"
    ) -> Dict[str, Any]:
        """
        Settle one provider over a custom date range; the end date is inclusive.

        Raises:
            ResourceNotFoundError: unknown provider
            ValidationFailedError: bad range, or no eligible orders in it
        """
        if end_date < start_date:
            raise ValidationFailedError("end_date must not be before start_date")

        provider = await db.get(Provider, provider_id)
        if not provider:
            raise ResourceNotFoundError("Provider", provider_id)

        period_start = datetime.combine(start_date, time.min, tzinfo=timezone.utc)
        period_end = datetime.combine(end_date, time.max, tzinfo=timezone.utc)

        outcome = await SettlementService._run(db, redis, [provider_id], period_start, period_end, created_by)

        if outcome["errors"]:
            raise DatabaseError(outcome["errors"][0]["error"], details={"provider_id": provider_id})
        if not outcome["settlements_created"] and not outcome["skipped"]:
            raise ValidationFailedError(
                "No eligible orders found for this provider in the selected period",
                details={"provider_id": provider_id, "start_date": str(start_date), "end_date": str(end_date)}
            )
        return outcome

    # Lifecycle

    @staticmethod
    async def get_settlement(db: AsyncSession, settlement_id: int) -> Settlement:
        settlement = await db.get(Settlement, settlement_id)
        if not settlement:
            raise ResourceNotFoundError("Settlement", settlement_id)
        return settlement

    @staticmethod
    async def list_settlements(
        db: AsyncSession,
        status: Optional[SettlementStatus] = None,
        provider_id: Optional[int] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[Settlement]:
        query = select(Settlement)
        if status:
            query = query.where(Settlement.status == status)
        if provider_id:
            query = query.where(Settlement.provider_id == provider_id)
        query = query.order_by(Settlement.created_at.desc(), Settlement.id.desc()).limit(limit).offset(offset)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def record_payment(
        db: AsyncSession,
        settlement_id: int,
        amount: float,
        payment_method: str,
        payment_reference: Optional[str],
        admin_id: int,
        notes: Optional[str] = None
    ) -> Settlement:
        """
        Mark a settlement paid.

        The amount is stored as given; a mismatch with net_payout is logged only.
        """
        settlement = await SettlementService.get_settlement(db, settlement_id)

        if settlement.status not in PAYABLE_STATUSES:
            raise InvalidStatusTransitionError("settlement", settlement.status.value, SettlementStatus.PAID.value)

        if abs(amount - settlement.net_payout) > 0.01:
            logger.warning(
                "Settlement %s paid %.2f but net payout is %.2f",
                settlement.id, amount, settlement.net_payout
            )

        settlement.status = SettlementStatus.PAID
        settlement.paid_at = utcnow()
        settlement.amount_paid = amount
        settlement.payment_method = payment_method
        settlement.payment_reference = payment_reference
        settlement.processed_by = admin_id
        if notes:
            settlement.notes = notes

        await db.commit()
        await db.refresh(settlement)
        return settlement

    @staticmethod
    async def update_status(
        db: AsyncSession, settlement_id: int, new_status: SettlementStatus, notes: Optional[str] = None
    ) -> Settlement:
        settlement = await SettlementService.get_settlement(db, settlement_id)

        if new_status not in SETTLEMENT_TRANSITIONS.get(settlement.status, set()):
            raise InvalidStatusTransitionError("settlement", settlement.status.value, new_status.value)

        settlement.status = new_status
        if new_status == SettlementStatus.PAID and settlement.paid_at is None:
            settlement.paid_at = utcnow()
        if notes:
            settlement.notes = notes

        await db.commit()
        await db.refresh(settlement)
        return settlement

    @staticmethod
    async def dispute_settlement(db: AsyncSession, settlement_id: int, reason: str) -> Settlement:
        reason = (reason or "").strip()
        if not reason:
            raise ValidationFailedError("A reason is required to dispute a settlement")
        return await SettlementService.update_status(db, settlement_id, SettlementStatus.DISPUTED, reason)

    @staticmethod
    async def included_orders(db: AsyncSession, settlement: Settlement) -> List[Dict[str, Any]]:
        """Orders covered by a settlement, newest first, with the customer's name."""
        if not settlement.orders_included:
            return []

        result = await db.execute(
            select(Order, Profile.full_name)
            .outerjoin(Profile, Profile.id == Order.customer_id)
            .where(Order.id.in_(settlement.orders_included))
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return [
            {
                "id": order.id,
                "order_number": order.order_number,
                "status": order.status,
                "total": order.total,
                "platform_commission": order.platform_commission,
                "payment_method": order.payment_method,
                "customer_name": customer_name,
                "created_at": order.created_at,
            }
            for order, customer_name in result.all()
        ]

    @staticmethod
    async def delete_settlement(db: AsyncSession, settlement_id: int) -> int:
        """
        Delete an unpaid settlement and make its orders eligible again.

        Returns:
            Number of orders released.
        """
        settlement = await SettlementService.get_settlement(db, settlement_id)
        if settlement.status in (SettlementStatus.PAID, SettlementStatus.PARTIALLY_PAID):
            raise InvalidStatusTransitionError("settlement", settlement.status.value, "deleted")

        order_ids = list(settlement.orders_included or [])
        released = 0
        try:
            if order_ids:
                result = await db.execute(
                    update(Order)
                    .where(Order.id.in_(order_ids), Order.settlement_status == OrderSettlementStatus.SETTLED)
                    .values(settlement_status=OrderSettlementStatus.ELIGIBLE)
                    .execution_options(synchronize_session=False)
                )
                released = result.rowcount or 0
            await db.delete(settlement)
            await db.commit()
        except SQLAlchemyError:
            await db.rollback()
            raise

        logger.info("Settlement %s deleted, %d orders eligible again", settlement_id, released)
        return released

    @staticmethod
    async def mark_overdue_settlements(
        db: AsyncSession, now: Optional[datetime] = None, grace_days: Optional[int] = None
    ) -> Dict[str, Any]:
        """
        Flip pending settlements past their grace period to overdue.

        Each row is updated only while still pending, so a payment recorded
        meanwhile is never overwritten.
        """
        now = now or utcnow()
        grace = settings.settlement_overdue_grace_days if grace_days is None else grace_days
        cutoff = now - timedelta(days=grace)

        result = await db.execute(
            select(Settlement)
            .where(Settlement.status == SettlementStatus.PENDING, Settlement.period_end < cutoff)
            .order_by(Settlement.id)
        )
        candidates = list(result.scalars().all())

        marked: List[Settlement] = []
        for settlement in candidates:
            update_result = await db.execute(
                update(Settlement)
                .where(Settlement.id == settlement.id, Settlement.status == SettlementStatus.PENDING)
                .values(status=SettlementStatus.OVERDUE)
                .execution_options(synchronize_session=False)
            )
            if update_result.rowcount:
                marked.append(settlement)
        await db.commit()

        for settlement in marked:
            await db.refresh(settlement)
            provider = await db.get(Provider, settlement.provider_id)
            days_overdue = max((now - ensure_utc(settlement.period_end)).days, 1)
            if provider:
                await EmailService.send_settlement_overdue_email(
                    settlement, provider.email, provider.name_en, days_overdue
                )

        logger.info("Overdue check: %d candidates, %d marked", len(candidates), len(marked))
        return {
            "checked": len(candidates),
            "marked_overdue": len(marked),
            "settlement_ids": [settlement.id for settlement in marked],
        }

    @staticmethod
    async def settlement_stats(db: AsyncSession) -> Dict[str, Any]:
        result = await db.execute(
            select(
                Settlement.status,
                func.count(Settlement.id),
                func.coalesce(func.sum(Settlement.net_balance), 0.0),
                func.coalesce(func.sum(Settlement.amount_paid), 0.0),
            ).group_by(Settlement.status)
        )
        rows = {status: (count, balance, paid) for status, count, balance, paid in result.all()}

        def count_of(status):
            return rows.get(status, (0, 0.0, 0.0))[0]

        def balance_of(status):
            return round(float(rows.get(status, (0, 0.0, 0.0))[1]), 2)

        return {
            "total_settlements": sum(count for count, _, _ in rows.values()),
            "pending_count": count_of(SettlementStatus.PENDING),
            "pending_amount": balance_of(SettlementStatus.PENDING),
            "overdue_count": count_of(SettlementStatus.OVERDUE),
            "overdue_amount": balance_of(SettlementStatus.OVERDUE),
            "paid_count": count_of(SettlementStatus.PAID),
            "paid_amount": round(float(rows.get(SettlementStatus.PAID, (0, 0.0, 0.0))[2]), 2),
        }
