"""
Custom Order Service (Domain Logic).

Flow:
1. Customer broadcasts a free-form request to a merchant (pricing deadline starts)
2. Merchant prices it in the workbench and submits (approval deadline starts)
3. Customer approves (an order is created) or rejects
4. Requests that miss either deadline expire

Every change publishes a realtime event on the provider's channel.
"""

import logging
import uuid
from datetime import datetime, timedelta
from typing import Optional, List, Dict

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.clock import utcnow, ensure_utc
from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import (
    ResourceNotFoundError, ForbiddenActionError, InvalidStatusTransitionError,
    PricingDeadlinePassedError, ConflictError, ValidationFailedError
)
from backoffice.app.domain.pricing.summary import (
    summarize, line_total, substitute_total, item_display_name, is_billable,
    effective_line_total, time_remaining
)
from backoffice.app.models.custom_order import CustomOrderRequest, CustomOrderItem, CustomOrderPriceHistory
from backoffice.app.models.enums import (
    CustomRequestStatus, ItemAvailabilityStatus, OrderStatus, OrderSettlementStatus, ProviderStatus
)
from backoffice.app.models.order import Order, OrderItem
from backoffice.app.models.provider import Provider
from backoffice.app.schemas.custom_order import (
    CustomOrderRequestCreate, SubmitPricingRequest, TimeRemaining
)
from backoffice.app.services.locks import acquire_lock, release_lock, pricing_submit_key
from backoffice.app.services.realtime import publish_request_change

logger = logging.getLogger("backoffice.custom_orders")

CLOSED_PROVIDER_STATUSES = (
    ProviderStatus.PENDING_APPROVAL, ProviderStatus.INCOMPLETE,
    ProviderStatus.REJECTED, ProviderStatus.SUSPENDED,
)


def normalize_item_name(name: str) -> str:
    return " ".join((name or "").split()).lower()


class CustomOrderService:

    @staticmethod
    async def _get(db: AsyncSession, request_id: int) -> CustomOrderRequest:
        result = await db.execute(select(CustomOrderRequest).where(CustomOrderRequest.id == request_id))
        request = result.scalar_one_or_none()
        if not request:
            raise ResourceNotFoundError("Custom order request", request_id)
        return request

    @staticmethod
    async def _reload(db: AsyncSession, request: CustomOrderRequest) -> CustomOrderRequest:
        await db.refresh(request)
        await db.refresh(request, attribute_names=["items"])
        return request

    @staticmethod
    async def _claim_transition(
        db: AsyncSession,
        request: CustomOrderRequest,
        current: CustomRequestStatus,
        target: CustomRequestStatus,
    ) -> None:
        """
        Move the stored row from `current` to `target` only if nobody else has.

        The in-memory status may be stale when two sessions race, so the row
        itself decides.
        """
        claimed = await db.execute(
            update(CustomOrderRequest)
            .where(CustomOrderRequest.id == request.id, CustomOrderRequest.status == current)
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        if claimed.rowcount != 1:
            await db.rollback()
            await db.refresh(request)
            raise InvalidStatusTransitionError("custom order request", request.status.value, target.value)
        request.status = target

    # Customer side

    @staticmethod
    async def create_request(
        db: AsyncSession, redis, customer_id: int, data: CustomOrderRequestCreate, now: Optional[datetime] = None
    ) -> CustomOrderRequest:
        provider = await db.get(Provider, data.provider_id)
        if not provider:
            raise ResourceNotFoundError("Provider", data.provider_id)
        if provider.status in CLOSED_PROVIDER_STATUSES:
            raise ValidationFailedError("This store is not accepting custom orders")
        if not ((data.original_text or "").strip() or data.voice_url or data.image_urls):
            raise ValidationFailedError("A request needs text, a voice note or at least one image")

        now = now or utcnow()
        request = CustomOrderRequest(
            provider_id=provider.id,
            customer_id=customer_id,
            input_type=data.input_type,
            original_text=data.original_text,
            voice_url=data.voice_url,
            image_urls=data.image_urls,
            customer_notes=data.customer_notes,
            delivery_address=data.delivery_address,
            status=CustomRequestStatus.PENDING,
            delivery_fee=provider.delivery_fee or 0.0,
            pricing_expires_at=now + timedelta(hours=settings.custom_order_pricing_timeout_hours),
        )
        db.add(request)
        await db.commit()
        await CustomOrderService._reload(db, request)

        await publish_request_change(redis, provider.id, "INSERT", request.id)
        logger.info("Custom order request %s sent to provider %s", request.id, provider.id)
        return request

    @staticmethod
    async def customer_respond(
        db: AsyncSession, redis, customer_id: int, request_id: int, decision: str, now: Optional[datetime] = None
    ) -> CustomOrderRequest:
        """
        Approve or reject a priced request.

        Approval creates an order from the billable items and links it.
        """
        now = now or utcnow()
        request = await CustomOrderService._get(db, request_id)

        if request.customer_id != customer_id:
            raise ForbiddenActionError("You can only respond to your own requests")

        target = (
            CustomRequestStatus.CUSTOMER_APPROVED if decision == "approve"
            else CustomRequestStatus.CUSTOMER_REJECTED
        )
        if request.status != CustomRequestStatus.PRICED:
            raise InvalidStatusTransitionError("custom order request", request.status.value, target.value)

        approval_deadline = ensure_utc(request.approval_expires_at)
        if approval_deadline is not None and approval_deadline <= now:
            request.status = CustomRequestStatus.EXPIRED
            await db.commit()
            await publish_request_change(redis, request.provider_id, "UPDATE", request.id)
            raise InvalidStatusTransitionError("custom order request", CustomRequestStatus.EXPIRED.value, target.value)

        await CustomOrderService._claim_transition(db, request, CustomRequestStatus.PRICED, target)

        if target == CustomRequestStatus.CUSTOMER_APPROVED:
            order = await CustomOrderService._create_order(db, request, now)
            request.order_id = order.id

        request.responded_at = now
        await db.commit()
        await CustomOrderService._reload(db, request)

        await publish_request_change(redis, request.provider_id, "UPDATE", request.id)
        logger.info("Custom order request %s %s by customer", request.id, target.value)
        return request

    @staticmethod
    async def _create_order(db: AsyncSession, request: CustomOrderRequest, now: datetime) -> Order:
        provider = await db.get(Provider, request.provider_id)
        commission_rate = (provider.commission_rate if provider else 0.0) or 0.0

        order = Order(
            order_number=f"CO-{now:%Y%m%d}-{request.id}-{uuid.uuid4().hex[:6].upper()}",
            customer_id=request.customer_id,
            provider_id=request.provider_id,
            governorate_id=provider.governorate_id if provider else None,
            status=OrderStatus.PENDING,
            order_flow="custom",
            subtotal=request.subtotal,
            discount=0.0,
            delivery_fee=request.delivery_fee,
            total=request.total,
            platform_commission=round(request.subtotal * commission_rate / 100, 2),
            payment_method="cash",
            settlement_status=OrderSettlementStatus.ELIGIBLE,
            delivery_address=request.delivery_address,
            notes=request.customer_notes,
        )
        db.add(order)
        await db.flush()

        for item in request.items:
            if not is_billable(item):
                continue
            substituted = (
                item.availability_status == ItemAvailabilityStatus.SUBSTITUTED
                and substitute_total(item) is not None
            )
            db.add(OrderItem(
                order_id=order.id,
                item_source="custom",
                custom_item_id=item.id,
                item_name_ar=(item.substitute_name_ar or item.item_name_ar) if substituted else item.item_name_ar,
                item_name_en=(item.substitute_name_en or item.item_name_en) if substituted else item.item_name_en,
                quantity=item.substitute_quantity if substituted else item.quantity,
                unit_price=item.substitute_unit_price if substituted else item.unit_price,
                total_price=effective_line_total(item),
            ))

        return order

    # Merchant side

    @staticmethod
    async def list_requests(
        db: AsyncSession, provider: Provider, status: Optional[CustomRequestStatus] = None, limit: int = 50
    ) -> List[CustomOrderRequest]:
        query = select(CustomOrderRequest).where(CustomOrderRequest.provider_id == provider.id)
        if status:
            query = query.where(CustomOrderRequest.status == status)
        query = query.order_by(CustomOrderRequest.created_at.desc(), CustomOrderRequest.id.desc()).limit(limit)

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def get_request(db: AsyncSession, provider: Provider, request_id: int) -> CustomOrderRequest:
        request = await CustomOrderService._get(db, request_id)
        if request.provider_id != provider.id:
            raise ForbiddenActionError("This request belongs to another store")
        return request

    @staticmethod
    def countdown(request: CustomOrderRequest, now: Optional[datetime] = None) -> TimeRemaining:
        return time_remaining(request.pricing_expires_at, now or utcnow())

    @staticmethod
    async def submit_pricing(
        db: AsyncSession,
        redis,
        provider: Provider,
        request_id: int,
        payload: SubmitPricingRequest,
        now: Optional[datetime] = None
    ) -> CustomOrderRequest:
        """
        Store the merchant's priced items and move the request to `priced`.

        Raises:
            InvalidStatusTransitionError: request is no longer pending
            PricingDeadlinePassedError: the pricing window has closed
            ConflictError: another submit for this request is in flight
        """
        now = now or utcnow()
        request = await CustomOrderService.get_request(db, provider, request_id)

        if request.status != CustomRequestStatus.PENDING:
            raise InvalidStatusTransitionError(
                "custom order request", request.status.value, CustomRequestStatus.PRICED.value
            )

        deadline = ensure_utc(request.pricing_expires_at)
        if deadline is not None and deadline <= now:
            raise PricingDeadlinePassedError(request.id)

        named = [item for item in payload.items if item_display_name(item)]
        if not named:
            raise ValidationFailedError("At least one named item is required")

        guard_key = pricing_submit_key(request.id)
        token = await acquire_lock(redis, guard_key, settings.pricing_submit_guard_seconds)
        if not token:
            raise ConflictError(
                "Pricing for this request is already being submitted",
                details={"request_id": request.id}
            )

        try:
            await CustomOrderService._claim_transition(
                db, request, CustomRequestStatus.PENDING, CustomRequestStatus.PRICED
            )
            summary = summarize(named, request.delivery_fee)

            request.items.clear()
            for position, item in enumerate(named):
                request.items.append(CustomOrderItem(
                    original_customer_text=item.original_customer_text,
                    item_name_ar=item_display_name(item),
                    item_name_en=item.item_name_en,
                    unit_type=item.unit_type,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    total_price=line_total(item.quantity, item.unit_price),
                    availability_status=item.availability_status,
                    substitute_name_ar=item.substitute_name_ar,
                    substitute_name_en=item.substitute_name_en,
                    substitute_quantity=item.substitute_quantity,
                    substitute_unit_type=item.substitute_unit_type,
                    substitute_unit_price=item.substitute_unit_price,
                    substitute_total_price=substitute_total(item),
                    merchant_notes=item.merchant_notes,
                    display_order=position,
                ))

            request.items_count = summary.items_count
            request.subtotal = summary.subtotal
            request.total = summary.total
            request.priced_at = now
            request.approval_expires_at = now + timedelta(hours=settings.custom_order_approval_timeout_hours)
            if payload.transcribed_text:
                request.transcribed_text = payload.transcribed_text

            CustomOrderService._record_price_history(db, request, named, now)

            await db.commit()
        finally:
            await release_lock(redis, guard_key, token)

        await CustomOrderService._reload(db, request)
        await publish_request_change(redis, provider.id, "UPDATE", request.id)
        logger.info("Custom order request %s priced: subtotal %.2f", request.id, request.subtotal)
        return request

    @staticmethod
    def _record_price_history(db: AsyncSession, request: CustomOrderRequest, items, now: datetime) -> None:
        for item in items:
            if item.availability_status == ItemAvailabilityStatus.UNAVAILABLE or not item.unit_price:
                continue
            name = item_display_name(item)
            db.add(CustomOrderPriceHistory(
                provider_id=request.provider_id,
                customer_id=request.customer_id,
                request_id=request.id,
                item_name_normalized=normalize_item_name(name),
                item_name_ar=name,
                item_name_en=item.item_name_en,
                unit_type=item.unit_type,
                unit_price=item.unit_price,
                quantity=item.quantity,
                total_price=line_total(item.quantity, item.unit_price),
                created_at=now,
            ))

    @staticmethod
    async def price_history_lookup(
        db: AsyncSession, provider_id: int, name: str, limit: int = 10
    ) -> List[CustomOrderPriceHistory]:
        """
        Previous prices for a similar item name, most recent first.

        Matches when either normalized name contains the other.
        """
        needle = normalize_item_name(name)
        if not needle:
            return []

        result = await db.execute(
            select(CustomOrderPriceHistory)
            .where(CustomOrderPriceHistory.provider_id == provider_id)
            .order_by(CustomOrderPriceHistory.created_at.desc(), CustomOrderPriceHistory.id.desc())
            .limit(500)
        )
        matches = [
            row for row in result.scalars().all()
            if needle in row.item_name_normalized or row.item_name_normalized in needle
        ]
        return matches[:limit]

    # Deadlines

    @staticmethod
    async def expire_requests(db: AsyncSession, redis, now: Optional[datetime] = None) -> Dict[str, int]:
        """Expire pending requests past the pricing deadline and priced ones past approval."""
        now = now or utcnow()

        pending = await db.execute(
            select(CustomOrderRequest).where(
                CustomOrderRequest.status == CustomRequestStatus.PENDING,
                CustomOrderRequest.pricing_expires_at < now,
            )
        )
        pricing_expired = list(pending.scalars().all())

        priced = await db.execute(
            select(CustomOrderRequest).where(
                CustomOrderRequest.status == CustomRequestStatus.PRICED,
                CustomOrderRequest.approval_expires_at < now,
            )
        )
        approval_expired = list(priced.scalars().all())

        for request in pricing_expired + approval_expired:
            request.status = CustomRequestStatus.EXPIRED
        await db.commit()

        for request in pricing_expired + approval_expired:
            await publish_request_change(redis, request.provider_id, "UPDATE", request.id)

        if pricing_expired or approval_expired:
            logger.info(
                "Expired %d unpriced and %d unanswered custom order requests",
                len(pricing_expired), len(approval_expired)
            )
        return {"pricing_expired": len(pricing_expired), "approval_expired": len(approval_expired)}
