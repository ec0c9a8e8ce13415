"""
Admin helpers for orders: cancellation, refunds and manual status changes.

Status changes that the customer should hear about trigger a best-effort
email after the change is committed.
"""

from datetime import datetime, time, timezone
from typing import Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.clock import utcnow
from backoffice.app.core.exceptions import (
    ResourceNotFoundError, InvalidStatusTransitionError, ValidationFailedError
)
from backoffice.app.domain.admin.operations import operation, record_admin_action, require_reason, paginate
from backoffice.app.models.enums import OrderStatus
from backoffice.app.models.order import Order, Refund
from backoffice.app.models.profile import Profile
from backoffice.app.models.provider import Provider
from backoffice.app.services.audit import AuditAction, AuditResource, snapshot, log_denied_action
from backoffice.app.services.mailer import EmailService

CANCELLABLE_STATUSES = (OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING)
REFUNDABLE_STATUSES = (OrderStatus.DELIVERED, OrderStatus.CANCELLED)

ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.CONFIRMED, OrderStatus.CANCELLED},
    OrderStatus.CONFIRMED: {OrderStatus.PREPARING, OrderStatus.CANCELLED},
    OrderStatus.PREPARING: {OrderStatus.READY, OrderStatus.CANCELLED},
    OrderStatus.READY: {OrderStatus.DELIVERING, OrderStatus.CANCELLED},
    OrderStatus.DELIVERING: {OrderStatus.DELIVERED, OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: {OrderStatus.REFUNDED},
    OrderStatus.CANCELLED: {OrderStatus.REFUNDED},
    OrderStatus.REFUNDED: set(),
}

AUDIT_FIELDS = ("status", "payment_status", "cancelled_reason")


async def _get_order(db: AsyncSession, order_id: int) -> Order:
    order = await db.get(Order, order_id)
    if not order:
        raise ResourceNotFoundError("Order", order_id)
    return order


async def _deny(db: AsyncSession, admin_id: int, action: str, order: Order, target: OrderStatus):
    await log_denied_action(
        db, admin_id, AuditResource.ORDERS, action, "order", order.id,
        denial_reason=f"status is {order.status.value}",
    )
    raise InvalidStatusTransitionError("order", order.status.value, target.value)


async def notify_status_change(db: AsyncSession, order: Order, new_status: OrderStatus) -> bool:
    customer = await db.get(Profile, order.customer_id)
    provider = await db.get(Provider, order.provider_id)
    return await EmailService.send_order_status_email(
        order,
        new_status,
        customer_email=customer.email if customer else None,
        provider_email=provider.email if provider else None,
        provider_name=provider.name_en if provider else None,
    )


@operation
async def list_orders(
    db: AsyncSession,
    status: Optional[OrderStatus] = None,
    provider_id: Optional[int] = None,
    customer_id: Optional[int] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20
):
    query = select(Order)
    if status:
        query = query.where(Order.status == status)
    if provider_id:
        query = query.where(Order.provider_id == provider_id)
    if customer_id:
        query = query.where(Order.customer_id == customer_id)
    if search and search.strip():
        query = query.where(Order.order_number.ilike(f"%{search.strip()}%"))
    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return await paginate(db, query, page, page_size)


@operation
async def get_order(db: AsyncSession, order_id: int):
    return await _get_order(db, order_id)


@operation
async def cancel_order(db: AsyncSession, admin_id: int, order_id: int, reason: str):
    reason = require_reason(reason, "Cancellation")
    order = await _get_order(db, order_id)
    if order.status not in CANCELLABLE_STATUSES:
        await _deny(db, admin_id, AuditAction.ORDER_CANCEL, order, OrderStatus.CANCELLED)

    old = snapshot(order, AUDIT_FIELDS)
    order.status = OrderStatus.CANCELLED
    order.cancelled_reason = reason
    order.cancelled_by = "admin"
    order.cancelled_at = utcnow()
    await db.commit()
    await db.refresh(order)

    await record_admin_action(
        db, admin_id, AuditResource.ORDERS, AuditAction.ORDER_CANCEL, "order", order.id,
        f"Order #{order.order_number}", old, snapshot(order, AUDIT_FIELDS),
        "order_cancelled", f"Order #{order.order_number} cancelled by admin", reason,
    )
    await notify_status_change(db, order, OrderStatus.CANCELLED)
    return order


@operation
async def initiate_refund(db: AsyncSession, admin_id: int, order_id: int, amount: float, reason: str):
    """
    Refund a delivered or cancelled order.

    The order moves to refunded and a pending `refunds` row is written in the
    same commit.
    """
    reason = require_reason(reason, "Refund")
    if amount is None or amount <= 0:
        raise ValidationFailedError("Refund amount must be positive")

    order = await _get_order(db, order_id)
    if order.status not in REFUNDABLE_STATUSES:
        await _deny(db, admin_id, AuditAction.ORDER_REFUND, order, OrderStatus.REFUNDED)
    if amount > order.total:
        raise ValidationFailedError(
            "Refund amount cannot exceed order total",
            details={"amount": amount, "total": order.total}
        )

    old = snapshot(order, AUDIT_FIELDS)
    order.status = OrderStatus.REFUNDED
    refund = Refund(
        order_id=order.id,
        amount=amount,
        reason=reason,
        status="pending",
        initiated_by=admin_id,
    )
    db.add(refund)
    await db.commit()
    await db.refresh(order)
    await db.refresh(refund)

    await record_admin_action(
        db, admin_id, AuditResource.ORDERS, AuditAction.ORDER_REFUND, "order", order.id,
        f"Order #{order.order_number}", old, {**snapshot(order, AUDIT_FIELDS), "refund_amount": amount},
        "order_refunded", f"Refund of {amount:.2f} initiated for order #{order.order_number}", reason,
    )
    return {"order": order, "refund": refund}


@operation
async def update_order_status(
    db: AsyncSession, admin_id: int, order_id: int, new_status: OrderStatus, note: Optional[str] = None
):
    order = await _get_order(db, order_id)
    if new_status not in ORDER_TRANSITIONS.get(order.status, set()):
        await _deny(db, admin_id, AuditAction.ORDER_STATUS, order, new_status)

    old = snapshot(order, AUDIT_FIELDS)
    now = utcnow()
    order.status = new_status
    if new_status == OrderStatus.CONFIRMED and order.confirmed_at is None:
        order.confirmed_at = now
    if new_status == OrderStatus.DELIVERED and order.delivered_at is None:
        order.delivered_at = now
    if new_status == OrderStatus.CANCELLED:
        order.cancelled_at = now
        order.cancelled_by = "admin"
        if note:
            order.cancelled_reason = note
    await db.commit()
    await db.refresh(order)

    await record_admin_action(
        db, admin_id, AuditResource.ORDERS, AuditAction.ORDER_STATUS, "order", order.id,
        f"Order #{order.order_number}", old, snapshot(order, AUDIT_FIELDS),
        "order_status_changed", f"Order #{order.order_number} moved to {new_status.value}", note,
    )
    await notify_status_change(db, order, new_status)
    return order


@operation
async def order_stats(db: AsyncSession, now: Optional[datetime] = None):
    now = now or utcnow()
    result = await db.execute(select(Order.status, func.count(Order.id)).group_by(Order.status))
    by_status = {status.value: 0 for status in OrderStatus}
    for status, count in result.all():
        by_status[status.value] = count

    revenue = await db.scalar(
        select(func.coalesce(func.sum(Order.total), 0.0)).where(Order.status == OrderStatus.DELIVERED)
    )
    day_start = datetime.combine(now.date(), time.min, tzinfo=timezone.utc)
    today = await db.scalar(select(func.count(Order.id)).where(Order.created_at >= day_start))

    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "revenue": round(float(revenue or 0.0), 2),
        "today": today or 0,
    }
