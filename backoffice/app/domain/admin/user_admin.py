"""
Admin helpers for user accounts.
"""

import logging
from typing import Optional

from sqlalchemy import select, func, update, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.clock import utcnow
from backoffice.app.core.exceptions import (
    ResourceNotFoundError, InvalidStatusTransitionError, ForbiddenActionError
)
from backoffice.app.domain.admin.operations import operation, record_admin_action, require_reason, paginate
from backoffice.app.models.enums import UserRole, OrderStatus
from backoffice.app.models.order import Order
from backoffice.app.models.profile import Profile
from backoffice.app.services.audit import AuditAction, AuditResource, snapshot, log_denied_action

logger = logging.getLogger("backoffice.admin.users")

# Orders cancelled when their customer is banned
ACTIVE_ORDER_STATUSES = (
    OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY,
)

AUDIT_FIELDS = ("role", "is_active")


async def _get_profile(db: AsyncSession, user_id: int) -> Profile:
    profile = await db.get(Profile, user_id)
    if not profile:
        raise ResourceNotFoundError("User", user_id)
    return profile


async def _cancel_active_orders(db: AsyncSession, user_id: int, reason: str) -> int:
    """Second step of a ban. A failure here is logged and does not undo the ban."""
    try:
        result = await db.execute(
            update(Order)
            .where(Order.customer_id == user_id, Order.status.in_(ACTIVE_ORDER_STATUSES))
            .values(
                status=OrderStatus.CANCELLED,
                cancelled_reason=f"Customer account banned: {reason}",
                cancelled_by="admin",
                cancelled_at=utcnow(),
            )
            .execution_options(synchronize_session=False)
        )
        await db.commit()
        return result.rowcount or 0
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Banned user %s: cancelling active orders failed: %s", user_id, e)
        return 0


@operation
async def list_users(
    db: AsyncSession,
    role: Optional[UserRole] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    page: int = 1,
    page_size: int = 20
):
    query = select(Profile)
    if role:
        query = query.where(Profile.role == role)
    if is_active is not None:
        query = query.where(Profile.is_active.is_(is_active))
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.where(or_(
            Profile.full_name.ilike(pattern), Profile.email.ilike(pattern), Profile.phone.ilike(pattern),
        ))
    query = query.order_by(Profile.created_at.desc(), Profile.id.desc())
    return await paginate(db, query, page, page_size)


@operation
async def get_user(db: AsyncSession, user_id: int):
    return await _get_profile(db, user_id)


@operation
async def ban_user(db: AsyncSession, admin_id: int, user_id: int, reason: str):
    """
    Deactivate the account, then cancel the user's active orders.

    Returns:
        {"user": Profile, "cancelled_orders": int}
    """
    reason = require_reason(reason, "Ban")
    profile = await _get_profile(db, user_id)

    if profile.role == UserRole.ADMIN:
        await log_denied_action(
            db, admin_id, AuditResource.USERS, AuditAction.USER_BAN, "user", user_id,
            denial_reason="admins cannot be banned",
        )
        raise ForbiddenActionError("Admin accounts cannot be banned")
    if not profile.is_active:
        raise InvalidStatusTransitionError("user", "banned", "banned")

    old = snapshot(profile, AUDIT_FIELDS)
    profile.is_active = False
    await db.commit()
    await db.refresh(profile)

    cancelled = await _cancel_active_orders(db, user_id, reason)

    await record_admin_action(
        db, admin_id, AuditResource.USERS, AuditAction.USER_BAN, "user", profile.id,
        profile.full_name or profile.email, old,
        {**snapshot(profile, AUDIT_FIELDS), "cancelled_orders": cancelled},
        "user_banned", f"User {profile.email} banned ({cancelled} orders cancelled)", reason,
    )
    return {"user": profile, "cancelled_orders": cancelled}


@operation
async def unban_user(db: AsyncSession, admin_id: int, user_id: int):
    profile = await _get_profile(db, user_id)
    if profile.is_active:
        raise InvalidStatusTransitionError("user", "active", "active")

    old = snapshot(profile, AUDIT_FIELDS)
    profile.is_active = True
    await db.commit()
    await db.refresh(profile)

    await record_admin_action(
        db, admin_id, AuditResource.USERS, AuditAction.USER_UNBAN, "user", profile.id,
        profile.full_name or profile.email, old, snapshot(profile, AUDIT_FIELDS),
        "user_unbanned", f"User {profile.email} unbanned",
    )
    return profile


@operation
async def change_user_role(db: AsyncSession, admin_id: int, user_id: int, new_role: UserRole):
    if admin_id == user_id:
        await log_denied_action(
            db, admin_id, AuditResource.USERS, AuditAction.USER_ROLE_CHANGE, "user", user_id,
            denial_reason="cannot change own role",
        )
        raise ForbiddenActionError("You cannot change your own role")

    profile = await _get_profile(db, user_id)

    old = snapshot(profile, AUDIT_FIELDS)
    profile.role = new_role
    await db.commit()
    await db.refresh(profile)

    await record_admin_action(
        db, admin_id, AuditResource.USERS, AuditAction.USER_ROLE_CHANGE, "user", profile.id,
        profile.full_name or profile.email, old, snapshot(profile, AUDIT_FIELDS),
        "user_role_changed", f"User {profile.email} role changed to {new_role.value}",
    )
    return profile


@operation
async def user_stats(db: AsyncSession):
    result = await db.execute(select(Profile.role, func.count(Profile.id)).group_by(Profile.role))
    by_role = {role.value: 0 for role in UserRole}
    for role, count in result.all():
        by_role[role.value] = count

    banned = await db.scalar(select(func.count(Profile.id)).where(Profile.is_active.is_(False)))
    total = sum(by_role.values())
    return {
        "total": total,
        "active": total - (banned or 0),
        "banned": banned or 0,
        "by_role": by_role,
    }
