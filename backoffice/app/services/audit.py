"""
Audit logging service for admin actions.

Every admin mutation writes a `permission_audit_log` row (with the computed
field changes) and a row in the older `activity_log` feed. Both writes are
best-effort: a failure is logged and never propagates to the caller, whose
own change has already been committed.
"""

import enum
import logging
from datetime import datetime
from typing import Optional, Dict, Any, Iterable, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError

from backoffice.app.models.audit_log import PermissionAuditLog, ActivityLog

logger = logging.getLogger("backoffice.audit")


class AuditAction:
    """Standardized audit action codes."""
    # Providers
    PROVIDER_APPROVE = "approve"
    PROVIDER_REJECT = "reject"
    PROVIDER_SUSPEND = "suspend"
    PROVIDER_REACTIVATE = "reactivate"
    PROVIDER_COMMISSION = "update_commission"
    PROVIDER_FEATURE = "toggle_featured"

    # Users
    USER_BAN = "ban"
    USER_UNBAN = "unban"
    USER_ROLE_CHANGE = "change_role"

    # Orders
    ORDER_CANCEL = "cancel"
    ORDER_REFUND = "refund"
    ORDER_STATUS = "update_status"

    # Settlements
    SETTLEMENT_GENERATE = "generate"
    SETTLEMENT_PAYMENT = "record_payment"
    SETTLEMENT_STATUS = "update_status"
    SETTLEMENT_DISPUTE = "dispute"
    SETTLEMENT_DELETE = "delete"
    GROUP_CREATE = "create_group"
    GROUP_UPDATE = "update_group"
    GROUP_DELETE = "delete_group"
    GROUP_ASSIGN = "assign_group"

    # Banners
    BANNER_APPROVE = "approve"
    BANNER_REJECT = "reject"


class AuditResource:
    PROVIDERS = "providers"
    USERS = "users"
    ORDERS = "orders"
    SETTLEMENTS = "finance"
    BANNERS = "banners"


def to_jsonable(value: Any) -> Any:
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


def snapshot(row: Any, fields: Iterable[str]) -> Dict[str, Any]:
    """Capture the listed attributes of an ORM row as a JSON-safe dict."""
    return {field: to_jsonable(getattr(row, field, None)) for field in fields}


def compute_changes(
    old_data: Optional[Dict[str, Any]],
    new_data: Optional[Dict[str, Any]]
) -> Dict[str, Dict[str, Any]]:
    """
    Field-level diff between two snapshots.

    Returns:
        {field: {"old": ..., "new": ...}} for every key whose value differs
    """
    old_data = old_data or {}
    new_data = new_data or {}
    changes = {}
    for key in set(old_data) | set(new_data):
        before = old_data.get(key)
        after = new_data.get(key)
        if before != after:
            changes[key] = {"old": before, "new": after}
    return changes


async def _persist(db: AsyncSession, row) -> Optional[Any]:
    try:
        db.add(row)
        await db.commit()
        await db.refresh(row)
        return row
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to write %s: %s", type(row).__name__, e)
        return None


async def log_audit_action(
    db: AsyncSession,
    admin_id: Optional[int],
    resource_code: str,
    action_code: str,
    entity_type: str,
    entity_id: Any,
    entity_name: Optional[str] = None,
    old_data: Optional[Dict[str, Any]] = None,
    new_data: Optional[Dict[str, Any]] = None,
    reason: Optional[str] = None,
    ip_address: Optional[str] = None
) -> Optional[PermissionAuditLog]:
    """
    Record a successful admin action.

    Args:
        db: Database session
        admin_id: Acting admin profile id
        resource_code: Permission resource (use AuditResource constants)
        action_code: Action performed (use AuditAction constants)
        entity_type / entity_id / entity_name: The row acted upon
        old_data / new_data: Snapshots before and after the change
        reason: Free-text justification supplied by the admin

    Returns:
        Created row, or None when the write failed
    """
    row = PermissionAuditLog(
        admin_id=admin_id,
        resource_code=resource_code,
        action_code=action_code,
        permission_code=f"{resource_code}.{action_code}",
        entity_type=entity_type,
        entity_id=str(entity_id),
        entity_name=entity_name,
        old_data=old_data,
        new_data=new_data,
        changes=compute_changes(old_data, new_data) if (old_data or new_data) else None,
        reason=reason,
        status="success",
        ip_address=ip_address,
    )
    return await _persist(db, row)


async def log_denied_action(
    db: AsyncSession,
    admin_id: Optional[int],
    resource_code: str,
    action_code: str,
    entity_type: str,
    entity_id: Any,
    denial_reason: str
) -> Optional[PermissionAuditLog]:
    """Record an admin action that was refused."""
    row = PermissionAuditLog(
        admin_id=admin_id,
        resource_code=resource_code,
        action_code=action_code,
        permission_code=f"{resource_code}.{action_code}",
        entity_type=entity_type,
        entity_id=str(entity_id),
        status="denied",
        denial_reason=denial_reason,
    )
    return await _persist(db, row)


async def log_activity(
    db: AsyncSession,
    user_id: Optional[int],
    activity_type: str,
    description: str,
    metadata: Optional[Dict[str, Any]] = None
) -> Optional[ActivityLog]:
    """Write a row to the legacy activity feed."""
    row = ActivityLog(
        user_id=user_id,
        activity_type=activity_type,
        description=description,
        meta_data=metadata,
    )
    return await _persist(db, row)


async def get_audit_trail(
    db: AsyncSession,
    admin_id: Optional[int] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[Any] = None,
    action_code: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 100
) -> List[PermissionAuditLog]:
    """
    Retrieve the audit trail with optional filtering, newest first.
    """
    query = select(PermissionAuditLog)

    if admin_id is not None:
        query = query.where(PermissionAuditLog.admin_id == admin_id)
    if entity_type:
        query = query.where(PermissionAuditLog.entity_type == entity_type)
    if entity_id is not None:
        query = query.where(PermissionAuditLog.entity_id == str(entity_id))
    if action_code:
        query = query.where(PermissionAuditLog.action_code == action_code)
    if status:
        query = query.where(PermissionAuditLog.status == status)

    query = query.order_by(desc(PermissionAuditLog.created_at), desc(PermissionAuditLog.id)).limit(limit)

    result = await db.execute(query)
    return list(result.scalars().all())
