"""
Plumbing shared by the admin data-access helpers.

Helpers raise the usual AppExceptions internally; `operation` turns the
outcome into an OperationResult so callers never see an exception for an
expected failure.
"""

import logging
import math
from functools import wraps
from typing import Optional, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.exceptions import AppException, ErrorCode, ValidationFailedError
from backoffice.app.schemas.common import OperationResult
from backoffice.app.services.audit import log_audit_action, log_activity

logger = logging.getLogger("backoffice.admin")


def operation(func_):
    """Wrap an async helper whose first argument is the session."""
    @wraps(func_)
    async def wrapper(db: AsyncSession, *args, **kwargs) -> OperationResult:
        try:
            return OperationResult.ok(await func_(db, *args, **kwargs))
        except AppException as e:
            return OperationResult.fail(e.message, e.error_code)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error("%s failed: %s", func_.__name__, e)
            return OperationResult.fail(str(e.__cause__ or e), ErrorCode.DATABASE_ERROR)
    return wrapper


async def record_admin_action(
    db: AsyncSession,
    admin_id: Optional[int],
    resource_code: str,
    action_code: str,
    entity_type: str,
    entity_id: Any,
    entity_name: Optional[str],
    old_data: Optional[Dict[str, Any]],
    new_data: Optional[Dict[str, Any]],
    activity_type: str,
    description: str,
    reason: Optional[str] = None
) -> None:
    """Audit row plus the legacy activity row. Both are best-effort."""
    await log_audit_action(
        db,
        admin_id=admin_id,
        resource_code=resource_code,
        action_code=action_code,
        entity_type=entity_type,
        entity_id=entity_id,
        entity_name=entity_name,
        old_data=old_data,
        new_data=new_data,
        reason=reason,
    )
    await log_activity(
        db,
        user_id=admin_id,
        activity_type=activity_type,
        description=description,
        metadata={"entity_type": entity_type, "entity_id": str(entity_id), "reason": reason},
    )


def require_reason(reason: Optional[str], what: str) -> str:
    if not (reason or "").strip():
        raise ValidationFailedError(f"{what} reason is required")
    return reason.strip()


async def paginate(db: AsyncSession, query, page: int, page_size: int) -> Dict[str, Any]:
    page = max(page, 1)
    page_size = max(min(page_size, 100), 1)

    total = await db.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
    result = await db.execute(query.limit(page_size).offset((page - 1) * page_size))

    return {
        "items": list(result.scalars().all()),
        "meta": {
            "page": page,
            "page_size": page_size,
            "total": total or 0,
            "total_pages": math.ceil((total or 0) / page_size) if total else 0,
        },
    }
