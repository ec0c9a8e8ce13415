"""
Audit Trail API Endpoints.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from backoffice.app.core.guards import require_admin
from backoffice.app.db.session import get_db
from backoffice.app.schemas.admin import AuditLogResponse
from backoffice.app.services.audit import get_audit_trail

router = APIRouter(prefix="/admin/audit-log", tags=["Admin - Audit"])


@router.get("", response_model=List[AuditLogResponse])
async def list_audit_log(
    admin_id: Optional[int] = Query(None),
    entity_type: Optional[str] = Query(None),
    entity_id: Optional[str] = Query(None),
    action: Optional[str] = Query(None),
    audit_status: Optional[str] = Query(None, alias="status", pattern="^(success|denied)$"),
    limit: int = Query(100, ge=1, le=500),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await get_audit_trail(
        db,
        admin_id=admin_id,
        entity_type=entity_type,
        entity_id=entity_id,
        action_code=action,
        status=audit_status,
        limit=limit,
    )
