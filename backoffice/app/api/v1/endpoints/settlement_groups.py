"""
Settlement Group API Endpoints.

Groups decide how often their providers are settled. Admins manage the
groups, move providers between them and can run one group's settlement.
"""

from fastapi import APIRouter, Depends, Path
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from backoffice.app.api.v1.endpoints.settlements import to_generation_result, audit_generation
from backoffice.app.core.guards import require_admin
from backoffice.app.core.redis_client import get_redis
from backoffice.app.db.session import get_db
from backoffice.app.domain.settlements.group_service import SettlementGroupService, FREQUENCY_PERIOD_DAYS
from backoffice.app.domain.settlements.settlement_service import SettlementService
from backoffice.app.models.settlement import SettlementGroup
from backoffice.app.schemas.common import MessageResponse
from backoffice.app.schemas.settlement import (
    AssignProviderGroupRequest, GenerationResult, SettlementGroupCreate, SettlementGroupResponse,
    SettlementGroupUpdate, SettlementProviderSummary
)
from backoffice.app.services.audit import log_audit_action, snapshot, AuditAction, AuditResource

router = APIRouter(prefix="/admin/settlement-groups", tags=["Admin - Settlement Groups"])

GROUP_AUDIT_FIELDS = ("name_ar", "name_en", "frequency", "is_default", "is_active")


def to_group_response(group: SettlementGroup, provider_count: int = 0) -> SettlementGroupResponse:
    return SettlementGroupResponse(
        id=group.id,
        name_ar=group.name_ar,
        name_en=group.name_en,
        description_ar=group.description_ar,
        description_en=group.description_en,
        frequency=group.frequency,
        period_days=FREQUENCY_PERIOD_DAYS[group.frequency],
        is_default=group.is_default,
        is_active=group.is_active,
        provider_count=provider_count,
        created_at=group.created_at,
    )


async def _audit_group(db: AsyncSession, current_user: dict, action: str, group_id: int, old=None, new=None):
    await log_audit_action(
        db,
        admin_id=current_user["user_id"],
        resource_code=AuditResource.SETTLEMENTS,
        action_code=action,
        entity_type="settlement_group",
        entity_id=group_id,
        old_data=old,
        new_data=new,
    )


@router.get("", response_model=List[SettlementGroupResponse])
async def list_groups(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return [to_group_response(group, count) for group, count in await SettlementGroupService.list_groups(db)]


@router.post("", response_model=SettlementGroupResponse, status_code=201)
async def create_group(
    data: SettlementGroupCreate,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    group = await SettlementGroupService.create_group(db, data)
    await _audit_group(db, current_user, AuditAction.GROUP_CREATE, group.id, new=snapshot(group, GROUP_AUDIT_FIELDS))
    return to_group_response(group)


@router.patch("/{group_id}", response_model=SettlementGroupResponse)
async def update_group(
    data: SettlementGroupUpdate,
    group_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    old = snapshot(await SettlementGroupService.get_group(db, group_id), GROUP_AUDIT_FIELDS)
    group = await SettlementGroupService.update_group(db, group_id, data)
    await _audit_group(
        db, current_user, AuditAction.GROUP_UPDATE, group.id, old=old, new=snapshot(group, GROUP_AUDIT_FIELDS)
    )
    return to_group_response(group)


@router.post("/{group_id}/toggle", response_model=SettlementGroupResponse)
async def toggle_group(
    group_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    group = await SettlementGroupService.toggle_active(db, group_id)
    await _audit_group(
        db, current_user, AuditAction.GROUP_UPDATE, group.id,
        old={"is_active": not group.is_active}, new={"is_active": group.is_active}
    )
    return to_group_response(group)


@router.delete("/{group_id}", response_model=MessageResponse)
async def delete_group(
    group_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    old = snapshot(await SettlementGroupService.get_group(db, group_id), GROUP_AUDIT_FIELDS)
    unassigned = await SettlementGroupService.delete_group(db, group_id)
    await _audit_group(
        db, current_user, AuditAction.GROUP_DELETE, group_id, old=old, new={"unassigned_providers": unassigned}
    )
    return MessageResponse(message=f"Settlement group deleted, {unassigned} providers unassigned")


@router.put("/providers/{provider_id}", response_model=SettlementProviderSummary)
async def assign_provider(
    data: AssignProviderGroupRequest,
    provider_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Move a provider into a group, or back to the default group with `group_id: null`."""
    provider = await SettlementGroupService.assign_provider(db, provider_id, data.group_id)
    await log_audit_action(
        db,
        admin_id=current_user["user_id"],
        resource_code=AuditResource.SETTLEMENTS,
        action_code=AuditAction.GROUP_ASSIGN,
        entity_type="provider",
        entity_id=provider.id,
        entity_name=provider.name_en,
        new_data={"settlement_group_id": provider.settlement_group_id},
    )
    return provider


@router.post("/{group_id}/generate", response_model=GenerationResult)
async def generate_group_settlements(
    group_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Settle the group's providers over the period its frequency sets."""
    outcome = await SettlementService.generate_group_settlements(
        db, redis, group_id, created_by=f"admin:{current_user['user_id']}"
    )
    await audit_generation(db, current_user, outcome, {"group_id": group_id})
    return to_generation_result(outcome)
