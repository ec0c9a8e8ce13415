"""
Settlement API Endpoints.

Generation, detail, payment recording, disputes and deletion for admins, plus a
read-only view for merchants.
"""

from fastapi import APIRouter, Depends, Path, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from backoffice.app.core.guards import require_admin, get_current_provider
from backoffice.app.core.redis_client import get_redis
from backoffice.app.db.session import get_db
from backoffice.app.domain.settlements.settlement_service import SettlementService
from backoffice.app.models.enums import SettlementStatus
from backoffice.app.models.provider import Provider
from backoffice.app.schemas.settlement import (
    DisputeSettlementRequest, GenerateSettlementsRequest, GenerationResult, ProviderSettlementRequest,
    RecordPaymentRequest, SettlementDeleteResult, SettlementDetailResponse, SettlementOrderLine,
    SettlementProviderSummary, SettlementResponse, SettlementStats, UpdateSettlementStatusRequest
)
from backoffice.app.services.audit import log_audit_action, AuditAction, AuditResource

router = APIRouter(prefix="/admin/settlements", tags=["Admin - Settlements"])
provider_router = APIRouter(prefix="/provider/settlements", tags=["Provider - Settlements"])


def to_generation_result(outcome: dict) -> GenerationResult:
    return GenerationResult(
        settlements_created=outcome["settlements_created"],
        providers_processed=outcome["providers_processed"],
        skipped=outcome["skipped"],
        errors=outcome["errors"],
        settlements=[SettlementResponse.model_validate(row) for row in outcome["settlements"]],
    )


async def audit_generation(db: AsyncSession, current_user: dict, outcome: dict, scope: dict) -> None:
    for settlement in outcome["settlements"]:
        await log_audit_action(
            db,
            admin_id=current_user["user_id"],
            resource_code=AuditResource.SETTLEMENTS,
            action_code=AuditAction.SETTLEMENT_GENERATE,
            entity_type="settlement",
            entity_id=settlement.id,
            new_data={
                **scope,
                "provider_id": settlement.provider_id,
                "total_orders": settlement.total_orders,
                "net_balance": settlement.net_balance,
            },
        )


@router.get("", response_model=List[SettlementResponse])
async def list_settlements(
    settlement_status: Optional[SettlementStatus] = Query(None, alias="status"),
    provider_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await SettlementService.list_settlements(db, settlement_status, provider_id, limit, offset)


@router.get("/stats", response_model=SettlementStats)
async def settlement_stats(
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    return await SettlementService.settlement_stats(db)


@router.post("/generate", response_model=GenerationResult)
async def generate_settlements(
    data: GenerateSettlementsRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """
    Settle all providers for the last 1, 3 or 7 days.

    Providers already being settled by another run are reported under `skipped`.
    """
    outcome = await SettlementService.generate_settlements(
        db, redis, data.period_days, created_by=f"admin:{current_user['user_id']}"
    )
    await audit_generation(db, current_user, outcome, {"period_days": data.period_days})
    return to_generation_result(outcome)


@router.post("/generate/provider", response_model=GenerationResult)
async def generate_provider_settlement(
    data: ProviderSettlementRequest,
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    outcome = await SettlementService.generate_provider_settlement(
        db, redis, data.provider_id, data.start_date, data.end_date,
        created_by=f"admin:{current_user['user_id']}"
    )
    await audit_generation(
        db, current_user, outcome,
        {"start_date": str(data.start_date), "end_date": str(data.end_date)}
    )
    return to_generation_result(outcome)


@router.get("/{settlement_id}", response_model=SettlementDetailResponse)
async def get_settlement(
    settlement_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Settlement with its provider and the orders it covers."""
    settlement = await SettlementService.get_settlement(db, settlement_id)
    provider = await db.get(Provider, settlement.provider_id)
    orders = await SettlementService.included_orders(db, settlement)

    return SettlementDetailResponse(
        **SettlementResponse.model_validate(settlement).model_dump(),
        provider=SettlementProviderSummary.model_validate(provider) if provider else None,
        orders=[SettlementOrderLine(**line) for line in orders],
    )


@router.delete("/{settlement_id}", response_model=SettlementDeleteResult)
async def delete_settlement(
    settlement_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    """Delete an unpaid settlement; its orders can be settled again."""
    settlement = await SettlementService.get_settlement(db, settlement_id)
    old_data = {
        "provider_id": settlement.provider_id,
        "status": settlement.status.value,
        "net_balance": settlement.net_balance,
        "orders_included": list(settlement.orders_included or []),
    }
    released = await SettlementService.delete_settlement(db, settlement_id)

    await log_audit_action(
        db,
        admin_id=current_user["user_id"],
        resource_code=AuditResource.SETTLEMENTS,
        action_code=AuditAction.SETTLEMENT_DELETE,
        entity_type="settlement",
        entity_id=settlement_id,
        old_data=old_data,
        new_data={"released_orders": released},
    )
    return SettlementDeleteResult(settlement_id=settlement_id, released_orders=released)


@router.post("/{settlement_id}/dispute", response_model=SettlementResponse)
async def dispute_settlement(
    data: DisputeSettlementRequest,
    settlement_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    previous = (await SettlementService.get_settlement(db, settlement_id)).status
    settlement = await SettlementService.dispute_settlement(db, settlement_id, data.reason)

    await log_audit_action(
        db,
        admin_id=current_user["user_id"],
        resource_code=AuditResource.SETTLEMENTS,
        action_code=AuditAction.SETTLEMENT_DISPUTE,
        entity_type="settlement",
        entity_id=settlement.id,
        old_data={"status": previous.value},
        new_data={"status": settlement.status.value},
        reason=settlement.notes,
    )
    return settlement


@router.post("/{settlement_id}/payment", response_model=SettlementResponse)
async def record_payment(
    data: RecordPaymentRequest,
    settlement_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    settlement = await SettlementService.record_payment(
        db, settlement_id, data.amount, data.payment_method, data.payment_reference,
        current_user["user_id"], data.notes
    )

    await log_audit_action(
        db,
        admin_id=current_user["user_id"],
        resource_code=AuditResource.SETTLEMENTS,
        action_code=AuditAction.SETTLEMENT_PAYMENT,
        entity_type="settlement",
        entity_id=settlement.id,
        new_data={
            "status": settlement.status.value,
            "amount_paid": settlement.amount_paid,
            "payment_method": settlement.payment_method,
            "payment_reference": settlement.payment_reference,
        },
    )
    return settlement


@router.patch("/{settlement_id}/status", response_model=SettlementResponse)
async def update_settlement_status(
    data: UpdateSettlementStatusRequest,
    settlement_id: int = Path(...),
    current_user: dict = Depends(require_admin),
    db: AsyncSession = Depends(get_db)
):
    previous = (await SettlementService.get_settlement(db, settlement_id)).status
    settlement = await SettlementService.update_status(db, settlement_id, data.status, data.notes)

    await log_audit_action(
        db,
        admin_id=current_user["user_id"],
        resource_code=AuditResource.SETTLEMENTS,
        action_code=AuditAction.SETTLEMENT_STATUS,
        entity_type="settlement",
        entity_id=settlement.id,
        old_data={"status": previous.value},
        new_data={"status": settlement.status.value},
        reason=data.notes,
    )
    return settlement


# Merchant view

@provider_router.get("", response_model=List[SettlementResponse])
async def list_my_settlements(
    settlement_status: Optional[SettlementStatus] = Query(None, alias="status"),
    provider: Provider = Depends(get_current_provider),
    db: AsyncSession = Depends(get_db)
):
    return await SettlementService.list_settlements(db, settlement_status, provider.id)
