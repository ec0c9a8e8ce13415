"""
Cron API Endpoints.

Triggered by an external scheduler with `Authorization: Bearer <CRON_SECRET>`.
There is no in-process scheduler.
"""

import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.api.v1.endpoints.settlements import to_generation_result
from backoffice.app.core.config import settings
from backoffice.app.core.dependencies import verify_cron_secret
from backoffice.app.core.redis_client import get_redis
from backoffice.app.db.session import get_db
from backoffice.app.domain.pricing.pricing_service import CustomOrderService
from backoffice.app.domain.settlements.settlement_service import SettlementService
from backoffice.app.models.enums import SettlementFrequency
from backoffice.app.schemas.custom_order import ExpireRunResult
from backoffice.app.schemas.settlement import GenerationResult, OverdueRunResult

logger = logging.getLogger("backoffice.cron")

router = APIRouter(prefix="/cron", tags=["Cron"], dependencies=[Depends(verify_cron_secret)])


@router.api_route("/settlements", methods=["GET", "POST"], response_model=GenerationResult)
async def run_settlements(
    period_days: int = Query(None),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    period = period_days or settings.settlement_default_period_days
    outcome = await SettlementService.generate_settlements(db, redis, period, created_by="cron")
    logger.info(
        "Cron settlements: %d created, %d skipped, %d errors",
        outcome["settlements_created"], len(outcome["skipped"]), len(outcome["errors"])
    )
    return to_generation_result(outcome)


@router.api_route("/settlement-groups", methods=["GET", "POST"], response_model=GenerationResult)
async def run_group_settlements(
    frequency: SettlementFrequency = Query(...),
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    """Settle every active group with this frequency; schedule once per frequency."""
    outcome = await SettlementService.generate_due_groups(db, redis, frequency, created_by="cron")
    logger.info(
        "Cron %s group settlements: %d created, %d skipped, %d errors",
        frequency.value, outcome["settlements_created"], len(outcome["skipped"]), len(outcome["errors"])
    )
    return to_generation_result(outcome)


@router.api_route("/settlement-overdue", methods=["GET", "POST"], response_model=OverdueRunResult)
async def run_settlement_overdue(db: AsyncSession = Depends(get_db)):
    return await SettlementService.mark_overdue_settlements(db)


@router.api_route("/custom-orders/expire", methods=["GET", "POST"], response_model=ExpireRunResult)
async def run_custom_order_expiry(
    db: AsyncSession = Depends(get_db),
    redis=Depends(get_redis)
):
    return await CustomOrderService.expire_requests(db, redis)
