"""
Admin helpers for provider (store) management.

Each helper fetches the current row, checks the allowed prior statuses,
applies the update and writes the audit trail.
"""

from typing import Optional

from sqlalchemy import select, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.app.core.exceptions import (
    ResourceNotFoundError, InvalidStatusTransitionError, ValidationFailedError
)
from backoffice.app.domain.admin.operations import operation, record_admin_action, require_reason, paginate
from backoffice.app.models.enums import ProviderStatus
from backoffice.app.models.provider import Provider
from backoffice.app.services.audit import AuditAction, AuditResource, snapshot, log_denied_action

APPROVABLE_STATUSES = (ProviderStatus.PENDING_APPROVAL, ProviderStatus.INCOMPLETE, ProviderStatus.REJECTED)
REJECTABLE_STATUSES = (ProviderStatus.PENDING_APPROVAL, ProviderStatus.INCOMPLETE, ProviderStatus.APPROVED)
SUSPENDABLE_STATUSES = (ProviderStatus.APPROVED, ProviderStatus.OPEN, ProviderStatus.CLOSED)

AUDIT_FIELDS = ("status", "rejection_reason", "commission_rate", "is_featured")


async def _get_provider(db: AsyncSession, provider_id: int) -> Provider:
    provider = await db.get(Provider, provider_id)
    if not provider:
        raise ResourceNotFoundError("Provider", provider_id)
    return provider


def _validate_commission(rate: float) -> float:
    if rate is None or rate < 0 or rate > 100:
        raise ValidationFailedError("Commission rate must be between 0 and 100", details={"commission_rate": rate})
    return rate


async def _check_status(
    db: AsyncSession, admin_id: int, provider: Provider, allowed, action: str, target: ProviderStatus
) -> None:
    if provider.status in allowed:
        return
    await log_denied_action(
        db, admin_id, AuditResource.PROVIDERS, action, "provider", provider.id,
        denial_reason=f"status is {provider.status.value}",
    )
    raise InvalidStatusTransitionError("provider", provider.status.value, target.value)


async def _apply(
    db: AsyncSession, admin_id: int, provider: Provider, old: dict, action: str,
    activity_type: str, description: str, reason: Optional[str] = None
) -> Provider:
    await db.commit()
    await db.refresh(provider)
    await record_admin_action(
        db, admin_id, AuditResource.PROVIDERS, action, "provider", provider.id, provider.name_en,
        old, snapshot(provider, AUDIT_FIELDS), activity_type, description, reason,
    )
    return provider


@operation
async def list_providers(
    db: AsyncSession,
    status: Optional[ProviderStatus] = None,
    search: Optional[str] = None,
    governorate_id: Optional[int] = None,
    category: Optional[str] = None,
    page: int = 1,
    page_size: int = 20
):
    query = select(Provider)
    if status:
        query = query.where(Provider.status == status)
    if governorate_id:
        query = query.where(Provider.governorate_id == governorate_id)
    if category:
        query = query.where(Provider.category == category)
    if search and search.strip():
        pattern = f"%{search.strip()}%"
        query = query.where(or_(
            Provider.name_ar.ilike(pattern), Provider.name_en.ilike(pattern),
            Provider.email.ilike(pattern), Provider.phone.ilike(pattern),
        ))
    query = query.order_by(Provider.created_at.desc(), Provider.id.desc())
    return await paginate(db, query, page, page_size)


@operation
async def get_provider(db: AsyncSession, provider_id: int):
    return await _get_provider(db, provider_id)


@operation
async def approve_provider(db: AsyncSession, admin_id: int, provider_id: int, commission_rate: Optional[float] = None):
    provider = await _get_provider(db, provider_id)
    await _check_status(db, admin_id, provider, APPROVABLE_STATUSES, AuditAction.PROVIDER_APPROVE, ProviderStatus.APPROVED)

    old = snapshot(provider, AUDIT_FIELDS)
    provider.status = ProviderStatus.APPROVED
    provider.rejection_reason = None
    provider.is_verified = True
    if commission_rate is not None:
        provider.commission_rate = _validate_commission(commission_rate)

    return await _apply(
        db, admin_id, provider, old, AuditAction.PROVIDER_APPROVE,
        "provider_approved", f"Provider {provider.name_en} approved",
    )


@operation
async def reject_provider(db: AsyncSession, admin_id: int, provider_id: int, reason: str):
    reason = require_reason(reason, "Rejection")
    provider = await _get_provider(db, provider_id)
    await _check_status(db, admin_id, provider, REJECTABLE_STATUSES, AuditAction.PROVIDER_REJECT, ProviderStatus.REJECTED)

    old = snapshot(provider, AUDIT_FIELDS)
    provider.status = ProviderStatus.REJECTED
    provider.rejection_reason = reason

    return await _apply(
        db, admin_id, provider, old, AuditAction.PROVIDER_REJECT,
        "provider_rejected", f"Provider {provider.name_en} rejected", reason,
    )


@operation
async def suspend_provider(db: AsyncSession, admin_id: int, provider_id: int, reason: str):
    reason = require_reason(reason, "Suspension")
    provider = await _get_provider(db, provider_id)
    await _check_status(db, admin_id, provider, SUSPENDABLE_STATUSES, AuditAction.PROVIDER_SUSPEND, ProviderStatus.SUSPENDED)

    old = snapshot(provider, AUDIT_FIELDS)
    provider.status = ProviderStatus.SUSPENDED
    provider.rejection_reason = reason

    return await _apply(
        db, admin_id, provider, old, AuditAction.PROVIDER_SUSPEND,
        "provider_suspended", f"Provider {provider.name_en} suspended", reason,
    )


@operation
async def reactivate_provider(db: AsyncSession, admin_id: int, provider_id: int):
    provider = await _get_provider(db, provider_id)
    await _check_status(
        db, admin_id, provider, (ProviderStatus.SUSPENDED,), AuditAction.PROVIDER_REACTIVATE, ProviderStatus.APPROVED
    )

    old = snapshot(provider, AUDIT_FIELDS)
    provider.status = ProviderStatus.APPROVED
    provider.rejection_reason = None

    return await _apply(
        db, admin_id, provider, old, AuditAction.PROVIDER_REACTIVATE,
        "provider_reactivated", f"Provider {provider.name_en} reactivated",
    )


@operation
async def update_provider_commission(db: AsyncSession, admin_id: int, provider_id: int, commission_rate: float):
    _validate_commission(commission_rate)
    provider = await _get_provider(db, provider_id)

    old = snapshot(provider, AUDIT_FIELDS)
    provider.commission_rate = commission_rate

    return await _apply(
        db, admin_id, provider, old, AuditAction.PROVIDER_COMMISSION,
        "provider_commission_updated",
        f"Provider {provider.name_en} commission set to {commission_rate}%",
    )


@operation
async def toggle_provider_featured(db: AsyncSession, admin_id: int, provider_id: int):
    provider = await _get_provider(db, provider_id)

    old = snapshot(provider, AUDIT_FIELDS)
    provider.is_featured = not provider.is_featured

    return await _apply(
        db, admin_id, provider, old, AuditAction.PROVIDER_FEATURE,
        "provider_featured_toggled",
        f"Provider {provider.name_en} {'featured' if provider.is_featured else 'unfeatured'}",
    )


@operation
async def provider_stats(db: AsyncSession):
    result = await db.execute(select(Provider.status, func.count(Provider.id)).group_by(Provider.status))
    by_status = {status.value: 0 for status in ProviderStatus}
    for status, count in result.all():
        by_status[status.value] = count

    featured = await db.scalar(select(func.count(Provider.id)).where(Provider.is_featured.is_(True)))
    return {
        "total": sum(by_status.values()),
        "by_status": by_status,
        "featured": featured or 0,
    }
