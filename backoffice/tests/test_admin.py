"""
Admin helper tests: provider moderation, user bans and role changes,
order interventions and the audit trail they leave.
"""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Update

from backoffice.app.domain.admin import order_admin, provider_admin, user_admin
from backoffice.app.models.audit_log import PermissionAuditLog
from backoffice.app.models.enums import OrderStatus, ProviderStatus, UserRole
from backoffice.app.models.order import Refund
from backoffice.app.services.mailer import EmailService


async def audit_rows(db_session, **filters):
    query = select(PermissionAuditLog)
    for field, value in filters.items():
        query = query.where(getattr(PermissionAuditLog, field) == value)
    return (await db_session.execute(query.order_by(PermissionAuditLog.id))).scalars().all()


# Providers

@pytest.mark.asyncio
async def test_list_providers_paginates(client, admin_headers, make_provider):
    for _ in range(3):
        await make_provider(status=ProviderStatus.PENDING_APPROVAL)
    await make_provider()

    response = await client.get(
        "/v1/admin/providers",
        params={"status": "pending_approval", "page": 1, "page_size": 2},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert len(data["items"]) == 2
    assert data["meta"] == {"page": 1, "page_size": 2, "total": 3, "total_pages": 2}


@pytest.mark.asyncio
async def test_approve_provider_with_commission(client, db_session, admin, admin_headers, make_provider):
    store = await make_provider(status=ProviderStatus.PENDING_APPROVAL)

    response = await client.post(
        f"/v1/admin/providers/{store.id}/approve", json={"commission_rate": 5}, headers=admin_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "approved"
    assert data["is_verified"] is True
    assert data["commission_rate"] == 5.0

    rows = await audit_rows(db_session, entity_type="provider", entity_id=str(store.id))
    assert len(rows) == 1
    assert rows[0].admin_id == admin.id
    assert rows[0].action_code == "approve"
    assert rows[0].changes["status"] == {"old": "pending_approval", "new": "approved"}


@pytest.mark.asyncio
async def test_approve_from_wrong_status_is_denied_and_audited(client, db_session, admin_headers, provider):
    response = await client.post(f"/v1/admin/providers/{provider.id}/approve", headers=admin_headers)

    assert response.status_code == 409
    assert response.json()["error_code"] == "INVALID_STATUS_TRANSITION"

    rows = await audit_rows(db_session, entity_type="provider", status="denied")
    assert len(rows) == 1
    assert rows[0].denial_reason == "status is open"


@pytest.mark.asyncio
async def test_reject_requires_reason(client, admin_headers, make_provider):
    store = await make_provider(status=ProviderStatus.PENDING_APPROVAL)
    url = f"/v1/admin/providers/{store.id}/reject"

    response = await client.post(url, json={"reason": "  "}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.post(url, json={"reason": "Missing license"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "rejected"
    assert response.json()["rejection_reason"] == "Missing license"


@pytest.mark.asyncio
async def test_suspend_and_reactivate(client, admin_headers, provider):
    response = await client.post(
        f"/v1/admin/providers/{provider.id}/suspend", json={"reason": "Complaints"}, headers=admin_headers
    )
    assert response.json()["status"] == "suspended"

    response = await client.post(f"/v1/admin/providers/{provider.id}/reactivate", headers=admin_headers)
    assert response.json()["status"] == "approved"
    assert response.json()["rejection_reason"] is None

    response = await client.post(f"/v1/admin/providers/{provider.id}/reactivate", headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_commission_bounds(client, admin_headers, provider):
    url = f"/v1/admin/providers/{provider.id}/commission"

    assert (await client.patch(url, json={"commission_rate": 150}, headers=admin_headers)).status_code == 400

    response = await client.patch(url, json={"commission_rate": 9.5}, headers=admin_headers)
    assert response.json()["commission_rate"] == 9.5


@pytest.mark.asyncio
async def test_featured_toggle_and_stats(client, admin_headers, provider, make_provider):
    await make_provider(status=ProviderStatus.SUSPENDED)

    response = await client.post(f"/v1/admin/providers/{provider.id}/featured", headers=admin_headers)
    assert response.json()["is_featured"] is True

    stats = (await client.get("/v1/admin/providers/stats", headers=admin_headers)).json()
    assert stats["total"] == 2
    assert stats["featured"] == 1
    assert stats["by_status"]["open"] == 1
    assert stats["by_status"]["suspended"] == 1


@pytest.mark.asyncio
async def test_helper_reports_missing_provider(db_session, admin):
    result = await provider_admin.approve_provider(db_session, admin.id, 9999)

    assert result.success is False
    assert result.error_code == "NOT_FOUND"
    assert result.data is None


@pytest.mark.asyncio
async def test_provider_endpoints_need_admin(client, customer_headers, provider):
    response = await client.post(f"/v1/admin/providers/{provider.id}/featured", headers=customer_headers)
    assert response.status_code == 403


# Users

@pytest.mark.asyncio
async def test_ban_cancels_active_orders(client, db_session, admin_headers, customer, customer_headers, provider, make_order):
    pending = await make_order(provider, customer, status=OrderStatus.PENDING)
    ready = await make_order(provider, customer, status=OrderStatus.READY)
    delivered = await make_order(provider, customer)

    response = await client.post(
        f"/v1/admin/users/{customer.id}/ban", json={"reason": "Fraud"}, headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["user"]["is_active"] is False
    assert response.json()["cancelled_orders"] == 2

    for order in (pending, ready, delivered):
        await db_session.refresh(order)
    assert pending.status == OrderStatus.CANCELLED
    assert pending.cancelled_reason == "Customer account banned: Fraud"
    assert ready.status == OrderStatus.CANCELLED
    assert delivered.status == OrderStatus.DELIVERED

    # The existing token stops working immediately
    response = await client.post(
        "/v1/customer/custom-orders",
        json={"provider_id": provider.id, "original_text": "milk"},
        headers=customer_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_ban_stands_when_order_cancellation_fails(
    client, db_session, admin_headers, customer, provider, make_order, mocker
):
    pending = await make_order(provider, customer, status=OrderStatus.PENDING)

    real_execute = AsyncSession.execute

    async def execute_failing_order_updates(session, statement, *args, **kwargs):
        if isinstance(statement, Update) and statement.table.name == "orders":
            raise OperationalError("UPDATE orders", {}, Exception("database is locked"))
        return await real_execute(session, statement, *args, **kwargs)

    mocker.patch.object(AsyncSession, "execute", execute_failing_order_updates)

    response = await client.post(
        f"/v1/admin/users/{customer.id}/ban", json={"reason": "Fraud"}, headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["user"]["is_active"] is False
    assert response.json()["cancelled_orders"] == 0

    await db_session.refresh(customer)
    await db_session.refresh(pending)
    assert customer.is_active is False
    assert pending.status == OrderStatus.PENDING

    rows = await audit_rows(db_session, entity_type="user", entity_id=str(customer.id))
    assert len(rows) == 1
    assert rows[0].status == "success"
    assert rows[0].new_data["cancelled_orders"] == 0


@pytest.mark.asyncio
async def test_admins_cannot_be_banned(client, db_session, admin_headers, make_profile):
    other_admin = await make_profile(UserRole.ADMIN)

    response = await client.post(
        f"/v1/admin/users/{other_admin.id}/ban", json={"reason": "Test"}, headers=admin_headers
    )

    assert response.status_code == 403
    assert response.json()["error_code"] == "FORBIDDEN"
    assert len(await audit_rows(db_session, entity_type="user", status="denied")) == 1


@pytest.mark.asyncio
async def test_ban_requires_reason(client, admin_headers, customer):
    response = await client.post(f"/v1/admin/users/{customer.id}/ban", json={}, headers=admin_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_unban(client, admin_headers, make_profile):
    banned = await make_profile(is_active=False)

    response = await client.post(f"/v1/admin/users/{banned.id}/unban", headers=admin_headers)
    assert response.json()["is_active"] is True

    response = await client.post(f"/v1/admin/users/{banned.id}/unban", headers=admin_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_role_changes(client, admin, admin_headers, customer):
    response = await client.patch(f"/v1/admin/users/{admin.id}/role", json={"role": "customer"}, headers=admin_headers)
    assert response.status_code == 403

    response = await client.patch(
        f"/v1/admin/users/{customer.id}/role", json={"role": "provider"}, headers=admin_headers
    )
    assert response.status_code == 200
    assert response.json()["role"] == "provider"


@pytest.mark.asyncio
async def test_user_stats(db_session, admin, customer, make_profile):
    await make_profile(is_active=False)

    result = await user_admin.user_stats(db_session)

    assert result.success
    assert result.data["total"] == 3
    assert result.data["banned"] == 1
    assert result.data["active"] == 2
    assert result.data["by_role"] == {"customer": 2, "provider": 0, "admin": 1}


# Orders

@pytest.mark.asyncio
async def test_cancel_order_notifies(client, admin_headers, customer, provider, make_order, mocker):
    notify = mocker.patch.object(EmailService, "send_order_status_email", new=mocker.AsyncMock(return_value=True))
    order = await make_order(provider, customer, status=OrderStatus.PREPARING)

    response = await client.post(
        f"/v1/admin/orders/{order.id}/cancel", json={"reason": "Store closed"}, headers=admin_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "cancelled"
    assert data["cancelled_reason"] == "Store closed"
    assert data["cancelled_at"] is not None

    notify.assert_awaited_once()
    assert notify.await_args.args[1] == OrderStatus.CANCELLED
    assert notify.await_args.kwargs["customer_email"] == customer.email
    assert notify.await_args.kwargs["provider_email"] == "store@test.com"


@pytest.mark.asyncio
async def test_cancel_delivered_order_is_denied(client, db_session, admin_headers, customer, provider, make_order):
    order = await make_order(provider, customer)

    response = await client.post(
        f"/v1/admin/orders/{order.id}/cancel", json={"reason": "Too late"}, headers=admin_headers
    )

    assert response.status_code == 409
    rows = await audit_rows(db_session, entity_type="order", status="denied")
    assert rows[0].action_code == "cancel"
    assert rows[0].denial_reason == "status is delivered"


@pytest.mark.asyncio
async def test_refund(client, db_session, admin_headers, customer, provider, make_order):
    order = await make_order(provider, customer, total=100.0)
    url = f"/v1/admin/orders/{order.id}/refund"

    response = await client.post(url, json={"amount": 150, "reason": "Damaged"}, headers=admin_headers)
    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"

    response = await client.post(url, json={"amount": 40, "reason": "Damaged"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["order"]["status"] == "refunded"
    assert response.json()["refund"]["amount"] == 40.0

    refund = (await db_session.execute(select(Refund).where(Refund.order_id == order.id))).scalar_one()
    assert refund.status == "pending"
    assert refund.reason == "Damaged"


@pytest.mark.asyncio
async def test_refund_of_active_order_is_denied(client, admin_headers, customer, provider, make_order):
    order = await make_order(provider, customer, status=OrderStatus.PENDING)

    response = await client.post(
        f"/v1/admin/orders/{order.id}/refund", json={"amount": 10, "reason": "x"}, headers=admin_headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_status_transitions(client, admin_headers, customer, provider, make_order):
    order = await make_order(provider, customer, status=OrderStatus.PENDING)
    url = f"/v1/admin/orders/{order.id}/status"

    response = await client.patch(url, json={"status": "confirmed"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["confirmed_at"] is not None

    response = await client.patch(url, json={"status": "delivered"}, headers=admin_headers)
    assert response.status_code == 409

    response = await client.patch(
        url, json={"status": "cancelled"}, params={"note": "Customer called"}, headers=admin_headers
    )
    assert response.json()["status"] == "cancelled"
    assert response.json()["cancelled_reason"] == "Customer called"


@pytest.mark.asyncio
async def test_order_stats(db_session, customer, provider, make_order):
    await make_order(provider, customer, total=120.0)
    await make_order(provider, customer, status=OrderStatus.PENDING, total=50.0)

    result = await order_admin.order_stats(db_session)

    assert result.data["total"] == 2
    assert result.data["revenue"] == 120.0
    assert result.data["by_status"]["pending"] == 1
    assert result.data["today"] == 2


@pytest.mark.asyncio
async def test_order_search(client, admin_headers, customer, provider, make_order):
    await make_order(provider, customer, order_number="ORD-SEARCH-1")
    await make_order(provider, customer)

    response = await client.get("/v1/admin/orders", params={"search": "search-1"}, headers=admin_headers)

    assert [o["order_number"] for o in response.json()["items"]] == ["ORD-SEARCH-1"]


# Audit trail

@pytest.mark.asyncio
async def test_audit_log_endpoint_filters(client, admin_headers, make_provider, provider):
    store = await make_provider(status=ProviderStatus.PENDING_APPROVAL)
    await client.post(f"/v1/admin/providers/{store.id}/approve", headers=admin_headers)
    await client.post(f"/v1/admin/providers/{provider.id}/approve", headers=admin_headers)

    everything = (await client.get("/v1/admin/audit-log", headers=admin_headers)).json()
    assert len(everything) == 2

    denied = (await client.get("/v1/admin/audit-log", params={"status": "denied"}, headers=admin_headers)).json()
    assert [row["entity_id"] for row in denied] == [str(provider.id)]

    response = await client.get("/v1/admin/audit-log", params={"status": "maybe"}, headers=admin_headers)
    assert response.status_code == 422
