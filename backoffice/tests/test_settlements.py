"""
Settlement tests.

Breakdown arithmetic, generation (locking, no double settlement, custom
ranges, settlement groups), the overdue job, payments, settlement detail and
the admin API.
"""

import asyncio
import pytest
from datetime import date, timedelta
from types import SimpleNamespace

from sqlalchemy import select, func

from backoffice.app.core.clock import utcnow
from backoffice.app.core.config import settings
from backoffice.app.core.exceptions import (
    ResourceNotFoundError, ValidationFailedError, InvalidStatusTransitionError
)
from backoffice.app.domain.settlements.breakdown import compute_breakdown, settlement_direction
from backoffice.app.domain.settlements.group_service import SettlementGroupService
from backoffice.app.domain.settlements.settlement_service import SettlementService
from backoffice.app.models.enums import (
    DeliveryResponsibility, OrderSettlementStatus, OrderStatus, SettlementDirection, SettlementFrequency,
    SettlementStatus
)
from backoffice.app.models.settlement import Settlement
from backoffice.app.schemas.settlement import SettlementGroupCreate
from backoffice.app.services.locks import settlement_lock_key
from backoffice.app.services.mailer import EmailService


def order(id, total, commission, payment_method="cash", subtotal=None, discount=0.0, delivery_fee=0.0):
    return SimpleNamespace(
        id=id, total=total, subtotal=total if subtotal is None else subtotal, discount=discount,
        delivery_fee=delivery_fee, platform_commission=commission, payment_method=payment_method,
    )


def mixed_orders():
    return [
        order(1, 50.0, 3.5),
        order(2, 30.0, 2.1),
        order(3, 20.0, 1.4, payment_method="COD"),
        order(4, 100.0, 6.3, payment_method="card", subtotal=90.0, delivery_fee=10.0),
        order(5, 80.0, 4.9, payment_method="wallet", subtotal=70.0, delivery_fee=10.0),
    ]


# Breakdown

def test_breakdown_mixed_orders_merchant_delivery():
    result = compute_breakdown(mixed_orders(), merchant_delivery=True)

    assert result.cod_orders_count == 3
    assert result.online_orders_count == 2
    assert result.cod_commission_owed == 7.0
    assert result.online_payout_owed == 168.8
    assert result.net_balance == 161.8
    assert result.settlement_direction == SettlementDirection.PLATFORM_PAYS_PROVIDER
    assert result.gross_revenue == 280.0
    assert result.platform_commission == 18.2
    assert result.net_payout == 261.8
    assert result.delivery_fees_collected == 20.0
    assert result.order_ids == [1, 2, 3, 4, 5]


def test_breakdown_platform_delivery_keeps_delivery_fees():
    result = compute_breakdown(mixed_orders(), merchant_delivery=False)

    assert result.online_payout_owed == 148.8
    assert result.net_balance == 141.8


def test_breakdown_cod_only_provider_owes_platform():
    result = compute_breakdown([order(1, 50.0, 3.5), order(2, 30.0, 2.1)], merchant_delivery=True)

    assert result.online_payout_owed == 0.0
    assert result.net_balance == -5.6
    assert result.settlement_direction == SettlementDirection.PROVIDER_PAYS_PLATFORM


def test_breakdown_online_payout_never_negative():
    result = compute_breakdown(
        [order(1, 10.0, 12.0, payment_method="card", subtotal=10.0)], merchant_delivery=False
    )
    assert result.online_payout_owed == 0.0
    assert result.net_payout == -2.0


@pytest.mark.parametrize("net,expected", [
    (0.0, SettlementDirection.BALANCED),
    (0.01, SettlementDirection.BALANCED),
    (-0.01, SettlementDirection.BALANCED),
    (0.02, SettlementDirection.PLATFORM_PAYS_PROVIDER),
    (-0.02, SettlementDirection.PROVIDER_PAYS_PLATFORM),
])
def test_settlement_direction_dead_zone(net, expected):
    assert settlement_direction(net) == expected


def test_net_payout_is_gross_minus_commission():
    result = compute_breakdown(mixed_orders()[:2] + mixed_orders()[4:], merchant_delivery=True)
    assert result.net_payout == round(result.gross_revenue - result.platform_commission, 2)


# Generation

@pytest.fixture
async def settled_store(make_provider, make_profile, make_order):
    """A merchant-delivery store with the mixed order set delivered yesterday."""
    store = await make_provider(delivery_responsibility=DeliveryResponsibility.MERCHANT)
    buyer = await make_profile()
    yesterday = utcnow() - timedelta(days=1)

    orders = []
    for row in mixed_orders():
        orders.append(await make_order(
            store, buyer,
            total=row.total, subtotal=row.subtotal, delivery_fee=row.delivery_fee,
            platform_commission=row.platform_commission, payment_method=row.payment_method,
            delivered_at=yesterday,
        ))
    return SimpleNamespace(provider=store, customer=buyer, orders=orders)


async def settlement_count(db_session) -> int:
    return await db_session.scalar(select(func.count(Settlement.id)))


@pytest.mark.asyncio
async def test_generate_settlements_creates_snapshot(db_session, mock_redis, settled_store):
    outcome = await SettlementService.generate_settlements(db_session, mock_redis, 7)

    assert outcome["settlements_created"] == 1
    assert outcome["skipped"] == [] and outcome["errors"] == []

    settlement = outcome["settlements"][0]
    assert settlement.provider_id == settled_store.provider.id
    assert settlement.status == SettlementStatus.PENDING
    assert settlement.net_balance == 161.8
    assert settlement.settlement_direction == SettlementDirection.PLATFORM_PAYS_PROVIDER
    assert sorted(settlement.orders_included) == sorted(o.id for o in settled_store.orders)

    for row in settled_store.orders:
        await db_session.refresh(row)
        assert row.settlement_status == OrderSettlementStatus.SETTLED

    assert await mock_redis.exists(settlement_lock_key(settled_store.provider.id)) == 0


@pytest.mark.asyncio
async def test_second_run_does_not_settle_orders_twice(db_session, mock_redis, settled_store):
    await SettlementService.generate_settlements(db_session, mock_redis, 7)
    outcome = await SettlementService.generate_settlements(db_session, mock_redis, 7)

    assert outcome["settlements_created"] == 0
    assert await settlement_count(db_session) == 1


@pytest.mark.asyncio
async def test_orders_listed_in_a_settlement_are_excluded(db_session, mock_redis, settled_store):
    first = settled_store.orders[0]
    db_session.add(Settlement(
        provider_id=settled_store.provider.id,
        period_start=utcnow() - timedelta(days=30),
        period_end=utcnow() - timedelta(days=20),
        orders_included=[first.id],
    ))
    await db_session.commit()

    outcome = await SettlementService.generate_settlements(db_session, mock_redis, 7)

    assert first.id not in outcome["settlements"][0].orders_included
    assert outcome["settlements"][0].total_orders == 4


@pytest.mark.asyncio
async def test_only_delivered_orders_inside_period_are_settled(
    db_session, mock_redis, make_provider, make_profile, make_order
):
    store = await make_provider()
    buyer = await make_profile()
    now = utcnow()

    inside = await make_order(store, buyer, total=40.0, delivered_at=now - timedelta(hours=20))
    await make_order(store, buyer, total=40.0, delivered_at=now - timedelta(days=3))
    await make_order(store, buyer, total=40.0, status=OrderStatus.PREPARING)
    await make_order(store, buyer, total=40.0, delivered_at=now - timedelta(hours=2),
                     settlement_status=OrderSettlementStatus.SETTLED)

    outcome = await SettlementService.generate_settlements(db_session, mock_redis, 1, now=now)

    assert outcome["settlements"][0].orders_included == [inside.id]


@pytest.mark.asyncio
async def test_provider_with_held_lock_is_skipped(db_session, mock_redis, settled_store):
    key = settlement_lock_key(settled_store.provider.id)
    await mock_redis.set(key, "another-worker", nx=True, ex=60)

    outcome = await SettlementService.generate_settlements(db_session, mock_redis, 7)

    assert outcome["settlements_created"] == 0
    assert outcome["skipped"][0]["provider_id"] == settled_store.provider.id
    assert await settlement_count(db_session) == 0
    assert await mock_redis.get(key) == "another-worker"


@pytest.mark.asyncio
async def test_concurrent_runs_settle_each_order_once(db_session, mock_redis, settled_store, session_factory):
    async def run():
        async with session_factory() as session:
            return await SettlementService.generate_settlements(session, mock_redis, 7)

    first, second = await asyncio.gather(run(), run())

    assert first["settlements_created"] + second["settlements_created"] == 1
    assert await settlement_count(db_session) == 1


@pytest.mark.asyncio
async def test_generate_rejects_unsupported_period(db_session, mock_redis):
    with pytest.raises(ValidationFailedError):
        await SettlementService.generate_settlements(db_session, mock_redis, 5)


@pytest.mark.asyncio
async def test_custom_range_includes_end_date(db_session, mock_redis, settled_store):
    yesterday = (utcnow() - timedelta(days=1)).date()

    outcome = await SettlementService.generate_provider_settlement(
        db_session, mock_redis, settled_store.provider.id, yesterday, yesterday
    )

    assert outcome["settlements_created"] == 1
    assert outcome["settlements"][0].total_orders == 5


@pytest.mark.asyncio
async def test_custom_range_without_orders_is_rejected(db_session, mock_redis, settled_store):
    with pytest.raises(ValidationFailedError):
        await SettlementService.generate_provider_settlement(
            db_session, mock_redis, settled_store.provider.id, date(2020, 1, 1), date(2020, 1, 31)
        )

    with pytest.raises(ValidationFailedError):
        await SettlementService.generate_provider_settlement(
            db_session, mock_redis, settled_store.provider.id, date(2020, 2, 1), date(2020, 1, 1)
        )


@pytest.mark.asyncio
async def test_custom_range_unknown_provider(db_session, mock_redis):
    with pytest.raises(ResourceNotFoundError):
        await SettlementService.generate_provider_settlement(
            db_session, mock_redis, 4242, date(2026, 1, 1), date(2026, 1, 2)
        )


@pytest.mark.asyncio
async def test_settlement_created_email_sent_to_provider(db_session, mock_redis, settled_store, mocker):
    send = mocker.patch.object(EmailService, "send_settlement_created_email", return_value=True)

    await SettlementService.generate_settlements(db_session, mock_redis, 7)

    send.assert_awaited_once()
    assert send.await_args.args[2] == settled_store.provider.name_en


# Lifecycle

async def make_settlement(db_session, provider, **fields):
    settlement = Settlement(
        provider_id=provider.id,
        period_start=fields.pop("period_start", utcnow() - timedelta(days=10)),
        period_end=fields.pop("period_end", utcnow() - timedelta(days=3)),
        net_payout=fields.pop("net_payout", 100.0),
        net_balance=fields.pop("net_balance", 50.0),
        orders_included=[],
        **fields,
    )
    db_session.add(settlement)
    await db_session.commit()
    await db_session.refresh(settlement)
    return settlement


@pytest.mark.asyncio
async def test_mark_overdue_only_touches_pending_past_grace(db_session, provider, mocker):
    notify = mocker.patch.object(EmailService, "send_settlement_overdue_email", return_value=True)

    stale = await make_settlement(db_session, provider)
    fresh = await make_settlement(db_session, provider, period_end=utcnow() - timedelta(hours=2))
    paid = await make_settlement(db_session, provider, status=SettlementStatus.PAID)

    result = await SettlementService.mark_overdue_settlements(db_session, grace_days=1)

    assert result["marked_overdue"] == 1
    assert result["settlement_ids"] == [stale.id]
    for row in (stale, fresh, paid):
        await db_session.refresh(row)
    assert stale.status == SettlementStatus.OVERDUE
    assert fresh.status == SettlementStatus.PENDING
    assert paid.status == SettlementStatus.PAID
    notify.assert_awaited_once()
    assert notify.await_args.args[3] >= 2


@pytest.mark.asyncio
async def test_record_payment_marks_paid(db_session, provider, admin):
    settlement = await make_settlement(db_session, provider)

    paid = await SettlementService.record_payment(
        db_session, settlement.id, 95.0, "bank_transfer", "TRX-1", admin.id, "short by 5"
    )

    assert paid.status == SettlementStatus.PAID
    assert paid.amount_paid == 95.0
    assert paid.processed_by == admin.id
    assert paid.paid_at is not None

    with pytest.raises(InvalidStatusTransitionError):
        await SettlementService.record_payment(db_session, settlement.id, 5.0, "cash", None, admin.id)


@pytest.mark.asyncio
async def test_status_transitions(db_session, provider):
    settlement = await make_settlement(db_session, provider)

    disputed = await SettlementService.update_status(db_session, settlement.id, SettlementStatus.DISPUTED, "wrong total")
    assert disputed.status == SettlementStatus.DISPUTED
    assert disputed.notes == "wrong total"

    waived = await SettlementService.update_status(db_session, settlement.id, SettlementStatus.WAIVED)
    assert waived.status == SettlementStatus.WAIVED

    with pytest.raises(InvalidStatusTransitionError):
        await SettlementService.update_status(db_session, settlement.id, SettlementStatus.PENDING)


# API

@pytest.mark.asyncio
async def test_generate_endpoint_and_audit(client, admin_headers, settled_store):
    response = await client.post(
        "/v1/admin/settlements/generate", json={"period_days": 7}, headers=admin_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["settlements_created"] == 1
    assert data["settlements"][0]["net_balance"] == 161.8

    audit = await client.get("/v1/admin/audit-log?action=generate", headers=admin_headers)
    entries = audit.json()
    assert len(entries) == 1
    assert entries[0]["entity_type"] == "settlement"


@pytest.mark.asyncio
async def test_generate_endpoint_validates_period(client, admin_headers):
    response = await client.post(
        "/v1/admin/settlements/generate", json={"period_days": 5}, headers=admin_headers
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_provider_range_endpoint_without_orders(client, admin_headers, provider):
    response = await client.post(
        "/v1/admin/settlements/generate/provider",
        json={"provider_id": provider.id, "start_date": "2020-01-01", "end_date": "2020-01-31"},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_payment_endpoint_and_stats(client, admin_headers, db_session, provider):
    settlement = await make_settlement(db_session, provider)

    response = await client.post(
        f"/v1/admin/settlements/{settlement.id}/payment",
        json={"amount": 100.0, "payment_method": "bank_transfer", "payment_reference": "TRX-9"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    assert response.json()["status"] == "paid"

    stats = (await client.get("/v1/admin/settlements/stats", headers=admin_headers)).json()
    assert stats["paid_count"] == 1
    assert stats["paid_amount"] == 100.0
    assert stats["pending_count"] == 0


@pytest.mark.asyncio
async def test_merchant_sees_only_own_settlements(client, db_session, provider, provider_headers, make_provider):
    await make_settlement(db_session, provider)
    other = await make_provider()
    await make_settlement(db_session, other)

    response = await client.get("/v1/provider/settlements", headers=provider_headers)

    assert response.status_code == 200
    assert [s["provider_id"] for s in response.json()] == [provider.id]


@pytest.mark.asyncio
async def test_cron_requires_secret_when_configured(client, monkeypatch, db_session, provider):
    monkeypatch.setattr(settings, "cron_secret", "s3cret")
    await make_settlement(db_session, provider)

    response = await client.post("/v1/cron/settlement-overdue")
    assert response.status_code == 401

    response = await client.post(
        "/v1/cron/settlement-overdue", headers={"Authorization": "Bearer wrong"}
    )
    assert response.status_code == 401

    response = await client.get(
        "/v1/cron/settlement-overdue", headers={"Authorization": "Bearer s3cret"}
    )
    assert response.status_code == 200
    assert response.json()["marked_overdue"] == 1


@pytest.mark.asyncio
async def test_cron_settlements_run(client, settled_store):
    response = await client.post("/v1/cron/settlements?period_days=3")

    assert response.status_code == 200
    assert response.json()["settlements_created"] == 1


# Detail, disputes and deletion

@pytest.mark.asyncio
async def test_settlement_detail_lists_included_orders(client, admin_headers, db_session, mock_redis, settled_store):
    outcome = await SettlementService.generate_settlements(db_session, mock_redis, 7)
    settlement = outcome["settlements"][0]

    response = await client.get(f"/v1/admin/settlements/{settlement.id}", headers=admin_headers)

    assert response.status_code == 200
    data = response.json()
    assert data["net_balance"] == 161.8
    assert data["provider"]["name_en"] == settled_store.provider.name_en
    assert len(data["orders"]) == len(settled_store.orders)
    assert {line["order_number"] for line in data["orders"]} == {o.order_number for o in settled_store.orders}
    assert {line["customer_name"] for line in data["orders"]} == {settled_store.customer.full_name}
    assert {line["payment_method"] for line in data["orders"]} == {o.payment_method for o in settled_store.orders}


@pytest.mark.asyncio
async def test_dispute_needs_reason(client, admin_headers, db_session, provider):
    settlement = await make_settlement(db_session, provider)
    url = f"/v1/admin/settlements/{settlement.id}/dispute"

    response = await client.post(url, json={"reason": "  "}, headers=admin_headers)
    assert response.status_code == 400

    response = await client.post(url, json={"reason": "Totals do not match"}, headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "disputed"
    assert response.json()["notes"] == "Totals do not match"


@pytest.mark.asyncio
async def test_deleting_settlement_releases_its_orders(client, admin_headers, db_session, mock_redis, settled_store):
    outcome = await SettlementService.generate_settlements(db_session, mock_redis, 7)
    settlement = outcome["settlements"][0]

    response = await client.delete(f"/v1/admin/settlements/{settlement.id}", headers=admin_headers)

    assert response.status_code == 200
    assert response.json()["released_orders"] == len(settled_store.orders)
    assert await settlement_count(db_session) == 0
    for row in settled_store.orders:
        await db_session.refresh(row)
        assert row.settlement_status == OrderSettlementStatus.ELIGIBLE

    again = await SettlementService.generate_settlements(db_session, mock_redis, 7)
    assert again["settlements_created"] == 1


@pytest.mark.asyncio
async def test_paid_settlement_cannot_be_deleted(client, admin_headers, db_session, provider):
    settlement = await make_settlement(db_session, provider, status=SettlementStatus.PAID)

    response = await client.delete(f"/v1/admin/settlements/{settlement.id}", headers=admin_headers)

    assert response.status_code == 409
    assert await settlement_count(db_session) == 1


# Settlement groups

def group_data(name, frequency, **extra):
    return SettlementGroupCreate(name_ar=name, name_en=name, frequency=frequency, **extra)


@pytest.mark.asyncio
async def test_group_run_follows_frequency_and_membership(db_session, mock_redis, settled_store, make_provider, make_order):
    weekly = await SettlementGroupService.create_group(db_session, group_data("Weekly", SettlementFrequency.WEEKLY))
    daily = await SettlementGroupService.create_group(db_session, group_data("Daily", SettlementFrequency.DAILY))
    await SettlementGroupService.assign_provider(db_session, settled_store.provider.id, daily.id)

    outsider = await make_provider()
    await make_order(outsider, settled_store.customer, delivered_at=utcnow() - timedelta(hours=2))

    # Orders delivered a day ago fall outside the daily window
    outcome = await SettlementService.generate_group_settlements(db_session, mock_redis, daily.id)
    assert outcome["settlements_created"] == 0

    await SettlementGroupService.assign_provider(db_session, settled_store.provider.id, weekly.id)
    outcome = await SettlementService.generate_group_settlements(db_session, mock_redis, weekly.id)

    assert [s.provider_id for s in outcome["settlements"]] == [settled_store.provider.id]
    assert outcome["settlements"][0].period_end - outcome["settlements"][0].period_start == timedelta(days=7)


@pytest.mark.asyncio
async def test_default_group_covers_unassigned_providers(db_session, mock_redis, settled_store, make_provider, make_order):
    default = await SettlementGroupService.create_group(
        db_session, group_data("Standard", SettlementFrequency.THREE_DAYS, is_default=True)
    )
    other = await SettlementGroupService.create_group(db_session, group_data("Weekly", SettlementFrequency.WEEKLY))
    await SettlementGroupService.assign_provider(db_session, settled_store.provider.id, other.id)

    loose = await make_provider()
    await make_order(loose, settled_store.customer, delivered_at=utcnow() - timedelta(hours=5))

    outcome = await SettlementService.generate_group_settlements(db_session, mock_redis, default.id)

    assert [s.provider_id for s in outcome["settlements"]] == [loose.id]


@pytest.mark.asyncio
async def test_only_one_default_group(db_session):
    first = await SettlementGroupService.create_group(
        db_session, group_data("A", SettlementFrequency.WEEKLY, is_default=True)
    )
    second = await SettlementGroupService.create_group(
        db_session, group_data("B", SettlementFrequency.DAILY, is_default=True)
    )

    await db_session.refresh(first)
    assert first.is_default is False
    assert second.is_default is True


@pytest.mark.asyncio
async def test_inactive_group_is_not_generated(db_session, mock_redis):
    group = await SettlementGroupService.create_group(db_session, group_data("Paused", SettlementFrequency.DAILY))
    await SettlementGroupService.toggle_active(db_session, group.id)

    with pytest.raises(ValidationFailedError):
        await SettlementService.generate_group_settlements(db_session, mock_redis, group.id)


@pytest.mark.asyncio
async def test_group_endpoints(client, admin_headers, db_session, provider):
    response = await client.post(
        "/v1/admin/settlement-groups",
        json={"name_ar": "يومي", "name_en": "Daily", "frequency": "daily"},
        headers=admin_headers,
    )
    assert response.status_code == 201
    group = response.json()
    assert group["period_days"] == 1
    assert group["is_active"] is True

    response = await client.put(
        f"/v1/admin/settlement-groups/providers/{provider.id}", json={"group_id": group["id"]}, headers=admin_headers
    )
    assert response.json()["settlement_group_id"] == group["id"]

    listed = (await client.get("/v1/admin/settlement-groups", headers=admin_headers)).json()
    assert [(g["id"], g["provider_count"]) for g in listed] == [(group["id"], 1)]

    response = await client.patch(
        f"/v1/admin/settlement-groups/{group['id']}", json={"frequency": "3_days"}, headers=admin_headers
    )
    assert response.json()["period_days"] == 3

    response = await client.patch(
        f"/v1/admin/settlement-groups/{group['id']}", json={"name_en": "  "}, headers=admin_headers
    )
    assert response.status_code == 400

    response = await client.delete(f"/v1/admin/settlement-groups/{group['id']}", headers=admin_headers)
    assert response.status_code == 200
    await db_session.refresh(provider)
    assert provider.settlement_group_id is None

    response = await client.put(
        f"/v1/admin/settlement-groups/providers/{provider.id}", json={"group_id": 9999}, headers=admin_headers
    )
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_cron_group_settlements(client, db_session, settled_store):
    await SettlementGroupService.create_group(
        db_session, group_data("Weekly", SettlementFrequency.WEEKLY, is_default=True)
    )

    response = await client.post("/v1/cron/settlement-groups?frequency=weekly")
    assert response.status_code == 200
    assert response.json()["settlements_created"] == 1

    response = await client.post("/v1/cron/settlement-groups?frequency=hourly")
    assert response.status_code == 422
