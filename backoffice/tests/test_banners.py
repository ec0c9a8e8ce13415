"""
Banner management tests.

Covers derived display fields, admin CRUD and ordering, image upload and
the partner banner review flow.
"""

import itertools
import pytest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

from botocore.exceptions import ClientError
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.dml import Update

from backoffice.app.domain.banners.display import (
    derive_status, contrast_text_color, gradient_text_color, parse_hex
)
from backoffice.app.models.banner import HomepageBanner
from backoffice.app.models.enums import BannerStatus, UserRole
from backoffice.app.models.profile import Profile
from backoffice.app.services.storage import storage_service

NOW = datetime(2026, 5, 10, 12, 0, tzinfo=timezone.utc)


def banner_payload(**overrides):
    payload = {
        "title_ar": "عرض",
        "title_en": "Offer",
        "gradient_start": "#009DE0",
        "gradient_end": "#0088CC",
    }
    payload.update(overrides)
    return payload


async def create_banner(client, headers, **overrides):
    response = await client.post("/v1/admin/banners", json=banner_payload(**overrides), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


# Derived display fields

def test_derive_status_expired_wins_over_active_flag():
    banner = SimpleNamespace(is_active=True, starts_at=NOW - timedelta(days=5), ends_at=NOW - timedelta(seconds=1))
    assert derive_status(banner, NOW) == BannerStatus.EXPIRED


def test_derive_status_scheduled_when_start_in_future():
    banner = SimpleNamespace(is_active=True, starts_at=NOW + timedelta(hours=1), ends_at=None)
    assert derive_status(banner, NOW) == BannerStatus.SCHEDULED


def test_derive_status_follows_active_flag_inside_window():
    live = SimpleNamespace(is_active=True, starts_at=NOW - timedelta(days=1), ends_at=NOW + timedelta(days=1))
    paused = SimpleNamespace(is_active=False, starts_at=NOW - timedelta(days=1), ends_at=None)
    assert derive_status(live, NOW) == BannerStatus.ACTIVE
    assert derive_status(paused, NOW) == BannerStatus.INACTIVE


def test_derive_status_accepts_naive_database_values():
    banner = SimpleNamespace(is_active=True, starts_at=datetime(2026, 5, 11), ends_at=None)
    assert derive_status(banner, NOW) == BannerStatus.SCHEDULED


@pytest.mark.parametrize("color,expected", [
    ("#FFFFFF", "dark"),
    ("#fff", "dark"),
    ("#000000", "light"),
    ("#009DE0", "light"),
    ("#FFEB3B", "dark"),
    ("not-a-color", "light"),
    ("#12345", "light"),
    (None, "light"),
])
def test_contrast_text_color(color, expected):
    assert contrast_text_color(color) == expected


def test_gradient_text_color_uses_average_luminance():
    assert gradient_text_color("#FFFFFF", "#F0F0F0") == "dark"
    assert gradient_text_color("#FFFFFF", "#000000") == "light"
    assert gradient_text_color("#FFFFFF", "oops") == "light"


def test_parse_hex_expands_short_form():
    assert parse_hex("#abc") == (0xAA, 0xBB, 0xCC)
    assert parse_hex("#GGGGGG") is None


# Admin CRUD

@pytest.mark.asyncio
async def test_create_banner_appends_to_display_order(client, admin_headers):
    first = await create_banner(client, admin_headers)
    second = await create_banner(client, admin_headers, title_en="Second")

    assert first["display_order"] == 0
    assert second["display_order"] == 1
    assert first["status"] == "active"
    assert first["text_color"] == "light"


@pytest.mark.asyncio
async def test_create_banner_requires_both_titles(client, admin_headers):
    response = await client.post(
        "/v1/admin/banners", json=banner_payload(title_ar="   "), headers=admin_headers
    )

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error_code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_banner_endpoints_require_admin(client, customer_headers):
    response = await client.get("/v1/admin/banners", headers=customer_headers)
    assert response.status_code == 403

    response = await client.get("/v1/admin/banners")
    assert response.status_code in (401, 403)


@pytest.mark.asyncio
async def test_list_banners_counts_and_status_filter(client, admin_headers):
    future = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
    past = (datetime.now(timezone.utc) - timedelta(days=3)).isoformat()
    long_ago = (datetime.now(timezone.utc) - timedelta(days=10)).isoformat()

    await create_banner(client, admin_headers, title_en="Live")
    await create_banner(client, admin_headers, title_en="Soon", starts_at=future)
    await create_banner(client, admin_headers, title_en="Gone", starts_at=long_ago, ends_at=past)
    await create_banner(client, admin_headers, title_en="Paused", is_active=False)

    response = await client.get("/v1/admin/banners", headers=admin_headers)
    assert response.status_code == 200
    data = response.json()
    assert data["counts"] == {"all": 4, "active": 1, "inactive": 1, "scheduled": 1, "expired": 1}
    assert [b["title_en"] for b in data["banners"]] == ["Live", "Soon", "Gone", "Paused"]

    response = await client.get("/v1/admin/banners?status=scheduled", headers=admin_headers)
    data = response.json()
    assert [b["title_en"] for b in data["banners"]] == ["Soon"]
    assert data["counts"]["all"] == 4


@pytest.mark.asyncio
async def test_list_banners_search_matches_titles(client, admin_headers):
    await create_banner(client, admin_headers, title_en="Ramadan deals")
    await create_banner(client, admin_headers, title_en="Free delivery")

    response = await client.get("/v1/admin/banners?search=ramadan", headers=admin_headers)

    titles = [b["title_en"] for b in response.json()["banners"]]
    assert titles == ["Ramadan deals"]


@pytest.mark.asyncio
async def test_update_banner_partial(client, admin_headers):
    banner = await create_banner(client, admin_headers)

    response = await client.patch(
        f"/v1/admin/banners/{banner['id']}",
        json={"title_en": "  Updated  ", "gradient_start": "#FFFFFF", "gradient_end": "#FFFFFF"},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["title_en"] == "Updated"
    assert data["title_ar"] == "عرض"
    assert data["text_color"] == "dark"


@pytest.mark.asyncio
async def test_toggle_and_delete_banner(client, admin_headers):
    banner = await create_banner(client, admin_headers)

    response = await client.post(f"/v1/admin/banners/{banner['id']}/toggle", headers=admin_headers)
    assert response.json()["is_active"] is False
    assert response.json()["status"] == "inactive"

    response = await client.delete(f"/v1/admin/banners/{banner['id']}", headers=admin_headers)
    assert response.status_code == 200

    response = await client.get(f"/v1/admin/banners/{banner['id']}", headers=admin_headers)
    assert response.status_code == 404
    assert response.json()["error_code"] == "NOT_FOUND"


# Ordering

@pytest.mark.asyncio
async def test_reorder_banners_persists_positions(client, admin_headers):
    ids = [(await create_banner(client, admin_headers, title_en=f"B{i}"))["id"] for i in range(3)]

    response = await client.post(
        "/v1/admin/banners/reorder", json={"banner_ids": list(reversed(ids))}, headers=admin_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert [b["id"] for b in data["banners"]] == list(reversed(ids))
    assert [b["display_order"] for b in data["banners"]] == [0, 1, 2]


@pytest.mark.asyncio
async def test_reorder_with_unknown_id_changes_nothing(client, admin_headers, db_session):
    first = await create_banner(client, admin_headers)
    second = await create_banner(client, admin_headers)

    response = await client.post(
        "/v1/admin/banners/reorder",
        json={"banner_ids": [second["id"], first["id"], 9999]},
        headers=admin_headers,
    )

    assert response.status_code == 404
    row = await db_session.get(HomepageBanner, first["id"])
    assert row.display_order == 0


@pytest.mark.asyncio
async def test_reorder_failure_keeps_rows_already_written(client, admin_headers, mocker):
    ids = [(await create_banner(client, admin_headers, title_en=f"B{i}"))["id"] for i in range(4)]
    new_order = list(reversed(ids))

    real_execute = AsyncSession.execute
    updates = itertools.count()

    async def execute_failing_third_update(session, statement, *args, **kwargs):
        if isinstance(statement, Update) and next(updates) == 2:
            raise OperationalError("UPDATE homepage_banners", {}, Exception("database is locked"))
        return await real_execute(session, statement, *args, **kwargs)

    mocker.patch.object(AsyncSession, "execute", execute_failing_third_update)

    response = await client.post(
        "/v1/admin/banners/reorder", json={"banner_ids": new_order}, headers=admin_headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is False
    assert str(new_order[2]) in data["error"]

    stored = {b["id"]: b["display_order"] for b in data["banners"]}
    # first two writes landed, the rest kept their creation positions
    assert stored == {new_order[0]: 0, new_order[1]: 1, new_order[2]: 1, new_order[3]: 0}


# Upload

@pytest.mark.asyncio
async def test_upload_banner_image(client, admin_headers, mocker):
    upload = mocker.patch.object(storage_service, "upload_bytes", return_value="https://cdn.test/banners/x.png")

    response = await client.post(
        "/v1/admin/banners/upload",
        files={"file": ("banner.png", b"\x89PNG data", "image/png")},
        headers=admin_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["url"] == "https://cdn.test/banners/x.png"
    assert data["path"].startswith("banners/") and data["path"].endswith(".png")
    upload.assert_awaited_once()


@pytest.mark.asyncio
async def test_upload_rejects_non_image(client, admin_headers):
    response = await client.post(
        "/v1/admin/banners/upload",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=admin_headers,
    )

    assert response.status_code == 400
    assert response.json()["error_code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_upload_reports_missing_bucket(client, admin_headers, mocker):
    mocker.patch.object(
        storage_service, "_put",
        side_effect=ClientError({"Error": {"Code": "NoSuchBucket", "Message": "missing"}}, "PutObject"),
    )

    response = await client.post(
        "/v1/admin/banners/upload",
        files={"file": ("banner.webp", b"RIFF", "image/webp")},
        headers=admin_headers,
    )

    assert response.status_code == 503
    body = response.json()
    assert body["error_code"] == "STORAGE_BUCKET_MISSING"
    assert "public-assets" in body["error"]


# Partner banners

@pytest.mark.asyncio
async def test_partner_banner_submit_and_approve(client, provider, provider_headers, admin_headers):
    response = await client.post(
        "/v1/provider/banners",
        json={"title_ar": "خصم", "title_en": "Discount", "duration_type": "1_week"},
        headers=provider_headers,
    )
    assert response.status_code == 201
    banner = response.json()
    assert banner["banner_type"] == "partner"
    assert banner["approval_status"] == "pending"
    assert banner["is_active"] is False
    assert banner["provider_id"] == provider.id

    starts = datetime.fromisoformat(banner["starts_at"])
    ends = datetime.fromisoformat(banner["ends_at"])
    assert ends - starts == timedelta(days=7)

    response = await client.post(f"/v1/admin/banners/{banner['id']}/approve", headers=admin_headers)
    assert response.status_code == 200
    assert response.json()["approval_status"] == "approved"
    assert response.json()["is_active"] is True

    response = await client.post(f"/v1/admin/banners/{banner['id']}/approve", headers=admin_headers)
    assert response.status_code == 409
    assert response.json()["error_code"] == "INVALID_STATUS_TRANSITION"


@pytest.mark.asyncio
async def test_partner_banner_reject_records_reason(client, provider_headers, admin_headers):
    response = await client.post(
        "/v1/provider/banners",
        json={"title_ar": "خصم", "title_en": "Discount", "duration_type": "1_day"},
        headers=provider_headers,
    )
    banner_id = response.json()["id"]

    response = await client.post(
        f"/v1/admin/banners/{banner_id}/reject", json={"reason": "Blurry image"}, headers=admin_headers
    )

    assert response.status_code == 200
    assert response.json()["approval_status"] == "rejected"
    assert response.json()["rejection_reason"] == "Blurry image"

    audit = await client.get("/v1/admin/audit-log?entity_type=banner", headers=admin_headers)
    assert audit.json()[0]["action_code"] == "reject"


@pytest.mark.asyncio
async def test_partner_banner_cancel_only_by_owner(client, provider_headers, make_provider, db_session, headers_for):
    response = await client.post(
        "/v1/provider/banners",
        json={"title_ar": "خصم", "title_en": "Discount", "duration_type": "3_days"},
        headers=provider_headers,
    )
    banner_id = response.json()["id"]

    other = await make_provider(name_en="Other Store")
    other_owner = await db_session.get(Profile, other.owner_id)

    response = await client.post(f"/v1/provider/banners/{banner_id}/cancel", headers=headers_for(other_owner))
    assert response.status_code == 403

    response = await client.post(f"/v1/provider/banners/{banner_id}/cancel", headers=provider_headers)
    assert response.status_code == 200
    assert response.json()["approval_status"] == "cancelled"


@pytest.mark.asyncio
async def test_provider_routes_reject_customers(client, make_profile, headers_for):
    customer = await make_profile(UserRole.CUSTOMER)
    response = await client.get("/v1/provider/banners", headers=headers_for(customer))
    assert response.status_code == 403
