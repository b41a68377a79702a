from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from tests.api.api_fixtures import admin_headers, bearer
from tests.redemption_fixtures import create_campaign, create_code, load_campaign

UTC = timezone.utc


@pytest.mark.asyncio
async def test_list_campaigns_returns_effective_status(api_client, session_factory) -> None:
    now_utc = datetime.now(UTC)
    await create_campaign(session_factory, name="Live", expires_at=now_utc + timedelta(days=1))
    await create_campaign(session_factory, name="Lapsed", expires_at=now_utc - timedelta(days=1))

    response = await api_client.get("/api/campaigns")

    assert response.status_code == 200
    body = response.json()
    assert body["count"] == 2
    statuses = {item["name"]: item["status"] for item in body["campaigns"]}
    assert statuses == {"Live": "active", "Lapsed": "expired"}


@pytest.mark.asyncio
async def test_get_campaign_includes_available_codes(api_client, session_factory) -> None:
    campaign = await create_campaign(session_factory, expires_at=datetime.now(UTC) + timedelta(days=1))
    await create_code(session_factory, campaign=campaign, unique_code="ABCD2345")
    await create_code(session_factory, campaign=campaign, unique_code="EFGH2345")

    response = await api_client.get(f"/api/campaigns/{campaign.id}")
    missing = await api_client.get("/api/campaigns/missing")

    assert response.status_code == 200
    assert response.json()["available_codes"] == 2
    assert missing.status_code == 404
    assert missing.json()["detail"]["error_kind"] == "CAMPAIGN_NOT_FOUND"


@pytest.mark.asyncio
async def test_validate_campaign_code_accepts_redeemable_pair(api_client, session_factory) -> None:
    campaign = await create_campaign(session_factory, expires_at=datetime.now(UTC) + timedelta(days=1))
    await create_code(session_factory, campaign=campaign, unique_code="ABCD2345")

    by_code = await api_client.get(
        "/api/campaigns/validate",
        params={"campaign_id": campaign.id, "code": "ABCD2345"},
    )
    by_unique_code = await api_client.get(
        "/api/campaigns/validate",
        params={"campaign_id": campaign.id, "unique_code": "ABCD2345"},
    )

    assert by_code.status_code == 200
    assert by_code.json()["valid"] is True
    assert Decimal(by_code.json()["redemption_value"]) == Decimal("25.00")
    assert by_unique_code.json()["campaign_name"] == "Winter 2025 Promotion"


@pytest.mark.asyncio
async def test_validate_campaign_code_reports_failures(api_client, session_factory) -> None:
    campaign = await create_campaign(session_factory, expires_at=datetime.now(UTC) + timedelta(days=1))

    missing_code = await api_client.get(
        "/api/campaigns/validate",
        params={"campaign_id": campaign.id, "code": "ZZZZ2345"},
    )
    no_code = await api_client.get("/api/campaigns/validate", params={"campaign_id": campaign.id})

    assert missing_code.status_code == 404
    assert missing_code.json()["detail"]["error_kind"] == "CODE_NOT_FOUND"
    assert no_code.status_code == 400
    assert no_code.json()["detail"]["error_kind"] == "INVALID_ARGUMENT"


@pytest.mark.asyncio
async def test_create_campaign_requires_admin(api_client) -> None:
    payload = {
        "name": "Spring",
        "redemption_value": "10.00",
        "expires_at": (datetime.now(UTC) + timedelta(days=30)).isoformat(),
    }

    anonymous = await api_client.post("/api/campaigns", json=payload)
    regular = await api_client.post("/api/campaigns", json=payload, headers=bearer("user-1"))
    created = await api_client.post("/api/campaigns", json=payload, headers=admin_headers())

    assert anonymous.status_code == 401
    assert regular.status_code == 403
    assert regular.json()["detail"]["error_kind"] == "FORBIDDEN"
    assert created.status_code == 201
    body = created.json()
    assert body["name"] == "Spring"
    assert body["status"] == "active"
    assert body["current_redemptions"] == 0
    assert body["available_codes"] == 0


@pytest.mark.asyncio
async def test_create_campaign_rejects_non_positive_value(api_client) -> None:
    response = await api_client.post(
        "/api/campaigns",
        json={
            "name": "Free",
            "redemption_value": "0",
            "expires_at": (datetime.now(UTC) + timedelta(days=30)).isoformat(),
        },
        headers=admin_headers(),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_update_campaign_changes_metadata(api_client, session_factory) -> None:
    campaign = await create_campaign(session_factory, expires_at=datetime.now(UTC) + timedelta(days=1))

    response = await api_client.patch(
        f"/api/campaigns/{campaign.id}",
        json={"name": "Renamed", "max_redemptions": 5, "status": "inactive"},
        headers=admin_headers(),
    )

    assert response.status_code == 200
    assert response.json()["name"] == "Renamed"
    assert response.json()["status"] == "inactive"
    stored = await load_campaign(session_factory, campaign.id)
    assert stored.max_redemptions == 5


@pytest.mark.asyncio
async def test_update_campaign_rejects_limit_below_current_redemptions(api_client, session_factory) -> None:
    campaign = await create_campaign(
        session_factory,
        current_redemptions=3,
        expires_at=datetime.now(UTC) + timedelta(days=1),
    )

    response = await api_client.patch(
        f"/api/campaigns/{campaign.id}",
        json={"max_redemptions": 2},
        headers=admin_headers(),
    )
    missing = await api_client.patch(
        "/api/campaigns/missing",
        json={"name": "Nobody"},
        headers=admin_headers(),
    )
    null_name = await api_client.patch(
        f"/api/campaigns/{campaign.id}",
        json={"name": None},
        headers=admin_headers(),
    )

    assert response.status_code == 400
    assert response.json()["detail"]["error_kind"] == "INVALID_ARGUMENT"
    assert (await load_campaign(session_factory, campaign.id)).max_redemptions is None
    assert missing.status_code == 404
    assert null_name.status_code == 400


@pytest.mark.asyncio
async def test_reactivated_campaign_accepts_redemptions(api_client, session_factory) -> None:
    created = await api_client.post(
        "/api/campaigns",
        json={
            "name": "Paused",
            "redemption_value": "10.00",
            "is_active": False,
            "expires_at": (datetime.now(UTC) + timedelta(days=30)).isoformat(),
        },
        headers=admin_headers(),
    )
    campaign = await load_campaign(session_factory, created.json()["id"])
    await create_code(session_factory, campaign=campaign, unique_code="WXYZ2345")
    redeem_payload = {"campaign_id": campaign.id, "code": "WXYZ2345", "user_email": "buyer@example.com"}

    paused = await api_client.post("/api/redeem", json=redeem_payload)
    reactivated = await api_client.patch(
        f"/api/campaigns/{campaign.id}",
        json={"is_active": True},
        headers=admin_headers(),
    )
    redeemed = await api_client.post("/api/redeem", json=redeem_payload)

    assert created.json()["status"] == "inactive"
    assert paused.status_code == 400
    assert paused.json()["detail"]["error_kind"] == "CAMPAIGN_INACTIVE"
    assert reactivated.status_code == 200
    assert reactivated.json()["is_active"] is True
    assert reactivated.json()["status"] == "active"
    assert redeemed.status_code == 200
    assert Decimal(redeemed.json()["redemption_value"]) == Decimal("10.00")
    assert (await load_campaign(session_factory, campaign.id)).status == "active"


@pytest.mark.asyncio
async def test_extending_expiry_revives_expired_campaign(api_client, session_factory) -> None:
    now_utc = datetime.now(UTC)
    campaign = await create_campaign(
        session_factory,
        status="expired",
        expires_at=now_utc - timedelta(days=1),
    )
    await create_code(session_factory, campaign=campaign, unique_code="LATE2345")

    response = await api_client.patch(
        f"/api/campaigns/{campaign.id}",
        json={"expires_at": (now_utc + timedelta(days=10)).isoformat()},
        headers=admin_headers(),
    )
    redeemed = await api_client.post(
        "/api/redeem",
        json={"campaign_id": campaign.id, "code": "LATE2345", "user_email": "late@example.com"},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "active"
    assert redeemed.status_code == 200


@pytest.mark.asyncio
async def test_deactivating_campaign_sets_inactive_status(api_client, session_factory) -> None:
    campaign = await create_campaign(session_factory, expires_at=datetime.now(UTC) + timedelta(days=1))

    deactivated = await api_client.patch(
        f"/api/campaigns/{campaign.id}",
        json={"is_active": False},
        headers=admin_headers(),
    )
    contradictory = await api_client.patch(
        f"/api/campaigns/{campaign.id}",
        json={"is_active": True, "status": "inactive"},
        headers=admin_headers(),
    )
    reopened = await api_client.patch(
        f"/api/campaigns/{campaign.id}",
        json={"status": "active"},
        headers=admin_headers(),
    )

    assert deactivated.json()["status"] == "inactive"
    assert deactivated.json()["is_active"] is False
    assert contradictory.status_code == 400
    assert contradictory.json()["detail"]["error_kind"] == "INVALID_ARGUMENT"
    assert reopened.status_code == 200
    assert reopened.json()["is_active"] is True
    assert reopened.json()["status"] == "active"


@pytest.mark.asyncio
async def test_list_active_campaigns_skips_time_expired(api_client, session_factory) -> None:
    now_utc = datetime.now(UTC)
    await create_campaign(session_factory, name="Live", expires_at=now_utc + timedelta(days=1))
    await create_campaign(session_factory, name="Lapsed", expires_at=now_utc - timedelta(days=1))
    await create_campaign(
        session_factory,
        name="Paused",
        is_active=False,
        status="inactive",
        expires_at=now_utc + timedelta(days=1),
    )

    response = await api_client.get("/api/campaigns", params={"active_only": "true"})

    assert response.status_code == 200
    assert [item["name"] for item in response.json()["campaigns"]] == ["Live"]
