from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.api.routes import redemption_codes
from app.redemption import service as redemption_service
from app.redemption.errors import GenerationExhaustedError
from tests.api.api_fixtures import admin_headers, bearer
from tests.redemption_fixtures import create_campaign, create_code, create_user

UTC = timezone.utc


async def _campaign(session_factory):
    return await create_campaign(session_factory, expires_at=datetime.now(UTC) + timedelta(days=7))


@pytest.mark.asyncio
async def test_create_codes_returns_created_codes(api_client, session_factory) -> None:
    campaign = await _campaign(session_factory)

    response = await api_client.post(
        "/api/redemption-codes",
        json={"campaign_id": campaign.id, "quantity": 20, "preset": "SHORT"},
        headers=admin_headers(),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["campaign_id"] == campaign.id
    assert body["codes_created"] == 20
    codes = [item["unique_code"] for item in body["codes"]]
    assert len(set(codes)) == 20
    assert all(re.fullmatch(r"[A-Z0-9]{6}", code) for code in codes)


@pytest.mark.asyncio
async def test_create_codes_enforces_admin_and_quantity_limits(api_client, session_factory) -> None:
    campaign = await _campaign(session_factory)

    regular = await api_client.post(
        "/api/redemption-codes",
        json={"campaign_id": campaign.id, "quantity": 1},
        headers=bearer("user-1"),
    )
    over_setting = await api_client.post(
        "/api/redemption-codes",
        json={"campaign_id": campaign.id, "quantity": 51},
        headers=admin_headers(),
    )
    over_schema = await api_client.post(
        "/api/redemption-codes",
        json={"campaign_id": campaign.id, "quantity": 1001},
        headers=admin_headers(),
    )
    campaign_preset = await api_client.post(
        "/api/redemption-codes",
        json={"campaign_id": campaign.id, "quantity": 1, "preset": "CAMPAIGN"},
        headers=admin_headers(),
    )

    assert regular.status_code == 403
    assert over_setting.status_code == 400
    assert over_setting.json()["detail"]["message"] == "quantity must not exceed 50"
    assert over_schema.status_code == 422
    assert campaign_preset.status_code == 422


@pytest.mark.asyncio
async def test_create_codes_for_missing_campaign_returns_404(api_client) -> None:
    response = await api_client.post(
        "/api/redemption-codes",
        json={"campaign_id": "missing", "quantity": 1},
        headers=admin_headers(),
    )

    assert response.status_code == 404
    assert response.json()["detail"]["error_kind"] == "CAMPAIGN_NOT_FOUND"


@pytest.mark.asyncio
async def test_create_codes_reports_exhausted_generation(api_client, session_factory, monkeypatch) -> None:
    campaign = await _campaign(session_factory)

    async def _exhausted(session, **kwargs):
        raise GenerationExhaustedError("keyspace exhausted")

    monkeypatch.setattr(redemption_codes.RedemptionService, "create_codes", _exhausted)

    response = await api_client.post(
        "/api/redemption-codes",
        json={"campaign_id": campaign.id, "quantity": 5},
        headers=admin_headers(),
    )

    assert response.status_code == 422
    assert response.json()["detail"]["error_kind"] == "GENERATION_EXHAUSTED"


@pytest.mark.asyncio
async def test_list_codes_by_campaign_filters_usage(api_client, session_factory) -> None:
    campaign = await _campaign(session_factory)
    await create_code(session_factory, campaign=campaign, unique_code="ABCD2345")
    await create_code(session_factory, campaign=campaign, unique_code="EFGH2345")
    await api_client.post(
        "/api/redeem",
        json={"campaign_id": campaign.id, "code": "ABCD2345", "user_email": "one@example.com"},
    )

    everything = await api_client.get(
        "/api/redemption-codes",
        params={"campaign_id": campaign.id},
        headers=admin_headers(),
    )
    unused = await api_client.get(
        "/api/redemption-codes",
        params={"campaign_id": campaign.id, "is_used": "false"},
        headers=admin_headers(),
    )
    all_codes = await api_client.get("/api/redemption-codes", headers=admin_headers())

    assert everything.json()["count"] == 2
    assert [item["unique_code"] for item in unused.json()["codes"]] == ["EFGH2345"]
    assert all_codes.json()["count"] == 2


@pytest.mark.asyncio
async def test_lookup_code_is_limited_to_its_redeemer_or_admin(api_client, session_factory) -> None:
    campaign = await _campaign(session_factory)
    code = await create_code(session_factory, campaign=campaign, unique_code="ABCD2345")
    owner = await create_user(session_factory)
    stranger = await create_user(session_factory)
    await api_client.post(
        "/api/redeem",
        json={"campaign_id": campaign.id, "code": "ABCD2345"},
        headers=bearer(owner.id),
    )

    by_owner = await api_client.get(
        "/api/redemption-codes",
        params={"code": "ABCD2345"},
        headers=bearer(owner.id),
    )
    by_stranger = await api_client.get(
        "/api/redemption-codes",
        params={"id": code.id},
        headers=bearer(stranger.id),
    )
    by_admin = await api_client.get(
        "/api/redemption-codes",
        params={"id": code.id},
        headers=admin_headers(),
    )
    listing_by_user = await api_client.get("/api/redemption-codes", headers=bearer(owner.id))
    anonymous = await api_client.get("/api/redemption-codes", params={"code": "ABCD2345"})
    missing = await api_client.get(
        "/api/redemption-codes",
        params={"code": "NOPE2345"},
        headers=admin_headers(),
    )

    assert by_owner.status_code == 200
    assert by_owner.json()["codes"][0]["is_used"] is True
    assert by_owner.json()["codes"][0]["user_email"] == owner.email
    assert by_stranger.status_code == 403
    assert by_admin.status_code == 200
    assert listing_by_user.status_code == 403
    assert anonymous.status_code == 401
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_create_codes_reports_concurrent_insert_conflict(api_client, session_factory, monkeypatch) -> None:
    campaign = await _campaign(session_factory)
    await create_code(session_factory, campaign=campaign, unique_code="ABCD2345")

    async def _nothing_stored(session, codes):
        return set()

    monkeypatch.setattr(
        redemption_service,
        "generate_bulk_codes",
        lambda quantity, config=None, **kwargs: SimpleNamespace(codes=["ABCD2345"]),
    )
    monkeypatch.setattr(redemption_service.RedemptionCodesRepo, "find_existing_codes", _nothing_stored)

    response = await api_client.post(
        "/api/redemption-codes",
        json={"campaign_id": campaign.id, "quantity": 1},
        headers=admin_headers(),
    )

    assert response.status_code == 500
    assert response.json()["detail"]["error_kind"] == "INTERNAL_FAILURE"
