from __future__ import annotations

from fastapi.testclient import TestClient

from app.main import app


def test_parse_endpoint_returns_extracted_values() -> None:
    client = TestClient(app)

    response = client.post(
        "/api/redemption-urls/parse",
        json={"url": "https://shop.example.com/redeem?campaign_id=c1&code=ABCD2345&ref=mail"},
    )

    assert response.status_code == 200
    assert response.json() == {
        "campaign_id": "c1",
        "unique_code": "ABCD2345",
        "original_url": "https://shop.example.com/redeem?campaign_id=c1&code=ABCD2345&ref=mail",
        "is_valid": True,
        "extra_params": {"ref": "mail"},
        "errors": [],
    }


def test_validate_endpoint_reports_errors_with_200() -> None:
    client = TestClient(app)

    response = client.post("/api/redemption-urls/validate", json={"url": "/redeem?campaign_id=c1"})

    assert response.status_code == 200
    body = response.json()
    assert body["is_valid"] is False
    assert body["errors"] == ["Missing required parameter: code"]
    assert body["error_kinds"] == ["INVALID_ARGUMENT"]
    assert body["data"] is None


def test_validate_endpoint_honours_extra_param_switch() -> None:
    client = TestClient(app)

    response = client.post(
        "/api/redemption-urls/validate",
        json={"url": "/redeem?campaign_id=c1&code=ABCD2345&x=1", "allow_extra_params": False},
    )

    body = response.json()
    assert body["is_valid"] is True
    assert body["warnings"] == ["Found 1 additional parameters"]
    assert body["data"]["extra_params"] is None
