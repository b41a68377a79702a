from __future__ import annotations

import httpx
import pytest

from app.api import deps
from app.api.routes import admin, campaigns, redeem, redemption_codes, users
from app.main import app
from app.redemption import service as redemption_service
from app.services.rate_limit import InMemoryRateLimitStore
from tests.api.api_fixtures import API_SETTINGS


@pytest.fixture
def rate_limit_store() -> InMemoryRateLimitStore:
    return InMemoryRateLimitStore()


@pytest.fixture
async def api_client(monkeypatch, session_factory, rate_limit_store):
    for module in (redemption_service, admin, campaigns, redemption_codes, users):
        monkeypatch.setattr(module, "SessionLocal", session_factory)
    for module in (deps, redeem, redemption_codes, admin):
        monkeypatch.setattr(module, "get_settings", lambda: API_SETTINGS)
    monkeypatch.setattr(redeem, "get_rate_limit_store", lambda: rate_limit_store)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
