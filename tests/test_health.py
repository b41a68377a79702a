from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from app.api.routes import health as health_routes
from app.main import app


async def _ok_check() -> dict[str, str]:
    return {"status": "ok"}


def _use_backend(monkeypatch, backend: str) -> None:
    monkeypatch.setattr(
        health_routes,
        "get_settings",
        lambda: SimpleNamespace(rate_limit_backend=backend, redis_url="redis://localhost:6379/0"),
    )


def test_health_ok_with_memory_rate_limits(monkeypatch) -> None:
    _use_backend(monkeypatch, "memory")
    monkeypatch.setattr(health_routes, "_check_database", _ok_check)

    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "checks": {"database": {"status": "ok"}},
    }


def test_health_checks_redis_when_rate_limits_use_it(monkeypatch) -> None:
    _use_backend(monkeypatch, "redis")
    monkeypatch.setattr(health_routes, "_check_database", _ok_check)
    monkeypatch.setattr(health_routes, "_check_redis", _ok_check)

    client = TestClient(app)
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ok",
        "checks": {
            "database": {"status": "ok"},
            "redis": {"status": "ok"},
        },
    }


def test_live_ok() -> None:
    client = TestClient(app)
    response = client.get("/live")
    assert response.status_code == 200
    assert response.json() == {"status": "live"}


def test_health_returns_503_when_dependency_failed(monkeypatch) -> None:
    async def _failed_redis() -> dict[str, str]:
        return {"status": "failed", "error": "redis_unavailable"}

    _use_backend(monkeypatch, "redis")
    monkeypatch.setattr(health_routes, "_check_database", _ok_check)
    monkeypatch.setattr(health_routes, "_check_redis", _failed_redis)

    client = TestClient(app)
    response = client.get("/health")

    assert response.status_code == 503
    payload = response.json()
    assert payload["status"] == "degraded"
    assert payload["checks"]["redis"] == {"status": "failed", "error": "redis_unavailable"}


def test_ready_reports_not_ready_when_database_failed(monkeypatch) -> None:
    async def _failed_database() -> dict[str, str]:
        return {"status": "failed", "error": "database_unavailable"}

    _use_backend(monkeypatch, "memory")
    monkeypatch.setattr(health_routes, "_check_database", _failed_database)

    client = TestClient(app)
    response = client.get("/ready")

    assert response.status_code == 503
    assert response.json() == {
        "status": "not_ready",
        "checks": {"database": {"status": "failed", "error": "database_unavailable"}},
    }


def test_ready_ok(monkeypatch) -> None:
    _use_backend(monkeypatch, "memory")
    monkeypatch.setattr(health_routes, "_check_database", _ok_check)

    client = TestClient(app)
    response = client.get("/ready")
    assert response.status_code == 200
    assert response.json() == {
        "status": "ready",
        "checks": {"database": {"status": "ok"}},
    }


@pytest.mark.asyncio
async def test_database_check_sanitizes_exception(monkeypatch) -> None:
    class _BrokenSession:
        async def __aenter__(self):
            raise RuntimeError("password=secret")

        async def __aexit__(self, exc_type, exc, tb) -> bool:
            return False

    monkeypatch.setattr(health_routes, "SessionLocal", lambda: _BrokenSession())

    result = await health_routes._check_database()
    assert result == {"status": "failed", "error": "database_unavailable"}


@pytest.mark.asyncio
async def test_redis_check_sanitizes_exception(monkeypatch) -> None:
    _use_backend(monkeypatch, "redis")

    class _BrokenRedis:
        @staticmethod
        def from_url(url: str):
            raise RuntimeError(f"cannot reach {url}")

    monkeypatch.setattr(health_routes, "Redis", _BrokenRedis)

    result = await health_routes._check_redis()
    assert result == {"status": "failed", "error": "redis_unavailable"}
