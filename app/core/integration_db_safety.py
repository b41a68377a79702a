from __future__ import annotations

import re
from dataclasses import dataclass

from sqlalchemy.engine import make_url

TEST_DB_NAME_RE = re.compile(r"test", re.IGNORECASE)
INTEGRATION_DB_HOSTS = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "::1",
        "postgres",
        "redemption_postgres",
    }
)


@dataclass(frozen=True, slots=True)
class IntegrationDbSafetyResult:
    is_safe: bool
    reason: str
    database_name: str
    host: str


def _first_violation(*, backend: str, database_name: str, host: str) -> str | None:
    if backend != "postgresql":
        return "Integration tests run only against PostgreSQL."
    if not database_name:
        return "Database name is empty."
    if TEST_DB_NAME_RE.search(database_name) is None:
        return "Database name must contain 'test'."
    if host not in INTEGRATION_DB_HOSTS:
        return f"Host '{host}' is not a local integration-test host."
    return None


def assess_integration_db_safety(database_url: str) -> IntegrationDbSafetyResult:
    url = make_url(database_url)
    database_name = (url.database or "").strip()
    host = (url.host or "").strip().lower()
    violation = _first_violation(
        backend=url.get_backend_name(),
        database_name=database_name,
        host=host,
    )
    return IntegrationDbSafetyResult(
        is_safe=violation is None,
        reason=violation or "ok",
        database_name=database_name,
        host=host,
    )


def assert_safe_integration_db(database_url: str) -> None:
    result = assess_integration_db_safety(database_url)
    if not result.is_safe:
        raise RuntimeError(
            "Refusing to run integration tests with destructive TRUNCATE.\n"
            f"Reason: {result.reason}\n"
            f"Resolved DB: name='{result.database_name}' host='{result.host}'\n"
            "Use a dedicated local PostgreSQL database such as 'redemption_test'."
        )
