from __future__ import annotations

import asyncio
import re

import asyncpg
from sqlalchemy.engine import make_url

from app.core.config import get_settings
from app.core.integration_db_safety import assert_safe_integration_db

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _database_to_create(database_url: str) -> str:
    assert_safe_integration_db(database_url)
    db_name = (make_url(database_url).database or "").strip()
    if IDENTIFIER_RE.fullmatch(db_name) is None:
        raise RuntimeError(
            f"Unsupported database name '{db_name}'. "
            "Only [A-Za-z0-9_] identifiers are supported."
        )
    return db_name


async def _ensure_database_exists(database_url: str) -> None:
    db_name = _database_to_create(database_url)
    parsed = make_url(database_url)
    host = parsed.host or "localhost"
    port = int(parsed.port or 5432)
    if parsed.username is None:
        raise RuntimeError("DATABASE_URL username is required.")

    conn = await asyncpg.connect(
        host=host,
        port=port,
        user=parsed.username,
        password=parsed.password,
        database="postgres",
    )
    try:
        exists = await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name)
        if exists:
            print(f"ensure_test_db: exists db={db_name} host={host}:{port}")  # noqa: T201
            return

        await conn.execute(f'CREATE DATABASE "{db_name}"')
        print(f"ensure_test_db: created db={db_name} host={host}:{port}")  # noqa: T201
    finally:
        await conn.close()


def main() -> int:
    asyncio.run(_ensure_database_exists(get_settings().database_url))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
