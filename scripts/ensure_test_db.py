from __future__ import annotations

import asyncio
import re
import sys
from pathlib import Path

import asyncpg
from alembic import command
from alembic.config import Config
from sqlalchemy.engine import make_url

from app.core.config import get_settings
from app.core.integration_db_safety import assess_integration_db_safety

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
ALEMBIC_INI = Path(__file__).resolve().parent.parent / "alembic.ini"


async def _ensure_database_exists(database_url: str) -> bool:
    parsed = make_url(database_url)
    db_name = (parsed.database or "").strip()
    if IDENTIFIER_RE.fullmatch(db_name) is None:
        raise RuntimeError(f"Unsupported database name '{db_name}'. Only [A-Za-z0-9_] identifiers are supported.")
    if parsed.username is None:
        raise RuntimeError("DATABASE_URL username is required.")

    conn = await asyncpg.connect(
        host=parsed.host or "localhost",
        port=int(parsed.port or 5432),
        user=parsed.username,
        password=parsed.password,
        database="postgres",
    )
    try:
        if await conn.fetchval("SELECT 1 FROM pg_database WHERE datname = $1", db_name):
            return False
        await conn.execute(f'CREATE DATABASE "{db_name}"')
        return True
    finally:
        await conn.close()


def main() -> int:
    settings = get_settings()
    database_url = settings.database_url
    safety = assess_integration_db_safety(database_url, extra_hosts=settings.integration_hosts)
    if not safety.is_safe:
        print(f"ensure_test_db: refusing target db={safety.database_name}: {safety.reason}", file=sys.stderr)  # noqa: T201
        return 1

    created = asyncio.run(_ensure_database_exists(database_url))
    command.upgrade(Config(str(ALEMBIC_INI)), "head")
    state = "created" if created else "exists"
    print(f"ensure_test_db: {state} db={safety.database_name} host={safety.host} schema=head")  # noqa: T201
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
