from __future__ import annotations

import re
from collections.abc import Iterable
from dataclasses import dataclass

from sqlalchemy.engine import make_url

TEST_DB_NAME_RE = re.compile(r"test", re.IGNORECASE)
ALLOWED_LOCAL_HOSTS = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "::1",
        "postgres",
        "storefront_postgres",
    }
)


@dataclass(frozen=True, slots=True)
class IntegrationDbSafetyResult:
    is_safe: bool
    reason: str
    database_name: str
    host: str


def assess_integration_db_safety(
    database_url: str,
    *,
    extra_hosts: Iterable[str] = (),
) -> IntegrationDbSafetyResult:
    parsed = make_url(database_url)
    db_name = (parsed.database or "").strip()
    host = (parsed.host or "").strip().lower()
    allowed_hosts = ALLOWED_LOCAL_HOSTS | {item.strip().lower() for item in extra_hosts}

    if parsed.get_backend_name() != "postgresql":
        reason = "Integration tests need a PostgreSQL database (partial indexes, RETURNING)."
    elif not db_name:
        reason = "Database name is empty."
    elif TEST_DB_NAME_RE.search(db_name) is None:
        reason = "Database name must contain 'test'."
    elif host not in allowed_hosts:
        reason = f"Host '{host}' is not an allowed local integration-test host."
    else:
        reason = "ok"

    return IntegrationDbSafetyResult(
        is_safe=reason == "ok",
        reason=reason,
        database_name=db_name,
        host=host,
    )


def assert_safe_integration_db(database_url: str, *, extra_hosts: Iterable[str] = ()) -> None:
    result = assess_integration_db_safety(database_url, extra_hosts=extra_hosts)
    if result.is_safe:
        return

    raise RuntimeError(
        "Refusing to run integration tests with destructive TRUNCATE.\n"
        f"Reason: {result.reason}\n"
        f"Resolved DB: name='{result.database_name}' host='{result.host}'\n"
        "Use a dedicated local PostgreSQL database such as 'storefront_test'."
    )
