from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from sqlalchemy.engine import URL, make_url

LOCAL_TEST_HOSTS = frozenset(
    {
        "localhost",
        "127.0.0.1",
        "::1",
        "postgres",
        "sweepstakes_postgres",
    }
)


@dataclass(frozen=True, slots=True)
class IntegrationDbSafetyResult:
    is_safe: bool
    reason: str
    database_name: str
    host: str


@dataclass(frozen=True, slots=True)
class _SafetyRule:
    reason: str
    violated: Callable[[URL, str, str], bool]


# Checked in order; the first violated rule is reported.
SAFETY_RULES: tuple[_SafetyRule, ...] = (
    _SafetyRule(
        reason="Integration tests support only PostgreSQL test databases.",
        violated=lambda url, _name, _host: url.get_backend_name() != "postgresql",
    ),
    _SafetyRule(
        reason="Database name is empty.",
        violated=lambda _url, name, _host: not name,
    ),
    _SafetyRule(
        reason="Database name must clearly indicate a test database (contain 'test').",
        violated=lambda _url, name, _host: "test" not in name.lower(),
    ),
    _SafetyRule(
        reason="Host is not in allowed local integration-test hosts.",
        violated=lambda _url, _name, host: host not in LOCAL_TEST_HOSTS,
    ),
)


def assess_integration_db_safety(database_url: str) -> IntegrationDbSafetyResult:
    """Tells whether the suite may truncate the sweepstakes tables behind this URL."""
    parsed = make_url(database_url)
    database_name = (parsed.database or "").strip()
    host = (parsed.host or "").strip().lower()

    reason = next(
        (rule.reason for rule in SAFETY_RULES if rule.violated(parsed, database_name, host)),
        None,
    )
    return IntegrationDbSafetyResult(
        is_safe=reason is None,
        reason=reason or "ok",
        database_name=database_name,
        host=host,
    )


def assert_safe_integration_db(database_url: str) -> None:
    result = assess_integration_db_safety(database_url)
    if result.is_safe:
        return

    raise RuntimeError(
        "Refusing to truncate sweepstakes tables for integration tests.\n"
        f"Reason: {result.reason}\n"
        f"Resolved DB: name='{result.database_name}' host='{result.host}'\n"
        "Point DATABASE_URL at a local PostgreSQL test DB, e.g. 'sweepstakes_test'."
    )
