from __future__ import annotations

from types import SimpleNamespace
from typing import Any

MIGRATION_SETTINGS_DEFAULTS: dict[str, Any] = {
    "beehiiv_publication_id": "pub_default",
    "migration_stall_timeout_minutes": 30,
    "migration_request_delay_ms": 0,
    "migration_rate_limit_max_attempts": 3,
    "migration_rate_limit_backoff_max_seconds": 0,
    "migration_max_batch_errors": 50,
    "migration_import_chunk_size": 500,
    "migration_import_chunk_delay_ms": 0,
}


class DummySessionBegin:
    def __init__(self, session: object) -> None:
        self._session = session

    async def __aenter__(self) -> object:
        return self._session

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        return False


class DummySessionLocal:
    def __init__(self) -> None:
        self.session = object()
        self.begin_calls = 0

    def begin(self) -> DummySessionBegin:
        self.begin_calls += 1
        return DummySessionBegin(self.session)


def migration_settings(**overrides: Any) -> SimpleNamespace:
    return SimpleNamespace(**{**MIGRATION_SETTINGS_DEFAULTS, **overrides})


async def noop_operation_log(**kwargs: object) -> bool:
    del kwargs
    return True
