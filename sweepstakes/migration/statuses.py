from __future__ import annotations

from sweepstakes.migration.errors import InvalidStatusTransitionError

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_MIGRATED = "migrated"
STATUS_FAILED = "failed"
STATUS_ALREADY_EXISTS = "already_exists"

MIGRATION_STATUSES = (
    STATUS_PENDING,
    STATUS_IN_PROGRESS,
    STATUS_MIGRATED,
    STATUS_FAILED,
    STATUS_ALREADY_EXISTS,
)
TERMINAL_STATUSES = frozenset({STATUS_MIGRATED, STATUS_FAILED, STATUS_ALREADY_EXISTS})
CLEARABLE_STATUSES = frozenset({STATUS_PENDING, STATUS_FAILED})

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    STATUS_PENDING: frozenset({STATUS_IN_PROGRESS}),
    STATUS_IN_PROGRESS: frozenset(
        {STATUS_MIGRATED, STATUS_FAILED, STATUS_ALREADY_EXISTS, STATUS_PENDING}
    ),
    STATUS_FAILED: frozenset({STATUS_PENDING}),
    STATUS_MIGRATED: frozenset(),
    STATUS_ALREADY_EXISTS: frozenset(),
}


def is_transition_allowed(from_status: str, to_status: str) -> bool:
    return to_status in ALLOWED_TRANSITIONS.get(from_status, frozenset())


def ensure_transition(from_status: str, to_status: str) -> None:
    """Raises when a status write would move a record backwards or sideways off the graph."""
    if not is_transition_allowed(from_status, to_status):
        raise InvalidStatusTransitionError(from_status, to_status)
