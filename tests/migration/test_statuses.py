from __future__ import annotations

import pytest

from sweepstakes.migration.errors import InvalidStatusTransitionError
from sweepstakes.migration.statuses import (
    MIGRATION_STATUSES,
    TERMINAL_STATUSES,
    ensure_transition,
    is_transition_allowed,
)


@pytest.mark.parametrize(
    ("from_status", "to_status"),
    [
        ("pending", "in_progress"),
        ("in_progress", "migrated"),
        ("in_progress", "already_exists"),
        ("in_progress", "failed"),
        ("in_progress", "pending"),
        ("failed", "pending"),
    ],
)
def test_allowed_transitions(from_status: str, to_status: str) -> None:
    assert is_transition_allowed(from_status, to_status) is True
    ensure_transition(from_status, to_status)


@pytest.mark.parametrize(
    ("from_status", "to_status"),
    [
        ("pending", "migrated"),
        ("migrated", "pending"),
        ("already_exists", "in_progress"),
        ("failed", "migrated"),
        ("unknown", "pending"),
    ],
)
def test_rejected_transitions(from_status: str, to_status: str) -> None:
    assert is_transition_allowed(from_status, to_status) is False
    with pytest.raises(InvalidStatusTransitionError) as exc_info:
        ensure_transition(from_status, to_status)
    assert exc_info.value.to_status == to_status


def test_successful_outcomes_are_final() -> None:
    for status in ("migrated", "already_exists"):
        assert not any(is_transition_allowed(status, target) for target in MIGRATION_STATUSES)
    assert TERMINAL_STATUSES == {"migrated", "failed", "already_exists"}
