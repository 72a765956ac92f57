"""Tournament status state machine."""

from __future__ import annotations

from typing import Any, NamedTuple

from challenger.errors import InvalidTransitionError, ReadinessNotMetError

from .models import (
    BRACKET_LOCKED,
    COMPLETE,
    IN_PROGRESS,
    REGISTRATION_LOCKED,
    REGISTRATION_OPEN,
)

MIN_TEAMS = 2

VALID_TRANSITIONS: dict[str, frozenset[str]] = {
    REGISTRATION_OPEN: frozenset({REGISTRATION_LOCKED}),
    REGISTRATION_LOCKED: frozenset({BRACKET_LOCKED, REGISTRATION_OPEN}),
    BRACKET_LOCKED: frozenset({IN_PROGRESS}),
    IN_PROGRESS: frozenset({COMPLETE}),
    COMPLETE: frozenset(),
}


class ReadinessResult(NamedTuple):
    """Outcome of a readiness check."""

    valid: bool
    reason: str | None = None


def can_transition(current: str | None, target: str | None) -> bool:
    """Return True if ``target`` is in the allow-list for ``current``."""
    return target in VALID_TRANSITIONS.get(current or "", frozenset())


def check_readiness(tournament: dict[str, Any], target_status: str) -> ReadinessResult:
    """Check the preconditions of ``target_status`` beyond the transition table."""
    team_count = len(tournament.get("teams") or [])
    status = tournament.get("status")

    if target_status == REGISTRATION_LOCKED:
        if team_count < MIN_TEAMS:
            return ReadinessResult(False, "Need at least 2 teams to close registration")
    elif target_status == BRACKET_LOCKED:
        if team_count < MIN_TEAMS:
            return ReadinessResult(False, "Need at least 2 teams to lock bracket")
        if status != REGISTRATION_LOCKED:
            return ReadinessResult(False, "Must close registration first")
    elif target_status == IN_PROGRESS:
        if status != BRACKET_LOCKED:
            return ReadinessResult(False, "Must lock bracket first")
    elif target_status == COMPLETE:
        if status != IN_PROGRESS:
            return ReadinessResult(False, "Tournament must be in progress to complete")

    return ReadinessResult(True)


def validate_transition(tournament: dict[str, Any], target_status: str) -> None:
    """Raise unless both the transition table and the readiness check pass."""
    current = tournament.get("status") or REGISTRATION_OPEN
    if not can_transition(current, target_status):
        raise InvalidTransitionError(current, target_status)
    result = check_readiness(tournament, target_status)
    if not result.valid:
        raise ReadinessNotMetError(result.reason or "Tournament is not ready.", target_status)
