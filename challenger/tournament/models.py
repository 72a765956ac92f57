"""Data models for the tournament blueprint."""

from __future__ import annotations

from typing import Any, TypedDict

from challenger.core.types import FirestoreDocument

# Tournament status
REGISTRATION_OPEN = "REGISTRATION_OPEN"
REGISTRATION_LOCKED = "REGISTRATION_LOCKED"
BRACKET_LOCKED = "BRACKET_LOCKED"
IN_PROGRESS = "IN_PROGRESS"
COMPLETE = "COMPLETE"

TOURNAMENT_STATUSES = (
    REGISTRATION_OPEN,
    REGISTRATION_LOCKED,
    BRACKET_LOCKED,
    IN_PROGRESS,
    COMPLETE,
)

# Bracket types
SINGLE_ELIM = "SINGLE_ELIM"
DOUBLE_ELIM = "DOUBLE_ELIM"
ROUND_ROBIN = "ROUND_ROBIN"

BRACKET_TYPES = (SINGLE_ELIM, DOUBLE_ELIM, ROUND_ROBIN)

# Phase status
PHASE_PENDING = "PENDING"
PHASE_IN_PROGRESS = "IN_PROGRESS"
PHASE_COMPLETE = "COMPLETE"

PHASE_STATUSES = (PHASE_PENDING, PHASE_IN_PROGRESS, PHASE_COMPLETE)

# Match status
MATCH_PENDING = "PENDING"
MATCH_SCHEDULED = "SCHEDULED"
MATCH_COMPLETED = "COMPLETED"


class Phase(TypedDict, total=False):
    """A bracket phase embedded in a tournament."""

    bracketType: str
    status: str


class SlotDescriptor(TypedDict):
    """An empty slot of a bracket template."""

    slot: int
    teamA: str | None
    teamB: str | None


class Tournament(FirestoreDocument, total=False):
    """A tournament document in Firestore."""

    name: str
    description: str
    startDate: Any
    game: str
    maxParticipants: int
    phases: list[Phase]
    organizerId: str
    refereeCode: str
    pendingTeams: list[str]
    teams: list[str]
    referees: list[str]
    status: str


class Match(FirestoreDocument, total=False):
    """A bracket match document in Firestore."""

    tournamentId: str
    phaseIndex: int
    slot: int
    teamA: str | None
    teamB: str | None
    scheduledAt: Any
    format: str
    scoreA: int | None
    scoreB: int | None
    winner: str | None
    status: str


def match_document_id(tournament_id: str, phase_index: int, slot: int) -> str:
    """Return the match id; one document per (tournament, phase, slot)."""
    return f"{tournament_id}_{phase_index}_{slot}"
