"""Bracket template generation.

A template is the list of empty match slots a phase needs before any team is
seeded. Slot numbers are 0-based and sequential.
"""

from __future__ import annotations

import math
import secrets
from typing import TYPE_CHECKING

from firebase_admin import firestore

from challenger.core.constants import (
    REFEREE_CODE_ALPHABET,
    REFEREE_CODE_LENGTH,
    TOURNAMENTS,
)
from challenger.errors import UnsupportedBracketTypeError

from .models import DOUBLE_ELIM, ROUND_ROBIN, SINGLE_ELIM, SlotDescriptor

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client


def next_power_of_two(n: int) -> int:
    """Return the smallest power of two >= n (1 for n <= 1)."""
    if n <= 1:
        return 1
    return 2 ** math.ceil(math.log2(n))


def _empty_slots(start: int, count: int) -> list[SlotDescriptor]:
    return [{"slot": start + i, "teamA": None, "teamB": None} for i in range(count)]


def generate_bracket(team_count: int, bracket_type: str) -> list[SlotDescriptor]:
    """Return the empty slot descriptors for a phase."""
    if bracket_type == SINGLE_ELIM:
        return _empty_slots(0, next_power_of_two(team_count) - 1)

    if bracket_type == DOUBLE_ELIM:
        # Losers bracket sized like the winners bracket; see DESIGN.md.
        winners_count = next_power_of_two(team_count) - 1
        losers_count = winners_count
        return _empty_slots(0, winners_count) + _empty_slots(winners_count, losers_count)

    if bracket_type == ROUND_ROBIN:
        slots: list[SlotDescriptor] = []
        for i in range(team_count):
            for _j in range(i + 1, team_count):
                slots.append({"slot": len(slots), "teamA": None, "teamB": None})
        return slots

    raise UnsupportedBracketTypeError(bracket_type)


def generate_code() -> str:
    """Draw a random referee code."""
    return "".join(
        secrets.choice(REFEREE_CODE_ALPHABET) for _ in range(REFEREE_CODE_LENGTH)
    )


def code_exists(db: Client, code: str) -> bool:
    query = (
        db.collection(TOURNAMENTS)
        .where(filter=firestore.FieldFilter("refereeCode", "==", code))
        .limit(1)
    )
    return any(doc.exists for doc in query.stream())


def generate_unique_code(db: Client) -> str:
    """Draw referee codes until one is not used by any tournament."""
    code = generate_code()
    while code_exists(db, code):
        code = generate_code()
    return code
