"""Catalogue of supported games and its seeding."""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore

from .core.constants import GAMES

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client

logger = logging.getLogger(__name__)

GAMES_DATA: list[dict[str, Any]] = [
    {
        "name": "League of Legends",
        "servers": ["EUW", "EUNE", "NA", "LAN", "LAS", "OCE", "KR", "JP", "BR"],
        "ranks": [
            "Iron",
            "Bronze",
            "Silver",
            "Gold",
            "Platinum",
            "Diamond",
            "Master",
            "Grandmaster",
            "Challenger",
        ],
        "formats": [
            "1 Game",
            "2 Games",
            "3 Games",
            "4 Games",
            "5 Games",
            "Best of 3",
            "Best of 5",
        ],
    },
    {
        "name": "Rocket League",
        "servers": ["NA-East", "NA-West", "EU", "OCE", "South America", "Middle East"],
        "ranks": [
            "Bronze",
            "Silver",
            "Gold",
            "Platinum",
            "Diamond",
            "Champion",
            "Grand Champion",
            "Supersonic Legend",
        ],
        "formats": ["Best of 7", "Best of 5", "Best of 3", "Bo3 Bo7"],
    },
    {
        "name": "Valorant",
        "servers": ["NA", "EU", "APAC", "KR", "BR", "LATAM"],
        "ranks": [
            "Iron",
            "Bronze",
            "Silver",
            "Gold",
            "Platinum",
            "Diamond",
            "Ascendant",
            "Immortal",
            "Radiant",
        ],
        "formats": ["1 Game", "2 Games", "3 Games", "Best of 3", "Best of 5"],
    },
    {
        "name": "Counter-Strike",
        "servers": ["NA", "EU", "Asia", "Oceania", "South America"],
        "ranks": [
            "Silver",
            "Gold",
            "Master Guardian",
            "Legendary Eagle",
            "Supreme Master",
            "Global Elite",
        ],
        "formats": ["1 Game", "2 Games", "3 Games", "Best of 3", "Best of 5"],
    },
]


def game_id(name: str) -> str:
    """Document id for a game, e.g. ``league-of-legends``."""
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def seed_games(db: Client | None = None) -> int:
    """Create or refresh every known game and return how many games exist.

    Keyed by name, so running it again only updates the existing documents.
    """
    if db is None:
        db = firestore.client()
    games = db.collection(GAMES)
    for game in GAMES_DATA:
        games.document(game_id(game["name"])).set(dict(game), merge=True)
        logger.info(f"Updated/Created: {game['name']}")

    total = sum(1 for doc in games.stream() if doc.exists)
    logger.info(f"Game seeding complete! Total games: {total}")
    return total
