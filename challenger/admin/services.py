"""Service layer for admin-related operations."""

from __future__ import annotations

import datetime
import logging
import random
from typing import TYPE_CHECKING, Any

from faker import Faker
from firebase_admin import auth, firestore

from challenger.core.constants import (
    NOTIFICATIONS,
    SCRIM_CHATS,
    SCRIMS,
    TEAMS,
    TOURNAMENTS,
    USERS,
)
from challenger.errors import NotFoundError, SweepError
from challenger.games import GAMES_DATA
from challenger.sweep.services import run_sweep_for_app
from challenger.tournament.bracket import generate_unique_code
from challenger.tournament.models import PHASE_PENDING, REGISTRATION_OPEN, SINGLE_ELIM

if TYPE_CHECKING:
    from flask import Flask
    from google.cloud.firestore_v1.client import Client

    from challenger.sweep.models import SweepReport

logger = logging.getLogger(__name__)

ROLES = ["Captain", "Player", "Substitute", "Coach"]


class AdminService:
    """Service class for admin-related operations."""

    @staticmethod
    def delete_user_data(db: Client, uid: str) -> None:
        """Delete a user from Firestore and Firebase Auth."""
        user_ref = db.collection(USERS).document(uid)
        if not user_ref.get().exists:
            raise NotFoundError("User not found.")
        user_ref.delete()
        try:
            auth.delete_user(uid)
        except auth.UserNotFoundError:
            logger.warning(f"User {uid} was not registered in Firebase Auth")

    @staticmethod
    def reconcile(app: Flask, db: Client) -> SweepReport:
        """Run a live sweep after a deletion.

        A failing sweep does not undo the deletion; its partial report, with the
        error recorded, is returned instead.
        """
        try:
            return run_sweep_for_app(app, db)
        except SweepError as e:
            logger.error(f"Post-deletion sweep failed: {e.message}")
            return e.report  # type: ignore[return-value]

    @staticmethod
    def seed_demo_data(
        db: Client, user_count: int = 6, with_orphans: bool = True, fake: Faker | None = None
    ) -> dict[str, int]:
        """Write a small demo data set, optionally with broken references.

        The broken references give the sweep something to find: a team whose
        owner does not exist, a scrim posted by a missing team, a scrim older
        than any retention window and a notification without a scrim.
        """
        fake = fake or Faker()
        now = datetime.datetime.now(datetime.timezone.utc)
        game = random.choice(GAMES_DATA)  # nosec
        created = {"users": 0, "teams": 0, "scrims": 0, "tournaments": 0, "messages": 0}

        user_ids = []
        for _ in range(max(user_count, 2)):
            ref = db.collection(USERS).document()
            ref.set(
                {
                    "username": fake.user_name(),
                    "email": fake.email(),
                    "teams": [],
                    "isAdmin": False,
                    "createdAt": now,
                }
            )
            user_ids.append(ref.id)
            created["users"] += 1

        def add_team(owner_id: str, member_ids: list[str]) -> str:
            ref = db.collection(TEAMS).document()
            ref.set(
                {
                    "name": f"{fake.color_name()} {fake.last_name()}s",
                    "game": game["name"],
                    "ownerId": owner_id,
                    "members": [
                        {
                            "userId": member_id,
                            "role": random.choice(ROLES),  # nosec
                            "rank": random.choice(game["ranks"]),  # nosec
                        }
                        for member_id in member_ids
                    ],
                    "memberIds": member_ids,
                    "createdAt": now,
                }
            )
            created["teams"] += 1
            return ref.id

        def add_scrim(team_a: str, requests: list[str], created_at: Any) -> str:
            ref = db.collection(SCRIMS).document()
            ref.set(
                {
                    "teamA": team_a,
                    "teamB": None,
                    "requests": requests,
                    "status": "open",
                    "format": random.choice(game["formats"]),  # nosec
                    "scheduledTime": now + datetime.timedelta(days=3),
                    "createdAt": created_at,
                }
            )
            created["scrims"] += 1
            return ref.id

        def add_messages(scrim_id: str | None) -> None:
            chat = {"message": fake.sentence(), "createdAt": now}
            notification = {"message": fake.sentence(), "read": False, "createdAt": now}
            if scrim_id:
                chat["scrimId"] = scrim_id
                notification["scrimId"] = scrim_id
            db.collection(SCRIM_CHATS).document().set(chat)
            db.collection(NOTIFICATIONS).document().set(notification)
            created["messages"] += 2

        half = len(user_ids) // 2
        team_a = add_team(user_ids[0], user_ids[:half])
        team_b = add_team(user_ids[half], user_ids[half:])
        for team_id, members in ((team_a, user_ids[:half]), (team_b, user_ids[half:])):
            for member_id in members:
                db.collection(USERS).document(member_id).update(
                    {"teams": firestore.ArrayUnion([team_id])}
                )

        scrim_id = add_scrim(team_a, [team_b], now)
        add_messages(scrim_id)

        db.collection(TOURNAMENTS).document().set(
            {
                "name": f"{fake.city()} Invitational",
                "description": fake.sentence(),
                "startDate": now + datetime.timedelta(days=14),
                "game": game["name"],
                "maxParticipants": 8,
                "phases": [{"bracketType": SINGLE_ELIM, "status": PHASE_PENDING}],
                "organizerId": user_ids[0],
                "refereeCode": generate_unique_code(db),
                "pendingTeams": [],
                "teams": [team_a, team_b],
                "referees": [],
                "status": REGISTRATION_OPEN,
                "createdAt": now,
            }
        )
        created["tournaments"] += 1

        if with_orphans:
            ghost_user = fake.uuid4()
            ghost_team = fake.uuid4()
            orphan_team = add_team(ghost_user, [ghost_user])
            add_scrim(orphan_team, [], now)
            add_scrim(ghost_team, [team_a], now)
            old_scrim = add_scrim(team_b, [], now - datetime.timedelta(days=400))
            add_messages(old_scrim)
            add_messages(None)

        logger.info(f"Seeded demo data: {created}")
        return created
