"""Service layer for tournament business logic."""

from __future__ import annotations

import datetime
import logging
from typing import TYPE_CHECKING, Any, cast

from firebase_admin import firestore

from challenger.core.batch import BatchWriter
from challenger.core.constants import MATCHES, TEAMS, TOURNAMENTS
from challenger.errors import ForbiddenError, NotFoundError, ValidationError
from challenger.events import (
    MATCH_UPDATED,
    TOURNAMENT_DELETED,
    TOURNAMENT_STATUS_CHANGED,
    publish,
)

from .bracket import generate_bracket, generate_unique_code
from .lifecycle import validate_transition
from .models import (
    BRACKET_LOCKED,
    BRACKET_TYPES,
    COMPLETE,
    IN_PROGRESS,
    MATCH_COMPLETED,
    MATCH_PENDING,
    PHASE_PENDING,
    PHASE_STATUSES,
    REGISTRATION_OPEN,
    SlotDescriptor,
    match_document_id,
)

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client
    from google.cloud.firestore_v1.document import DocumentReference

    from challenger.events import EventChannel

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2
REQUIRED_FIELDS = ("name", "description", "startDate", "game", "maxParticipants")
EDITABLE_FIELDS = ("name", "description", "startDate", "game", "maxParticipants")
BRACKET_EDIT_STATUSES = (BRACKET_LOCKED, IN_PROGRESS)
ROSTER_FROZEN_STATUSES = (BRACKET_LOCKED, IN_PROGRESS, COMPLETE)


def _sort_key(data: dict[str, Any]) -> float:
    created = data.get("createdAt")
    if isinstance(created, datetime.datetime):
        if created.tzinfo is None:
            created = created.replace(tzinfo=datetime.timezone.utc)
        return created.timestamp()
    return 0.0


class TournamentService:
    """Handles business logic and data access for tournaments."""

    @staticmethod
    def _load(db: Client, tournament_id: str) -> tuple[DocumentReference, dict[str, Any]]:
        """Fetch a tournament or raise NotFoundError."""
        ref = db.collection(TOURNAMENTS).document(tournament_id)
        doc = cast(Any, ref.get())
        if not doc.exists:
            raise NotFoundError("Tournament not found.")
        data = cast(dict[str, Any], doc.to_dict() or {})
        data["id"] = doc.id
        return ref, data

    @staticmethod
    def is_organizer(data: dict[str, Any], user_id: str | None) -> bool:
        return bool(user_id) and data.get("organizerId") == user_id

    @staticmethod
    def is_referee(data: dict[str, Any], user_id: str | None) -> bool:
        return bool(user_id) and user_id in (data.get("referees") or [])

    @staticmethod
    def _require_organizer(data: dict[str, Any], user_id: str | None) -> None:
        if not TournamentService.is_organizer(data, user_id):
            raise ForbiddenError("Organizer only.")

    @staticmethod
    def _require_official(data: dict[str, Any], user_id: str | None) -> None:
        if not (
            TournamentService.is_organizer(data, user_id)
            or TournamentService.is_referee(data, user_id)
        ):
            raise ForbiddenError("Access denied.")

    @staticmethod
    def _phase(data: dict[str, Any], phase_index: int) -> dict[str, Any]:
        phases = data.get("phases") or []
        if not 0 <= phase_index < len(phases):
            raise ValidationError("Invalid phase index.")
        return cast(dict[str, Any], phases[phase_index])

    @staticmethod
    def _user_team_ids(db: Client, user_id: str) -> set[str]:
        """Return the ids of teams the user owns or plays in."""
        owned = (
            db.collection(TEAMS)
            .where(filter=firestore.FieldFilter("ownerId", "==", user_id))
            .stream()
        )
        member_of = (
            db.collection(TEAMS)
            .where(filter=firestore.FieldFilter("memberIds", "array_contains", user_id))
            .stream()
        )
        return {doc.id for doc in list(owned) + list(member_of) if doc.exists}

    @staticmethod
    def _delete_matches(db: Client, tournament_id: str) -> int:
        """Delete every match of a tournament and return how many were removed."""
        docs = (
            db.collection(MATCHES)
            .where(filter=firestore.FieldFilter("tournamentId", "==", tournament_id))
            .stream()
        )
        removed = 0
        with BatchWriter(db) as writer:
            for doc in docs:
                if doc.exists:
                    writer.delete(doc.reference)
                    removed += 1
        return removed

    @staticmethod
    def _normalize_phases(phases: Any) -> list[dict[str, Any]]:
        if not phases:
            raise ValidationError("Missing required fields.")
        normalized = []
        for phase in phases:
            bracket_type = phase.get("bracketType") if isinstance(phase, dict) else phase
            if bracket_type not in BRACKET_TYPES:
                raise ValidationError(f"Unsupported bracket type: {bracket_type}")
            normalized.append({"bracketType": bracket_type, "status": PHASE_PENDING})
        return normalized

    @staticmethod
    def list_tournaments(db: Client | None = None) -> list[dict[str, Any]]:
        """Fetch all tournaments, newest first."""
        if db is None:
            db = firestore.client()
        results = []
        for doc in db.collection(TOURNAMENTS).stream():
            data = doc.to_dict()
            if not doc.exists or not data:
                continue
            data["id"] = doc.id
            data.pop("refereeCode", None)
            results.append(data)
        results.sort(key=_sort_key, reverse=True)
        return results

    @staticmethod
    def get_tournament(
        tournament_id: str, user_id: str | None = None, db: Client | None = None
    ) -> dict[str, Any]:
        """Fetch a tournament with the viewer's role and team flags."""
        if db is None:
            db = firestore.client()
        _, data = TournamentService._load(db, tournament_id)

        data["isOrganizer"] = TournamentService.is_organizer(data, user_id)
        data["isReferee"] = TournamentService.is_referee(data, user_id)
        data["myTeamId"] = None
        data["isTeamApproved"] = False
        if not data["isOrganizer"]:
            data.pop("refereeCode", None)

        if user_id:
            my_ids = TournamentService._user_team_ids(db, user_id)
            approved = [t for t in data.get("teams") or [] if t in my_ids]
            pending = [t for t in data.get("pendingTeams") or [] if t in my_ids]
            mine = pending or approved
            data["myTeamId"] = mine[0] if mine else None
            data["isTeamApproved"] = bool(approved)
        return data

    @staticmethod
    def find_by_referee_code(code: str, db: Client | None = None) -> dict[str, Any]:
        """Resolve a referee code to the tournament it belongs to."""
        if db is None:
            db = firestore.client()
        query = (
            db.collection(TOURNAMENTS)
            .where(filter=firestore.FieldFilter("refereeCode", "==", code.upper()))
            .limit(1)
        )
        for doc in query.stream():
            if doc.exists:
                return {"id": doc.id, "name": (doc.to_dict() or {}).get("name")}
        raise NotFoundError("Invalid referee code.")

    @staticmethod
    def create_tournament(
        data: dict[str, Any], organizer_id: str, db: Client | None = None
    ) -> str:
        """Create a tournament and return its ID."""
        if db is None:
            db = firestore.client()

        if any(data.get(field) in (None, "") for field in REQUIRED_FIELDS):
            raise ValidationError("Missing required fields.")
        if int(data["maxParticipants"]) < MIN_PARTICIPANTS:
            raise ValidationError("Tournament must allow at least 2 participants.")
        phases = TournamentService._normalize_phases(data.get("phases"))

        payload = {
            "name": data["name"].strip(),
            "description": data["description"].strip(),
            "startDate": data["startDate"],
            "game": data["game"].strip(),
            "maxParticipants": int(data["maxParticipants"]),
            "phases": phases,
            "organizerId": organizer_id,
            "refereeCode": generate_unique_code(db),
            "pendingTeams": [],
            "teams": [],
            "referees": [],
            "status": REGISTRATION_OPEN,
            "createdAt": firestore.SERVER_TIMESTAMP,
        }
        _, ref = db.collection(TOURNAMENTS).add(payload)
        logger.info(f"Tournament {ref.id} created by {organizer_id}")
        return str(ref.id)

    @staticmethod
    def update_tournament(
        tournament_id: str,
        user_id: str,
        update_data: dict[str, Any],
        db: Client | None = None,
    ) -> dict[str, Any]:
        """Update tournament details with ownership check."""
        if db is None:
            db = firestore.client()
        ref, data = TournamentService._load(db, tournament_id)
        TournamentService._require_organizer(data, user_id)

        changes = {
            key: value
            for key, value in update_data.items()
            if key in EDITABLE_FIELDS and value not in (None, "")
        }
        if "maxParticipants" in changes:
            changes["maxParticipants"] = int(changes["maxParticipants"])
            if changes["maxParticipants"] < len(data.get("teams") or []):
                raise ValidationError(
                    "Cannot reduce max participants below current team count."
                )
        for key in ("name", "description", "game"):
            if key in changes:
                changes[key] = changes[key].strip()

        if changes:
            changes["updatedAt"] = firestore.SERVER_TIMESTAMP
            ref.update(changes)
        data.update(changes)
        return data

    @staticmethod
    def delete_tournament(
        tournament_id: str,
        user_id: str,
        db: Client | None = None,
        events: EventChannel | None = None,
    ) -> None:
        """Delete a tournament and its matches."""
        if db is None:
            db = firestore.client()
        ref, data = TournamentService._load(db, tournament_id)
        TournamentService._require_organizer(data, user_id)

        TournamentService._delete_matches(db, tournament_id)
        ref.delete()
        publish(events, TOURNAMENT_DELETED, {"tournamentId": tournament_id})

    @staticmethod
    def change_status(
        tournament_id: str,
        user_id: str,
        target_status: str,
        db: Client | None = None,
        events: EventChannel | None = None,
    ) -> dict[str, Any]:
        """Move a tournament to ``target_status``.

        Locking the bracket replaces the tournament's matches with one empty
        match per template slot of every phase. Templates are built before any
        write, so an unsupported bracket type leaves the tournament untouched.
        """
        if db is None:
            db = firestore.client()
        ref, data = TournamentService._load(db, tournament_id)

        if target_status == IN_PROGRESS:
            TournamentService._require_official(data, user_id)
        else:
            TournamentService._require_organizer(data, user_id)

        validate_transition(data, target_status)

        templates: list[list[SlotDescriptor]] = []
        if target_status == BRACKET_LOCKED:
            team_count = len(data.get("teams") or [])
            templates = [
                generate_bracket(team_count, phase.get("bracketType"))
                for phase in data.get("phases") or []
            ]

        previous = data.get("status")
        ref.update({"status": target_status, "updatedAt": firestore.SERVER_TIMESTAMP})
        data["status"] = target_status

        if target_status == BRACKET_LOCKED:
            TournamentService._delete_matches(db, tournament_id)
            with BatchWriter(db) as writer:
                for phase_index, template in enumerate(templates):
                    for slot in template:
                        match_ref = db.collection(MATCHES).document(
                            match_document_id(tournament_id, phase_index, slot["slot"])
                        )
                        writer.set(
                            match_ref,
                            {
                                "tournamentId": tournament_id,
                                "phaseIndex": phase_index,
                                "slot": slot["slot"],
                                "teamA": slot["teamA"],
                                "teamB": slot["teamB"],
                                "scoreA": None,
                                "scoreB": None,
                                "winner": None,
                                "status": MATCH_PENDING,
                                "createdAt": firestore.SERVER_TIMESTAMP,
                            },
                        )
            data["matchCount"] = sum(len(t) for t in templates)

        logger.info(f"Tournament {tournament_id}: {previous} -> {target_status}")
        publish(
            events,
            TOURNAMENT_STATUS_CHANGED,
            {"tournamentId": tournament_id, "from": previous, "to": target_status},
        )
        return data

    @staticmethod
    def request_join(
        tournament_id: str, user_id: str, team_id: str, db: Client | None = None
    ) -> None:
        """Put one of the user's teams on the pending list."""
        if db is None:
            db = firestore.client()
        ref, data = TournamentService._load(db, tournament_id)

        if team_id not in TournamentService._user_team_ids(db, user_id):
            raise ForbiddenError("You can only register your own team.")
        if data.get("status") != REGISTRATION_OPEN:
            raise ValidationError("Registration is closed for this tournament.")
        if len(data.get("teams") or []) >= int(data.get("maxParticipants") or 0):
            raise ValidationError("Tournament is full.")
        if team_id in (data.get("pendingTeams") or []) or team_id in (
            data.get("teams") or []
        ):
            raise ValidationError("Already requested or joined.")

        ref.update({"pendingTeams": firestore.ArrayUnion([team_id])})

    @staticmethod
    def pending_teams(
        tournament_id: str, user_id: str, db: Client | None = None
    ) -> list[dict[str, Any]]:
        """Return id and name of every team waiting for approval."""
        if db is None:
            db = firestore.client()
        _, data = TournamentService._load(db, tournament_id)
        TournamentService._require_organizer(data, user_id)

        pending = []
        for team_id in data.get("pendingTeams") or []:
            team_doc = cast(Any, db.collection(TEAMS).document(team_id).get())
            if team_doc.exists:
                pending.append({"id": team_id, "name": (team_doc.to_dict() or {}).get("name")})
        return pending

    @staticmethod
    def approve_team(
        tournament_id: str, user_id: str, team_id: str, db: Client | None = None
    ) -> None:
        """Move a pending team to the confirmed list."""
        if db is None:
            db = firestore.client()
        ref, data = TournamentService._load(db, tournament_id)
        TournamentService._require_organizer(data, user_id)

        if data.get("status") != REGISTRATION_OPEN:
            raise ValidationError("Cannot approve teams - registration is closed.")
        if len(data.get("teams") or []) >= int(data.get("maxParticipants") or 0):
            raise ValidationError("Cannot approve - tournament is full.")
        if team_id not in (data.get("pendingTeams") or []):
            raise NotFoundError("Team has not requested to join.")

        ref.update(
            {
                "pendingTeams": firestore.ArrayRemove([team_id]),
                "teams": firestore.ArrayUnion([team_id]),
            }
        )

    @staticmethod
    def remove_team(
        tournament_id: str, user_id: str, team_id: str, db: Client | None = None
    ) -> None:
        """Withdraw a team; allowed for the organizer and the team's own players."""
        if db is None:
            db = firestore.client()
        ref, data = TournamentService._load(db, tournament_id)

        if not TournamentService.is_organizer(data, user_id) and (
            team_id not in TournamentService._user_team_ids(db, user_id)
        ):
            raise ForbiddenError("Not authorized.")
        if data.get("status") in ROSTER_FROZEN_STATUSES:
            raise ValidationError("Cannot remove teams after bracket is locked.")

        ref.update(
            {
                "pendingTeams": firestore.ArrayRemove([team_id]),
                "teams": firestore.ArrayRemove([team_id]),
            }
        )

    @staticmethod
    def add_referee(
        tournament_id: str, user_id: str, code: str, db: Client | None = None
    ) -> None:
        """Join a tournament as referee using its code."""
        if db is None:
            db = firestore.client()
        ref, data = TournamentService._load(db, tournament_id)

        if not code or data.get("refereeCode") != code.strip().upper():
            raise ValidationError("Invalid referee code.")
        if user_id not in (data.get("referees") or []):
            ref.update({"referees": firestore.ArrayUnion([user_id])})

    @staticmethod
    def remove_referee(
        tournament_id: str, user_id: str, referee_id: str, db: Client | None = None
    ) -> None:
        """Remove a referee; the organizer or the referee themself may do it."""
        if db is None:
            db = firestore.client()
        ref, data = TournamentService._load(db, tournament_id)

        if not TournamentService.is_organizer(data, user_id) and user_id != referee_id:
            raise ForbiddenError("Not authorized.")
        ref.update({"referees": firestore.ArrayRemove([referee_id])})

    @staticmethod
    def update_phase(
        tournament_id: str,
        user_id: str,
        phase_index: int,
        status: str,
        db: Client | None = None,
    ) -> dict[str, Any]:
        """Set the status of one phase while the tournament is running."""
        if db is None:
            db = firestore.client()
        ref, data = TournamentService._load(db, tournament_id)
        TournamentService._require_organizer(data, user_id)
        TournamentService._phase(data, phase_index)

        if data.get("status") != IN_PROGRESS:
            raise ValidationError("Can only update phases during tournament.")
        if status not in PHASE_STATUSES:
            raise ValidationError(f"Invalid phase status: {status}")

        phases = [dict(p) for p in data.get("phases") or []]
        phases[phase_index]["status"] = status
        ref.update({"phases": phases})
        return phases[phase_index]

    @staticmethod
    def get_bracket_template(
        tournament_id: str, user_id: str, phase_index: int, db: Client | None = None
    ) -> list[SlotDescriptor]:
        """Compute the empty bracket of a phase for the current team count."""
        if db is None:
            db = firestore.client()
        _, data = TournamentService._load(db, tournament_id)
        TournamentService._require_official(data, user_id)
        phase = TournamentService._phase(data, phase_index)
        return generate_bracket(len(data.get("teams") or []), phase.get("bracketType"))

    @staticmethod
    def list_matches(
        tournament_id: str, phase_index: int | None = None, db: Client | None = None
    ) -> list[dict[str, Any]]:
        """Return the tournament's matches ordered by phase and slot."""
        if db is None:
            db = firestore.client()
        query = db.collection(MATCHES).where(
            filter=firestore.FieldFilter("tournamentId", "==", tournament_id)
        )
        if phase_index is not None:
            query = query.where(
                filter=firestore.FieldFilter("phaseIndex", "==", phase_index)
            )
        matches = []
        for doc in query.stream():
            data = doc.to_dict()
            if doc.exists and data:
                data["id"] = doc.id
                matches.append(data)
        matches.sort(key=lambda m: (m.get("phaseIndex", 0), m.get("slot", 0)))
        return matches

    @staticmethod
    def update_bracket(
        tournament_id: str,
        user_id: str,
        phase_index: int,
        matches: list[dict[str, Any]],
        db: Client | None = None,
        events: EventChannel | None = None,
    ) -> list[dict[str, Any]]:
        """Seed teams into bracket slots, creating missing slots."""
        if db is None:
            db = firestore.client()
        _, data = TournamentService._load(db, tournament_id)
        TournamentService._require_organizer(data, user_id)
        TournamentService._phase(data, phase_index)

        if data.get("status") not in BRACKET_EDIT_STATUSES:
            raise ValidationError("Can only update bracket after it's locked.")

        confirmed = set(data.get("teams") or [])
        for entry in matches:
            if not isinstance(entry, dict):
                raise ValidationError("Each match must be an object.")
            slot = entry.get("slot")
            if not isinstance(slot, int) or isinstance(slot, bool) or slot < 0:
                raise ValidationError("Each match needs a non-negative slot.")
            for side in ("teamA", "teamB"):
                team_id = entry.get(side)
                if team_id is not None and team_id not in confirmed:
                    raise ValidationError(f"Team {team_id} is not in this tournament.")

        # Read every slot before writing so a rejected entry changes nothing
        planned = []
        for entry in matches:
            slot = entry["slot"]
            match_ref = db.collection(MATCHES).document(
                match_document_id(tournament_id, phase_index, slot)
            )
            snapshot = cast(Any, match_ref.get())
            if snapshot.exists:
                current = snapshot.to_dict() or {}
                update = {
                    side: entry[side]
                    for side in ("teamA", "teamB")
                    if side in entry and entry[side] != current.get(side)
                }
                if update and (
                    current.get("winner") is not None
                    or current.get("status") == MATCH_COMPLETED
                ):
                    raise ValidationError(
                        f"Match in slot {slot} already has a result and cannot be reseeded."
                    )
            else:
                current = {
                    "tournamentId": tournament_id,
                    "phaseIndex": phase_index,
                    "slot": slot,
                    "teamA": entry.get("teamA"),
                    "teamB": entry.get("teamB"),
                    "scoreA": None,
                    "scoreB": None,
                    "winner": None,
                    "status": MATCH_PENDING,
                    "createdAt": firestore.SERVER_TIMESTAMP,
                }
                update = None
            planned.append((match_ref, current, update))

        results = []
        for match_ref, current, update in planned:
            if update is None:
                match_ref.set(current)
            elif update:
                match_ref.update(update)
                current.update(update)
            current["id"] = match_ref.id
            results.append(current)

        publish(
            events,
            MATCH_UPDATED,
            {"tournamentId": tournament_id, "phaseIndex": phase_index},
        )
        return results

    @staticmethod
    def report_match_result(  # noqa: PLR0913
        tournament_id: str,
        user_id: str,
        phase_index: int,
        slot: int,
        result: dict[str, Any],
        db: Client | None = None,
        events: EventChannel | None = None,
    ) -> dict[str, Any]:
        """Record scores and winner of a match."""
        if db is None:
            db = firestore.client()
        _, data = TournamentService._load(db, tournament_id)
        TournamentService._require_official(data, user_id)
        TournamentService._phase(data, phase_index)

        if data.get("status") != IN_PROGRESS:
            raise ValidationError("Results can only be reported during the tournament.")

        match_ref = db.collection(MATCHES).document(
            match_document_id(tournament_id, phase_index, slot)
        )
        snapshot = cast(Any, match_ref.get())
        if not snapshot.exists:
            raise NotFoundError("Match not found.")
        match = cast(dict[str, Any], snapshot.to_dict() or {})

        winner = result.get("winner")
        if winner is None or winner not in (match.get("teamA"), match.get("teamB")):
            raise ValidationError("Winner must be one of the two teams of the match.")

        update: dict[str, Any] = {
            "scoreA": result.get("scoreA"),
            "scoreB": result.get("scoreB"),
            "winner": winner,
            "status": MATCH_COMPLETED,
        }
        for key in ("format", "scheduledAt"):
            if result.get(key) is not None:
                update[key] = result[key]
        match_ref.update(update)
        match.update(update)
        match["id"] = match_ref.id

        publish(
            events,
            MATCH_UPDATED,
            {"tournamentId": tournament_id, "phaseIndex": phase_index, "slot": slot},
        )
        return match
