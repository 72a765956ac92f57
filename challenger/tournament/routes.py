"""Routes for the tournament blueprint."""

from __future__ import annotations

import datetime
from typing import Any

from firebase_admin import firestore
from flask import current_app, g, jsonify, request
from werkzeug.datastructures import MultiDict

from challenger.auth.decorators import login_required
from challenger.core.types import api_response
from challenger.errors import ValidationError

from . import bp
from .forms import TournamentForm, TournamentUpdateForm, form_errors
from .models import (
    BRACKET_LOCKED,
    COMPLETE,
    IN_PROGRESS,
    REGISTRATION_LOCKED,
    REGISTRATION_OPEN,
)
from .services import TournamentService

# camelCase keys accepted from JavaScript clients
FIELD_ALIASES = {
    "startDate": "start_date",
    "maxParticipants": "max_participants",
}

STATUS_ROUTES = {
    "lock-registrations": (REGISTRATION_LOCKED, "Tournament registrations locked."),
    "reopen-registrations": (REGISTRATION_OPEN, "Tournament registrations reopened."),
    "lock-bracket": (BRACKET_LOCKED, "Bracket locked and matches generated."),
    "start": (IN_PROGRESS, "Tournament started."),
    "complete": (COMPLETE, "Tournament completed."),
}
STATUS_ACTIONS = ", ".join(f"'{action}'" for action in STATUS_ROUTES)


def _json_body() -> dict[str, Any]:
    body = request.get_json(silent=True)
    return body if isinstance(body, dict) else {}


def _form_data() -> MultiDict:
    """Turn the JSON body into form data, flattening phase objects to their type."""
    # CSRFProtect checks the X-CSRFToken header, so forms skip their own token.
    body = {FIELD_ALIASES.get(key, key): value for key, value in _json_body().items()}
    phases = body.get("phases")
    if isinstance(phases, list):
        body["phases"] = [
            p.get("bracketType") if isinstance(p, dict) else p for p in phases
        ]
    return MultiDict(body)


def _events():
    return current_app.extensions.get("events")


@bp.route("/", methods=["GET"])
@login_required
def list_tournaments() -> Any:
    """List all tournaments."""
    db = firestore.client()
    tournaments = TournamentService.list_tournaments(db=db)
    return jsonify(api_response(f"{len(tournaments)} tournaments.", tournaments))


@bp.route("/", methods=["POST"])
@login_required
def create_tournament() -> Any:
    """Create a new tournament."""
    form = TournamentForm(formdata=_form_data(), meta={"csrf": False})
    if not form.validate():
        raise ValidationError(form_errors(form))

    db = firestore.client()
    tournament_id = TournamentService.create_tournament(
        {
            "name": form.name.data,
            "description": form.description.data,
            "startDate": datetime.datetime.combine(
                form.start_date.data, datetime.time.min, tzinfo=datetime.timezone.utc
            ),
            "game": form.game.data,
            "maxParticipants": form.max_participants.data,
            "phases": form.phases.data,
        },
        g.user["uid"],
        db=db,
    )
    tournament = TournamentService.get_tournament(tournament_id, g.user["uid"], db=db)
    return jsonify(api_response("Tournament created successfully.", tournament)), 201


@bp.route("/code/<string:code>", methods=["GET"])
@login_required
def find_by_code(code: str) -> Any:
    """Look up a tournament by referee code."""
    tournament = TournamentService.find_by_referee_code(code, db=firestore.client())
    return jsonify(api_response("Tournament found.", tournament))


@bp.route("/<string:tournament_id>", methods=["GET"])
@login_required
def view_tournament(tournament_id: str) -> Any:
    """View a single tournament."""
    tournament = TournamentService.get_tournament(
        tournament_id, g.user["uid"], db=firestore.client()
    )
    return jsonify(api_response("Tournament found.", tournament))


@bp.route("/<string:tournament_id>", methods=["PUT"])
@login_required
def edit_tournament(tournament_id: str) -> Any:
    """Update name, description, start date, game or capacity."""
    form = TournamentUpdateForm(formdata=_form_data(), meta={"csrf": False})
    if not form.validate():
        raise ValidationError(form_errors(form))

    update_data: dict[str, Any] = {
        "name": form.name.data,
        "description": form.description.data,
        "game": form.game.data,
        "maxParticipants": form.max_participants.data,
    }
    if form.start_date.data:
        update_data["startDate"] = datetime.datetime.combine(
            form.start_date.data, datetime.time.min, tzinfo=datetime.timezone.utc
        )
    tournament = TournamentService.update_tournament(
        tournament_id, g.user["uid"], update_data, db=firestore.client()
    )
    return jsonify(api_response("Tournament updated successfully.", tournament))


@bp.route("/<string:tournament_id>", methods=["DELETE"])
@login_required
def delete_tournament(tournament_id: str) -> Any:
    """Cancel a tournament."""
    TournamentService.delete_tournament(
        tournament_id, g.user["uid"], db=firestore.client(), events=_events()
    )
    return jsonify(api_response("Tournament cancelled and deleted successfully."))


@bp.route(f"/<string:tournament_id>/<any({STATUS_ACTIONS}):action>", methods=["PUT"])
@login_required
def change_status(tournament_id: str, action: str) -> Any:
    """Advance (or reopen) the tournament lifecycle."""
    target_status, message = STATUS_ROUTES[action]
    tournament = TournamentService.change_status(
        tournament_id,
        g.user["uid"],
        target_status,
        db=firestore.client(),
        events=_events(),
    )
    return jsonify(api_response(message, tournament))


@bp.route("/<string:tournament_id>/teams", methods=["POST"])
@login_required
def request_join(tournament_id: str) -> Any:
    """Ask to register a team."""
    team_id = _json_body().get("teamId")
    if not team_id:
        raise ValidationError("teamId is required.")
    TournamentService.request_join(
        tournament_id, g.user["uid"], team_id, db=firestore.client()
    )
    return jsonify(api_response("Request submitted."))


@bp.route("/<string:tournament_id>/teams/pending", methods=["GET"])
@login_required
def pending_teams(tournament_id: str) -> Any:
    """List teams waiting for approval."""
    teams = TournamentService.pending_teams(
        tournament_id, g.user["uid"], db=firestore.client()
    )
    return jsonify(api_response(f"{len(teams)} pending teams.", teams))


@bp.route("/<string:tournament_id>/teams/<string:team_id>/approve", methods=["PUT"])
@login_required
def approve_team(tournament_id: str, team_id: str) -> Any:
    """Confirm a pending team."""
    TournamentService.approve_team(
        tournament_id, g.user["uid"], team_id, db=firestore.client()
    )
    return jsonify(api_response("Team approved."))


@bp.route("/<string:tournament_id>/teams/<string:team_id>", methods=["DELETE"])
@login_required
def remove_team(tournament_id: str, team_id: str) -> Any:
    """Withdraw a team."""
    TournamentService.remove_team(
        tournament_id, g.user["uid"], team_id, db=firestore.client()
    )
    return jsonify(api_response("Team removed."))


@bp.route("/<string:tournament_id>/referees", methods=["POST"])
@login_required
def add_referee(tournament_id: str) -> Any:
    """Join as referee with the tournament's code."""
    TournamentService.add_referee(
        tournament_id, g.user["uid"], _json_body().get("code", ""), db=firestore.client()
    )
    return jsonify(api_response("Added as referee."))


@bp.route("/<string:tournament_id>/referees/<string:referee_id>", methods=["DELETE"])
@login_required
def remove_referee(tournament_id: str, referee_id: str) -> Any:
    """Remove a referee."""
    TournamentService.remove_referee(
        tournament_id, g.user["uid"], referee_id, db=firestore.client()
    )
    return jsonify(api_response("Referee removed."))


@bp.route("/<string:tournament_id>/phases/<int:phase_index>", methods=["PUT"])
@login_required
def update_phase(tournament_id: str, phase_index: int) -> Any:
    """Update the status of a phase."""
    phase = TournamentService.update_phase(
        tournament_id,
        g.user["uid"],
        phase_index,
        _json_body().get("status"),
        db=firestore.client(),
    )
    return jsonify(api_response("Phase updated.", phase))


@bp.route(
    "/<string:tournament_id>/bracket-template/<int:phase_index>", methods=["GET"]
)
@login_required
def bracket_template(tournament_id: str, phase_index: int) -> Any:
    """Return the empty bracket of a phase."""
    template = TournamentService.get_bracket_template(
        tournament_id, g.user["uid"], phase_index, db=firestore.client()
    )
    return jsonify(api_response(f"{len(template)} slots.", template))


@bp.route("/<string:tournament_id>/matches", methods=["GET"])
@login_required
def list_matches(tournament_id: str) -> Any:
    """List the tournament's matches, optionally for one phase."""
    phase_index = request.args.get("phase", type=int)
    matches = TournamentService.list_matches(
        tournament_id, phase_index, db=firestore.client()
    )
    return jsonify(api_response(f"{len(matches)} matches.", matches))


@bp.route("/<string:tournament_id>/bracket", methods=["PUT"])
@login_required
def update_bracket(tournament_id: str) -> Any:
    """Seed teams into bracket slots."""
    body = _json_body()
    phase_index = body.get("phaseIndex")
    matches = body.get("matches")
    if not isinstance(phase_index, int) or not isinstance(matches, list):
        raise ValidationError("Invalid payload.")
    results = TournamentService.update_bracket(
        tournament_id,
        g.user["uid"],
        phase_index,
        matches,
        db=firestore.client(),
        events=_events(),
    )
    return jsonify(api_response("Bracket updated.", results))


@bp.route(
    "/<string:tournament_id>/matches/<int:phase_index>/<int:slot>", methods=["PUT"]
)
@login_required
def report_match(tournament_id: str, phase_index: int, slot: int) -> Any:
    """Record the result of a match."""
    match = TournamentService.report_match_result(
        tournament_id,
        g.user["uid"],
        phase_index,
        slot,
        _json_body(),
        db=firestore.client(),
        events=_events(),
    )
    return jsonify(api_response("Match result recorded.", match))
