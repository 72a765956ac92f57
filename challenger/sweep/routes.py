"""Admin routes that trigger and report on the orphan sweep."""

from firebase_admin import firestore
from flask import current_app, jsonify, request

from challenger.auth.decorators import login_required
from challenger.core.types import api_response

from . import bp
from .models import total_changes
from .services import run_sweep_for_app


def _verbose():
    body = request.get_json(silent=True) or {}
    return bool(body.get("verbose")) if isinstance(body, dict) else False


@bp.route("/dry-run", methods=["POST"])
@login_required(admin_required=True)
def dry_run():
    """Report what the sweep would change without writing anything."""
    report = run_sweep_for_app(
        current_app, firestore.client(), dry_run=True, verbose=_verbose()
    )
    return jsonify(
        api_response(
            f"Dry run found {total_changes(report)} items to clean up.", report
        )
    )


@bp.route("/run", methods=["POST"])
@login_required(admin_required=True)
def run():
    """Run the sweep and apply its changes."""
    report = run_sweep_for_app(current_app, firestore.client(), verbose=_verbose())
    current_app.logger.info(f"Manual sweep finished: {total_changes(report)} changes")
    return jsonify(
        api_response(f"Sweep removed {total_changes(report)} items.", report)
    )


@bp.route("/status", methods=["GET"])
@login_required(admin_required=True)
def status():
    """Report the cleanup schedule and retention settings."""
    config = current_app.config
    scheduler = current_app.extensions.get("cleanup_scheduler")
    scheduled = scheduler is not None and scheduler.running
    return jsonify(
        api_response(
            "Cleanup status.",
            {
                "isScheduled": scheduled,
                "schedule": f"{config['SWEEP_SCHEDULE_HOUR']:02d}:"
                f"{config['SWEEP_SCHEDULE_MINUTE']:02d} UTC",
                "nextRunInSeconds": (
                    scheduler.seconds_until_next_run() if scheduled else None
                ),
                "scrimRetentionDays": config["SCRIM_RETENTION_DAYS"],
                "tournamentRetentionDays": config["TOURNAMENT_RETENTION_DAYS"],
                "includeTournaments": config["SWEEP_INCLUDE_TOURNAMENTS"],
            },
        )
    )
