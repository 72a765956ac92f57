"""Admin routes for the application."""

from firebase_admin import firestore
from flask import current_app, jsonify, request

from challenger.auth.decorators import login_required
from challenger.core.types import api_response
from challenger.sweep.models import total_changes

from . import bp
from .services import AdminService


@bp.route("/users/<string:user_id>/delete", methods=["POST"])
@login_required(admin_required=True)
def delete_user(user_id):
    """Delete a user, then sweep the references it leaves behind."""
    db = firestore.client()
    AdminService.delete_user_data(db, user_id)
    report = AdminService.reconcile(current_app, db)
    current_app.logger.info(
        f"User {user_id} deleted; sweep made {total_changes(report)} changes"
    )
    return jsonify(api_response("User deleted successfully.", report))


@bp.route("/seed-demo", methods=["POST"])
@login_required(admin_required=True)
def seed_demo():
    """Generate demo users, teams and scrims, including broken references."""
    body = request.get_json(silent=True) or {}
    created = AdminService.seed_demo_data(
        firestore.client(),
        user_count=int(body.get("users", 6)),
        with_orphans=bool(body.get("orphans", True)),
    )
    return jsonify(api_response("Demo data generated successfully.", created)), 201
