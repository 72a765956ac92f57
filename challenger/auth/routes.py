"""Routes for the auth blueprint."""

from flask import g, jsonify
from flask_wtf.csrf import generate_csrf

from challenger.core.types import api_response

from . import bp
from .decorators import login_required


@bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    """Return a token for the X-CSRFToken header of write requests."""
    return jsonify(api_response("CSRF token.", {"csrfToken": generate_csrf()}))


@bp.route("/me", methods=["GET"])
@login_required
def me():
    """Return the logged in user."""
    return jsonify(api_response("Current user.", g.user))
