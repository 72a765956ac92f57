"""Decorators for the auth blueprint."""

from functools import wraps

from flask import jsonify, session

from challenger.core.types import api_response


def login_required(f=None, admin_required=False):
    """Reject the request unless a user is logged in.

    Usage:
    @login_required
    def protected_view():
        ...

    @login_required(admin_required=True)
    def admin_view():
        ...
    """

    def decorator(func):
        @wraps(func)
        def decorated_function(*args, **kwargs):
            if "user_id" not in session:
                return jsonify(api_response("Login required.", success=False)), 401
            if admin_required and not session.get("is_admin"):
                return (
                    jsonify(
                        api_response(
                            "You are not authorized to view this page.", success=False
                        )
                    ),
                    403,
                )
            return func(*args, **kwargs)

        return decorated_function

    if f:
        return decorator(f)
    return decorator
