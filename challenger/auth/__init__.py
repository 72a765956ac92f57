"""The auth blueprint.

Login itself is handled by the external auth layer, which stores
``user_id`` and ``is_admin`` in the session.
"""

from flask import Blueprint

bp = Blueprint("auth", __name__, url_prefix="/auth")

from . import routes  # noqa: E402

__all__ = ["routes"]
