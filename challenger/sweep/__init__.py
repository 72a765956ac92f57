"""The sweep blueprint."""

from flask import Blueprint

bp = Blueprint("sweep", __name__, url_prefix="/admin/sweep")

from . import routes  # noqa: E402
from .models import SweepReport, total_changes  # noqa: E402
from .scheduler import CleanupScheduler  # noqa: E402
from .services import OrphanSweep, run_sweep  # noqa: E402

__all__ = [
    "CleanupScheduler",
    "OrphanSweep",
    "SweepReport",
    "routes",
    "run_sweep",
    "total_changes",
]
