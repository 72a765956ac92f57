"""Daily runner for the orphan sweep."""

from __future__ import annotations

import datetime
import logging
import threading
from typing import TYPE_CHECKING, Any

from firebase_admin import firestore

from challenger.errors import SweepError
from challenger.utils import EmailError, send_email

from .models import total_changes
from .services import run_sweep_for_app

if TYPE_CHECKING:
    from flask import Flask

logger = logging.getLogger(__name__)


def seconds_until(now: datetime.datetime, hour: int, minute: int) -> float:
    """Seconds from ``now`` to the next ``hour:minute`` UTC, strictly in the future."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=datetime.timezone.utc)
    now = now.astimezone(datetime.timezone.utc)
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += datetime.timedelta(days=1)
    return (target - now).total_seconds()


class CleanupScheduler:
    """Run the live sweep once a day in a daemon thread.

    A failed run is logged, and mailed to ``SWEEP_ALERT_EMAIL`` when set; it is
    not retried before the next day.
    """

    def __init__(self, app: Flask) -> None:
        self.app = app
        self.hour = int(app.config.get("SWEEP_SCHEDULE_HOUR", 2))
        self.minute = int(app.config.get("SWEEP_SCHEDULE_MINUTE", 0))
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> bool:
        """Start the scheduler thread; return False if it was already running."""
        with self._lock:
            if self.running:
                logger.info("Cleanup scheduler already running")
                return False
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._loop, name="cleanup-scheduler", daemon=True
            )
            self._thread.start()
        logger.info(
            f"Cleanup scheduler started, daily at {self.hour:02d}:{self.minute:02d} UTC"
        )
        return True

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the scheduler thread."""
        with self._lock:
            self._stop_event.set()
            thread, self._thread = self._thread, None
        if thread is not None and thread.is_alive():
            thread.join(timeout)
            logger.info("Cleanup scheduler stopped")

    def seconds_until_next_run(self, now: datetime.datetime | None = None) -> float:
        now = now or datetime.datetime.now(datetime.timezone.utc)
        return seconds_until(now, self.hour, self.minute)

    def _loop(self) -> None:
        while not self._stop_event.wait(self.seconds_until_next_run()):
            self.run_once()

    def run_once(self) -> dict[str, Any] | None:
        """Run the live sweep now; failures are logged and reported, not raised."""
        logger.info("Running scheduled sweep")
        with self.app.app_context():
            try:
                report = run_sweep_for_app(self.app, firestore.client(), verbose=True)
            except SweepError as e:
                logger.error(f"Scheduled sweep failed: {e.message}")
                self._alert(e.message, e.report)
                return None
            except Exception as e:
                logger.exception(f"Scheduled sweep failed: {e}")
                self._alert(str(e), {})
                return None

            changes = total_changes(report)
            if changes:
                logger.info(f"Scheduled sweep completed: {changes} items changed")
            else:
                logger.info("Scheduled sweep completed: No items needed removal")
            return dict(report)

    def _alert(self, message: str, report: dict[str, Any]) -> None:
        recipient = self.app.config.get("SWEEP_ALERT_EMAIL")
        if not recipient:
            return
        errors = "\n".join(report.get("errors", [])) or message
        try:
            send_email(
                to=recipient,
                subject="Scheduled sweep failed",
                body=f"The scheduled orphan sweep failed.\n\n{errors}\n",
            )
        except EmailError as e:
            logger.error(f"Could not send sweep alert: {e}")
