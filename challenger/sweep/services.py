"""Orphan reconciliation sweep.

Firestore has no foreign keys, so deleting a user or a team leaves dangling
ids behind in teams, scrims, chats, notifications, tournaments and matches.
The sweep scans every collection once, then repairs the references in a fixed
order so that each step sees the state left by the previous one:

1. teams whose owner, or every member, is gone;
2. scrims whose posting team is gone, and stale scrim requests;
3. tournaments whose organizer is gone, stale referees, and completed
   tournaments past the retention window;
4. matches whose tournament is gone;
5. scrims past the retention window;
6. notifications and chats without an existing scrim.

In dry-run mode nothing is written, but the in-memory state is updated exactly
as a live run would update the store, so both modes report the same changes.
A change is only added to the report, and a scrim deletion only broadcast,
once the write batch holding it has been committed.
"""

from __future__ import annotations

import datetime
import logging
from functools import partial
from typing import TYPE_CHECKING, Any, Callable

from firebase_admin import firestore

from challenger.core.batch import BatchWriter
from challenger.core.constants import (
    MATCHES,
    NOTIFICATIONS,
    SCRIM_CHATS,
    SCRIM_RETENTION_DAYS,
    SCRIMS,
    TEAMS,
    TOURNAMENT_RETENTION_DAYS,
    TOURNAMENTS,
    USERS,
)
from challenger.errors import SweepError
from challenger.events import SCRIM_DELETED, publish
from challenger.tournament.models import COMPLETE

from .models import OrphanEntry, SweepReport, new_report, total_changes

if TYPE_CHECKING:
    from google.cloud.firestore_v1.client import Client

    from challenger.events import EventChannel

logger = logging.getLogger(__name__)

Documents = dict[str, dict[str, Any]]


def _load(db: Client, collection: str) -> Documents:
    """Read a whole collection into a dict keyed by document id."""
    documents = {}
    for doc in db.collection(collection).stream():
        if doc.exists:
            documents[doc.id] = doc.to_dict() or {}
    return documents


def is_older_than(value: Any, cutoff: datetime.datetime) -> bool:
    """Whether a stored timestamp is before ``cutoff``; non-timestamps never are."""
    if not isinstance(value, datetime.datetime):
        return False
    if value.tzinfo is None:
        value = value.replace(tzinfo=datetime.timezone.utc)
    return value < cutoff


class OrphanSweep:
    """One run of the reconciliation sweep over a Firestore client."""

    def __init__(  # noqa: PLR0913
        self,
        db: Client,
        dry_run: bool = False,
        verbose: bool = False,
        scrim_retention_days: int = SCRIM_RETENTION_DAYS,
        tournament_retention_days: int = TOURNAMENT_RETENTION_DAYS,
        include_tournaments: bool = True,
        events: EventChannel | None = None,
        now: datetime.datetime | None = None,
    ) -> None:
        self.db = db
        self.dry_run = dry_run
        self.verbose = verbose
        self.scrim_retention_days = scrim_retention_days
        self.tournament_retention_days = tournament_retention_days
        self.include_tournaments = include_tournaments
        self.events = events
        self.now = now or datetime.datetime.now(datetime.timezone.utc)
        self.report: SweepReport = new_report(dry_run)

        self.users: Documents = {}
        self.teams: Documents = {}
        self.scrims: Documents = {}
        self.chats: Documents = {}
        self.notifications: Documents = {}
        self.tournaments: Documents = {}
        self.matches: Documents = {}

    def _log(self, message: str) -> None:
        logger.log(logging.INFO if self.verbose else logging.DEBUG, message)

    def _found(self) -> str:
        return "Found" if self.dry_run else "Deleted"

    def _ref(self, collection: str, doc_id: str) -> Any:
        return self.db.collection(collection).document(doc_id)

    def run(self) -> SweepReport:
        """Run every step in order and return the report.

        Raises:
            SweepError: carrying the partial report, if any step fails.
        """
        mode = "DRY RUN" if self.dry_run else "LIVE"
        self._log(
            f"Starting sweep ({mode}), scrim retention {self.scrim_retention_days} "
            f"days, tournament retention {self.tournament_retention_days} days"
        )
        try:
            self._load_all()
            self.sweep_teams()
            self.sweep_scrims()
            if self.include_tournaments:
                self.sweep_tournaments()
                self.sweep_matches()
            self.sweep_old_scrims()
            self.sweep_unlinked_messages()
        except Exception as e:
            self.report["errors"].append(str(e))
            logger.exception(f"Sweep failed: {e}")
            raise SweepError(f"Sweep failed: {e}", self.report) from e

        report = self.report
        logger.info(
            f"Sweep complete ({mode}): {total_changes(report)} changes, "
            f"teams={len(report['orphanedTeams'])}, "
            f"scrims={len(report['orphanedScrims'])}, "
            f"tournaments={len(report['orphanedTournaments'])}, "
            f"matches={len(report['orphanedMatches'])}, "
            f"oldScrims={report['cleanedOldScrims']}, "
            f"oldTournaments={report['cleanedOldTournaments']}, "
            f"notifications={report['cleanedNotifications']}, "
            f"chats={report['cleanedChats']}"
        )
        return report

    def _load_all(self) -> None:
        self.users = _load(self.db, USERS)
        self.teams = _load(self.db, TEAMS)
        self.scrims = _load(self.db, SCRIMS)
        self.chats = _load(self.db, SCRIM_CHATS)
        self.notifications = _load(self.db, NOTIFICATIONS)
        if self.include_tournaments:
            self.tournaments = _load(self.db, TOURNAMENTS)
            self.matches = _load(self.db, MATCHES)

    # Report entries and events are recorded once the write behind them is
    # committed, so a failed batch never shows up as done.

    def _increment(self, field: str) -> None:
        self.report[field] += 1  # type: ignore[literal-required]

    def _append(self, field: str, entry: OrphanEntry) -> None:
        self.report[field].append(entry)  # type: ignore[literal-required]

    def _delete(
        self,
        writer: BatchWriter,
        collection: str,
        doc_id: str,
        on_commit: Callable[[], None] | None = None,
    ) -> None:
        if not self.dry_run:
            writer.delete(self._ref(collection, doc_id), on_commit=on_commit)
        elif on_commit is not None:
            writer.after_commit(on_commit)

    def _update(
        self,
        writer: BatchWriter,
        collection: str,
        doc_id: str,
        data: dict[str, Any],
        on_commit: Callable[[], None] | None = None,
    ) -> None:
        if not self.dry_run:
            writer.update(self._ref(collection, doc_id), data, on_commit=on_commit)
        elif on_commit is not None:
            writer.after_commit(on_commit)

    # Cascades

    def _delete_scrim(
        self,
        writer: BatchWriter,
        scrim_id: str,
        on_commit: Callable[[], None] | None = None,
    ) -> None:
        """Delete a scrim after its chats and notifications."""
        for chat_id in [c for c, d in self.chats.items() if d.get("scrimId") == scrim_id]:
            self._delete_chat(writer, chat_id)
        for notification_id in [
            n for n, d in self.notifications.items() if d.get("scrimId") == scrim_id
        ]:
            self._delete_notification(writer, notification_id)

        def deleted() -> None:
            if on_commit is not None:
                on_commit()
            if not self.dry_run:
                publish(self.events, SCRIM_DELETED, {"scrimId": scrim_id})

        del self.scrims[scrim_id]
        self._delete(writer, SCRIMS, scrim_id, deleted)

    def _delete_chat(self, writer: BatchWriter, chat_id: str) -> None:
        del self.chats[chat_id]
        self._delete(writer, SCRIM_CHATS, chat_id, partial(self._increment, "cleanedChats"))

    def _delete_notification(self, writer: BatchWriter, notification_id: str) -> None:
        del self.notifications[notification_id]
        self._delete(
            writer,
            NOTIFICATIONS,
            notification_id,
            partial(self._increment, "cleanedNotifications"),
        )

    def _delete_tournament(
        self,
        writer: BatchWriter,
        tournament_id: str,
        on_commit: Callable[[], None] | None = None,
    ) -> None:
        """Delete a tournament after its matches."""
        for match_id in [
            m for m, d in self.matches.items() if d.get("tournamentId") == tournament_id
        ]:
            del self.matches[match_id]
            self._delete(writer, MATCHES, match_id)

        del self.tournaments[tournament_id]
        self._delete(writer, TOURNAMENTS, tournament_id, on_commit)

    def _pull(
        self,
        writer: BatchWriter,
        collection: str,
        documents: Documents,
        field: str,
        values: set[str],
    ) -> None:
        """Remove ``values`` from an array field of every document holding one."""
        for doc_id, data in documents.items():
            current = data.get(field) or []
            stale = [value for value in current if value in values]
            if not stale:
                continue
            data[field] = [value for value in current if value not in values]
            self._update(writer, collection, doc_id, {field: firestore.ArrayRemove(stale)})

    # Steps

    def _team_orphan_reason(self, team: dict[str, Any]) -> str | None:
        if team.get("ownerId") not in self.users:
            return "Owner deleted"
        members = team.get("members") or []
        if not any(member.get("userId") in self.users for member in members):
            return "All members deleted"
        return None

    def sweep_teams(self) -> None:
        """Delete teams whose owner or every member no longer exists."""
        orphaned = {}
        for team_id, team in self.teams.items():
            reason = self._team_orphan_reason(team)
            if reason:
                orphaned[team_id] = reason
        if not orphaned:
            return

        with BatchWriter(self.db) as writer:
            for team_id, reason in orphaned.items():
                team = self.teams[team_id]
                posted = [s for s, d in self.scrims.items() if d.get("teamA") == team_id]
                for scrim_id in posted:
                    self._delete_scrim(writer, scrim_id)
                self._log(f"{self._found()} orphaned team: {team.get('name')} ({reason})")

            team_ids = set(orphaned)
            self._pull(writer, USERS, self.users, "teams", team_ids)
            self._pull(writer, SCRIMS, self.scrims, "requests", team_ids)
            if self.include_tournaments:
                self._pull(writer, TOURNAMENTS, self.tournaments, "teams", team_ids)
                self._pull(writer, TOURNAMENTS, self.tournaments, "pendingTeams", team_ids)

            for team_id, reason in orphaned.items():
                entry: OrphanEntry = {
                    "id": team_id,
                    "name": self.teams[team_id].get("name", ""),
                    "reason": reason,
                }
                del self.teams[team_id]
                self._delete(
                    writer, TEAMS, team_id, partial(self._append, "orphanedTeams", entry)
                )

    def sweep_scrims(self) -> None:
        """Delete scrims whose posting team is gone; trim stale requests of the rest."""
        with BatchWriter(self.db) as writer:
            for scrim_id, scrim in list(self.scrims.items()):
                if scrim.get("teamA") not in self.teams:
                    reason = "Posting team (teamA) deleted"
                    entry: OrphanEntry = {
                        "id": scrim_id,
                        "reason": reason,
                        "status": scrim.get("status", ""),
                    }
                    self._delete_scrim(
                        writer, scrim_id, partial(self._append, "orphanedScrims", entry)
                    )
                    self._log(f"{self._found()} orphaned scrim: {scrim_id} ({reason})")
                    continue

                requests = scrim.get("requests") or []
                valid = [team_id for team_id in requests if team_id in self.teams]
                if len(valid) < len(requests):
                    scrim["requests"] = valid
                    self._update(
                        writer,
                        SCRIMS,
                        scrim_id,
                        {"requests": valid},
                        partial(self._increment, "trimmedScrimRequests"),
                    )
                    self._log(f"Cleaned deleted teams from scrim requests: {scrim_id}")

    def sweep_tournaments(self) -> None:
        """Delete tournaments whose organizer is gone and old completed ones."""
        cutoff = self.now - datetime.timedelta(days=self.tournament_retention_days)
        with BatchWriter(self.db) as writer:
            for tournament_id, tournament in list(self.tournaments.items()):
                name = tournament.get("name", "")
                if tournament.get("organizerId") not in self.users:
                    reason = "Organizer deleted"
                    entry: OrphanEntry = {
                        "id": tournament_id,
                        "name": name,
                        "reason": reason,
                        "status": tournament.get("status", ""),
                    }
                    self._delete_tournament(
                        writer,
                        tournament_id,
                        partial(self._append, "orphanedTournaments", entry),
                    )
                    self._log(f"{self._found()} orphaned tournament: {name} ({reason})")
                    continue

                referees = tournament.get("referees") or []
                valid = [user_id for user_id in referees if user_id in self.users]
                if len(valid) < len(referees):
                    tournament["referees"] = valid
                    self._update(
                        writer,
                        TOURNAMENTS,
                        tournament_id,
                        {"referees": valid},
                        partial(self._increment, "trimmedReferees"),
                    )
                    self._log(f"Cleaned deleted referees from tournament: {name}")

            for tournament_id, tournament in list(self.tournaments.items()):
                if tournament.get("status") == COMPLETE and is_older_than(
                    tournament.get("createdAt"), cutoff
                ):
                    self._delete_tournament(
                        writer,
                        tournament_id,
                        partial(self._increment, "cleanedOldTournaments"),
                    )
                    self._log(
                        f"{self._found()} old tournament: {tournament.get('name', '')}"
                    )

    def sweep_matches(self) -> None:
        """Delete matches whose tournament no longer exists."""
        with BatchWriter(self.db) as writer:
            for match_id, match in list(self.matches.items()):
                if match.get("tournamentId") in self.tournaments:
                    continue
                entry: OrphanEntry = {"id": match_id, "reason": "Tournament deleted"}
                del self.matches[match_id]
                self._delete(
                    writer, MATCHES, match_id, partial(self._append, "orphanedMatches", entry)
                )
                self._log(f"{self._found()} orphaned match: {match_id}")

    def sweep_old_scrims(self) -> None:
        """Delete scrims created before the retention window."""
        cutoff = self.now - datetime.timedelta(days=self.scrim_retention_days)
        with BatchWriter(self.db) as writer:
            for scrim_id, scrim in list(self.scrims.items()):
                if is_older_than(scrim.get("createdAt"), cutoff):
                    self._delete_scrim(
                        writer, scrim_id, partial(self._increment, "cleanedOldScrims")
                    )
                    self._log(f"{self._found()} old scrim: {scrim_id}")

    def sweep_unlinked_messages(self) -> None:
        """Delete notifications and chats whose scrim is missing or gone."""
        with BatchWriter(self.db) as writer:
            for notification_id, notification in list(self.notifications.items()):
                if notification.get("scrimId") not in self.scrims:
                    self._delete_notification(writer, notification_id)
                    self._log(f"{self._found()} unlinked notification: {notification_id}")
            for chat_id, chat in list(self.chats.items()):
                if chat.get("scrimId") not in self.scrims:
                    self._delete_chat(writer, chat_id)
                    self._log(f"{self._found()} unlinked chat: {chat_id}")


def run_sweep(  # noqa: PLR0913
    db: Client | None = None,
    dry_run: bool = False,
    verbose: bool = False,
    scrim_retention_days: int = SCRIM_RETENTION_DAYS,
    tournament_retention_days: int = TOURNAMENT_RETENTION_DAYS,
    include_tournaments: bool = True,
    events: EventChannel | None = None,
    now: datetime.datetime | None = None,
) -> SweepReport:
    """Run the reconciliation sweep and return its report."""
    if db is None:
        db = firestore.client()
    return OrphanSweep(
        db,
        dry_run=dry_run,
        verbose=verbose,
        scrim_retention_days=scrim_retention_days,
        tournament_retention_days=tournament_retention_days,
        include_tournaments=include_tournaments,
        events=events,
        now=now,
    ).run()


def run_sweep_for_app(
    app: Any, db: Client, dry_run: bool = False, verbose: bool = False
) -> SweepReport:
    """Run the sweep with the retention settings of a Flask app."""
    return run_sweep(
        db,
        dry_run=dry_run,
        verbose=verbose,
        scrim_retention_days=int(app.config["SCRIM_RETENTION_DAYS"]),
        tournament_retention_days=int(app.config["TOURNAMENT_RETENTION_DAYS"]),
        include_tournaments=bool(app.config["SWEEP_INCLUDE_TOURNAMENTS"]),
        events=app.extensions.get("events"),
    )
