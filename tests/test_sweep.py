"""Tests for the orphan reconciliation sweep."""

from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from challenger import events as event_names
from challenger.errors import SweepError
from challenger.events import EventChannel
from challenger.sweep.models import new_report, total_changes
from challenger.sweep.services import OrphanSweep, is_older_than, run_sweep
from tests.conftest import MockBatch, days_ago, doc_ids, mock_db


def add_user(db, user_id, teams=()):
    db.collection("users").document(user_id).set(
        {"username": user_id, "teams": list(teams), "createdAt": days_ago(30)}
    )


def add_team(db, team_id, owner, members=None):
    members = [owner] if members is None else members
    db.collection("teams").document(team_id).set(
        {
            "name": team_id.upper(),
            "ownerId": owner,
            "members": [{"userId": m, "role": "Player", "rank": "Gold"} for m in members],
            "memberIds": members,
            "createdAt": days_ago(30),
        }
    )


def add_scrim(db, scrim_id, team_a, requests=(), age_days=1):
    db.collection("scrims").document(scrim_id).set(
        {
            "teamA": team_a,
            "teamB": None,
            "requests": list(requests),
            "status": "open",
            "createdAt": days_ago(age_days),
        }
    )


def add_messages(db, scrim_id, count=1):
    for i in range(count):
        data = {"message": f"hello {i}", "createdAt": days_ago(1)}
        if scrim_id is not None:
            data["scrimId"] = scrim_id
        db.collection("scrim_chats").document(f"chat_{scrim_id}_{i}").set(dict(data))
        db.collection("notifications").document(f"note_{scrim_id}_{i}").set(dict(data))


def add_tournament(db, tournament_id, organizer, status="REGISTRATION_OPEN", age_days=1, **extra):
    data = {
        "name": tournament_id.upper(),
        "organizerId": organizer,
        "status": status,
        "teams": [],
        "pendingTeams": [],
        "referees": [],
        "createdAt": days_ago(age_days),
    }
    data.update(extra)
    db.collection("tournaments").document(tournament_id).set(data)


def add_match(db, match_id, tournament_id):
    db.collection("matches").document(match_id).set(
        {"tournamentId": tournament_id, "phaseIndex": 0, "slot": 0, "createdAt": days_ago(1)}
    )


def referencing(db, collection, scrim_id):
    return [
        doc.id
        for doc in db.collection(collection).stream()
        if doc.exists and doc.to_dict().get("scrimId") == scrim_id
    ]


class ReportTestCase(unittest.TestCase):
    def test_new_report_is_empty(self) -> None:
        report = new_report(dry_run=True)
        self.assertTrue(report["dryRun"])
        self.assertEqual(total_changes(report), 0)

    def test_total_changes_sums_lists_and_counters(self) -> None:
        report = new_report()
        report["orphanedTeams"].append({"id": "t1", "reason": "Owner deleted"})
        report["orphanedMatches"].append({"id": "m1", "reason": "Tournament deleted"})
        report["cleanedChats"] = 3
        report["trimmedReferees"] = 1
        self.assertEqual(total_changes(report), 6)

    def test_is_older_than(self) -> None:
        cutoff = days_ago(90)
        self.assertTrue(is_older_than(days_ago(91), cutoff))
        self.assertFalse(is_older_than(days_ago(89), cutoff))
        self.assertTrue(is_older_than(days_ago(91).replace(tzinfo=None), cutoff))
        self.assertFalse(is_older_than(None, cutoff))
        self.assertFalse(is_older_than("2020-01-01", cutoff))


class OrphanedTeamTestCase(unittest.TestCase):
    """One team whose owner was deleted, plus the documents around it."""

    def setUp(self) -> None:
        self.db = mock_db()
        self.events = EventChannel()
        add_user(self.db, "alice", teams=["ghost", "t1"])
        add_user(self.db, "bob", teams=["t1"])
        add_team(self.db, "ghost", "deleted_user", members=["deleted_user", "alice"])
        add_team(self.db, "t1", "bob", members=["bob", "alice"])
        add_scrim(self.db, "s_ghost", "ghost")
        add_scrim(self.db, "s_live", "t1", requests=["ghost"])
        add_messages(self.db, "s_ghost", count=2)
        add_messages(self.db, "s_live")
        add_tournament(self.db, "cup", "bob", teams=["ghost", "t1"], pendingTeams=["ghost"])

    def _run(self, dry_run=False):
        return run_sweep(self.db, dry_run=dry_run, events=self.events)

    def test_dry_run_changes_nothing(self) -> None:
        report = self._run(dry_run=True)

        self.assertTrue(report["dryRun"])
        self.assertEqual(
            report["orphanedTeams"], [{"id": "ghost", "name": "GHOST", "reason": "Owner deleted"}]
        )
        self.assertEqual(report["cleanedChats"], 2)
        self.assertEqual(report["cleanedNotifications"], 2)
        self.assertEqual(doc_ids(self.db, "teams"), {"ghost", "t1"})
        self.assertEqual(doc_ids(self.db, "scrims"), {"s_ghost", "s_live"})
        self.assertEqual(len(doc_ids(self.db, "scrim_chats")), 3)
        self.assertEqual(self.events.drain(), [])

    def test_dry_run_then_live_then_live(self) -> None:
        dry = self._run(dry_run=True)
        live = self._run()
        again = self._run()

        self.assertFalse(live["dryRun"])
        self.assertEqual(total_changes(dry), total_changes(live))
        self.assertGreater(total_changes(live), 0)
        self.assertEqual(total_changes(again), 0)
        self.assertEqual(again["errors"], [])

        self.assertEqual(doc_ids(self.db, "teams"), {"t1"})
        self.assertEqual(doc_ids(self.db, "scrims"), {"s_live"})

    def test_cascade_removes_references(self) -> None:
        self._run()

        self.assertEqual(referencing(self.db, "scrim_chats", "s_ghost"), [])
        self.assertEqual(referencing(self.db, "notifications", "s_ghost"), [])
        self.assertEqual(len(referencing(self.db, "scrim_chats", "s_live")), 1)

        users = self.db.collection("users")
        self.assertEqual(users.document("alice").get().to_dict()["teams"], ["t1"])
        self.assertEqual(users.document("bob").get().to_dict()["teams"], ["t1"])
        self.assertEqual(
            self.db.collection("scrims").document("s_live").get().to_dict()["requests"], []
        )
        cup = self.db.collection("tournaments").document("cup").get().to_dict()
        self.assertEqual(cup["teams"], ["t1"])
        self.assertEqual(cup["pendingTeams"], [])

    def test_scrim_deletions_are_published(self) -> None:
        self._run()
        published = self.events.drain()
        self.assertEqual([e.name for e in published], [event_names.SCRIM_DELETED])
        self.assertEqual(published[0].payload, {"scrimId": "s_ghost"})

    def test_runs_without_event_channel(self) -> None:
        report = run_sweep(self.db)
        self.assertEqual(len(report["orphanedTeams"]), 1)


class SweepStepsTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.db = mock_db()
        add_user(self.db, "alice", teams=["t1"])
        add_user(self.db, "bob", teams=["t2"])
        add_team(self.db, "t1", "alice")
        add_team(self.db, "t2", "bob")

    def test_team_with_every_member_deleted(self) -> None:
        add_team(self.db, "t3", "alice", members=["gone1", "gone2"])
        report = run_sweep(self.db)
        self.assertEqual(report["orphanedTeams"][0]["id"], "t3")
        self.assertEqual(report["orphanedTeams"][0]["reason"], "All members deleted")
        self.assertEqual(doc_ids(self.db, "teams"), {"t1", "t2"})

    def test_scrim_with_missing_posting_team(self) -> None:
        add_scrim(self.db, "s1", "deleted_team")
        add_messages(self.db, "s1")
        report = run_sweep(self.db)

        self.assertEqual(
            report["orphanedScrims"],
            [{"id": "s1", "reason": "Posting team (teamA) deleted", "status": "open"}],
        )
        self.assertEqual(report["cleanedNotifications"], 1)
        self.assertEqual(report["cleanedChats"], 1)
        self.assertEqual(doc_ids(self.db, "scrims"), set())

    def test_stale_scrim_requests_are_trimmed(self) -> None:
        add_scrim(self.db, "s1", "t1", requests=["t2", "deleted_team"])
        add_scrim(self.db, "s2", "t2", requests=["t1"])
        report = run_sweep(self.db)

        self.assertEqual(report["trimmedScrimRequests"], 1)
        scrims = self.db.collection("scrims")
        self.assertEqual(scrims.document("s1").get().to_dict()["requests"], ["t2"])
        self.assertEqual(scrims.document("s2").get().to_dict()["requests"], ["t1"])

    def test_scrim_retention(self) -> None:
        add_scrim(self.db, "old", "t1", age_days=91)
        add_scrim(self.db, "young", "t1", age_days=10)
        add_messages(self.db, "old")
        report = run_sweep(self.db)

        self.assertEqual(report["cleanedOldScrims"], 1)
        self.assertEqual(doc_ids(self.db, "scrims"), {"young"})
        self.assertEqual(referencing(self.db, "scrim_chats", "old"), [])
        self.assertEqual(referencing(self.db, "notifications", "old"), [])

    def test_custom_scrim_retention(self) -> None:
        add_scrim(self.db, "s1", "t1", age_days=10)
        run_sweep(self.db, scrim_retention_days=7)
        self.assertEqual(doc_ids(self.db, "scrims"), set())

    def test_orphaned_tournament_and_matches(self) -> None:
        add_tournament(self.db, "lost", "deleted_user", status="IN_PROGRESS")
        add_match(self.db, "lost_0_0", "lost")
        add_tournament(self.db, "kept", "alice", referees=["bob", "deleted_user"])
        add_match(self.db, "kept_0_0", "kept")
        add_match(self.db, "stray", "never_existed")
        report = run_sweep(self.db)

        self.assertEqual(
            report["orphanedTournaments"],
            [{"id": "lost", "name": "LOST", "reason": "Organizer deleted", "status": "IN_PROGRESS"}],
        )
        self.assertEqual(report["orphanedMatches"], [{"id": "stray", "reason": "Tournament deleted"}])
        self.assertEqual(report["trimmedReferees"], 1)
        self.assertEqual(doc_ids(self.db, "tournaments"), {"kept"})
        self.assertEqual(doc_ids(self.db, "matches"), {"kept_0_0"})
        self.assertEqual(
            self.db.collection("tournaments").document("kept").get().to_dict()["referees"],
            ["bob"],
        )

    def test_tournament_retention_only_for_complete(self) -> None:
        add_tournament(self.db, "old_done", "alice", status="COMPLETE", age_days=400)
        add_match(self.db, "old_done_0_0", "old_done")
        add_tournament(self.db, "old_open", "alice", status="IN_PROGRESS", age_days=400)
        add_tournament(self.db, "recent_done", "alice", status="COMPLETE", age_days=30)
        report = run_sweep(self.db)

        self.assertEqual(report["cleanedOldTournaments"], 1)
        self.assertEqual(report["orphanedMatches"], [])
        self.assertEqual(doc_ids(self.db, "tournaments"), {"old_open", "recent_done"})
        self.assertEqual(doc_ids(self.db, "matches"), set())

    def test_tournaments_can_be_skipped(self) -> None:
        add_tournament(self.db, "lost", "deleted_user")
        add_match(self.db, "stray", "never_existed")
        report = run_sweep(self.db, include_tournaments=False)

        self.assertEqual(report["orphanedTournaments"], [])
        self.assertEqual(doc_ids(self.db, "tournaments"), {"lost"})
        self.assertEqual(doc_ids(self.db, "matches"), {"stray"})

    def test_unlinked_messages(self) -> None:
        add_scrim(self.db, "s1", "t1")
        add_messages(self.db, "s1")
        add_messages(self.db, None)
        add_messages(self.db, "vanished")
        report = run_sweep(self.db)

        self.assertEqual(report["cleanedNotifications"], 2)
        self.assertEqual(report["cleanedChats"], 2)
        self.assertEqual(doc_ids(self.db, "notifications"), {"note_s1_0"})
        self.assertEqual(doc_ids(self.db, "scrim_chats"), {"chat_s1_0"})

    def test_clean_store_reports_nothing(self) -> None:
        add_scrim(self.db, "s1", "t1", requests=["t2"])
        add_messages(self.db, "s1")
        add_tournament(self.db, "cup", "alice", teams=["t1", "t2"])
        report = run_sweep(self.db, verbose=True)
        self.assertEqual(total_changes(report), 0)

    def test_writes_are_batched(self) -> None:
        for i in range(5):
            add_scrim(self.db, f"s{i}", "deleted_team")
        run_sweep(self.db)
        self.assertTrue(self.db.batch.called)
        self.assertEqual(doc_ids(self.db, "scrims"), set())


class SweepFailureTestCase(unittest.TestCase):
    def test_store_error_is_wrapped_with_report(self) -> None:
        db = MagicMock()
        db.collection.side_effect = RuntimeError("firestore unavailable")

        with self.assertRaises(SweepError) as ctx:
            OrphanSweep(db).run()

        error = ctx.exception
        self.assertEqual(error.status_code, 500)
        self.assertEqual(error.report["errors"], ["firestore unavailable"])
        self.assertIsInstance(error.__cause__, RuntimeError)

    def test_partial_progress_is_kept(self) -> None:
        db = mock_db()
        add_user(db, "alice")
        add_team(db, "ghost", "deleted_user")
        add_scrim(db, "s1", "deleted_team")

        sweep = OrphanSweep(db)
        sweep.sweep_tournaments = MagicMock(side_effect=RuntimeError("boom"))

        with self.assertRaises(SweepError) as ctx:
            sweep.run()

        report = ctx.exception.report
        self.assertEqual(len(report["orphanedTeams"]), 1)
        self.assertEqual(len(report["orphanedScrims"]), 1)
        self.assertEqual(report["errors"], ["boom"])
        self.assertEqual(doc_ids(db, "teams"), set())

    def _store_with_orphaned_team(self):
        db = mock_db()
        add_user(db, "alice", teams=["t1"])
        add_user(db, "bob", teams=["ghost"])
        add_team(db, "t1", "alice")
        add_team(db, "ghost", "deleted_user", members=["deleted_user", "bob"])
        add_scrim(db, "s_ghost", "ghost")
        add_messages(db, "s_ghost")
        return db

    def test_uncommitted_step_is_not_reported(self) -> None:
        db = self._store_with_orphaned_team()
        channel = EventChannel()

        with patch.object(
            OrphanSweep, "_pull", side_effect=[None, RuntimeError("deadline exceeded")]
        ):
            with self.assertRaises(SweepError) as ctx:
                OrphanSweep(db, events=channel).run()

        report = ctx.exception.report
        self.assertEqual(report["orphanedTeams"], [])
        self.assertEqual(report["cleanedChats"], 0)
        self.assertEqual(report["cleanedNotifications"], 0)
        self.assertEqual(report["errors"], ["deadline exceeded"])
        self.assertEqual(doc_ids(db, "teams"), {"t1", "ghost"})
        self.assertEqual(doc_ids(db, "scrims"), {"s_ghost"})
        self.assertEqual(db.collection("users").document("bob").get().to_dict()["teams"], ["ghost"])
        self.assertEqual(channel.drain(), [])

    def test_failed_commit_is_not_reported_or_published(self) -> None:
        db = self._store_with_orphaned_team()
        channel = EventChannel()

        def failing_batch():
            batch = MockBatch(db)
            batch.commit.side_effect = RuntimeError("commit rejected")
            return batch

        db.batch.side_effect = failing_batch

        with self.assertRaises(SweepError) as ctx:
            OrphanSweep(db, events=channel).run()

        self.assertEqual(total_changes(ctx.exception.report), 0)
        self.assertEqual(doc_ids(db, "scrims"), {"s_ghost"})
        self.assertEqual(channel.drain(), [])


if __name__ == "__main__":
    unittest.main()
