"""Tests for the tournament blueprint using mockfirestore."""

from __future__ import annotations

import unittest
from unittest.mock import MagicMock, patch

from challenger import create_app
from challenger import events as event_names
from tests.conftest import doc_ids, mock_db

MOCK_USER_ID = "organizer"
MOCK_USER_DATA = {"username": "organizer", "isAdmin": False, "teams": []}


class TournamentRoutesFirebaseTestCase(unittest.TestCase):
    """Test case for the tournament blueprint."""

    def setUp(self) -> None:
        """Set up a test client backed by an in-memory Firestore."""
        self.mock_db = mock_db()
        self.mock_firestore_module = MagicMock()
        self.mock_firestore_module.client.return_value = self.mock_db

        patchers = {
            "init_app": patch("firebase_admin.initialize_app"),
            "firestore_app": patch("challenger.firestore", new=self.mock_firestore_module),
            "firestore_routes": patch(
                "challenger.tournament.routes.firestore", new=self.mock_firestore_module
            ),
        }
        self.mocks = {name: p.start() for name, p in patchers.items()}
        for p in patchers.values():
            self.addCleanup(p.stop)

        self.app = create_app(
            {"TESTING": True, "WTF_CSRF_ENABLED": False, "SERVER_NAME": "localhost"}
        )
        self.client = self.app.test_client()
        self.app_context = self.app.app_context()
        self.app_context.push()
        self.events = self.app.extensions["events"]
        self.events.drain()

        for user_id in (MOCK_USER_ID, "p1", "p2", "p3"):
            self.mock_db.collection("users").document(user_id).set(
                {**MOCK_USER_DATA, "username": user_id}
            )
        for team_id, owner in (("t1", "p1"), ("t2", "p2"), ("t3", "p3")):
            self.mock_db.collection("teams").document(team_id).set(
                {
                    "name": team_id.upper(),
                    "ownerId": owner,
                    "members": [{"userId": owner, "role": "Captain", "rank": "Gold"}],
                    "memberIds": [owner],
                }
            )

    def tearDown(self) -> None:
        """Tear down the test client."""
        self.app_context.pop()

    def _set_session_user(self, user_id: str = MOCK_USER_ID) -> None:
        """Set a logged-in user in the session."""
        with self.client.session_transaction() as sess:
            sess["user_id"] = user_id
            sess["is_admin"] = False

    def _create(self, **overrides) -> str:
        payload = {
            "name": "Winter Cup",
            "description": "Open bracket",
            "startDate": "2026-12-01",
            "game": "Valorant",
            "maxParticipants": 8,
            "phases": ["SINGLE_ELIM"],
        }
        payload.update(overrides)
        response = self.client.post("/tournaments/", json=payload)
        self.assertEqual(response.status_code, 201, response.get_json())
        return response.get_json()["data"]["id"]

    def _set_teams(self, tournament_id: str, teams: list[str]) -> None:
        self.mock_db.collection("tournaments").document(tournament_id).update(
            {"teams": teams}
        )

    def test_requires_login(self) -> None:
        response = self.client.get("/tournaments/")
        self.assertEqual(response.status_code, 401)
        self.assertFalse(response.get_json()["success"])

    def test_create_tournament(self) -> None:
        """Test successfully creating a new tournament."""
        self._set_session_user()
        response = self.client.post(
            "/tournaments/",
            json={
                "name": "Winter Cup",
                "description": "Open bracket",
                "startDate": "2026-12-01",
                "game": "Valorant",
                "maxParticipants": 8,
                "phases": ["SINGLE_ELIM", {"bracketType": "ROUND_ROBIN"}],
            },
        )

        self.assertEqual(response.status_code, 201)
        body = response.get_json()
        self.assertTrue(body["success"])
        self.assertEqual(body["message"], "Tournament created successfully.")
        self.assertEqual(body["data"]["status"], "REGISTRATION_OPEN")
        self.assertTrue(body["data"]["isOrganizer"])
        self.assertTrue(body["data"]["startDate"].startswith("2026-12-01"))
        self.assertIsNone(body["data"]["createdAt"])
        self.assertEqual(len(body["data"]["phases"]), 2)

        tournaments = list(self.mock_db.collection("tournaments").stream())
        self.assertEqual(len(tournaments), 1)
        self.assertEqual(tournaments[0].to_dict()["maxParticipants"], 8)

    def test_create_tournament_validation(self) -> None:
        self._set_session_user()
        response = self.client.post(
            "/tournaments/",
            json={"name": "No Phases", "description": "x", "startDate": "2026-12-01",
                  "game": "Valorant", "maxParticipants": 1},
        )
        self.assertEqual(response.status_code, 400)
        body = response.get_json()
        self.assertFalse(body["success"])
        self.assertIn("max_participants", body["message"])
        self.assertEqual(doc_ids(self.mock_db, "tournaments"), set())

    def test_list_and_view(self) -> None:
        self._set_session_user()
        tournament_id = self._create()

        listed = self.client.get("/tournaments/").get_json()["data"]
        self.assertEqual([t["id"] for t in listed], [tournament_id])
        self.assertNotIn("refereeCode", listed[0])

        viewed = self.client.get(f"/tournaments/{tournament_id}").get_json()["data"]
        self.assertIn("refereeCode", viewed)
        self.assertEqual(self.client.get("/tournaments/missing").status_code, 404)

    def test_lookup_by_code(self) -> None:
        self._set_session_user()
        tournament_id = self._create()
        code = self.client.get(f"/tournaments/{tournament_id}").get_json()["data"]["refereeCode"]

        response = self.client.get(f"/tournaments/code/{code}")
        self.assertEqual(response.get_json()["data"]["id"], tournament_id)
        self.assertEqual(self.client.get("/tournaments/code/NOPE00").status_code, 404)

    def test_edit_tournament(self) -> None:
        self._set_session_user()
        tournament_id = self._create()
        response = self.client.put(
            f"/tournaments/{tournament_id}", json={"name": "Spring Cup", "maxParticipants": 16}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["data"]["name"], "Spring Cup")

        self._set_session_user("p1")
        response = self.client.put(f"/tournaments/{tournament_id}", json={"name": "Mine"})
        self.assertEqual(response.status_code, 403)

    def test_lock_registrations_needs_two_teams(self) -> None:
        self._set_session_user()
        tournament_id = self._create()
        self._set_teams(tournament_id, ["t1"])

        response = self.client.put(f"/tournaments/{tournament_id}/lock-registrations")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(
            response.get_json()["message"], "Need at least 2 teams to close registration"
        )

    def test_invalid_transition(self) -> None:
        self._set_session_user()
        tournament_id = self._create()
        self._set_teams(tournament_id, ["t1", "t2"])

        response = self.client.put(f"/tournaments/{tournament_id}/start")
        self.assertEqual(response.status_code, 400)
        self.assertIn("Cannot move tournament", response.get_json()["message"])

    def test_full_lifecycle(self) -> None:
        self._set_session_user()
        tournament_id = self._create()
        self._set_teams(tournament_id, ["t1", "t2", "t3"])
        base = f"/tournaments/{tournament_id}"

        self.assertEqual(self.client.put(f"{base}/lock-registrations").status_code, 200)
        response = self.client.put(f"{base}/lock-bracket")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["data"]["matchCount"], 3)

        template = self.client.get(f"{base}/bracket-template/0").get_json()["data"]
        self.assertEqual([slot["slot"] for slot in template], [0, 1, 2])

        response = self.client.put(
            f"{base}/bracket",
            json={"phaseIndex": 0, "matches": [{"slot": 0, "teamA": "t1", "teamB": "t2"}]},
        )
        self.assertEqual(response.status_code, 200)

        self.assertEqual(self.client.put(f"{base}/start").status_code, 200)
        response = self.client.put(
            f"{base}/matches/0/0", json={"scoreA": 2, "scoreB": 0, "winner": "t2"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["data"]["winner"], "t2")

        matches = self.client.get(f"{base}/matches?phase=0").get_json()["data"]
        self.assertEqual(len(matches), 3)

        response = self.client.put(f"{base}/phases/0", json={"status": "COMPLETE"})
        self.assertEqual(response.get_json()["data"]["status"], "COMPLETE")
        self.assertEqual(self.client.put(f"{base}/complete").status_code, 200)

        names = [event.name for event in self.events.drain()]
        self.assertEqual(names.count(event_names.TOURNAMENT_STATUS_CHANGED), 4)
        self.assertIn(event_names.MATCH_UPDATED, names)

    def test_bracket_payload_validation(self) -> None:
        self._set_session_user()
        tournament_id = self._create()
        response = self.client.put(
            f"/tournaments/{tournament_id}/bracket", json={"matches": "nope"}
        )
        self.assertEqual(response.status_code, 400)

    def test_team_registration(self) -> None:
        self._set_session_user()
        tournament_id = self._create()
        base = f"/tournaments/{tournament_id}"

        self._set_session_user("p1")
        self.assertEqual(self.client.post(f"{base}/teams", json={}).status_code, 400)
        response = self.client.post(f"{base}/teams", json={"teamId": "t1"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(self.client.get(f"{base}/teams/pending").status_code, 403)

        self._set_session_user()
        pending = self.client.get(f"{base}/teams/pending").get_json()["data"]
        self.assertEqual(pending, [{"id": "t1", "name": "T1"}])
        self.assertEqual(self.client.put(f"{base}/teams/t1/approve").status_code, 200)
        self.assertEqual(self.client.delete(f"{base}/teams/t1").status_code, 200)

        data = self.mock_db.collection("tournaments").document(tournament_id).get().to_dict()
        self.assertEqual(data["teams"], [])
        self.assertEqual(data["pendingTeams"], [])

    def test_referee_join_and_leave(self) -> None:
        self._set_session_user()
        tournament_id = self._create()
        base = f"/tournaments/{tournament_id}"
        code = self.client.get(base).get_json()["data"]["refereeCode"]

        self._set_session_user("p1")
        self.assertEqual(
            self.client.post(f"{base}/referees", json={"code": "BAD000"}).status_code, 400
        )
        self.assertEqual(
            self.client.post(f"{base}/referees", json={"code": code}).status_code, 200
        )
        self.assertTrue(self.client.get(base).get_json()["data"]["isReferee"])
        self.assertEqual(self.client.delete(f"{base}/referees/p1").status_code, 200)

    def test_delete_tournament(self) -> None:
        self._set_session_user()
        tournament_id = self._create()

        self._set_session_user("p1")
        self.assertEqual(self.client.delete(f"/tournaments/{tournament_id}").status_code, 403)

        self._set_session_user()
        response = self.client.delete(f"/tournaments/{tournament_id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(doc_ids(self.mock_db, "tournaments"), set())
        self.assertEqual(
            [e.name for e in self.events.drain()], [event_names.TOURNAMENT_DELETED]
        )


if __name__ == "__main__":
    unittest.main()
