from __future__ import annotations

import unittest

import requests

from app import app
from models import db, UserChallenge
from challenge.lifecycle import PlanLifecycle, PlanState
from challenge.store import RemoteChallengeStore

BASE = "http://challenge.test"


class FlaskClientSession:
    """Routes ``requests``-style calls into the Flask test client."""

    def __init__(self, client):
        self.client = client

    def request(self, method, url, timeout=None, params=None, json=None):
        path = url[len(BASE):]
        resp = self.client.open(path, method=method, query_string=params, json=json)
        out = requests.Response()
        out.status_code = resp.status_code
        out._content = resp.get_data()
        return out


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        app.config["TESTING"] = True
        with app.app_context():
            db.drop_all()
            db.create_all()
        self.client = app.test_client()
        self.register(self.client, "creator")

    @staticmethod
    def register(client, username):
        resp = client.post("/register", json={"username": username, "password": "pw"})
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["id"]

    def create(self, **body):
        payload = {
            "config": {"durationMonths": 1, "cadenceEveryDays": 2, "videosPerCadence": 1},
            "progress": [],
        }
        payload.update(body)
        resp = self.client.post("/api/user-challenge", json=payload)
        self.assertEqual(resp.status_code, 200)
        return resp.get_json()["id"]


class AuthTest(ApiTestCase):
    def test_api_requires_login(self) -> None:
        anonymous = app.test_client()
        resp = anonymous.get("/api/user-challenge")
        self.assertEqual(resp.status_code, 401)

    def test_login_and_logout(self) -> None:
        self.client.get("/logout")
        self.assertEqual(self.client.get("/api/user-challenge").status_code, 401)
        bad = self.client.post("/login", json={"username": "creator", "password": "wrong"})
        self.assertEqual(bad.status_code, 401)
        good = self.client.post("/login", json={"username": "creator", "password": "pw"})
        self.assertEqual(good.status_code, 200)
        self.assertEqual(self.client.get("/api/user-challenge").status_code, 200)

    def test_duplicate_username(self) -> None:
        resp = app.test_client().post("/register", json={"username": "creator", "password": "x"})
        self.assertEqual(resp.status_code, 400)


class UserChallengeApiTest(ApiTestCase):
    def test_no_active_challenge(self) -> None:
        resp = self.client.get("/api/user-challenge")
        self.assertEqual(resp.get_json(), {"challenge": None})

    def test_create_clamps_and_mirrors_columns(self) -> None:
        challenge_id = self.create(config={"durationMonths": 99, "cadenceEveryDays": 0, "videosPerCadence": 3},
                                   videoType="shorts")
        challenge = self.client.get("/api/user-challenge").get_json()["challenge"]
        self.assertEqual(challenge["id"], challenge_id)
        self.assertEqual((challenge["durationMonths"], challenge["cadenceEveryDays"], challenge["videosPerCadence"]),
                         (60, 1, 3))
        self.assertEqual(challenge["config"]["durationMonths"], 60)
        self.assertEqual(challenge["videoType"], "shorts")
        self.assertIsNone(challenge["startedAt"])
        self.assertEqual(challenge["status"], "active")

    def test_create_upserts_on_challenge_key(self) -> None:
        first = self.create()
        second = self.create(config={"durationMonths": 2, "cadenceEveryDays": 2, "videosPerCadence": 1})
        self.assertEqual(first, second)
        with app.app_context():
            self.assertEqual(UserChallenge.query.count(), 1)

    def test_patch_fields_independently(self) -> None:
        challenge_id = self.create(startedAt="2025-01-01T00:00:00+00:00")

        resp = self.client.patch(f"/api/user-challenge?id={challenge_id}",
                                 json={"progress": [{"title": "one", "uploaded": True}]})
        self.assertEqual(resp.status_code, 200)
        challenge = resp.get_json()["challenge"]
        self.assertEqual(challenge["progress"][0]["title"], "one")
        self.assertEqual(challenge["durationMonths"], 1)
        self.assertEqual(challenge["startedAt"], "2025-01-01T00:00:00+00:00")

        resp = self.client.patch(f"/api/user-challenge?id={challenge_id}",
                                 json={"config": {"durationMonths": 3, "cadenceEveryDays": 7, "videosPerCadence": 2}})
        challenge = resp.get_json()["challenge"]
        self.assertEqual(challenge["cadenceEveryDays"], 7)
        self.assertEqual(challenge["progress"][0]["title"], "one")

        resp = self.client.patch(f"/api/user-challenge?id={challenge_id}", json={"videoType": "long"})
        challenge = resp.get_json()["challenge"]
        self.assertEqual(challenge["videoType"], "long")
        self.assertEqual(challenge["videosPerCadence"], 2)

    def test_patch_errors(self) -> None:
        self.assertEqual(self.client.patch("/api/user-challenge", json={}).status_code, 400)
        self.assertEqual(self.client.patch("/api/user-challenge?id=404", json={"progress": []}).status_code, 404)

    def test_soft_delete(self) -> None:
        challenge_id = self.create()
        self.assertEqual(self.client.delete("/api/user-challenge").status_code, 400)
        resp = self.client.delete(f"/api/user-challenge?id={challenge_id}")
        self.assertEqual(resp.get_json(), {"success": True})
        self.assertIsNone(self.client.get("/api/user-challenge").get_json()["challenge"])

    def test_hard_delete_checks_owner(self) -> None:
        challenge_id = self.create()
        other = app.test_client()
        self.register(other, "someone-else")
        self.assertEqual(other.delete(f"/api/challenges/{challenge_id}").status_code, 403)
        self.assertEqual(self.client.delete("/api/challenges/12345").status_code, 404)

        resp = self.client.delete(f"/api/challenges/{challenge_id}")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.get_json()["activeChallengeCount"], 0)
        with app.app_context():
            self.assertEqual(UserChallenge.query.count(), 0)

    def test_other_users_cannot_patch(self) -> None:
        challenge_id = self.create()
        other = app.test_client()
        self.register(other, "someone-else")
        resp = other.patch(f"/api/user-challenge?id={challenge_id}", json={"progress": []})
        self.assertEqual(resp.status_code, 404)

    def test_update_slot(self) -> None:
        challenge_id = self.create()
        resp = self.client.post(f"/api/user-challenge/{challenge_id}/slots/3",
                                json={"title": "Gear review", "uploaded": True})
        self.assertEqual(resp.status_code, 200)
        self.assertTrue(resp.get_json()["record"]["uploaded"])

        progress = self.client.get("/api/user-challenge").get_json()["challenge"]["progress"]
        self.assertEqual(len(progress), 4)
        self.assertEqual(progress[3]["title"], "Gear review")
        self.assertIsNotNone(progress[3]["uploadedAt"])
        self.assertFalse(progress[0]["uploaded"])


    def test_slot_outside_calendar(self) -> None:
        challenge_id = self.create()
        resp = self.client.post(f"/api/user-challenge/{challenge_id}/slots/5000000", json={"title": "x"})
        self.assertEqual(resp.status_code, 400)
        resp = self.client.post(f"/api/user-challenge/{challenge_id}/slots/15", json={"uploaded": True})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(self.client.get("/api/user-challenge").get_json()["challenge"]["progress"], [])

        resp = self.client.post(f"/api/user-challenge/{challenge_id}/slots/14", json={"uploaded": True})
        self.assertEqual(resp.status_code, 200)

    def test_deleted_challenge_cannot_be_patched(self) -> None:
        challenge_id = self.create()
        self.client.delete(f"/api/user-challenge?id={challenge_id}")
        resp = self.client.patch(f"/api/user-challenge?id={challenge_id}", json={"progress": []})
        self.assertEqual(resp.status_code, 404)
        resp = self.client.post(f"/api/user-challenge/{challenge_id}/slots/0", json={"uploaded": True})
        self.assertEqual(resp.status_code, 404)


class DashboardTest(ApiTestCase):
    def test_dashboard_without_challenge(self) -> None:
        self.assertEqual(self.client.get("/api/user-challenge/dashboard").get_json(), {"challenge": None})

    def test_dashboard_metrics(self) -> None:
        challenge_id = self.create(startedAt="2025-01-01T00:00:00+00:00", videoType="long")
        self.client.post(f"/api/user-challenge/{challenge_id}/slots/0", json={"uploaded": True})

        resp = self.client.get("/api/user-challenge/dashboard",
                               query_string={"now": "2025-01-10T12:00:00+00:00"})
        data = resp.get_json()
        self.assertEqual(data["state"], "progress")
        self.assertEqual(data["metrics"]["totalUploads"], 15)
        self.assertEqual(data["metrics"]["uploadedCount"], 5)
        self.assertEqual(data["metrics"]["consistencyPercent"], 33)
        self.assertEqual(data["metrics"]["daysUntilNext"], 1)
        self.assertEqual(data["metrics"]["checkedCount"], 1)
        self.assertEqual(data["day"], {"day": 10, "totalDays": 30, "daysElapsed": 9})
        self.assertEqual(data["summary"]["totalVideos"], 15)
        self.assertEqual(data["aspectRatio"], "16:9")
        self.assertEqual(len(data["schedule"]), 15)
        self.assertEqual(data["schedule"][0]["status"], "uploaded")
        self.assertEqual(data["schedule"][14]["date"], "2025-01-29T00:00:00+00:00")
        self.assertEqual(data["staleIndices"], [])

    def test_dashboard_before_start(self) -> None:
        self.create()
        data = self.client.get("/api/user-challenge/dashboard").get_json()
        self.assertEqual(data["state"], "videoType")
        self.assertEqual(data["metrics"]["uploadedCount"], 0)
        self.assertIsNone(data["schedule"][0]["date"])


class LifecycleOverHttpTest(ApiTestCase):
    def lifecycle(self):
        store = RemoteChallengeStore(BASE, session=FlaskClientSession(self.client))
        return PlanLifecycle(store=store)

    def test_full_round_trip(self) -> None:
        lifecycle = self.lifecycle()
        lifecycle.load()
        self.assertEqual(lifecycle.state, PlanState.START)

        lifecycle.begin_setup()
        self.assertTrue(lifecycle.commit_setup(6, 2, 1).ok)
        self.assertTrue(lifecycle.choose_video_type("shorts").ok)
        self.assertTrue(lifecycle.mark_uploaded(0).ok)
        self.assertTrue(lifecycle.edit_slot(1, title="Behind the scenes").ok)

        # A fresh session sees the server copy
        restored = self.lifecycle()
        self.assertTrue(restored.load().ok)
        self.assertEqual(restored.state, PlanState.PROGRESS)
        self.assertEqual(restored.challenge.challenge_id, lifecycle.challenge.challenge_id)
        self.assertEqual(restored.challenge.config, lifecycle.challenge.config)
        self.assertEqual(restored.challenge.start_date, lifecycle.challenge.start_date)
        self.assertTrue(restored.record(0).uploaded)
        self.assertEqual(restored.record(1).title, "Behind the scenes")
        self.assertEqual(restored.metrics().total_uploads, 90)

        self.assertTrue(restored.reset(confirmed=True).ok)
        self.assertIsNone(self.client.get("/api/user-challenge").get_json()["challenge"])

        # The first session still has the old challenge cached in memory; a reload drops it
        self.assertTrue(lifecycle.load().ok)
        self.assertEqual(lifecycle.state, PlanState.START)
        self.assertIsNone(lifecycle.challenge.challenge_id)

    def test_failures_surface_as_results(self) -> None:
        lifecycle = self.lifecycle()
        self.client.get("/logout")
        lifecycle.begin_setup()
        result = lifecycle.commit_setup(6, 2, 1)
        self.assertFalse(result.ok)
        self.assertEqual(lifecycle.state, PlanState.VIDEO_TYPE)
        self.assertIn("sign in", result.error)


if __name__ == "__main__":
    unittest.main()
