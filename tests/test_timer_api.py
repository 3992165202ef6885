import unittest
from datetime import datetime, timedelta

from fastapi import HTTPException
from fastapi.testclient import TestClient

from app.database import get_db
from app.exceptions import NotFoundError
from app.models import CycleSession, StudyCycle, TimeSession
from app.routers import api
from app.services import statistics, timer

from support import DatabaseTestCase

SESSION_ID = "0b6f1c9e-5d0a-4c7e-9a51-3f2a9d8e7c10"
OTHER_SESSION_ID = "7d3e2b1a-8c4f-4e6d-b2a9-1c0f5e4d3b21"


class TimerServiceTestCase(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.topic, self.other_topic = self.make_topics("Limits", "Derivatives")

    def test_start_creates_running_session(self) -> None:
        result = timer.start_session(self.db, "user-1", self.topic.id, SESSION_ID)

        self.assertEqual(result.id, SESSION_ID)
        self.assertEqual(result.duration_ms, 0)
        self.assertIsNone(result.end_time)
        self.assertEqual(result.session_type, "study")

    def test_repeated_start_returns_existing_session(self) -> None:
        timer.start_session(self.db, "user-1", self.topic.id, SESSION_ID)
        timer.start_session(self.db, "user-1", self.topic.id, SESSION_ID)

        self.assertEqual(self.db.query(TimeSession).count(), 1)

    def test_start_for_foreign_topic(self) -> None:
        (foreign,) = self.make_topics("Secret", user_id="user-2")

        with self.assertRaises(NotFoundError):
            timer.start_session(self.db, "user-1", foreign.id, SESSION_ID)

    def test_stop_overwrites_duration(self) -> None:
        timer.start_session(self.db, "user-1", self.topic.id, SESSION_ID)
        timer.heartbeat(self.db, "user-1", SESSION_ID, 5_000)

        first = timer.stop_session(self.db, "user-1", SESSION_ID, 3_000)
        self.assertEqual(first.duration_ms, 3_000)
        self.assertIsNotNone(first.end_time)

        # A duplicated stop must not add up
        second = timer.stop_session(self.db, "user-1", SESSION_ID, 4_000)
        self.assertEqual(second.duration_ms, 4_000)

    def test_stop_unknown_session_returns_none(self) -> None:
        self.assertIsNone(timer.stop_session(self.db, "user-1", SESSION_ID, 1_000))

    def test_heartbeat_overwrites_and_checks_owner(self) -> None:
        timer.start_session(self.db, "user-1", self.topic.id, SESSION_ID)

        self.assertTrue(timer.heartbeat(self.db, "user-1", SESSION_ID, 30_000).success)
        self.assertTrue(timer.heartbeat(self.db, "user-1", SESSION_ID, 60_000).success)
        self.assertFalse(timer.heartbeat(self.db, "user-2", SESSION_ID, 90_000).success)

        session = self.db.get(TimeSession, SESSION_ID)
        self.db.refresh(session)
        self.assertEqual(session.duration_ms, 60_000)

    def test_late_heartbeat_does_not_overwrite_final_total(self) -> None:
        timer.start_session(self.db, "user-1", self.topic.id, SESSION_ID)
        timer.stop_session(self.db, "user-1", SESSION_ID, 95_000)

        late = timer.heartbeat(self.db, "user-1", SESSION_ID, 90_000)

        self.assertFalse(late.success)
        session = self.db.get(TimeSession, SESSION_ID)
        self.db.refresh(session)
        self.assertEqual(session.duration_ms, 95_000)

    def test_totals_roll_up_to_discipline_and_study(self) -> None:
        timer.start_session(self.db, "user-1", self.topic.id, SESSION_ID)
        timer.stop_session(self.db, "user-1", SESSION_ID, 120_000)
        timer.start_session(self.db, "user-1", self.topic.id, OTHER_SESSION_ID)
        timer.stop_session(self.db, "user-1", OTHER_SESSION_ID, 30_000)

        totals = timer.get_totals(self.db, "user-1", [self.topic.id, self.other_topic.id])

        self.assertEqual(totals.topic_totals, {self.topic.id: 150_000, self.other_topic.id: 0})
        self.assertEqual(totals.discipline_totals, {self.topic.discipline_id: 150_000})
        self.assertEqual(totals.study_totals, {self.topic.discipline.study_id: 150_000})

    def test_totals_ignore_foreign_topics(self) -> None:
        (foreign,) = self.make_topics("Secret", user_id="user-2")

        totals = timer.get_totals(self.db, "user-1", [foreign.id])

        self.assertEqual(totals.topic_totals, {})
        self.assertEqual(timer.get_totals(self.db, "user-1", []).study_totals, {})

    def test_sweep_removes_empty_sessions(self) -> None:
        now = datetime(2026, 10, 19, 12, 0)
        self.db.add_all(
            [
                TimeSession(id="finished-empty", topic_id=self.topic.id,
                            start_time=now - timedelta(minutes=5), end_time=now, duration_ms=0),
                TimeSession(id="running-fresh", topic_id=self.topic.id,
                            start_time=now - timedelta(minutes=5), duration_ms=0),
                TimeSession(id="running-stale", topic_id=self.topic.id,
                            start_time=now - timedelta(hours=3), duration_ms=0),
                TimeSession(id="finished-real", topic_id=self.topic.id,
                            start_time=now - timedelta(hours=2), end_time=now, duration_ms=60_000),
            ]
        )
        self.db.commit()

        deleted = timer.sweep_empty_sessions(self.db, now=now)

        self.assertEqual(deleted, 2)
        remaining = {s.id for s in self.db.query(TimeSession).all()}
        self.assertEqual(remaining, {"running-fresh", "finished-real"})

    def test_sweep_unlinks_cycle_sessions(self) -> None:
        now = datetime(2026, 10, 19, 12, 0)
        self.db.add(
            TimeSession(id="finished-empty", topic_id=self.topic.id,
                        start_time=now - timedelta(minutes=5), end_time=now, duration_ms=0)
        )
        self.db.flush()
        cycle = StudyCycle(user_id="user-1", name="Finals")
        scheduled = CycleSession(
            cycle=cycle,
            topic_id=self.topic.id,
            scheduled_date=now,
            status="completed",
            time_session_id="finished-empty",
        )
        self.db.add_all([cycle, scheduled])
        self.db.commit()

        timer.sweep_empty_sessions(self.db, now=now)

        self.db.refresh(scheduled)
        self.assertIsNone(scheduled.time_session_id)
        self.assertEqual(scheduled.status, "completed")
        self.assertEqual(self.db.query(TimeSession).count(), 0)


class StatisticsTestCase(DatabaseTestCase):
    def test_statistics_count_finalized_sessions_only(self) -> None:
        (topic,) = self.make_topics("Limits")
        now = datetime(2026, 10, 21, 18, 0)  # Wednesday
        self.db.add_all(
            [
                TimeSession(id="monday", topic_id=topic.id, start_time=datetime(2026, 10, 19, 9, 0),
                            end_time=datetime(2026, 10, 19, 10, 0), duration_ms=3_600_000),
                TimeSession(id="last-week", topic_id=topic.id, start_time=datetime(2026, 10, 12, 9, 0),
                            end_time=datetime(2026, 10, 12, 9, 30), duration_ms=1_800_000),
                TimeSession(id="running", topic_id=topic.id, start_time=datetime(2026, 10, 21, 17, 0),
                            duration_ms=600_000),
                TimeSession(id="future", topic_id=topic.id, start_time=datetime(2026, 10, 22, 9, 0),
                            end_time=datetime(2026, 10, 22, 10, 0), duration_ms=3_600_000),
            ]
        )
        self.db.commit()

        summary = statistics.get_statistics(self.db, "user-1", now=now)

        self.assertEqual(summary.this_week.total_ms, 3_600_000)
        self.assertEqual(summary.this_week.total_formatted, "01:00:00")
        self.assertEqual(summary.this_month.total_ms, 5_400_000)
        self.assertEqual(summary.this_month.days_studied, 2)
        self.assertEqual(summary.this_month.avg_per_day_formatted, "00:45:00")
        self.assertEqual([s.id for s in summary.recent_sessions], ["monday", "last-week"])

    def test_statistics_of_other_user_are_empty(self) -> None:
        self.make_topics("Limits")

        summary = statistics.get_statistics(self.db, "user-2")

        self.assertEqual(summary.this_month.session_count, 0)
        self.assertEqual(summary.recent_sessions, [])

    def test_session_details_use_live_time_for_running_session(self) -> None:
        (topic,) = self.make_topics("Limits")
        start = datetime(2026, 10, 19, 9, 0)
        self.db.add(TimeSession(id=SESSION_ID, topic_id=topic.id, start_time=start, duration_ms=60_000))
        self.db.commit()

        details = statistics.get_session_details(
            self.db, "user-1", SESSION_ID, now=start + timedelta(minutes=90)
        )

        self.assertEqual(details.duration_formatted, "01:30")
        self.assertIsNone(details.end_time)
        self.assertEqual(details.topic_name, "Limits")

    def test_session_details_raises_http_404_when_not_found(self) -> None:
        with self.assertRaises(HTTPException) as context:
            api.get_session_details(SESSION_ID, db=self.db, user_id="user-1")

        self.assertEqual(context.exception.status_code, 404)


class ApiTestCase(DatabaseTestCase):
    def setUp(self) -> None:
        super().setUp()
        from main import app

        def override_get_db():
            db = self.SessionLocal()
            try:
                yield db
            finally:
                db.close()

        self.app = app
        self.app.dependency_overrides[get_db] = override_get_db
        self.client = TestClient(self.app)
        self.headers = {"X-User-Id": "user-1"}

    def tearDown(self) -> None:
        self.app.dependency_overrides.clear()
        super().tearDown()

    def test_requests_without_identity_are_rejected(self) -> None:
        response = self.client.get("/api/studies")

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["type"], "AuthenticationError")

    def test_session_cookie_identifies_user(self) -> None:
        self.client.cookies.set("session_user", "user-1")

        response = self.client.get("/api/studies")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [])

    def test_study_hierarchy_and_timer_round(self) -> None:
        study = self.client.post("/api/studies", json={"name": "Bar exam"}, headers=self.headers)
        self.assertEqual(study.status_code, 201)
        study_id = study.json()["id"]

        discipline = self.client.post(
            f"/api/studies/{study_id}/disciplines", json={"name": "Civil law"}, headers=self.headers
        )
        discipline_id = discipline.json()["id"]
        topic = self.client.post(
            f"/api/disciplines/{discipline_id}/topics", json={"name": "Contracts"}, headers=self.headers
        )
        topic_id = topic.json()["id"]
        self.assertEqual(topic.json()["disciplineId"], discipline_id)

        started = self.client.post(
            "/api/timer/start", json={"topicId": topic_id, "sessionId": SESSION_ID}, headers=self.headers
        )
        self.assertEqual(started.status_code, 200)
        self.assertEqual(started.json()["durationMs"], 0)

        beat = self.client.post(
            "/api/timer/heartbeat", json={"sessionId": SESSION_ID, "deltaMs": 30_000}, headers=self.headers
        )
        self.assertEqual(beat.json(), {"success": True})

        stopped = self.client.post(
            "/api/timer/stop", json={"sessionId": SESSION_ID, "duration": 45_000}, headers=self.headers
        )
        self.assertEqual(stopped.json()["durationMs"], 45_000)

        totals = self.client.post("/api/timer/totals", json={"topicIds": [topic_id]}, headers=self.headers)
        self.assertEqual(totals.json()["studyTotals"], {study_id: 45_000})

        listing = self.client.get("/api/studies", headers=self.headers).json()
        self.assertEqual(listing[0]["disciplineCount"], 1)
        self.assertEqual(listing[0]["topicCount"], 1)

    def test_stop_unknown_session_returns_null(self) -> None:
        response = self.client.post(
            "/api/timer/stop", json={"sessionId": SESSION_ID, "duration": 1_000}, headers=self.headers
        )

        self.assertEqual(response.status_code, 200)
        self.assertIsNone(response.json())

    def test_stop_rejects_out_of_range_duration(self) -> None:
        response = self.client.post(
            "/api/timer/stop", json={"sessionId": SESSION_ID, "duration": -1}, headers=self.headers
        )
        self.assertEqual(response.status_code, 422)

        response = self.client.post(
            "/api/timer/stop", json={"sessionId": "not-a-uuid", "duration": 10}, headers=self.headers
        )
        self.assertEqual(response.status_code, 422)

    def test_unknown_topic_maps_to_404(self) -> None:
        response = self.client.post(
            "/api/timer/start", json={"topicId": "missing", "sessionId": SESSION_ID}, headers=self.headers
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["type"], "NotFoundError")
        self.assertEqual(response.json()["detail"], "Topic not found or access denied")

    def test_distribution_preview(self) -> None:
        response = self.client.post(
            "/api/cycles/distribution",
            json={
                "disciplines": [
                    {"id": "d1", "name": "Law", "topicCount": 3, "importance": 5, "knowledge": 1},
                    {"id": "d2", "name": "Art", "topicCount": 1, "importance": 1, "knowledge": 5},
                ],
                "totalAvailableHours": 20,
            },
        )

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual([d["id"] for d in body["disciplines"]], ["d1", "d2"])
        self.assertIn("estimatedHours", body["disciplines"][0])
        self.assertEqual(body["totalHours"], 20)

    def test_health(self) -> None:
        response = self.client.get("/api/health")

        self.assertEqual(response.json()["status"], "ok")


if __name__ == "__main__":
    unittest.main()
