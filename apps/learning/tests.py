from datetime import date, timedelta
from types import SimpleNamespace

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase

from apps.accounts.authentication import issue_token
from apps.learning.models import Goal, StudySession
from apps.learning.services.stats import (
    SessionRecord,
    build_dashboard,
    compute_streak,
    daily_activity,
    goal_percentage,
    goal_progress,
    goal_window,
    progress_snapshot,
    top_topics,
)

User = get_user_model()

TODAY = date(2026, 10, 21)  # a Wednesday


def days_ago(n):
    return TODAY - timedelta(days=n)


class StreakTest(TestCase):
    """Consecutive-day counting from today or yesterday"""

    def test_streak_table(self):
        cases = [
            ([], 0),
            ([TODAY], 1),
            ([TODAY, days_ago(1), days_ago(2)], 3),
            ([TODAY, days_ago(3)], 1),
            ([days_ago(1)], 1),
            ([days_ago(1), days_ago(2)], 2),
            ([days_ago(2), days_ago(3)], 0),
            ([TODAY + timedelta(days=1)], 0),
        ]
        for days, expected in cases:
            with self.subTest(days=days):
                self.assertEqual(compute_streak(days, TODAY), expected)

    def test_duplicate_days_count_once(self):
        self.assertEqual(compute_streak([TODAY, TODAY, days_ago(1), days_ago(1)], TODAY), 2)

    def test_unsorted_input(self):
        self.assertEqual(compute_streak([days_ago(2), TODAY, days_ago(1), days_ago(5)], TODAY), 3)


class AggregationTest(TestCase):
    """Top topics, daily activity and goal percentage"""

    def test_top_topics_orders_by_minutes(self):
        records = [
            SessionRecord(TODAY, "A", 30),
            SessionRecord(TODAY, "A", 20),
            SessionRecord(TODAY, "B", 10),
        ]
        self.assertEqual(
            top_topics(records),
            [
                {"topic": "A", "minutes": 50, "sessions": 2},
                {"topic": "B", "minutes": 10, "sessions": 1},
            ],
        )

    def test_top_topics_ties_break_by_name_and_limit_five(self):
        records = [SessionRecord(TODAY, name, 10) for name in "FEDCBA"]
        result = top_topics(records)
        self.assertEqual([t["topic"] for t in result], ["A", "B", "C", "D", "E"])

    def test_top_topics_is_case_sensitive(self):
        records = [SessionRecord(TODAY, "go", 10), SessionRecord(TODAY, "Go", 15)]
        self.assertEqual([t["topic"] for t in top_topics(records)], ["Go", "go"])

    def test_daily_activity_is_seven_days_oldest_first(self):
        records = [
            SessionRecord(TODAY, "A", 30),
            SessionRecord(TODAY, "B", 5),
            SessionRecord(days_ago(6), "A", 10),
            SessionRecord(days_ago(7), "A", 99),
        ]
        activity = daily_activity(records, TODAY)

        self.assertEqual(len(activity), 7)
        self.assertEqual(activity[0], {"date": days_ago(6).isoformat(), "minutes": 10})
        self.assertEqual(activity[-1], {"date": TODAY.isoformat(), "minutes": 35})
        self.assertEqual(sum(day["minutes"] for day in activity), 45)

    def test_goal_percentage_is_clamped(self):
        self.assertEqual(goal_percentage(500, 60), 100.0)
        self.assertEqual(goal_percentage(30, 60), 50.0)
        self.assertEqual(goal_percentage(0, 60), 0.0)
        self.assertEqual(goal_percentage(10, 0), 0.0)
        self.assertEqual(goal_percentage(1, 3), 33.33)

    def test_goal_window(self):
        self.assertEqual(goal_window(True, TODAY), (date(2026, 10, 18), date(2026, 10, 25)))
        self.assertEqual(goal_window(True, date(2026, 10, 18)), (date(2026, 10, 18), date(2026, 10, 25)))
        self.assertEqual(goal_window(True, date(2026, 10, 24)), (date(2026, 10, 18), date(2026, 10, 25)))
        self.assertEqual(goal_window(False, TODAY), (TODAY, TODAY + timedelta(days=1)))

    def test_goal_progress_uses_window(self):
        goal = SimpleNamespace(id=7, title="Daily hour", target_minutes=60, is_weekly=False)
        records = [SessionRecord(TODAY, "A", 500), SessionRecord(days_ago(1), "A", 40)]

        progress = goal_progress(goal, records, TODAY)

        self.assertEqual(progress["actual"], 500)
        self.assertEqual(progress["percentage"], 100.0)
        self.assertEqual(progress["period_start"], "2026-10-21")
        self.assertEqual(progress["period_end"], "2026-10-22")

    def test_weekly_goal_progress(self):
        goal = SimpleNamespace(id=1, title="Week", target_minutes=200, is_weekly=True)
        records = [
            SessionRecord(date(2026, 10, 18), "A", 50),
            SessionRecord(TODAY, "A", 50),
            SessionRecord(date(2026, 10, 17), "A", 300),
        ]
        progress = goal_progress(goal, records, TODAY)
        self.assertEqual(progress["actual"], 100)
        self.assertEqual(progress["percentage"], 50.0)

    def test_build_dashboard_empty(self):
        dashboard = build_dashboard([], TODAY)
        self.assertEqual(dashboard["total_sessions"], 0)
        self.assertEqual(dashboard["total_minutes"], 0)
        self.assertEqual(dashboard["streak"], 0)
        self.assertEqual(dashboard["top_topics"], [])
        self.assertEqual(len(dashboard["daily_activity"]), 7)


class ProgressSnapshotTest(TestCase):
    """Snapshot read from the database"""

    def setUp(self):
        self.user = User.objects.create_user(email="snap@example.com", password="x")
        now = timezone.now()
        StudySession.objects.create(user=self.user, topic="Rust", duration_minutes=30, date=now)
        StudySession.objects.create(user=self.user, topic="Rust", duration_minutes=15, date=now - timedelta(days=1))

    def test_snapshot(self):
        snap = progress_snapshot(self.user)
        self.assertEqual(snap["total_sessions"], 2)
        self.assertEqual(snap["total_minutes"], 45)
        self.assertEqual(snap["streak"], 2)
        self.assertEqual(snap["top_topics"][0]["topic"], "Rust")


class AuthedAPITestCase(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(email="erin@example.com", password="x", is_verified=True)
        self.other = User.objects.create_user(email="frank@example.com", password="x", is_verified=True)
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(self.user)}")


class SessionAPITest(AuthedAPITestCase):
    """CRUD, filters and ownership for /sessions"""

    def test_create_defaults_date_and_normalizes_tags(self):
        resp = self.client.post(
            "/sessions",
            {"topic": "Django", "duration_minutes": 40, "rating": 4, "tags": " web , python,, "},
            format="json",
        )

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        session = StudySession.objects.get(id=resp.data["data"]["id"])
        self.assertEqual(session.user, self.user)
        self.assertEqual(session.tags, "web,python")
        self.assertIsNotNone(session.date)

    def test_create_validation(self):
        for payload in (
            {"duration_minutes": 10},
            {"topic": "X", "duration_minutes": 0},
            {"topic": "X", "duration_minutes": 10, "rating": 6},
            {"topic": "   ", "duration_minutes": 10},
        ):
            with self.subTest(payload=payload):
                resp = self.client.post("/sessions", payload, format="json")
                self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
                self.assertEqual(resp.data["error_code"], 400)

    def test_list_filters(self):
        now = timezone.now()
        StudySession.objects.create(user=self.user, topic="Rust basics", duration_minutes=30, rating=5, tags="systems", date=now)
        StudySession.objects.create(user=self.user, topic="Go", duration_minutes=20, rating=3, tags="web", date=now - timedelta(days=10))
        StudySession.objects.create(user=self.other, topic="Rust", duration_minutes=99, date=now)

        resp = self.client.get("/sessions")
        self.assertEqual([s["topic"] for s in resp.data["data"]], ["Rust basics", "Go"])

        resp = self.client.get("/sessions", {"topic": "rust"})
        self.assertEqual([s["topic"] for s in resp.data["data"]], ["Rust basics"])

        resp = self.client.get("/sessions", {"tag": "web"})
        self.assertEqual([s["topic"] for s in resp.data["data"]], ["Go"])

        resp = self.client.get("/sessions", {"rating": 5})
        self.assertEqual(len(resp.data["data"]), 1)

        start = (timezone.localdate() - timedelta(days=11)).isoformat()
        end = (timezone.localdate() - timedelta(days=9)).isoformat()
        resp = self.client.get("/sessions", {"from_date": start, "to_date": end})
        self.assertEqual([s["topic"] for s in resp.data["data"]], ["Go"])

    def test_invalid_filter(self):
        resp = self.client.get("/sessions", {"from_date": "not-a-date"})
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_other_users_session_is_not_found(self):
        theirs = StudySession.objects.create(user=self.other, topic="Secret", duration_minutes=10)

        self.assertEqual(self.client.get(f"/sessions/{theirs.id}").status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(
            self.client.put(f"/sessions/{theirs.id}", {"topic": "Mine"}, format="json").status_code,
            status.HTTP_404_NOT_FOUND,
        )
        self.assertEqual(self.client.delete(f"/sessions/{theirs.id}").status_code, status.HTTP_404_NOT_FOUND)
        self.assertTrue(StudySession.objects.filter(id=theirs.id, topic="Secret").exists())

    def test_partial_update_and_delete(self):
        mine = StudySession.objects.create(user=self.user, topic="Go", duration_minutes=10, notes="keep")

        resp = self.client.put(f"/sessions/{mine.id}", {"duration_minutes": 25}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        mine.refresh_from_db()
        self.assertEqual(mine.duration_minutes, 25)
        self.assertEqual(mine.notes, "keep")

        self.assertEqual(self.client.delete(f"/sessions/{mine.id}").status_code, status.HTTP_200_OK)
        self.assertFalse(StudySession.objects.filter(id=mine.id).exists())

    def test_tags_are_sorted_distinct(self):
        StudySession.objects.create(user=self.user, topic="A", duration_minutes=5, tags="web, python")
        StudySession.objects.create(user=self.user, topic="B", duration_minutes=5, tags="python,api")
        StudySession.objects.create(user=self.other, topic="C", duration_minutes=5, tags="hidden")

        resp = self.client.get("/sessions/tags")

        self.assertEqual(resp.data["data"], ["api", "python", "web"])


class GoalAPITest(AuthedAPITestCase):
    """CRUD and progress for /goals"""

    def test_create_defaults_start_date(self):
        resp = self.client.post("/goals", {"title": "Read", "target_minutes": 60}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data["data"]["start_date"], timezone.localdate().isoformat())
        self.assertFalse(resp.data["data"]["is_weekly"])

    def test_create_validation(self):
        self.assertEqual(
            self.client.post("/goals", {"target_minutes": 60}, format="json").status_code,
            status.HTTP_400_BAD_REQUEST,
        )
        self.assertEqual(
            self.client.post("/goals", {"title": "X", "target_minutes": 0}, format="json").status_code,
            status.HTTP_400_BAD_REQUEST,
        )
        resp = self.client.post(
            "/goals",
            {"title": "X", "target_minutes": 5, "start_date": "2026-10-10", "end_date": "2026-10-01"},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

    def test_ownership(self):
        theirs = Goal.objects.create(user=self.other, title="Theirs", target_minutes=10)
        self.assertEqual(self.client.get(f"/goals/{theirs.id}").status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.client.delete(f"/goals/{theirs.id}").status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.client.get("/goals").data["data"], [])

    def test_update_and_delete(self):
        goal = Goal.objects.create(user=self.user, title="Old", target_minutes=10)

        resp = self.client.put(f"/goals/{goal.id}", {"title": "New", "is_weekly": True}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        goal.refresh_from_db()
        self.assertEqual(goal.title, "New")
        self.assertTrue(goal.is_weekly)
        self.assertEqual(goal.target_minutes, 10)

        self.assertEqual(self.client.delete(f"/goals/{goal.id}").status_code, status.HTTP_200_OK)
        self.assertFalse(Goal.objects.filter(id=goal.id).exists())

    def test_progress_is_clamped(self):
        goal = Goal.objects.create(user=self.user, title="Daily hour", target_minutes=60)
        StudySession.objects.create(user=self.user, topic="A", duration_minutes=500, date=timezone.now())

        resp = self.client.get("/goals/progress")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        [progress] = resp.data["data"]
        self.assertEqual(progress["goal_id"], goal.id)
        self.assertEqual(progress["actual"], 500)
        self.assertEqual(progress["percentage"], 100.0)


class DashboardAPITest(AuthedAPITestCase):

    def test_dashboard(self):
        now = timezone.now()
        StudySession.objects.create(user=self.user, topic="A", duration_minutes=30, date=now)
        StudySession.objects.create(user=self.user, topic="A", duration_minutes=20, date=now - timedelta(days=1))
        StudySession.objects.create(user=self.user, topic="B", duration_minutes=10, date=now - timedelta(days=3))
        StudySession.objects.create(user=self.other, topic="Z", duration_minutes=999, date=now)

        resp = self.client.get("/stats/dashboard")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        data = resp.data["data"]
        self.assertEqual(data["total_sessions"], 3)
        self.assertEqual(data["total_minutes"], 60)
        self.assertEqual(data["streak"], 2)
        self.assertEqual(data["top_topics"][0], {"topic": "A", "minutes": 50, "sessions": 2})
        self.assertEqual(data["daily_activity"][-1]["minutes"], 30)

    def test_requires_auth(self):
        self.client.credentials()
        resp = self.client.get("/stats/dashboard")
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
