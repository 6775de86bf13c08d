import copy
from types import SimpleNamespace
from unittest.mock import patch

from django.apps import apps as django_apps
from django.contrib.auth import get_user_model
from django.db.models.signals import pre_delete
from django.test import TestCase
from rest_framework import status
from rest_framework.test import APITestCase

from apps.accounts.authentication import issue_token
from apps.ai.client import GeminiClient, LLMResponseError, load_json_response
from apps.ai.content import (
    CONTENT_SCHEMA_VERSION,
    ContentKind,
    InvalidGeneratedContent,
    StaleContent,
    unwrap,
    wrap,
)
from apps.ai.models import DailyContent, GeneratedWeeklyContent, LearningPlanStructure
from apps.ai.services.learning_content import _insert_or_existing, delete_plan
from apps.ai.views import STALE_MESSAGE
from apps.common.exceptions import ServiceNotConfigured
from apps.learning.models import StudySession

User = get_user_model()


PLAN = {
    "goal": "whatever the model says",
    "total_weeks": 9,
    "daily_commitment_minutes": 5,
    "weekly_themes": [
        {"week_number": 1, "theme": "Basics", "objectives": ["Install"], "key_concepts": ["cargo"], "prerequisites": []},
        {"week_number": 2, "theme": "Ownership", "objectives": ["Borrow"], "key_concepts": ["lifetimes"], "prerequisites": ["Basics"]},
    ],
    "prerequisites": {"required_knowledge": ["Any programming language"]},
    "adaptive_rules": {"if_behind": "Repeat the week"},
}

WEEKLY = {
    "theme": "Basics",
    "objectives": ["Write a CLI"],
    "key_concepts": ["cargo", "crates"],
    "prerequisites": [],
    "daily_milestones": [
        {"day_number": 1, "topic": "Toolchain", "description": "Install rustup", "duration_minutes": 30, "difficulty": "beginner"},
        {"day_number": 2, "topic": "Hello", "description": "First program", "duration_minutes": 30, "difficulty": "beginner"},
    ],
    "adaptive_notes": "Go slower if needed.",
}

DAILY = {
    "lesson": {
        "title": "Installing Rust",
        "summary": "Set up the toolchain.",
        "key_points": ["rustup", "cargo new"],
        "explanation": "<p>Run <code>rustup</code>.</p>",
    },
    "resources": [
        {"type": "documentation", "title": "The Book", "url": "https://doc.rust-lang.org/book/", "description": "Official guide"},
    ],
}

EXERCISES = {
    "exercises": [
        {
            "type": "multiple_choice",
            "question": "Which tool installs Rust?",
            "options": ["rustup", "pip"],
            "answer": "rustup",
            "explanation": "rustup manages toolchains.",
            "difficulty": "easy",
        }
    ]
}


class FakeLLMClient:
    """Returns canned JSON payloads in order and records prompts."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def generate_json(self, prompt, schema=None, system_instruction=None):
        self.calls.append({"prompt": prompt, "schema": schema})
        result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return copy.deepcopy(result)


def use_client(client):
    return patch.object(django_apps.get_app_config("ai"), "client", client)


class ContentDocumentTest(TestCase):
    """Versioned envelope around generated JSON"""

    def test_wrap_then_unwrap(self):
        document = wrap(ContentKind.WEEKLY_CONTENT, WEEKLY)

        self.assertEqual(document["kind"], "weekly_content")
        self.assertEqual(document["version"], CONTENT_SCHEMA_VERSION)
        self.assertEqual(unwrap(ContentKind.WEEKLY_CONTENT, document)["daily_milestones"][0]["topic"], "Toolchain")

    def test_wrap_fills_defaults(self):
        payload = {"title": "T", "explanation": "<p>x</p>"}
        document = wrap(ContentKind.DAILY_LESSON, payload)
        self.assertEqual(document["payload"]["key_points"], [])
        self.assertEqual(document["payload"]["summary"], "")

    def test_wrap_rejects_wrong_shape(self):
        with self.assertRaises(InvalidGeneratedContent):
            wrap(ContentKind.PLAN_STRUCTURE, {"goal": "x", "weekly_themes": []})
        with self.assertRaises(InvalidGeneratedContent):
            wrap(ContentKind.DAILY_LESSON, None)

    def test_unwrap_rejects_stale_documents(self):
        good = wrap(ContentKind.DAILY_LESSON, DAILY["lesson"])
        stale_cases = [
            None,
            DAILY["lesson"],  # pre-envelope blob
            {**good, "version": CONTENT_SCHEMA_VERSION + 1},
            {**good, "kind": ContentKind.DAILY_RESOURCES},
            {**good, "payload": {"title": "missing explanation"}},
        ]
        for document in stale_cases:
            with self.subTest(document=document):
                with self.assertRaises(StaleContent):
                    unwrap(ContentKind.DAILY_LESSON, document)


class GeminiClientTest(TestCase):
    """JSON parsing and configuration of the model client"""

    def test_load_json_response(self):
        self.assertEqual(load_json_response(SimpleNamespace(text='{"a": 1}')), {"a": 1})

    def test_invalid_json_is_hard_error(self):
        with self.assertRaises(LLMResponseError):
            load_json_response(SimpleNamespace(text="Sure! Here is your plan: {"))
        with self.assertRaises(LLMResponseError):
            load_json_response(SimpleNamespace(text=None))

    def test_unconfigured_client(self):
        client = GeminiClient(api_key=None, model="gemini-test")
        self.assertFalse(client.configured)
        with self.assertRaises(ServiceNotConfigured):
            client.generate_json("hello")

    def test_startup_builds_one_client(self):
        client = django_apps.get_app_config("ai").client
        self.assertIsInstance(client, GeminiClient)


class LearningAPITestCase(APITestCase):

    def setUp(self):
        self.user = User.objects.create_user(email="gail@example.com", password="x", is_verified=True)
        self.other = User.objects.create_user(email="hank@example.com", password="x", is_verified=True)
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(self.user)}")

    def make_plan(self, user=None, goal="Learn Rust", total_weeks=2):
        return LearningPlanStructure.objects.create(
            user=user or self.user,
            goal=goal,
            total_weeks=total_weeks,
            daily_commitment=30,
            structure=wrap(ContentKind.PLAN_STRUCTURE, {**PLAN, "goal": goal, "total_weeks": total_weeks}),
        )

    def make_weekly(self, plan, week_number=1, user=None):
        return GeneratedWeeklyContent.objects.create(
            plan=plan,
            user=user or self.user,
            week_number=week_number,
            content_data=wrap(ContentKind.WEEKLY_CONTENT, WEEKLY),
        )

    def make_daily(self, plan, week_number=1, day_number=1, user=None):
        return DailyContent.objects.create(
            plan=plan,
            user=user or self.user,
            week_number=week_number,
            day_number=day_number,
            content=wrap(ContentKind.DAILY_LESSON, DAILY["lesson"]),
            resources=wrap(ContentKind.DAILY_RESOURCES, {"resources": DAILY["resources"]}),
        )


class PlanStructureAPITest(LearningAPITestCase):
    """POST/GET /learnings/structure"""

    def test_generates_and_stores_plan(self):
        fake = FakeLLMClient(PLAN)
        with use_client(fake):
            resp = self.client.post(
                "/learnings/structure",
                {"goal": "Learn Rust", "total_weeks": 2, "daily_commitment": 30},
                format="json",
            )

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        plan = LearningPlanStructure.objects.get(user=self.user)
        self.assertEqual(resp.data["data"]["id"], plan.id)
        body = resp.data["data"]["plan"]
        self.assertEqual(body["goal"], "Learn Rust")
        self.assertEqual(body["total_weeks"], 2)
        self.assertEqual(body["daily_commitment_minutes"], 30)
        self.assertEqual(len(body["weekly_themes"]), 2)
        self.assertEqual(plan.structure["kind"], ContentKind.PLAN_STRUCTURE)
        self.assertIn("Learn Rust", fake.calls[0]["prompt"])

    def test_same_goal_returns_existing_plan(self):
        plan = self.make_plan()
        fake = FakeLLMClient()
        with use_client(fake):
            resp = self.client.post(
                "/learnings/structure",
                {"goal": "Learn Rust", "total_weeks": 4, "daily_commitment": 60},
                format="json",
            )

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["id"], plan.id)
        self.assertEqual(fake.calls, [])

    def test_same_goal_of_other_user_is_not_shared(self):
        self.make_plan(user=self.other)
        with use_client(FakeLLMClient(PLAN)):
            resp = self.client.post(
                "/learnings/structure",
                {"goal": "Learn Rust", "total_weeks": 2, "daily_commitment": 30},
                format="json",
            )
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(LearningPlanStructure.objects.filter(goal="Learn Rust").count(), 2)

    def test_malformed_model_output_is_upstream_error(self):
        with use_client(FakeLLMClient(LLMResponseError())):
            resp = self.client.post(
                "/learnings/structure",
                {"goal": "Learn Rust", "total_weeks": 2, "daily_commitment": 30},
                format="json",
            )
        self.assertEqual(resp.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(resp.data["error_code"], 502)
        self.assertFalse(LearningPlanStructure.objects.exists())

    def test_wrong_shape_is_upstream_error(self):
        with use_client(FakeLLMClient({"goal": "x"})):
            resp = self.client.post(
                "/learnings/structure",
                {"goal": "Learn Rust", "total_weeks": 2, "daily_commitment": 30},
                format="json",
            )
        self.assertEqual(resp.status_code, status.HTTP_502_BAD_GATEWAY)

    def test_unconfigured_model_is_unavailable(self):
        with use_client(GeminiClient(api_key=None, model="gemini-test")):
            resp = self.client.post(
                "/learnings/structure",
                {"goal": "Learn Rust", "total_weeks": 2, "daily_commitment": 30},
                format="json",
            )
        self.assertEqual(resp.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)

    def test_validation(self):
        resp = self.client.post("/learnings/structure", {"goal": "Learn Rust", "total_weeks": 0}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("total_weeks", resp.data["details"])

    def test_get_structure(self):
        plan = self.make_plan()
        theirs = self.make_plan(user=self.other, goal="Theirs")

        resp = self.client.get(f"/learnings/structure/{plan.id}")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["plan"]["weekly_themes"][1]["theme"], "Ownership")

        self.assertEqual(self.client.get(f"/learnings/structure/{theirs.id}").status_code, status.HTTP_404_NOT_FOUND)

    def test_stale_structure_is_not_found(self):
        plan = self.make_plan()
        plan.structure = {"weekly_themes": "legacy blob"}
        plan.save()

        resp = self.client.get(f"/learnings/structure/{plan.id}")

        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["error_message"], STALE_MESSAGE)

    def test_stale_structure_is_regenerated_on_post(self):
        plan = self.make_plan()
        plan.structure = {"kind": ContentKind.PLAN_STRUCTURE, "version": 0, "payload": {}}
        plan.save()

        with use_client(FakeLLMClient(PLAN)):
            resp = self.client.post(
                "/learnings/structure",
                {"goal": "Learn Rust", "total_weeks": 2, "daily_commitment": 30},
                format="json",
            )

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data["data"]["id"], plan.id)
        plan.refresh_from_db()
        self.assertEqual(plan.structure["version"], CONTENT_SCHEMA_VERSION)

    def test_list_plans(self):
        self.make_plan()
        self.make_plan(user=self.other, goal="Theirs")

        resp = self.client.get("/learnings")

        self.assertEqual([p["goal"] for p in resp.data["data"]], ["Learn Rust"])


class WeeklyContentAPITest(LearningAPITestCase):
    """POST/GET /learnings/weekly-content"""

    def test_generates_with_progress_snapshot(self):
        plan = self.make_plan()
        StudySession.objects.create(user=self.user, topic="Rust", duration_minutes=25)
        fake = FakeLLMClient(WEEKLY)

        with use_client(fake):
            resp = self.client.post("/learnings/weekly-content", {"plan_id": plan.id, "week_number": 1}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        row = GeneratedWeeklyContent.objects.get(plan=plan, week_number=1)
        self.assertEqual(row.generated_based_on["total_minutes"], 25)
        self.assertEqual(resp.data["data"]["content"]["theme"], "Basics")
        self.assertIn("Basics", fake.calls[0]["prompt"])

    def test_uses_supplied_progress(self):
        plan = self.make_plan()
        with use_client(FakeLLMClient(WEEKLY)):
            self.client.post(
                "/learnings/weekly-content",
                {"plan_id": plan.id, "week_number": 2, "user_progress": {"completed_days": 5}},
                format="json",
            )
        row = GeneratedWeeklyContent.objects.get(plan=plan, week_number=2)
        self.assertEqual(row.generated_based_on, {"completed_days": 5})

    def test_second_request_is_already_generated(self):
        plan = self.make_plan()
        self.make_weekly(plan)
        fake = FakeLLMClient()

        with use_client(fake):
            resp = self.client.post("/learnings/weekly-content", {"plan_id": plan.id, "week_number": 1}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["message"], "content already generated")
        self.assertEqual(fake.calls, [])
        self.assertEqual(GeneratedWeeklyContent.objects.filter(plan=plan).count(), 1)

    def test_week_out_of_range_and_foreign_plan(self):
        plan = self.make_plan(total_weeks=2)
        theirs = self.make_plan(user=self.other, goal="Theirs")

        resp = self.client.post("/learnings/weekly-content", {"plan_id": plan.id, "week_number": 3}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)

        resp = self.client.post("/learnings/weekly-content", {"plan_id": theirs.id, "week_number": 1}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_get_weekly_content(self):
        plan = self.make_plan()
        self.make_weekly(plan)

        resp = self.client.get(f"/learnings/weekly-content/1/{plan.id}")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["week_number"], 1)

        self.assertEqual(
            self.client.get(f"/learnings/weekly-content/2/{plan.id}").status_code,
            status.HTTP_404_NOT_FOUND,
        )

    def test_stale_weekly_content(self):
        plan = self.make_plan()
        row = self.make_weekly(plan)
        row.content_data = {**row.content_data, "version": 0}
        row.save()

        resp = self.client.get(f"/learnings/weekly-content/1/{plan.id}")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["error_message"], STALE_MESSAGE)

        with use_client(FakeLLMClient(WEEKLY)):
            resp = self.client.post("/learnings/weekly-content", {"plan_id": plan.id, "week_number": 1}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        row.refresh_from_db()
        self.assertEqual(row.content_data["version"], CONTENT_SCHEMA_VERSION)

    def test_unique_conflict_returns_stored_row(self):
        plan = self.make_plan()
        stored = self.make_weekly(plan)

        row, created = _insert_or_existing(
            GeneratedWeeklyContent,
            {"plan": plan, "week_number": 1, "user": self.user},
            {"content_data": wrap(ContentKind.WEEKLY_CONTENT, WEEKLY)},
        )

        self.assertFalse(created)
        self.assertEqual(row.pk, stored.pk)
        self.assertEqual(GeneratedWeeklyContent.objects.count(), 1)


class DailyContentAPITest(LearningAPITestCase):
    """GET /learnings/daily-content and exercises"""

    def test_requires_weekly_content(self):
        plan = self.make_plan()
        resp = self.client.get(f"/learnings/daily-content/1/1/{plan.id}")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_generates_once(self):
        plan = self.make_plan()
        self.make_weekly(plan)
        fake = FakeLLMClient(DAILY)

        with use_client(fake):
            first = self.client.get(f"/learnings/daily-content/1/1/{plan.id}")
            second = self.client.get(f"/learnings/daily-content/1/1/{plan.id}")

        self.assertEqual(first.status_code, status.HTTP_201_CREATED)
        self.assertEqual(second.status_code, status.HTTP_200_OK)
        self.assertEqual(len(fake.calls), 1)
        self.assertIn("Toolchain", fake.calls[0]["prompt"])
        data = second.data["data"]
        self.assertEqual(data["lesson"]["title"], "Installing Rust")
        self.assertEqual(data["resources"][0]["url"], "https://doc.rust-lang.org/book/")
        self.assertEqual(DailyContent.objects.count(), 1)

    def test_day_out_of_range(self):
        plan = self.make_plan()
        self.assertEqual(
            self.client.get(f"/learnings/daily-content/8/1/{plan.id}").status_code,
            status.HTTP_400_BAD_REQUEST,
        )

    def test_exercises_require_daily_content(self):
        plan = self.make_plan()
        resp = self.client.get(f"/learnings/daily-content/1/1/{plan.id}/exercises")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(
            resp.data["error_message"],
            "Daily content not found. Please generate the daily lesson first.",
        )

    def test_exercises_generated_and_saved(self):
        plan = self.make_plan()
        daily = self.make_daily(plan)
        fake = FakeLLMClient(EXERCISES, EXERCISES)

        with use_client(fake):
            resp = self.client.get(f"/learnings/daily-content/1/1/{plan.id}/exercises")
            again = self.client.get(f"/learnings/daily-content/1/1/{plan.id}/exercises")
            regenerated = self.client.get(f"/learnings/daily-content/1/1/{plan.id}/exercises?regenerate=true")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["exercises"][0]["answer"], "rustup")
        self.assertEqual(again.status_code, status.HTTP_200_OK)
        self.assertEqual(regenerated.status_code, status.HTTP_200_OK)
        self.assertEqual(len(fake.calls), 2)
        self.assertIn("Installing Rust", fake.calls[0]["prompt"])
        daily.refresh_from_db()
        self.assertEqual(daily.exercises["kind"], ContentKind.DAILY_EXERCISES)


class ValidateGoalAPITest(LearningAPITestCase):

    def test_validate_goal(self):
        with use_client(FakeLLMClient({"appropriate": True, "reason": "Concrete and achievable."})):
            resp = self.client.post("/learnings/validate-goal", {"goal": "Learn Rust"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"], {"appropriate": True, "reason": "Concrete and achievable."})


class DeletePlanTest(LearningAPITestCase):
    """DELETE /learnings/plan/{id} is all-or-nothing and owner-scoped"""

    def setUp(self):
        super().setUp()
        self.plan = self.make_plan()
        self.make_weekly(self.plan, 1)
        self.make_weekly(self.plan, 2)
        self.make_daily(self.plan, 1, 1)
        self.make_daily(self.plan, 1, 2)

    def test_deletes_everything(self):
        resp = self.client.delete(f"/learnings/plan/{self.plan.id}")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertFalse(LearningPlanStructure.objects.filter(id=self.plan.id).exists())
        self.assertFalse(GeneratedWeeklyContent.objects.filter(plan_id=self.plan.id).exists())
        self.assertFalse(DailyContent.objects.filter(plan_id=self.plan.id).exists())

        self.assertEqual(self.client.delete(f"/learnings/plan/{self.plan.id}").status_code, status.HTTP_404_NOT_FOUND)

    def test_other_user_cannot_delete(self):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(self.other)}")

        resp = self.client.delete(f"/learnings/plan/{self.plan.id}")

        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(GeneratedWeeklyContent.objects.filter(plan=self.plan).count(), 2)
        self.assertEqual(DailyContent.objects.filter(plan=self.plan).count(), 2)

    def test_failure_rolls_back_all_three(self):
        def fail(sender, instance, **kwargs):
            raise RuntimeError("disk on fire")

        pre_delete.connect(fail, sender=LearningPlanStructure, weak=False)
        try:
            with self.assertRaises(RuntimeError):
                delete_plan(self.user, self.plan.id)
        finally:
            pre_delete.disconnect(fail, sender=LearningPlanStructure)

        self.assertTrue(LearningPlanStructure.objects.filter(id=self.plan.id).exists())
        self.assertEqual(GeneratedWeeklyContent.objects.filter(plan=self.plan).count(), 2)
        self.assertEqual(DailyContent.objects.filter(plan=self.plan).count(), 2)
