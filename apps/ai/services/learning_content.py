import json
import logging
from typing import Optional

from django.apps import apps
from django.db import IntegrityError, transaction

from apps.ai.content import ContentKind, InvalidGeneratedContent, StaleContent, unwrap, wrap
from apps.ai.models import DailyContent, GeneratedWeeklyContent, LearningPlanStructure
from apps.learning.services.stats import progress_snapshot

logger = logging.getLogger(__name__)

DAYS_PER_WEEK = 7


_STR_ARRAY = {"type": "array", "items": {"type": "string"}}

WEEKLY_THEME_SCHEMA = {
    "type": "object",
    "properties": {
        "week_number": {"type": "integer"},
        "theme": {"type": "string"},
        "objectives": _STR_ARRAY,
        "key_concepts": _STR_ARRAY,
        "prerequisites": _STR_ARRAY,
    },
    "required": ["week_number", "theme", "objectives", "key_concepts"],
}

PLAN_STRUCTURE_SCHEMA = {
    "type": "object",
    "properties": {
        "goal": {"type": "string"},
        "total_weeks": {"type": "integer"},
        "daily_commitment_minutes": {"type": "integer"},
        "weekly_themes": {"type": "array", "items": WEEKLY_THEME_SCHEMA},
        "prerequisites": {
            "type": "object",
            "properties": {
                "required_knowledge": _STR_ARRAY,
                "recommended_resources": _STR_ARRAY,
            },
        },
        "adaptive_rules": {
            "type": "object",
            "properties": {
                "if_behind": {"type": "string"},
                "if_ahead": {"type": "string"},
                "review_frequency": {"type": "string"},
            },
        },
    },
    "required": ["goal", "total_weeks", "daily_commitment_minutes", "weekly_themes"],
}

WEEKLY_CONTENT_SCHEMA = {
    "type": "object",
    "properties": {
        "theme": {"type": "string"},
        "objectives": _STR_ARRAY,
        "key_concepts": _STR_ARRAY,
        "prerequisites": _STR_ARRAY,
        "daily_milestones": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "day_number": {"type": "integer"},
                    "topic": {"type": "string"},
                    "description": {"type": "string"},
                    "duration_minutes": {"type": "integer"},
                    "difficulty": {"type": "string", "enum": ["beginner", "intermediate", "advanced"]},
                },
                "required": ["day_number", "topic", "description", "duration_minutes"],
            },
        },
        "adaptive_notes": {"type": "string"},
    },
    "required": ["theme", "objectives", "key_concepts", "daily_milestones"],
}

DAILY_LESSON_SCHEMA = {
    "type": "object",
    "properties": {
        "lesson": {
            "type": "object",
            "properties": {
                "title": {"type": "string"},
                "summary": {"type": "string"},
                "key_points": _STR_ARRAY,
                "explanation": {"type": "string", "description": "HTML body of the lesson"},
            },
            "required": ["title", "summary", "key_points", "explanation"],
        },
        "resources": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": ["article", "video", "documentation", "book", "course", "exercise"]},
                    "title": {"type": "string"},
                    "url": {"type": "string"},
                    "description": {"type": "string"},
                },
                "required": ["type", "title"],
            },
        },
    },
    "required": ["lesson", "resources"],
}

EXERCISES_SCHEMA = {
    "type": "object",
    "properties": {
        "exercises": {
            "type": "array",
            "items": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": ["multiple_choice", "true_false", "short_answer", "coding"]},
                    "question": {"type": "string"},
                    "options": _STR_ARRAY,
                    "answer": {"type": "string"},
                    "explanation": {"type": "string"},
                    "difficulty": {"type": "string", "enum": ["easy", "medium", "hard"]},
                },
                "required": ["type", "question", "answer"],
            },
        },
    },
    "required": ["exercises"],
}

GOAL_VALIDATION_SCHEMA = {
    "type": "object",
    "properties": {
        "appropriate": {"type": "boolean"},
        "reason": {"type": "string"},
    },
    "required": ["appropriate", "reason"],
}


SYSTEM_PROMPT = """
You are an instructional designer building self-paced learning plans.
Always answer with JSON that matches the provided response schema exactly.
Keep the workload inside the learner's daily time budget.
Write lesson explanations as simple semantic HTML (p, ul, li, code, pre, h3).
""".strip()


def _progress_block(progress: Optional[dict]) -> str:
    if not progress:
        return "No prior progress recorded."
    return json.dumps(progress, ensure_ascii=False, default=str)


def build_plan_prompt(goal: str, total_weeks: int, daily_commitment: int) -> str:
    return (
        f"Create a {total_weeks}-week learning plan for the goal: \"{goal}\".\n"
        f"The learner can study {daily_commitment} minutes per day.\n"
        f"Return exactly {total_weeks} weekly themes numbered 1..{total_weeks}, each with "
        "objectives, key concepts and prerequisites.\n"
        "Also list overall prerequisites and adaptive rules for when the learner "
        "falls behind or gets ahead."
    )


def build_weekly_prompt(plan: LearningPlanStructure, structure: dict, week_number: int, progress) -> str:
    theme = next(
        (t for t in structure["weekly_themes"] if t["week_number"] == week_number),
        None,
    )
    theme_block = json.dumps(theme, ensure_ascii=False) if theme else "No theme was planned for this week; infer one."
    return (
        f"Learning goal: \"{plan.goal}\" ({plan.total_weeks} weeks, "
        f"{plan.daily_commitment} minutes per day).\n"
        f"Detail week {week_number} of the plan.\n"
        f"Planned theme for this week: {theme_block}\n"
        f"Learner progress so far: {_progress_block(progress)}\n"
        f"Produce {DAYS_PER_WEEK} daily milestones (day_number 1..{DAYS_PER_WEEK}), each fitting "
        f"within {plan.daily_commitment} minutes, and adaptive notes based on the progress."
    )


def build_daily_prompt(plan: LearningPlanStructure, weekly: dict, week_number: int, day_number: int) -> str:
    milestone = next(
        (m for m in weekly["daily_milestones"] if m["day_number"] == day_number),
        None,
    )
    milestone_block = json.dumps(milestone, ensure_ascii=False) if milestone else "No milestone planned; pick the next logical step."
    return (
        f"Learning goal: \"{plan.goal}\".\n"
        f"Week {week_number} theme: {weekly['theme']}. Key concepts: {', '.join(weekly['key_concepts'])}.\n"
        f"Write the lesson for day {day_number}. Milestone: {milestone_block}\n"
        f"The lesson must be completable in {plan.daily_commitment} minutes.\n"
        "Include 3 to 5 external resources (articles, videos, documentation) with real URLs."
    )


def build_exercises_prompt(lesson: dict) -> str:
    return (
        f"Write 5 practice exercises for the lesson \"{lesson['title']}\".\n"
        f"Summary: {lesson['summary']}\n"
        f"Key points: {'; '.join(lesson['key_points'])}\n"
        "Mix multiple choice, true/false and short answer questions. "
        "Give options only for multiple choice and true/false. Always include the answer and a short explanation."
    )


def build_goal_validation_prompt(goal: str) -> str:
    return (
        f"A learner wants to set this learning goal: \"{goal}\".\n"
        "Decide whether it is an appropriate, safe and achievable educational goal "
        "that can be turned into a structured study plan. Explain briefly."
    )


def _insert_or_existing(model, lookup: dict, values: dict):
    """
    Inserts a row guarded by a unique constraint. A concurrent insert of the
    same key surfaces as IntegrityError and the stored row is returned instead.
    """
    try:
        with transaction.atomic():
            return model.objects.create(**lookup, **values), True
    except IntegrityError:
        logger.info("Concurrent insert for %s %s, using stored row", model.__name__, lookup)
        return model.objects.get(**lookup), False


def get_content_service():
    return LearningContentService(apps.get_app_config("ai").client)


class LearningContentService:
    """Prompts the model, validates its JSON and persists versioned documents."""

    def __init__(self, client):
        self.client = client

    def _generate(self, prompt: str, schema: dict) -> dict:
        result = self.client.generate_json(prompt, schema=schema, system_instruction=SYSTEM_PROMPT)
        if not isinstance(result, dict):
            raise InvalidGeneratedContent()
        return result

    # --- goal -----------------------------------------------------------------

    def validate_goal(self, goal: str) -> dict:
        result = self._generate(build_goal_validation_prompt(goal), GOAL_VALIDATION_SCHEMA)
        return {
            "appropriate": bool(result.get("appropriate")),
            "reason": str(result.get("reason", "")),
        }

    # --- plan structure -------------------------------------------------------

    def create_plan_structure(self, user, goal: str, total_weeks: int, daily_commitment: int):
        """Returns ``(plan, created)``. A plan already stored for the same goal is reused."""
        existing = LearningPlanStructure.objects.filter(user=user, goal=goal).first()
        if existing is not None:
            try:
                unwrap(ContentKind.PLAN_STRUCTURE, existing.structure)
                return existing, False
            except StaleContent as exc:
                logger.warning("Regenerating plan %s: %s", existing.id, exc)

        payload = self._generate(
            build_plan_prompt(goal, total_weeks, daily_commitment), PLAN_STRUCTURE_SCHEMA
        )
        # The request is authoritative for these fields.
        payload.update(goal=goal, total_weeks=total_weeks, daily_commitment_minutes=daily_commitment)
        document = wrap(ContentKind.PLAN_STRUCTURE, payload)

        if existing is not None:
            existing.structure = document
            existing.total_weeks = total_weeks
            existing.daily_commitment = daily_commitment
            existing.save(update_fields=["structure", "total_weeks", "daily_commitment", "updated_at"])
            return existing, True

        return _insert_or_existing(
            LearningPlanStructure,
            {"user": user, "goal": goal},
            {"total_weeks": total_weeks, "daily_commitment": daily_commitment, "structure": document},
        )

    # --- weekly content -------------------------------------------------------

    def generate_weekly_content(self, user, plan: LearningPlanStructure, week_number: int, user_progress=None):
        """
        Returns ``(row, created)``. Raises ``StaleContent`` when the plan itself
        can no longer be read.
        """
        lookup = {"plan": plan, "week_number": week_number, "user": user}
        existing = GeneratedWeeklyContent.objects.filter(**lookup).first()
        if existing is not None:
            try:
                unwrap(ContentKind.WEEKLY_CONTENT, existing.content_data)
                return existing, False
            except StaleContent as exc:
                logger.warning("Regenerating weekly content %s: %s", existing.id, exc)

        structure = unwrap(ContentKind.PLAN_STRUCTURE, plan.structure)
        progress = user_progress if user_progress else progress_snapshot(user)
        payload = self._generate(
            build_weekly_prompt(plan, structure, week_number, progress), WEEKLY_CONTENT_SCHEMA
        )
        document = wrap(ContentKind.WEEKLY_CONTENT, payload)

        if existing is not None:
            existing.content_data = document
            existing.generated_based_on = progress
            existing.save(update_fields=["content_data", "generated_based_on", "updated_at"])
            return existing, True

        return _insert_or_existing(
            GeneratedWeeklyContent, lookup, {"content_data": document, "generated_based_on": progress}
        )

    # --- daily content --------------------------------------------------------

    def get_or_generate_daily(self, user, plan: LearningPlanStructure, weekly: GeneratedWeeklyContent, day_number: int):
        """Returns ``(row, created)`` for the lesson and resources of one day."""
        lookup = {"plan": plan, "week_number": weekly.week_number, "day_number": day_number, "user": user}
        existing = DailyContent.objects.filter(**lookup).first()
        if existing is not None:
            try:
                unwrap(ContentKind.DAILY_LESSON, existing.content)
                unwrap(ContentKind.DAILY_RESOURCES, existing.resources)
                return existing, False
            except StaleContent as exc:
                logger.warning("Regenerating daily content %s: %s", existing.id, exc)

        weekly_payload = unwrap(ContentKind.WEEKLY_CONTENT, weekly.content_data)
        result = self._generate(
            build_daily_prompt(plan, weekly_payload, weekly.week_number, day_number), DAILY_LESSON_SCHEMA
        )
        lesson = wrap(ContentKind.DAILY_LESSON, result.get("lesson"))
        resources = wrap(ContentKind.DAILY_RESOURCES, {"resources": result.get("resources", [])})
        snapshot = progress_snapshot(user)

        if existing is not None:
            existing.content = lesson
            existing.resources = resources
            existing.exercises = None
            existing.generated_based_on = snapshot
            existing.save(update_fields=["content", "resources", "exercises", "generated_based_on", "updated_at"])
            return existing, True

        return _insert_or_existing(
            DailyContent,
            lookup,
            {"content": lesson, "resources": resources, "generated_based_on": snapshot},
        )

    def generate_exercises(self, daily: DailyContent, regenerate: bool = False) -> DailyContent:
        if daily.exercises is not None and not regenerate:
            try:
                unwrap(ContentKind.DAILY_EXERCISES, daily.exercises)
                return daily
            except StaleContent as exc:
                logger.warning("Regenerating exercises for daily content %s: %s", daily.id, exc)

        lesson = unwrap(ContentKind.DAILY_LESSON, daily.content)
        payload = self._generate(build_exercises_prompt(lesson), EXERCISES_SCHEMA)
        daily.exercises = wrap(ContentKind.DAILY_EXERCISES, payload)
        daily.save(update_fields=["exercises", "updated_at"])
        return daily


def delete_plan(user, plan_id: int) -> bool:
    """
    Deletes daily content, weekly content and the plan itself as one unit,
    every statement scoped to (plan id, user). Returns False when the caller
    owns no such plan.
    """
    with transaction.atomic():
        plan = (
            LearningPlanStructure.objects.select_for_update()
            .filter(id=plan_id, user=user)
            .first()
        )
        if plan is None:
            return False
        daily_deleted, _ = DailyContent.objects.filter(plan_id=plan_id, user=user).delete()
        weekly_deleted, _ = GeneratedWeeklyContent.objects.filter(plan_id=plan_id, user=user).delete()
        LearningPlanStructure.objects.filter(id=plan_id, user=user).delete()

    logger.info(
        "Deleted plan %s for user %s (%s daily, %s weekly rows)",
        plan_id, user.id, daily_deleted, weekly_deleted,
    )
    return True
