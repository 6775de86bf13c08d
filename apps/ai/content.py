"""
Versioned documents for model-generated content.

Every JSON blob the AI app stores is wrapped as::

    {"kind": "<content kind>", "version": <int>, "payload": {...}}

``wrap`` validates a freshly generated payload against the serializer for its
kind. ``unwrap`` refuses anything written under another kind or version, or
whose payload no longer validates, by raising ``StaleContent``; callers report
that as not found so the client regenerates.
"""
from rest_framework import serializers

from .client import LLMResponseError

CONTENT_SCHEMA_VERSION = 1


class ContentKind:
    PLAN_STRUCTURE = "plan_structure"
    WEEKLY_CONTENT = "weekly_content"
    DAILY_LESSON = "daily_lesson"
    DAILY_RESOURCES = "daily_resources"
    DAILY_EXERCISES = "daily_exercises"


class StaleContent(Exception):
    def __init__(self, kind, reason):
        super().__init__(f"stale {kind} document: {reason}")
        self.kind = kind
        self.reason = reason


class InvalidGeneratedContent(LLMResponseError):
    default_detail = "The language model returned content in an unexpected shape."


def _str_list():
    return serializers.ListField(child=serializers.CharField(allow_blank=True), default=list)


class WeeklyThemeSerializer(serializers.Serializer):
    week_number = serializers.IntegerField(min_value=1)
    theme = serializers.CharField()
    objectives = _str_list()
    key_concepts = _str_list()
    prerequisites = _str_list()


class PlanStructurePayloadSerializer(serializers.Serializer):
    goal = serializers.CharField()
    total_weeks = serializers.IntegerField(min_value=1)
    daily_commitment_minutes = serializers.IntegerField(min_value=1)
    weekly_themes = WeeklyThemeSerializer(many=True, allow_empty=False)
    prerequisites = serializers.DictField(default=dict)
    adaptive_rules = serializers.DictField(default=dict)


class DailyMilestoneSerializer(serializers.Serializer):
    day_number = serializers.IntegerField(min_value=1)
    topic = serializers.CharField()
    description = serializers.CharField(allow_blank=True, default="")
    duration_minutes = serializers.IntegerField(min_value=0)
    difficulty = serializers.CharField(allow_blank=True, default="")


class WeeklyContentPayloadSerializer(serializers.Serializer):
    theme = serializers.CharField()
    objectives = _str_list()
    key_concepts = _str_list()
    prerequisites = _str_list()
    daily_milestones = DailyMilestoneSerializer(many=True, allow_empty=False)
    adaptive_notes = serializers.CharField(allow_blank=True, default="")


class LessonPayloadSerializer(serializers.Serializer):
    title = serializers.CharField()
    summary = serializers.CharField(allow_blank=True, default="")
    key_points = _str_list()
    explanation = serializers.CharField()  # HTML


class ResourceSerializer(serializers.Serializer):
    type = serializers.CharField()
    title = serializers.CharField()
    url = serializers.CharField(allow_blank=True, default="")
    description = serializers.CharField(allow_blank=True, default="")


class ResourcesPayloadSerializer(serializers.Serializer):
    resources = ResourceSerializer(many=True)


class ExerciseSerializer(serializers.Serializer):
    type = serializers.CharField()
    question = serializers.CharField()
    options = _str_list()
    answer = serializers.CharField(allow_blank=True)
    explanation = serializers.CharField(allow_blank=True, default="")
    difficulty = serializers.CharField(allow_blank=True, default="")


class ExercisesPayloadSerializer(serializers.Serializer):
    exercises = ExerciseSerializer(many=True, allow_empty=False)


PAYLOAD_SERIALIZERS = {
    ContentKind.PLAN_STRUCTURE: PlanStructurePayloadSerializer,
    ContentKind.WEEKLY_CONTENT: WeeklyContentPayloadSerializer,
    ContentKind.DAILY_LESSON: LessonPayloadSerializer,
    ContentKind.DAILY_RESOURCES: ResourcesPayloadSerializer,
    ContentKind.DAILY_EXERCISES: ExercisesPayloadSerializer,
}


def _to_plain(value):
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_to_plain(v) for v in value]
    return value


def _validate(kind, payload):
    serializer = PAYLOAD_SERIALIZERS[kind](data=payload)
    if not serializer.is_valid():
        return None, serializer.errors
    return _to_plain(serializer.validated_data), None


def wrap(kind: str, payload) -> dict:
    data, errors = _validate(kind, payload)
    if errors is not None:
        raise InvalidGeneratedContent(f"Generated {kind} did not match the expected shape.")
    return {"kind": kind, "version": CONTENT_SCHEMA_VERSION, "payload": data}


def unwrap(kind: str, document) -> dict:
    if not isinstance(document, dict):
        raise StaleContent(kind, "not a document")
    if document.get("kind") != kind:
        raise StaleContent(kind, f"kind is {document.get('kind')!r}")
    if document.get("version") != CONTENT_SCHEMA_VERSION:
        raise StaleContent(kind, f"version is {document.get('version')!r}")
    data, errors = _validate(kind, document.get("payload"))
    if errors is not None:
        raise StaleContent(kind, "payload no longer validates")
    return data
