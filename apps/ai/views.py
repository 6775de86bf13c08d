import logging

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import permissions, status
from rest_framework.views import APIView

from apps.common.config_log import log_api_event
from apps.common.responses import EnvelopeSerializer, ErrorEnvelopeSerializer, error, success

from .content import ContentKind, StaleContent, unwrap
from .models import DailyContent, GeneratedWeeklyContent, LearningPlanStructure
from .serializers import (
    GoalValidationRequestSerializer,
    GoalValidationResultSerializer,
    LearningPlanSummarySerializer,
    PlanStructureRequestSerializer,
    WeeklyContentRequestSerializer,
)
from .services.learning_content import DAYS_PER_WEEK, delete_plan, get_content_service

logger = logging.getLogger(__name__)

STALE_MESSAGE = "Stale content data found, regenerating."


def _stale(exc: StaleContent):
    logger.warning("Serving 404 for %s", exc)
    return error(STALE_MESSAGE, status.HTTP_404_NOT_FOUND)


def _plan_or_none(request, plan_id):
    return LearningPlanStructure.objects.filter(id=plan_id, user=request.user).first()


def _week_out_of_range(plan, week):
    if not 1 <= week <= plan.total_weeks:
        return error(
            f"week_number must be between 1 and {plan.total_weeks}",
            status.HTTP_400_BAD_REQUEST,
        )
    return None


def _weekly_data(row: GeneratedWeeklyContent) -> dict:
    return {
        "id": row.id,
        "plan_id": row.plan_id,
        "week_number": row.week_number,
        "content": unwrap(ContentKind.WEEKLY_CONTENT, row.content_data),
        "generated_based_on": row.generated_based_on,
    }


def _daily_data(row: DailyContent) -> dict:
    return {
        "id": row.id,
        "plan_id": row.plan_id,
        "week_number": row.week_number,
        "day_number": row.day_number,
        "lesson": unwrap(ContentKind.DAILY_LESSON, row.content),
        "resources": unwrap(ContentKind.DAILY_RESOURCES, row.resources)["resources"],
        "has_exercises": row.exercises is not None,
        "generated_based_on": row.generated_based_on,
    }


class LearningPlanListView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="listLearningPlans",
        responses={200: LearningPlanSummarySerializer(many=True)},
        description="Lists the caller's learning plans.",
    )
    def get(self, request):
        plans = LearningPlanStructure.objects.filter(user=request.user)
        data = LearningPlanSummarySerializer(plans, many=True).data
        return success("Learning plans fetched successfully", data)


class PlanStructureCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="createPlanStructure",
        request=PlanStructureRequestSerializer,
        responses={
            200: EnvelopeSerializer,
            201: EnvelopeSerializer,
            400: ErrorEnvelopeSerializer,
            502: ErrorEnvelopeSerializer,
        },
        description=(
            "Generates the week-by-week structure of a learning plan. "
            "If the caller already has a plan for the same goal it is returned as is."
        ),
    )
    def post(self, request):
        s = PlanStructureRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        log_api_event(logger, "plan_structure_requested", user_id=request.user.id, payload=s.validated_data)

        plan, created = get_content_service().create_plan_structure(request.user, **s.validated_data)
        data = {"id": plan.id, "plan": unwrap(ContentKind.PLAN_STRUCTURE, plan.structure)}

        log_api_event(logger, "plan_structure_ready", user_id=request.user.id, plan_id=plan.id, created=created)
        if not created:
            return success("Learning plan structure already exists", data)
        return success("Learning plan structure generated successfully", data, status=status.HTTP_201_CREATED)


class PlanStructureDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="retrievePlanStructure",
        responses={200: EnvelopeSerializer, 404: ErrorEnvelopeSerializer},
    )
    def get(self, request, pk):
        plan = _plan_or_none(request, pk)
        if not plan:
            return error("Learning plan not found", status.HTTP_404_NOT_FOUND)
        try:
            structure = unwrap(ContentKind.PLAN_STRUCTURE, plan.structure)
        except StaleContent as exc:
            return _stale(exc)
        return success("Learning plan structure fetched successfully", {"id": plan.id, "plan": structure})


class WeeklyContentCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="createWeeklyContent",
        request=WeeklyContentRequestSerializer,
        responses={
            200: EnvelopeSerializer,
            201: EnvelopeSerializer,
            400: ErrorEnvelopeSerializer,
            404: ErrorEnvelopeSerializer,
            502: ErrorEnvelopeSerializer,
        },
        description=(
            "Generates the daily milestones of one week. `user_progress` defaults to a "
            "snapshot of the caller's logged sessions."
        ),
    )
    def post(self, request):
        s = WeeklyContentRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        plan = _plan_or_none(request, data["plan_id"])
        if not plan:
            return error("Learning plan not found", status.HTTP_404_NOT_FOUND)
        out_of_range = _week_out_of_range(plan, data["week_number"])
        if out_of_range:
            return out_of_range

        try:
            row, created = get_content_service().generate_weekly_content(
                request.user, plan, data["week_number"], data.get("user_progress")
            )
        except StaleContent as exc:
            return _stale(exc)

        log_api_event(
            logger,
            "weekly_content_ready",
            user_id=request.user.id,
            plan_id=plan.id,
            week_number=row.week_number,
            created=created,
        )
        if not created:
            return success("content already generated", _weekly_data(row))
        return success("Weekly content generated successfully", _weekly_data(row), status=status.HTTP_201_CREATED)


class WeeklyContentDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="retrieveWeeklyContent",
        responses={200: EnvelopeSerializer, 404: ErrorEnvelopeSerializer},
    )
    def get(self, request, week, plan_id):
        row = GeneratedWeeklyContent.objects.filter(
            plan_id=plan_id, week_number=week, user=request.user
        ).first()
        if not row:
            return error("Weekly content not found", status.HTTP_404_NOT_FOUND)
        try:
            data = _weekly_data(row)
        except StaleContent as exc:
            return _stale(exc)
        return success("Weekly content fetched successfully", data)


class DailyContentView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="dailyContent",
        responses={
            200: EnvelopeSerializer,
            201: EnvelopeSerializer,
            400: ErrorEnvelopeSerializer,
            404: ErrorEnvelopeSerializer,
            502: ErrorEnvelopeSerializer,
        },
        description=(
            "Returns the lesson and resources for one day, generating them on first access. "
            "The week's content must have been generated first."
        ),
    )
    def get(self, request, day, week, plan_id):
        if not 1 <= day <= DAYS_PER_WEEK:
            return error(f"day_number must be between 1 and {DAYS_PER_WEEK}", status.HTTP_400_BAD_REQUEST)

        plan = _plan_or_none(request, plan_id)
        if not plan:
            return error("Learning plan not found", status.HTTP_404_NOT_FOUND)
        weekly = GeneratedWeeklyContent.objects.filter(plan=plan, week_number=week, user=request.user).first()
        if not weekly:
            return error(
                "Weekly content not found. Please generate the weekly content first.",
                status.HTTP_404_NOT_FOUND,
            )

        try:
            row, created = get_content_service().get_or_generate_daily(request.user, plan, weekly, day)
            data = _daily_data(row)
        except StaleContent as exc:
            return _stale(exc)

        log_api_event(
            logger,
            "daily_content_ready",
            user_id=request.user.id,
            plan_id=plan.id,
            week_number=week,
            day_number=day,
            created=created,
        )
        if not created:
            return success("Daily content fetched successfully", data)
        return success("Daily content generated successfully", data, status=status.HTTP_201_CREATED)


class DailyExercisesView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="dailyExercises",
        parameters=[
            OpenApiParameter("regenerate", bool, description="Discard stored exercises and generate new ones"),
        ],
        responses={200: EnvelopeSerializer, 404: ErrorEnvelopeSerializer, 502: ErrorEnvelopeSerializer},
        description="Practice exercises for a day's lesson. The daily lesson must exist.",
    )
    def get(self, request, day, week, plan_id):
        daily = DailyContent.objects.filter(
            plan_id=plan_id, week_number=week, day_number=day, user=request.user
        ).first()
        if not daily:
            return error(
                "Daily content not found. Please generate the daily lesson first.",
                status.HTTP_404_NOT_FOUND,
            )

        regenerate = request.query_params.get("regenerate", "").lower() in ("1", "true", "yes")
        try:
            daily = get_content_service().generate_exercises(daily, regenerate=regenerate)
            exercises = unwrap(ContentKind.DAILY_EXERCISES, daily.exercises)["exercises"]
        except StaleContent as exc:
            return _stale(exc)

        log_api_event(
            logger,
            "daily_exercises_ready",
            user_id=request.user.id,
            daily_content_id=daily.id,
            count=len(exercises),
        )
        return success(
            "Exercises generated successfully",
            {"daily_content_id": daily.id, "exercises": exercises},
        )


class LearningPlanDeleteView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="deleteLearningPlan",
        responses={200: EnvelopeSerializer, 404: ErrorEnvelopeSerializer},
        description="Deletes a plan with all of its weekly and daily content in one transaction.",
    )
    def delete(self, request, pk):
        if not delete_plan(request.user, pk):
            return error("Learning plan not found", status.HTTP_404_NOT_FOUND)
        log_api_event(logger, "learning_plan_deleted", user_id=request.user.id, plan_id=pk)
        return success("Learning plan deleted successfully")


class ValidateGoalView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="validateGoal",
        request=GoalValidationRequestSerializer,
        responses={200: GoalValidationResultSerializer, 502: ErrorEnvelopeSerializer},
        description="Asks the model whether a learning goal is appropriate for a study plan.",
    )
    def post(self, request):
        s = GoalValidationRequestSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        result = get_content_service().validate_goal(s.validated_data["goal"])
        return success("Goal validated", result)
