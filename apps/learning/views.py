import logging

from drf_spectacular.utils import OpenApiParameter, extend_schema
from rest_framework import permissions, status
from rest_framework.views import APIView

from apps.common.config_log import log_api_event
from apps.common.responses import EnvelopeSerializer, ErrorEnvelopeSerializer, error, success

from .models import Goal, StudySession, split_tags
from .serializers import (
    DashboardSerializer,
    GoalProgressSerializer,
    GoalSerializer,
    SessionFilterSerializer,
    StudySessionSerializer,
)
from .services import stats

logger = logging.getLogger(__name__)


class SessionListCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="listSessions",
        parameters=[
            OpenApiParameter("topic", str, description="Case-insensitive substring of the topic"),
            OpenApiParameter("tag", str, description="Substring of the comma-joined tags"),
            OpenApiParameter("from_date", str, description="Inclusive, YYYY-MM-DD"),
            OpenApiParameter("to_date", str, description="Inclusive, YYYY-MM-DD"),
            OpenApiParameter("rating", int),
        ],
        responses={200: EnvelopeSerializer, 400: ErrorEnvelopeSerializer},
        description="Lists the caller's study sessions, newest first.",
    )
    def get(self, request):
        f = SessionFilterSerializer(data=request.query_params)
        f.is_valid(raise_exception=True)
        filters = f.validated_data

        qs = StudySession.objects.filter(user=request.user)
        if filters.get("topic"):
            qs = qs.filter(topic__icontains=filters["topic"])
        if filters.get("tag"):
            qs = qs.filter(tags__icontains=filters["tag"])
        if filters.get("from_date"):
            qs = qs.filter(date__date__gte=filters["from_date"])
        if filters.get("to_date"):
            qs = qs.filter(date__date__lte=filters["to_date"])
        if filters.get("rating"):
            qs = qs.filter(rating=filters["rating"])

        data = StudySessionSerializer(qs.order_by("-date", "-id"), many=True).data
        return success("Sessions fetched successfully", data)

    @extend_schema(
        operation_id="createSession",
        request=StudySessionSerializer,
        responses={201: EnvelopeSerializer, 400: ErrorEnvelopeSerializer},
        description="Logs a study session.",
    )
    def post(self, request):
        s = StudySessionSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        session = s.save(user=request.user)
        log_api_event(
            logger,
            "session_created",
            user_id=request.user.id,
            session_id=session.id,
            minutes=session.duration_minutes,
        )
        return success(
            "Session created successfully",
            StudySessionSerializer(session).data,
            status=status.HTTP_201_CREATED,
        )


class SessionDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self, request, pk):
        return StudySession.objects.filter(id=pk, user=request.user).first()

    @extend_schema(
        operation_id="retrieveSession",
        responses={200: EnvelopeSerializer, 404: ErrorEnvelopeSerializer},
    )
    def get(self, request, pk):
        session = self.get_object(request, pk)
        if not session:
            return error("Session not found", status.HTTP_404_NOT_FOUND)
        return success("Session fetched successfully", StudySessionSerializer(session).data)

    @extend_schema(
        operation_id="updateSession",
        request=StudySessionSerializer,
        responses={200: EnvelopeSerializer, 400: ErrorEnvelopeSerializer, 404: ErrorEnvelopeSerializer},
        description="Partial update; only the fields sent are changed.",
    )
    def put(self, request, pk):
        session = self.get_object(request, pk)
        if not session:
            return error("Session not found", status.HTTP_404_NOT_FOUND)
        s = StudySessionSerializer(session, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        session = s.save()
        return success("Session updated successfully", StudySessionSerializer(session).data)

    @extend_schema(
        operation_id="deleteSession",
        responses={200: EnvelopeSerializer, 404: ErrorEnvelopeSerializer},
    )
    def delete(self, request, pk):
        deleted, _ = StudySession.objects.filter(id=pk, user=request.user).delete()
        if not deleted:
            return error("Session not found", status.HTTP_404_NOT_FOUND)
        log_api_event(logger, "session_deleted", user_id=request.user.id, session_id=pk)
        return success("Session deleted successfully")


class SessionTagsView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="listSessionTags",
        responses={200: EnvelopeSerializer},
        description="Sorted distinct tags used across the caller's sessions.",
    )
    def get(self, request):
        raw = StudySession.objects.filter(user=request.user).exclude(tags="").values_list("tags", flat=True)
        tags = sorted({tag for value in raw for tag in split_tags(value)})
        return success("Tags fetched successfully", tags)


class GoalListCreateView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="listGoals",
        responses={200: EnvelopeSerializer},
    )
    def get(self, request):
        goals = Goal.objects.filter(user=request.user)
        return success("Goals fetched successfully", GoalSerializer(goals, many=True).data)

    @extend_schema(
        operation_id="createGoal",
        request=GoalSerializer,
        responses={201: EnvelopeSerializer, 400: ErrorEnvelopeSerializer},
    )
    def post(self, request):
        s = GoalSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        goal = s.save(user=request.user)
        log_api_event(logger, "goal_created", user_id=request.user.id, goal_id=goal.id)
        return success("Goal created successfully", GoalSerializer(goal).data, status=status.HTTP_201_CREATED)


class GoalDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get_object(self, request, pk):
        return Goal.objects.filter(id=pk, user=request.user).first()

    @extend_schema(
        operation_id="retrieveGoal",
        responses={200: EnvelopeSerializer, 404: ErrorEnvelopeSerializer},
    )
    def get(self, request, pk):
        goal = self.get_object(request, pk)
        if not goal:
            return error("Goal not found", status.HTTP_404_NOT_FOUND)
        return success("Goal fetched successfully", GoalSerializer(goal).data)

    @extend_schema(
        operation_id="updateGoal",
        request=GoalSerializer,
        responses={200: EnvelopeSerializer, 400: ErrorEnvelopeSerializer, 404: ErrorEnvelopeSerializer},
    )
    def put(self, request, pk):
        goal = self.get_object(request, pk)
        if not goal:
            return error("Goal not found", status.HTTP_404_NOT_FOUND)
        s = GoalSerializer(goal, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        goal = s.save()
        return success("Goal updated successfully", GoalSerializer(goal).data)

    @extend_schema(
        operation_id="deleteGoal",
        responses={200: EnvelopeSerializer, 404: ErrorEnvelopeSerializer},
    )
    def delete(self, request, pk):
        deleted, _ = Goal.objects.filter(id=pk, user=request.user).delete()
        if not deleted:
            return error("Goal not found", status.HTTP_404_NOT_FOUND)
        return success("Goal deleted successfully")


class GoalProgressView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="goalProgress",
        responses={200: GoalProgressSerializer(many=True)},
        description="Minutes logged in each goal's current window against its target (percentage capped at 100).",
    )
    def get(self, request):
        return success("Goal progress fetched successfully", stats.goals_progress_for(request.user))


class DashboardView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="dashboardStats",
        responses={200: DashboardSerializer},
        description="Totals, current streak, top five topics and the last seven days of activity.",
    )
    def get(self, request):
        return success("Dashboard fetched successfully", stats.dashboard_for(request.user))
