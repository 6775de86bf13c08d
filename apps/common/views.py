from drf_spectacular.utils import extend_schema, inline_serializer
from rest_framework import permissions, serializers
from rest_framework.response import Response
from rest_framework.views import APIView


class HealthView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    @extend_schema(
        operation_id="healthCheck",
        responses={200: inline_serializer("Health", {"status": serializers.CharField()})},
        description="Liveness probe.",
    )
    def get(self, request):
        return Response({"status": "ok"})
