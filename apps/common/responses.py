from rest_framework import serializers, status as http_status
from rest_framework.response import Response


def success(message: str, data=None, status: int = http_status.HTTP_200_OK) -> Response:
    return Response({"status": status, "message": message, "data": data}, status=status)


def error(message: str, status: int, details=None) -> Response:
    body = {"error_code": status, "error_message": message}
    if details is not None:
        body["details"] = details
    return Response(body, status=status)


class EnvelopeSerializer(serializers.Serializer):
    status = serializers.IntegerField()
    message = serializers.CharField()
    data = serializers.JSONField(allow_null=True)


class ErrorEnvelopeSerializer(serializers.Serializer):
    error_code = serializers.IntegerField()
    error_message = serializers.CharField()
    details = serializers.DictField(required=False)
