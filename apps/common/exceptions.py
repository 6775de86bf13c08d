import logging

from rest_framework import status
from rest_framework.exceptions import APIException, ValidationError
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class UpstreamServiceError(APIException):
    """An external collaborator (email, LLM, Google) failed."""
    status_code = status.HTTP_502_BAD_GATEWAY
    default_detail = "Upstream service failed."
    default_code = "upstream_error"


class ServiceNotConfigured(APIException):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Service is not configured."
    default_code = "not_configured"


class CredentialsRejected(APIException):
    """Third-party credentials were presented on a public route and refused."""
    status_code = status.HTTP_401_UNAUTHORIZED
    default_detail = "Invalid credentials."
    default_code = "credentials_rejected"


def _first_message(data) -> str:
    if isinstance(data, dict):
        for field, value in data.items():
            message = _first_message(value)
            if field in ("non_field_errors", "detail"):
                return message
            return f"{field}: {message}"
    if isinstance(data, (list, tuple)) and data:
        return _first_message(data[0])
    return str(data)


def envelope_exception_handler(exc, context):
    """
    Wraps DRF's default handler so every error leaves the API as
    ``{"error_code", "error_message"}``. Validation errors keep the
    per-field messages under ``details``.
    """
    response = exception_handler(exc, context)
    if response is None:
        return None

    if isinstance(exc, ValidationError):
        details = response.data if isinstance(response.data, dict) else {"non_field_errors": response.data}
        response.data = {
            "error_code": response.status_code,
            "error_message": _first_message(details),
            "details": details,
        }
        return response

    if response.status_code >= 500:
        view = context.get("view")
        logger.error(
            "upstream failure in %s: %s",
            view.__class__.__name__ if view else "-",
            exc,
        )

    data = response.data
    message = data.get("detail", "") if isinstance(data, dict) else _first_message(data)
    response.data = {"error_code": response.status_code, "error_message": str(message)}
    return response
