import logging

import requests
from django.conf import settings

from apps.common.exceptions import CredentialsRejected, ServiceNotConfigured, UpstreamServiceError

logger = logging.getLogger(__name__)


def verify_google_id_token(id_token: str) -> dict:
    """
    Verifies a Google ID token against Google's tokeninfo endpoint (which
    checks the signature and expiry) and compares the audience with our
    client id. Returns ``{"email", "given_name", "family_name"}``.
    """
    client_id = settings.GOOGLE_CLIENT_ID
    if not client_id:
        raise ServiceNotConfigured("SSO is not configured correctly")

    try:
        resp = requests.get(
            settings.GOOGLE_TOKENINFO_URL,
            params={"id_token": id_token},
            timeout=settings.GOOGLE_HTTP_TIMEOUT,
        )
    except requests.RequestException as exc:
        logger.exception("Google tokeninfo request failed")
        raise UpstreamServiceError("Google verification is unavailable.") from exc

    if resp.status_code != 200:
        raise CredentialsRejected("Invalid Google token")

    try:
        data = resp.json()
    except ValueError as exc:
        logger.error("Google tokeninfo returned a non-JSON body")
        raise UpstreamServiceError("Google verification returned an unreadable response.") from exc

    if data.get("aud") != client_id:
        raise CredentialsRejected("Token audience mismatch")
    if not data.get("email"):
        raise CredentialsRejected("Google token carries no email")
    if str(data.get("email_verified", "true")).lower() != "true":
        raise CredentialsRejected("Google email is not verified")

    return {
        "email": data["email"],
        "given_name": data.get("given_name", ""),
        "family_name": data.get("family_name", ""),
    }
