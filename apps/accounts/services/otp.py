import secrets
from datetime import timedelta

from django.conf import settings
from django.utils import timezone


class OTPError(Exception):
    message = "Invalid OTP."


class InvalidOTP(OTPError):
    message = "Invalid OTP."


class ExpiredOTP(OTPError):
    message = "OTP has expired."


def generate_otp() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def issue_otp(user, now=None) -> str:
    """Stores a fresh code on ``user`` (unsaved) and returns it."""
    now = now or timezone.now()
    user.otp = generate_otp()
    user.otp_expires_at = now + timedelta(minutes=settings.OTP_TTL_MINUTES)
    return user.otp


def check_otp(user, code: str, now=None):
    """
    Raises ``InvalidOTP`` unless ``code`` matches the stored one exactly,
    ``ExpiredOTP`` unless ``now`` is strictly before the stored expiry.
    """
    now = now or timezone.now()
    if not user.otp or code != user.otp:
        raise InvalidOTP()
    if user.otp_expires_at is None or now >= user.otp_expires_at:
        raise ExpiredOTP()


def clear_otp(user):
    user.otp = ""
    user.otp_expires_at = None
