import logging
import smtplib

from django.conf import settings
from django.core.mail import send_mail

from apps.common.exceptions import UpstreamServiceError

logger = logging.getLogger(__name__)

EMAIL_MESSAGE_TEMPLATES = {
    "verify": (
        "Hello {name},\n\n"
        "Your verification code is: {code}\n"
        "It expires in {ttl} minutes.\n"
    ),
    "reset": (
        "Hello {name},\n\n"
        "Use this code to reset your password: {code}\n"
        "It expires in {ttl} minutes. If you did not ask for a reset, ignore this email.\n"
    ),
}

SUBJECTS = {
    "verify": "Verify your account",
    "reset": "Reset your password",
}


def send_otp_email(user, template_key="verify"):
    """Sends the user's current OTP. Any delivery failure becomes a 502."""
    template = EMAIL_MESSAGE_TEMPLATES.get(template_key)
    if template is None:
        raise ValueError(f"Unknown email template: {template_key}")

    message = template.format(
        name=user.first_name or user.email,
        code=user.otp,
        ttl=settings.OTP_TTL_MINUTES,
    )
    try:
        send_mail(
            subject=SUBJECTS[template_key],
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[user.email],
            fail_silently=False,
        )
    except (smtplib.SMTPException, OSError) as exc:
        logger.exception("Failed to send %s email to user_id=%s", template_key, user.pk)
        raise UpstreamServiceError("Failed to send email.") from exc
