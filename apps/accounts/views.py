import logging

from django.contrib.auth import get_user_model
from django.db import transaction
from django.utils import timezone
from drf_spectacular.utils import extend_schema
from rest_framework import permissions, status
from rest_framework.views import APIView

from apps.common.config_log import log_api_event
from apps.common.responses import EnvelopeSerializer, ErrorEnvelopeSerializer, error, success

from .authentication import issue_token
from .serializers import (
    EmailSerializer,
    GoogleLoginSerializer,
    LoginSerializer,
    ProfileSerializer,
    ResetPasswordSerializer,
    SignupSerializer,
    UserSummarySerializer,
    VerifyOTPSerializer,
)
from .services.email import send_otp_email
from .services.google import verify_google_id_token
from .services.otp import OTPError, check_otp, clear_otp, issue_otp

logger = logging.getLogger(__name__)

User = get_user_model()

GOOGLE_DEFAULT_COMMITMENT = 30
GOOGLE_DEFAULT_GOAL = "Not specified"


def _auth_payload(user) -> dict:
    return {"token": issue_token(user), "user": UserSummarySerializer(user).data}


def _find_user(email):
    return User.objects.filter(email=email).first()


class PublicAPIView(APIView):
    permission_classes = [permissions.AllowAny]
    authentication_classes = []


class SignupView(PublicAPIView):

    @extend_schema(
        operation_id="signup",
        request=SignupSerializer,
        responses={201: EnvelopeSerializer, 400: ErrorEnvelopeSerializer, 502: ErrorEnvelopeSerializer},
        description="Registers a user (or refreshes a pending registration) and emails a 6-digit OTP.",
    )
    def post(self, request):
        s = SignupSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        data = s.validated_data

        existing = _find_user(data["email"])
        if existing is not None and existing.is_verified:
            return error(
                "User with this email already exists. Please login to continue.",
                status.HTTP_400_BAD_REQUEST,
            )

        with transaction.atomic():
            user = existing or User(email=data["email"], auth_provider=User.AuthProvider.EMAIL)
            user.set_password(data["password"])
            user.first_name = data.get("first_name", "")
            user.last_name = data.get("last_name", "")
            user.daily_commitment = data["daily_commitment"]
            user.learning_goal = data["learning_goal"]
            if data.get("age") is not None:
                user.age = data["age"]
            if data.get("level"):
                user.level = data["level"]
            issue_otp(user)
            user.save()
            send_otp_email(user, "verify")

        log_api_event(
            logger,
            "signup_otp_sent",
            user_id=user.pk,
            refreshed_pending=existing is not None,
        )
        return success(
            "OTP sent to your email. Please verify your account.",
            status=status.HTTP_201_CREATED,
        )


class LoginView(PublicAPIView):

    @extend_schema(
        operation_id="login",
        request=LoginSerializer,
        responses={200: EnvelopeSerializer, 401: ErrorEnvelopeSerializer},
        description="Exchanges email and password for a bearer token.",
    )
    def post(self, request):
        s = LoginSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        user = _find_user(s.validated_data["email"])
        if user is None or user.is_deleted or not user.check_password(s.validated_data["password"]):
            return error("Invalid credentials", status.HTTP_401_UNAUTHORIZED)
        if not user.is_verified:
            return error(
                "Account not verified. Please verify your email first.",
                status.HTTP_401_UNAUTHORIZED,
            )

        log_api_event(logger, "login_succeeded", user_id=user.pk, provider="email")
        return success("Login successful", _auth_payload(user))


class VerifyOTPView(PublicAPIView):

    @extend_schema(
        operation_id="verifyOtp",
        request=VerifyOTPSerializer,
        responses={200: EnvelopeSerializer, 400: ErrorEnvelopeSerializer, 404: ErrorEnvelopeSerializer},
        description="Confirms the signup OTP, marks the account verified and returns a token.",
    )
    def post(self, request):
        s = VerifyOTPSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        user = _find_user(s.validated_data["email"])
        if user is None or user.is_deleted:
            return error("User not found", status.HTTP_404_NOT_FOUND)
        try:
            check_otp(user, s.validated_data["otp"])
        except OTPError as exc:
            return error(exc.message, status.HTTP_400_BAD_REQUEST)

        user.is_verified = True
        clear_otp(user)
        user.save(update_fields=["is_verified", "otp", "otp_expires_at", "updated_at"])

        log_api_event(logger, "otp_verified", user_id=user.pk)
        return success("Account verified successfully", _auth_payload(user))


class ResendOTPView(PublicAPIView):

    @extend_schema(
        operation_id="resendOtp",
        request=EmailSerializer,
        responses={200: EnvelopeSerializer, 400: ErrorEnvelopeSerializer, 404: ErrorEnvelopeSerializer},
        description="Issues a new verification OTP for a pending account.",
    )
    def post(self, request):
        s = EmailSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        user = _find_user(s.validated_data["email"])
        if user is None or user.is_deleted:
            return error("User not found", status.HTTP_404_NOT_FOUND)
        if user.is_verified:
            return error("User is already verified", status.HTTP_400_BAD_REQUEST)

        with transaction.atomic():
            issue_otp(user)
            user.save(update_fields=["otp", "otp_expires_at", "updated_at"])
            send_otp_email(user, "verify")

        log_api_event(logger, "otp_resent", user_id=user.pk)
        return success("OTP resent successfully")


class ForgotPasswordView(PublicAPIView):

    @extend_schema(
        operation_id="forgotPassword",
        request=EmailSerializer,
        responses={200: EnvelopeSerializer, 404: ErrorEnvelopeSerializer},
        description="Emails a password-reset OTP.",
    )
    def post(self, request):
        s = EmailSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        user = _find_user(s.validated_data["email"])
        if user is None or user.is_deleted:
            return error("User not found", status.HTTP_404_NOT_FOUND)

        with transaction.atomic():
            issue_otp(user)
            user.save(update_fields=["otp", "otp_expires_at", "updated_at"])
            send_otp_email(user, "reset")

        log_api_event(logger, "password_reset_requested", user_id=user.pk)
        return success("Password reset OTP sent to your email")


class ResetPasswordView(PublicAPIView):

    @extend_schema(
        operation_id="resetPassword",
        request=ResetPasswordSerializer,
        responses={200: EnvelopeSerializer, 400: ErrorEnvelopeSerializer, 404: ErrorEnvelopeSerializer},
        description="Sets a new password after checking the reset OTP.",
    )
    def post(self, request):
        s = ResetPasswordSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        user = _find_user(s.validated_data["email"])
        if user is None or user.is_deleted:
            return error("User not found", status.HTTP_404_NOT_FOUND)
        try:
            check_otp(user, s.validated_data["otp"])
        except OTPError as exc:
            return error(exc.message, status.HTTP_400_BAD_REQUEST)

        user.set_password(s.validated_data["password"])
        clear_otp(user)
        user.save(update_fields=["password", "otp", "otp_expires_at", "updated_at"])

        log_api_event(logger, "password_reset_completed", user_id=user.pk)
        return success("Password reset successfully")


class GoogleLoginView(PublicAPIView):

    @extend_schema(
        operation_id="googleLogin",
        request=GoogleLoginSerializer,
        responses={
            200: EnvelopeSerializer,
            401: ErrorEnvelopeSerializer,
            503: ErrorEnvelopeSerializer,
        },
        description="Signs in (creating the account if needed) with a Google ID token.",
    )
    def post(self, request):
        s = GoogleLoginSerializer(data=request.data)
        s.is_valid(raise_exception=True)

        info = verify_google_id_token(s.validated_data["token"])

        user = _find_user(info["email"])
        if user is not None and user.is_deleted:
            return error("Account has been deleted", status.HTTP_401_UNAUTHORIZED)

        created = user is None
        if created:
            user = User.objects.create_user(
                email=info["email"],
                password=None,
                first_name=info["given_name"],
                last_name=info["family_name"],
                is_verified=True,
                auth_provider=User.AuthProvider.GOOGLE,
                daily_commitment=GOOGLE_DEFAULT_COMMITMENT,
                learning_goal=GOOGLE_DEFAULT_GOAL,
            )
        else:
            user.auth_provider = User.AuthProvider.GOOGLE
            user.is_verified = True
            user.save(update_fields=["auth_provider", "is_verified", "updated_at"])

        log_api_event(logger, "login_succeeded", user_id=user.pk, provider="google", created=created)
        return success("Login successful", _auth_payload(user))


class ProfileView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    @extend_schema(
        operation_id="getProfile",
        responses={200: EnvelopeSerializer, 401: ErrorEnvelopeSerializer},
        description="Returns the caller's profile.",
    )
    def get(self, request):
        return success("Profile fetched successfully", ProfileSerializer(request.user).data)

    @extend_schema(
        operation_id="updateProfile",
        request=ProfileSerializer,
        responses={200: EnvelopeSerializer, 400: ErrorEnvelopeSerializer, 401: ErrorEnvelopeSerializer},
        description="Partially updates the caller's profile.",
    )
    def put(self, request):
        s = ProfileSerializer(request.user, data=request.data, partial=True)
        s.is_valid(raise_exception=True)
        user = s.save()
        log_api_event(logger, "profile_updated", user_id=user.pk, fields=sorted(s.validated_data))
        return success("Profile updated successfully", {"user": ProfileSerializer(user).data})

    @extend_schema(
        operation_id="deleteProfile",
        responses={200: EnvelopeSerializer, 401: ErrorEnvelopeSerializer},
        description="Soft-deletes the caller's account. Existing tokens stop working.",
    )
    def delete(self, request):
        request.user.soft_delete()
        log_api_event(logger, "account_deleted", user_id=request.user.pk, at=timezone.now())
        return success("Account deleted successfully")
