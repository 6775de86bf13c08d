import smtplib
from datetime import timedelta
from io import StringIO
from unittest.mock import Mock, patch

import jwt
from django.conf import settings
from django.contrib.auth import get_user_model
from django.core import mail
from django.core.management import call_command
from django.core.management.base import CommandError
from django.db import connections
from django.db.utils import OperationalError
from django.test import TestCase
from django.utils import timezone
from rest_framework import status
from rest_framework.test import APITestCase
from rest_framework_simplejwt.tokens import AccessToken

from apps.accounts.authentication import issue_token
from apps.accounts.services.otp import (
    ExpiredOTP,
    InvalidOTP,
    check_otp,
    clear_otp,
    generate_otp,
    issue_otp,
)

User = get_user_model()

PASSWORD = "Str0ng-Passw0rd!"


def signup_payload(**overrides):
    payload = {
        "email": "alice@example.com",
        "password": PASSWORD,
        "first_name": "Alice",
        "last_name": "Doe",
        "daily_commitment": 45,
        "learning_goal": "Learn Rust",
    }
    payload.update(overrides)
    return payload


class OTPServiceTest(TestCase):
    """Code generation, expiry and single use"""

    def setUp(self):
        self.user = User.objects.create_user(email="otp@example.com", password=PASSWORD)

    def test_generate_otp_is_six_digits(self):
        for _ in range(20):
            code = generate_otp()
            self.assertEqual(len(code), 6)
            self.assertTrue(code.isdigit())

    def test_issue_otp_sets_ten_minute_expiry(self):
        now = timezone.now()
        code = issue_otp(self.user, now=now)
        self.assertEqual(self.user.otp, code)
        self.assertEqual(self.user.otp_expires_at, now + timedelta(minutes=10))

    def test_check_otp_exact_match_before_expiry(self):
        now = timezone.now()
        code = issue_otp(self.user, now=now)
        check_otp(self.user, code, now=now + timedelta(minutes=9, seconds=59))

    def test_check_otp_rejects_mismatch(self):
        issue_otp(self.user)
        self.user.otp = "123456"
        with self.assertRaises(InvalidOTP):
            check_otp(self.user, "654321")

    def test_check_otp_rejects_at_expiry(self):
        now = timezone.now()
        code = issue_otp(self.user, now=now)
        with self.assertRaises(ExpiredOTP):
            check_otp(self.user, code, now=now + timedelta(minutes=10))

    def test_cleared_code_cannot_be_reused(self):
        code = issue_otp(self.user)
        clear_otp(self.user)
        with self.assertRaises(InvalidOTP):
            check_otp(self.user, code)
        with self.assertRaises(InvalidOTP):
            check_otp(self.user, "")


class SignupFlowTest(APITestCase):
    """Signup, verification and login over HTTP"""

    def test_signup_creates_unverified_user_and_sends_otp(self):
        resp = self.client.post("/signup", signup_payload(), format="json")

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(resp.data["status"], 201)
        user = User.objects.get(email="alice@example.com")
        self.assertFalse(user.is_verified)
        self.assertEqual(user.daily_commitment, 45)
        self.assertEqual(len(user.otp), 6)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(user.otp, mail.outbox[0].body)

    def test_signup_missing_fields_is_validation_error(self):
        resp = self.client.post("/signup", {"email": "alice@example.com"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["error_code"], 400)
        self.assertIn("password", resp.data["details"])

    def test_signup_twice_unverified_updates_same_row(self):
        self.client.post("/signup", signup_payload(), format="json")
        first = User.objects.get(email="alice@example.com")

        with patch("apps.accounts.services.otp.generate_otp", return_value="111111"):
            resp = self.client.post(
                "/signup", signup_payload(learning_goal="Learn Go"), format="json"
            )

        self.assertEqual(resp.status_code, status.HTTP_201_CREATED)
        self.assertEqual(User.objects.filter(email="alice@example.com").count(), 1)
        user = User.objects.get(email="alice@example.com")
        self.assertEqual(user.pk, first.pk)
        self.assertEqual(user.otp, "111111")
        self.assertEqual(user.learning_goal, "Learn Go")

    def test_signup_with_verified_email_is_rejected(self):
        User.objects.create_user(email="alice@example.com", password=PASSWORD, is_verified=True)

        resp = self.client.post("/signup", signup_payload(), format="json")

        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("already exists", resp.data["error_message"])

    def test_signup_email_failure_is_upstream_error_and_rolls_back(self):
        with patch(
            "apps.accounts.services.email.send_mail",
            side_effect=smtplib.SMTPException("boom"),
        ):
            resp = self.client.post("/signup", signup_payload(), format="json")

        self.assertEqual(resp.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(resp.data["error_code"], 502)
        self.assertFalse(User.objects.filter(email="alice@example.com").exists())

    def test_verify_then_login(self):
        self.client.post("/signup", signup_payload(), format="json")
        user = User.objects.get(email="alice@example.com")

        resp = self.client.post(
            "/verify-otp", {"email": user.email, "otp": user.otp}, format="json"
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertIn("token", resp.data["data"])
        user.refresh_from_db()
        self.assertTrue(user.is_verified)
        self.assertEqual(user.otp, "")
        self.assertIsNone(user.otp_expires_at)

        resp = self.client.post(
            "/login", {"email": user.email, "password": PASSWORD}, format="json"
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["user"]["email"], "alice@example.com")
        token = AccessToken(resp.data["data"]["token"])
        self.assertEqual(token["user_id"], user.pk)
        self.assertIsInstance(token["user_id"], int)

    def test_verify_wrong_and_expired_otp(self):
        self.client.post("/signup", signup_payload(), format="json")
        user = User.objects.get(email="alice@example.com")
        wrong = "000000" if user.otp != "000000" else "999999"

        resp = self.client.post("/verify-otp", {"email": user.email, "otp": wrong}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["error_message"], "Invalid OTP.")

        user.otp_expires_at = timezone.now() - timedelta(seconds=1)
        user.save()
        resp = self.client.post("/verify-otp", {"email": user.email, "otp": user.otp}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(resp.data["error_message"], "OTP has expired.")

    def test_verify_unknown_user_is_404(self):
        resp = self.client.post("/verify-otp", {"email": "nobody@example.com", "otp": "123456"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)

    def test_verify_soft_deleted_user_is_404(self):
        self.client.post("/signup", signup_payload(), format="json")
        user = User.objects.get(email="alice@example.com")
        user.soft_delete()

        resp = self.client.post("/verify-otp", {"email": user.email, "otp": user.otp}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertNotIn("data", resp.data)
        user.refresh_from_db()
        self.assertFalse(user.is_verified)

    def test_login_rejections(self):
        User.objects.create_user(email="pending@example.com", password=PASSWORD)

        resp = self.client.post("/login", {"email": "nobody@example.com", "password": PASSWORD}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(resp.data["error_message"], "Invalid credentials")

        resp = self.client.post("/login", {"email": "pending@example.com", "password": "wrong"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)

        resp = self.client.post("/login", {"email": "pending@example.com", "password": PASSWORD}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertIn("not verified", resp.data["error_message"])

    def test_resend_otp(self):
        User.objects.create_user(email="done@example.com", password=PASSWORD, is_verified=True)
        User.objects.create_user(email="pending@example.com", password=PASSWORD)

        self.assertEqual(
            self.client.post("/resend-otp", {"email": "ghost@example.com"}, format="json").status_code,
            status.HTTP_404_NOT_FOUND,
        )
        self.assertEqual(
            self.client.post("/resend-otp", {"email": "done@example.com"}, format="json").status_code,
            status.HTTP_400_BAD_REQUEST,
        )
        resp = self.client.post("/resend-otp", {"email": "pending@example.com"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(len(mail.outbox), 1)

    def test_forgot_and_reset_password(self):
        user = User.objects.create_user(email="bob@example.com", password=PASSWORD, is_verified=True)

        resp = self.client.post("/forgot-password", {"email": "bob@example.com"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        user.refresh_from_db()

        new_password = "An0ther-Secret!"
        resp = self.client.post(
            "/reset-password",
            {"email": "bob@example.com", "otp": user.otp, "password": new_password},
            format="json",
        )
        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        user.refresh_from_db()
        self.assertTrue(user.check_password(new_password))
        self.assertEqual(user.otp, "")

    def test_forgot_password_unknown_user_is_404(self):
        resp = self.client.post("/forgot-password", {"email": "ghost@example.com"}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(resp.data["error_code"], 404)


class GoogleLoginTest(APITestCase):
    """Google ID-token sign in with a mocked tokeninfo endpoint"""

    def _tokeninfo(self, **overrides):
        data = {
            "aud": settings.GOOGLE_CLIENT_ID,
            "email": "gina@example.com",
            "email_verified": "true",
            "given_name": "Gina",
            "family_name": "Lee",
        }
        data.update(overrides)
        return Mock(status_code=200, json=Mock(return_value=data))

    @patch("apps.accounts.services.google.requests.get")
    def test_creates_verified_google_user(self, mock_get):
        mock_get.return_value = self._tokeninfo()

        resp = self.client.post("/auth/google/login", {"token": "id-token"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        user = User.objects.get(email="gina@example.com")
        self.assertTrue(user.is_verified)
        self.assertEqual(user.auth_provider, "google")
        self.assertEqual(user.daily_commitment, 30)
        self.assertEqual(user.learning_goal, "Not specified")
        self.assertFalse(user.has_usable_password())
        self.assertEqual(resp.data["data"]["user"]["first_name"], "Gina")
        self.assertEqual(mock_get.call_args.kwargs["params"], {"id_token": "id-token"})

    @patch("apps.accounts.services.google.requests.get")
    def test_reuses_existing_user_and_updates_provider(self, mock_get):
        existing = User.objects.create_user(email="gina@example.com", password=PASSWORD)
        mock_get.return_value = self._tokeninfo()

        resp = self.client.post("/auth/google/login", {"token": "id-token"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(User.objects.filter(email="gina@example.com").count(), 1)
        existing.refresh_from_db()
        self.assertEqual(existing.auth_provider, "google")
        self.assertTrue(existing.is_verified)

    @patch("apps.accounts.services.google.requests.get")
    def test_audience_mismatch_is_unauthorized(self, mock_get):
        mock_get.return_value = self._tokeninfo(aud="someone-else")

        resp = self.client.post("/auth/google/login", {"token": "id-token"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertFalse(User.objects.filter(email="gina@example.com").exists())

    @patch("apps.accounts.services.google.requests.get")
    def test_rejected_token_is_unauthorized(self, mock_get):
        mock_get.return_value = Mock(status_code=400, json=Mock(return_value={"error": "invalid_token"}))

        resp = self.client.post("/auth/google/login", {"token": "bad"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(resp.data["error_code"], 401)

    @patch("apps.accounts.services.google.requests.get")
    def test_unverified_google_email_is_unauthorized(self, mock_get):
        mock_get.return_value = self._tokeninfo(email_verified="false")

        resp = self.client.post("/auth/google/login", {"token": "id-token"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(resp.data["error_message"], "Google email is not verified")

    @patch("apps.accounts.services.google.requests.get")
    def test_unreadable_tokeninfo_is_upstream_error(self, mock_get):
        mock_get.return_value = Mock(status_code=200, json=Mock(side_effect=ValueError("not json")))

        resp = self.client.post("/auth/google/login", {"token": "id-token"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_502_BAD_GATEWAY)
        self.assertEqual(resp.data["error_code"], 502)
        self.assertFalse(User.objects.filter(email="gina@example.com").exists())

    def test_missing_client_id_is_not_configured(self):
        with self.settings(GOOGLE_CLIENT_ID=""):
            resp = self.client.post("/auth/google/login", {"token": "id-token"}, format="json")

        self.assertEqual(resp.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(resp.data["error_message"], "SSO is not configured correctly")


class BearerAuthenticationTest(APITestCase):
    """Protected routes reject anything but a valid HS256 bearer token"""

    def setUp(self):
        self.user = User.objects.create_user(
            email="carol@example.com", password=PASSWORD, is_verified=True, first_name="Carol"
        )

    def test_valid_token_reaches_profile(self):
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(self.user)}")

        resp = self.client.get("/profile")

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        self.assertEqual(resp.data["data"]["email"], "carol@example.com")

    def test_missing_header(self):
        resp = self.client.get("/profile")
        self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(resp.data["error_code"], 401)
        self.assertIn("error_message", resp.data)

    def test_malformed_header(self):
        token = issue_token(self.user)
        for header in (f"Token {token}", "Bearer", f"Bearer {token} extra", "Bearer not-a-jwt"):
            self.client.credentials(HTTP_AUTHORIZATION=header)
            resp = self.client.get("/profile")
            self.assertEqual(resp.status_code, status.HTTP_401_UNAUTHORIZED, header)

    def test_wrong_signing_algorithm(self):
        forged = jwt.encode(
            {
                "token_type": "access",
                "user_id": self.user.pk,
                "jti": "forged",
                "exp": int((timezone.now() + timedelta(hours=1)).timestamp()),
            },
            settings.SIMPLE_JWT["SIGNING_KEY"],
            algorithm="HS512",
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {forged}")

        self.assertEqual(self.client.get("/profile").status_code, status.HTTP_401_UNAUTHORIZED)

    def test_expired_token(self):
        token = AccessToken.for_user(self.user)
        token.set_exp(lifetime=-timedelta(minutes=1))
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        self.assertEqual(self.client.get("/profile").status_code, status.HTTP_401_UNAUTHORIZED)

    def test_unknown_user(self):
        token = issue_token(self.user)
        self.user.delete()
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        self.assertEqual(self.client.get("/profile").status_code, status.HTTP_401_UNAUTHORIZED)

    def test_soft_deleted_user(self):
        token = issue_token(self.user)
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {token}")

        self.assertEqual(self.client.delete("/profile").status_code, status.HTTP_200_OK)
        self.assertEqual(self.client.get("/profile").status_code, status.HTTP_401_UNAUTHORIZED)
        self.user.refresh_from_db()
        self.assertIsNotNone(self.user.deleted_at)


class ProfileUpdateTest(APITestCase):
    """PUT /profile applies only the fields sent"""

    def setUp(self):
        self.user = User.objects.create_user(
            email="dave@example.com", password=PASSWORD, is_verified=True, country="BR"
        )
        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {issue_token(self.user)}")

    def test_partial_update(self):
        resp = self.client.put(
            "/profile", {"age": 31, "level": "intermediate", "email": "hijack@example.com"}, format="json"
        )

        self.assertEqual(resp.status_code, status.HTTP_200_OK)
        body = resp.data["data"]["user"]
        self.assertEqual(body["age"], 31)
        self.assertEqual(body["level"], "intermediate")
        self.assertEqual(body["country"], "BR")
        self.assertEqual(body["email"], "dave@example.com")

    def test_invalid_commitment(self):
        resp = self.client.put("/profile", {"daily_commitment": 0}, format="json")
        self.assertEqual(resp.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn("daily_commitment", resp.data["details"])


class WaitForDBCommandTest(TestCase):
    """wait_for_db retries a bounded number of times"""

    def _run(self, side_effect, retries):
        out, err = StringIO(), StringIO()
        conn = connections["default"]
        with patch.object(conn, "ensure_connection", side_effect=side_effect) as ensure, \
                patch("apps.accounts.management.commands.wait_for_db.time.sleep") as sleep:
            call_command("wait_for_db", retries=retries, delay=0, stdout=out, stderr=err)
        return ensure, sleep, out, err

    def test_succeeds_after_transient_failures(self):
        failures = [OperationalError("down"), OperationalError("down"), None]

        ensure, sleep, out, err = self._run(failures, retries=3)

        self.assertEqual(ensure.call_count, 3)
        self.assertEqual(sleep.call_count, 2)
        self.assertIn("Database available", out.getvalue())
        self.assertIn("attempt 2/3", err.getvalue())

    def test_gives_up_after_retries(self):
        conn = connections["default"]
        with patch.object(conn, "ensure_connection", side_effect=OperationalError("down")) as ensure, \
                patch("apps.accounts.management.commands.wait_for_db.time.sleep") as sleep:
            with self.assertRaises(CommandError):
                call_command("wait_for_db", retries=2, delay=0, stdout=StringIO(), stderr=StringIO())

        self.assertEqual(ensure.call_count, 2)
        self.assertEqual(sleep.call_count, 1)
