import json

from django.test import SimpleTestCase
from rest_framework.test import APITestCase

from apps.common.config_log import scrub_for_log
from apps.common.exceptions import _first_message


class HealthTest(APITestCase):
    def test_health_is_public(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})

    def test_request_id_is_echoed(self):
        resp = self.client.get("/health", HTTP_X_REQUEST_ID="abc123")
        self.assertEqual(resp["X-Request-ID"], "abc123")

    def test_request_id_is_generated(self):
        resp = self.client.get("/health")
        self.assertTrue(resp["X-Request-ID"])


class ErrorEnvelopeTest(APITestCase):
    def test_unauthenticated_request_uses_error_envelope(self):
        resp = self.client.get("/sessions")
        self.assertEqual(resp.status_code, 401)
        body = resp.json()
        self.assertEqual(body["error_code"], 401)
        self.assertIn("error_message", body)


class HelpersTest(SimpleTestCase):
    def test_first_message_prefixes_field(self):
        self.assertEqual(_first_message({"email": ["This field is required."]}), "email: This field is required.")
        self.assertEqual(_first_message({"non_field_errors": ["Bad."]}), "Bad.")

    def test_scrub_hides_secrets(self):
        scrubbed = scrub_for_log({"password": "x", "nested": {"token": "y"}, "email": "a@b.c"})
        dumped = json.dumps(scrubbed)
        self.assertNotIn('"x"', dumped)
        self.assertNotIn('"y"', dumped)
        self.assertIn("a@b.c", dumped)
