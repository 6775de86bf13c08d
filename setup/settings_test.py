from .settings import *  # noqa: F401,F403

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.sqlite3",
        "NAME": ":memory:",
    }
}

PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]

EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"

GEMINI_API_KEY = None
GOOGLE_CLIENT_ID = "test-client-id.apps.googleusercontent.com"
JWT_SECRET = "test-only-jwt-signing-key-0123456789abcdef"
SIMPLE_JWT = {**SIMPLE_JWT, "SIGNING_KEY": JWT_SECRET}  # noqa: F405

LOGGING = build_logging_config(app_level="WARNING", django_level="WARNING")  # noqa: F405
