# tests/settings.py
"""
Test settings: SQLite, FakeRedis, console dispatcher.

Set POSTGRES_HOST (and friends) plus TEST_DATABASE=postgres to run the
suite, including the threaded concurrency tests, against PostgreSQL.
"""

import os

os.environ.setdefault("DJANGO_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("POSTGRES_PASSWORD", "postgres")

from core.settings import *  # noqa: E402,F401,F403

DEBUG = False
SECURE_SSL_REDIRECT = False
SESSION_COOKIE_SECURE = False
CSRF_COOKIE_SECURE = False

if os.getenv("TEST_DATABASE", "sqlite") != "postgres":
    DATABASES = {
        "default": {
            "ENGINE": "django.db.backends.sqlite3",
            "NAME": ":memory:",
        }
    }

USE_FAKE_REDIS = True

PASSWORD_HASHERS = [
    "django.contrib.auth.hashers.MD5PasswordHasher",
]

REST_FRAMEWORK = {
    **REST_FRAMEWORK,
    "DEFAULT_THROTTLE_RATES": {
        "anon": "10000/hour",
        "otp_issue": "10000/hour",
        "otp_verify": "10000/hour",
        "otp_token": "10000/hour",
    },
}

TEST_SIGNING_SECRET = "test-otp-signing-secret-0123456789abcdef"

OTP = {
    **OTP,
    "ENABLED": True,
    "SIGNING_SECRET": TEST_SIGNING_SECRET,
    "DISPATCHER": "otp.services.dispatch.ConsoleDispatcher",
    "AUDIT_SINK": "otp.services.audit.LoggingAuditSink",
    "STORAGE_RETRY_BACKOFF_SECONDS": 0,
}

KAVENEGAR = {
    **KAVENEGAR,
    "API_KEY": "",
}

LOGGING = {
    **LOGGING,
    "root": {"handlers": ["console"], "level": "WARNING"},
}
