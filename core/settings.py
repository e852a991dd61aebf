# core/settings.py
from pathlib import Path
import os

from dotenv import load_dotenv

# =============================================================================
# BASE DIR & ENV
# =============================================================================

BASE_DIR = Path(__file__).resolve().parent.parent
load_dotenv(BASE_DIR / ".env")

# =============================================================================
# SECURITY
# =============================================================================

SECRET_KEY = os.getenv("DJANGO_SECRET_KEY")
if not SECRET_KEY:
    raise RuntimeError("DJANGO_SECRET_KEY is not set")

DEBUG = os.getenv("DEBUG", "False").lower() == "true"

ALLOWED_HOSTS = os.getenv(
    "ALLOWED_HOSTS", "127.0.0.1,localhost"
).split(",")

# =============================================================================
# APPLICATIONS
# =============================================================================

INSTALLED_APPS = [
    # Django core
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",

    # Third-party
    "rest_framework",
    "drf_spectacular",

    # Local apps
    "otp.apps.OtpConfig",
]

# =============================================================================
# MIDDLEWARE
# =============================================================================

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "core.middleware.RequestLoggingMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "core.middleware.SecurityHeadersMiddleware",
]

# =============================================================================
# URLS & TEMPLATES
# =============================================================================

ROOT_URLCONF = "core.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    },
]

WSGI_APPLICATION = "core.wsgi.application"

# =============================================================================
# DATABASE (POSTGRESQL)
# =============================================================================

# Challenge rows are the only persisted state; every query is bounded so a
# stuck backend surfaces as StorageUnavailable instead of hanging a request.
DB_STATEMENT_TIMEOUT_MS = int(os.getenv("DB_STATEMENT_TIMEOUT_MS", "3000"))

DATABASES = {
    "default": {
        "ENGINE": "django.db.backends.postgresql",
        "NAME": os.getenv("POSTGRES_DB", "storefront_otp"),
        "USER": os.getenv("POSTGRES_USER", "postgres"),
        "PASSWORD": os.getenv("POSTGRES_PASSWORD"),
        "HOST": os.getenv("POSTGRES_HOST", "127.0.0.1"),
        "PORT": os.getenv("POSTGRES_PORT", "5432"),
        "CONN_MAX_AGE": 600,
        "OPTIONS": {
            "connect_timeout": 5,
            "options": f"-c statement_timeout={DB_STATEMENT_TIMEOUT_MS}",
        },
    }
}

if not DATABASES["default"]["PASSWORD"]:
    raise RuntimeError("POSTGRES_PASSWORD is not set")

# =============================================================================
# I18N
# =============================================================================

LANGUAGE_CODE = "en-us"
TIME_ZONE = "Asia/Kolkata"
USE_I18N = True
USE_TZ = True

# =============================================================================
# STATIC
# =============================================================================

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# =============================================================================
# REST FRAMEWORK
# =============================================================================

# Guest flows are unauthenticated; scoped access tokens are checked per view.
REST_FRAMEWORK = {
    "DEFAULT_AUTHENTICATION_CLASSES": [],
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.AllowAny",
    ],
    "DEFAULT_RENDERER_CLASSES": [
        "rest_framework.renderers.JSONRenderer",
    ],
    "UNAUTHENTICATED_USER": None,
    "DEFAULT_SCHEMA_CLASS": "drf_spectacular.openapi.AutoSchema",
    "EXCEPTION_HANDLER": "core.exceptions.custom_exception_handler",
    # Proxies in front of the app that append to X-Forwarded-For.
    # 0 trusts REMOTE_ADDR only.
    "NUM_PROXIES": int(os.getenv("NUM_PROXIES", "0")),
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": os.getenv("RATE_ANON", "300/hour"),
        "otp_issue": os.getenv("RATE_OTP_ISSUE", "30/hour"),
        "otp_verify": os.getenv("RATE_OTP_VERIFY", "60/hour"),
        "otp_token": os.getenv("RATE_OTP_TOKEN", "600/hour"),
    },
}

# =============================================================================
# DRF SPECTACULAR (API DOCUMENTATION)
# =============================================================================

SPECTACULAR_SETTINGS = {
    "TITLE": "Storefront Guest Access API",
    "DESCRIPTION": """
    One-time-passcode challenges for guest order tracking and return requests.

    **Flow:**
    - Request a code for (purpose, entity, mobile)
    - Submit the 6-digit code
    - Receive a short-lived access token scoped to that purpose and entity
    """,
    "VERSION": "1.0.0",
    "SERVE_INCLUDE_SCHEMA": False,
    "COMPONENT_SPLIT_REQUEST": True,
    "SCHEMA_PATH_PREFIX": "/api/",
}

# =============================================================================
# CACHING (DRF throttles)
# =============================================================================

CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "storefront-otp",
    }
}

# =============================================================================
# REDIS (issuance rate limits)
# =============================================================================

USE_FAKE_REDIS = os.getenv("USE_FAKE_REDIS", "False").lower() == "true"
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
REDIS_SOCKET_TIMEOUT = float(os.getenv("REDIS_SOCKET_TIMEOUT", "2"))

# =============================================================================
# LOGGING
# =============================================================================

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "[{levelname}] {asctime} {name} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": os.getenv("LOG_LEVEL", "INFO"),
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "core": {
            "handlers": ["console"],
            "level": "DEBUG" if DEBUG else "INFO",
            "propagate": False,
        },
        "otp": {
            "handlers": ["console"],
            "level": "DEBUG" if DEBUG else "INFO",
            "propagate": False,
        },
    },
}

# =============================================================================
# OTP SERVICE CONFIGURATION
# =============================================================================

# Guest order tracking and return activation.
# Frozen into otp.conf.OtpSettings when the service is built.
OTP = {
    "ENABLED": os.getenv("OTP_ENABLED", "True").lower() == "true",
    "SIGNING_SECRET": os.getenv("OTP_SIGNING_SECRET", ""),

    # Phone numbers
    "COUNTRY_CODE": os.getenv("OTP_COUNTRY_CODE", "91"),
    "NATIONAL_NUMBER_LENGTH": 10,

    # Challenges
    "CODE_LENGTH": 6,
    "CHALLENGE_TTL_SECONDS": 300,     # 5 minutes
    "MAX_ATTEMPTS": 5,
    "LOCKOUT_SECONDS": 900,           # 15 minutes

    # Access tokens
    "TOKEN_TTL_SECONDS": 1800,        # 30 minutes

    # Issuance limits (SMS-bombing guard)
    "ISSUE_COOLDOWN_SECONDS": 60,
    "ISSUE_LIMIT_PER_MOBILE": 3,
    "ISSUE_WINDOW_SECONDS": 600,
    "ISSUE_LIMIT_PER_IP": 20,
    "ISSUE_IP_WINDOW_SECONDS": 3600,

    # Verification attempts per mobile, across challenges
    "VERIFY_LIMIT_PER_MOBILE": 10,
    "VERIFY_WINDOW_SECONDS": 3600,

    # Storage
    "STORAGE_RETRY_BACKOFF_SECONDS": 0.2,
    "RETENTION_HOURS": 24,

    # Collaborators
    "DISPATCHER": os.getenv(
        "OTP_DISPATCHER",
        "otp.services.dispatch.ConsoleDispatcher" if DEBUG
        else "otp.services.dispatch.KavenegarDispatcher",
    ),
    "AUDIT_SINK": "otp.services.audit.LoggingAuditSink",
}

KAVENEGAR = {
    "API_KEY": os.getenv("KAVENEGAR_API_KEY", ""),
    "SENDER": os.getenv("KAVENEGAR_SENDER", ""),
    "OTP_TEMPLATE": os.getenv("KAVENEGAR_OTP_TEMPLATE", "guest-otp"),
    "TIMEOUT": 10,
}

# =============================================================================
# SECURITY ENHANCEMENTS
# =============================================================================

SESSION_COOKIE_SECURE = not DEBUG
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = "Lax"

CSRF_COOKIE_SECURE = not DEBUG
CSRF_COOKIE_HTTPONLY = True
CSRF_COOKIE_SAMESITE = "Lax"

if not DEBUG:
    SECURE_SSL_REDIRECT = True
    SECURE_HSTS_SECONDS = 31536000  # 1 year
    SECURE_HSTS_INCLUDE_SUBDOMAINS = True
    SECURE_CONTENT_TYPE_NOSNIFF = True
    X_FRAME_OPTIONS = "DENY"
