# otp/conf.py
"""
OTP service configuration.

Django settings carry a plain ``OTP`` dict (see core/settings.py); the
service only ever sees the frozen ``OtpSettings`` built from it, so every
knob is read once at construction instead of at call sites.
"""

from dataclasses import dataclass, fields, replace
from datetime import timedelta

from django.conf import settings

from otp.exceptions import SigningFailure

MIN_SIGNING_SECRET_LENGTH = 32


@dataclass(frozen=True)
class OtpSettings:
    signing_secret: str
    enabled: bool = True

    country_code: str = "91"
    national_number_length: int = 10

    code_length: int = 6
    challenge_ttl_seconds: int = 300
    max_attempts: int = 5
    lockout_seconds: int = 900

    token_ttl_seconds: int = 1800

    issue_cooldown_seconds: int = 60
    issue_limit_per_mobile: int = 3
    issue_window_seconds: int = 600
    issue_limit_per_ip: int = 20
    issue_ip_window_seconds: int = 3600

    verify_limit_per_mobile: int = 10
    verify_window_seconds: int = 3600

    storage_retry_backoff_seconds: float = 0.2
    retention_hours: int = 24

    dispatcher: str = "otp.services.dispatch.ConsoleDispatcher"
    audit_sink: str = "otp.services.audit.LoggingAuditSink"

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("MAX_ATTEMPTS must be at least 1")
        if self.code_length < 4:
            raise ValueError("CODE_LENGTH must be at least 4")

    @property
    def challenge_ttl(self) -> timedelta:
        return timedelta(seconds=self.challenge_ttl_seconds)

    @property
    def lockout_duration(self) -> timedelta:
        return timedelta(seconds=self.lockout_seconds)

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(seconds=self.token_ttl_seconds)

    @property
    def retention(self) -> timedelta:
        return timedelta(hours=self.retention_hours)

    def require_signing_secret(self) -> bytes:
        """
        Return the signing key, failing closed when it is unusable.

        Raises:
            SigningFailure: missing or shorter than MIN_SIGNING_SECRET_LENGTH
        """
        secret = self.signing_secret or ""
        if len(secret) < MIN_SIGNING_SECRET_LENGTH:
            raise SigningFailure(
                f"OTP signing secret must be at least "
                f"{MIN_SIGNING_SECRET_LENGTH} characters"
            )
        return secret.encode()

    def with_overrides(self, **changes) -> "OtpSettings":
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, raw: dict) -> "OtpSettings":
        """Build from an upper-case settings dict, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in raw.items():
            name = key.lower()
            if name in known:
                values[name] = value
        values.setdefault("signing_secret", "")
        return cls(**values)

    @classmethod
    def from_django(cls) -> "OtpSettings":
        return cls.from_mapping(getattr(settings, "OTP", {}))
