# otp/services/otp_service.py
"""
OTP issuance and verification for guest order tracking and returns.

    issue_challenge(purpose, entity_id, mobile, ip) -> ChallengeHandle
    verify(purpose, entity_id, mobile, code)         -> VerifyResult

Failures are raised as ``otp.exceptions.OtpError`` subclasses. Each call
emits exactly one audit event, whatever its outcome.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Callable, Optional

from django.core.signals import setting_changed
from django.dispatch import receiver
from django.utils import timezone
from django.utils.module_loading import import_string

from otp.conf import OtpSettings
from otp.exceptions import AlreadyUsed, CodeMismatch, InvalidInput, NotFound, OtpError
from otp.models import OtpChallenge, Purpose
from otp.services import codes, lockout, phone
from otp.services.audit import AuditEvent, emit_safely
from otp.services.challenge_store import ChallengeStore
from otp.services.rate_limit_service import IssuanceRateLimiter, VerificationRateLimiter
from otp.services.tokens import TokenIssuer

logger = logging.getLogger(__name__)

MAX_ENTITY_ID_LENGTH = 128


@dataclass(frozen=True)
class ChallengeHandle:
    """What the caller learns about a new challenge: never the code."""
    challenge_id: uuid.UUID


@dataclass(frozen=True)
class VerifyResult:
    """Only built for a verified code; every failure raises."""
    token: str
    expires_at: datetime


class OtpService:
    """
    Challenge/response OTP protocol.

    Usage:
        service = get_otp_service()

        service.issue_challenge(
            purpose="ORDER_TRACKING",
            entity_id="ord_123",
            mobile="98765 43210",
            ip="203.0.113.7",
        )

        result = service.verify(
            purpose="ORDER_TRACKING",
            entity_id="ord_123",
            mobile="+919876543210",
            code="042917",
        )
        result.token
    """

    def __init__(
        self,
        config: OtpSettings,
        *,
        store: Optional[ChallengeStore] = None,
        limiter: Optional[IssuanceRateLimiter] = None,
        verify_limiter: Optional[VerificationRateLimiter] = None,
        tokens: Optional[TokenIssuer] = None,
        dispatcher=None,
        audit_sink=None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.config = config
        self.clock = clock
        self._secret = config.require_signing_secret()
        self.store = store or ChallengeStore(retry_backoff=config.storage_retry_backoff_seconds)
        self.limiter = limiter or IssuanceRateLimiter.from_settings(config)
        self.verify_limiter = verify_limiter or VerificationRateLimiter.from_settings(config)
        self.tokens = tokens or TokenIssuer(self._secret, config.token_ttl, clock=clock)
        self.dispatcher = dispatcher or import_string(config.dispatcher)()
        self.audit_sink = audit_sink or import_string(config.audit_sink)()

    # ------------------------------------------------------------------
    # Input checks
    # ------------------------------------------------------------------

    def normalize_mobile(self, mobile: str) -> str:
        return phone.normalize(
            mobile,
            country_code=self.config.country_code,
            national_length=self.config.national_number_length,
        )

    def _clean_key(self, purpose, entity_id, mobile):
        if purpose not in Purpose.values:
            raise InvalidInput("Unknown purpose.")
        if not isinstance(entity_id, str) or not entity_id.strip():
            raise InvalidInput("Entity ID is required.")
        entity_id = entity_id.strip()
        if len(entity_id) > MAX_ENTITY_ID_LENGTH:
            raise InvalidInput("Entity ID is too long.")
        return purpose, entity_id, self.normalize_mobile(mobile)

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def _audit(self, action, outcome, purpose, entity_id, mobile, ip=None, **details):
        emit_safely(
            self.audit_sink,
            AuditEvent(
                action=action,
                outcome=outcome,
                purpose=str(purpose),
                entity_id=str(entity_id),
                mobile_masked=phone.mask(mobile) if isinstance(mobile, str) else "***",
                ip_address=ip,
                details=details,
                occurred_at=self.clock(),
            ),
        )

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_challenge(self, purpose, entity_id, mobile, ip=None) -> ChallengeHandle:
        """
        Create a challenge for (purpose, entity_id, mobile) and send its code.

        Supersedes any current challenge for the same key. The code only
        leaves this method through the dispatcher.

        Raises:
            InvalidInput / InvalidPhoneFormat: malformed key
            IssuanceRateLimited: cooldown or window cap hit (retry_after set)
            StorageUnavailable: store down after one retry
        """
        try:
            purpose, entity_id, mobile = self._clean_key(purpose, entity_id, mobile)
            now = self.clock()
            reservation = self.limiter.reserve_issuance(purpose, mobile, ip, now)

            challenge_id = uuid.uuid4()
            code = codes.generate_code(self.config.code_length)
            try:
                challenge = self.store.issue(
                    challenge_id=challenge_id,
                    purpose=purpose,
                    entity_id=entity_id,
                    mobile=mobile,
                    code_hash=codes.hash_code(code, challenge_id, self._secret),
                    now=now,
                    ttl=self.config.challenge_ttl,
                    max_attempts=self.config.max_attempts,
                    ip_address=ip,
                )
            except Exception:
                # No challenge, no SMS: the slot goes back
                self.limiter.release(reservation)
                raise
        except OtpError as exc:
            self._audit("otp_issued", exc.default_code, purpose, entity_id, mobile, ip)
            raise

        dispatched = self._dispatch(mobile, code, purpose)
        self._audit(
            "otp_issued", "issued", purpose, entity_id, mobile, ip,
            challenge_id=str(challenge.id),
            dispatched=dispatched,
        )
        return ChallengeHandle(challenge_id=challenge.id)

    def _dispatch(self, mobile: str, code: str, purpose: str) -> bool:
        try:
            sent = self.dispatcher.send(mobile=mobile, code=code, purpose=purpose)
        except Exception:
            logger.exception("OTP dispatch raised for %s", phone.mask(mobile))
            return False
        if not sent:
            logger.error("OTP dispatch failed for %s; challenge kept", phone.mask(mobile))
        return bool(sent)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, purpose, entity_id, mobile, code, ip=None) -> VerifyResult:
        """
        Check a submitted code against the current challenge for the key.

        The challenge is always re-derived from (purpose, entity_id, mobile);
        a client never names the challenge it answers.

        Raises:
            VerificationRateLimited: too many attempts for the mobile
            NotFound: no current challenge for the key
            Locked / Expired / AlreadyUsed: challenge not verifiable
            CodeMismatch: wrong code (attempts_remaining, maybe locked_until)
            StorageUnavailable: store down after one retry
        """
        try:
            purpose, entity_id, mobile = self._clean_key(purpose, entity_id, mobile)
            # Counted per mobile across challenges, before anything is read
            self.verify_limiter.reserve_verification(purpose, mobile, self.clock())
            result = self._verify(purpose, entity_id, mobile, code)
        except OtpError as exc:
            self._audit(
                "otp_verify", exc.default_code, purpose, entity_id, mobile, ip,
                **exc.get_extra_data(),
            )
            raise

        self._audit("otp_verify", "success", purpose, entity_id, mobile, ip)
        return result

    def _verify(self, purpose: str, entity_id: str, mobile: str, code) -> VerifyResult:
        now = self.clock()
        challenge = self.store.current(purpose, entity_id, mobile)
        if challenge is None:
            raise NotFound()

        lockout.ensure_verifiable(challenge, now)

        if isinstance(code, str) and codes.code_matches(
            code, challenge.id, challenge.code_hash, self._secret
        ):
            if not self.store.consume(challenge, now):
                self._raise_lost_race(challenge, now)
            signed = self.tokens.issue_token(purpose, entity_id, mobile)
            return VerifyResult(token=signed.token, expires_at=signed.expires_at)

        updated = self.store.record_failure(challenge, now, self.config.lockout_duration)
        if updated is None:
            self._raise_lost_race(challenge, now)

        remaining = updated.attempts_remaining
        if remaining == 0:
            logger.warning(
                "OTP challenge %s locked until %s", updated.id, updated.locked_until
            )
        raise CodeMismatch(
            attempts_remaining=remaining,
            locked_until=updated.locked_until if remaining == 0 else None,
        )

    def _raise_lost_race(self, challenge: OtpChallenge, now) -> None:
        """
        A conditional update matched nothing: another request changed the
        challenge after it was read. Classify its current state.
        """
        fresh = self.store.get(challenge.pk)
        if fresh is None or fresh.superseded_at is not None:
            raise NotFound()
        lockout.ensure_verifiable(fresh, now)
        # Still verifiable yet the update missed: treat as a spent attempt
        raise AlreadyUsed()

    # ------------------------------------------------------------------
    # Tokens & maintenance
    # ------------------------------------------------------------------

    def validate_token(self, token: str, expected_purpose: str, expected_entity_id: str) -> bool:
        return self.tokens.validate_token(token, expected_purpose, expected_entity_id)

    def reset_limits(self, purpose: str, mobile: str, ip: Optional[str] = None) -> None:
        """Clear issuance and verification limits for a normalized mobile."""
        self.limiter.reset(purpose, mobile, ip)
        self.verify_limiter.reset(purpose, mobile)
        logger.info("OTP limits reset for %s %s", purpose, phone.mask(mobile))

    def purge_stale_challenges(self) -> int:
        """Delete challenges expired for longer than the retention window."""
        cutoff = self.clock() - self.config.retention
        deleted = self.store.purge_expired(cutoff)
        logger.info("Purged %s OTP challenge(s) expired before %s", deleted, cutoff.isoformat())
        return deleted


# ============================================================
# SERVICE FACTORY
# ============================================================

@lru_cache(maxsize=None)
def get_otp_service() -> OtpService:
    """Process-wide service built from Django settings."""
    return OtpService(OtpSettings.from_django())


@receiver(setting_changed)
def _reset_otp_service(sender, setting, **kwargs):
    if setting in ("OTP", "USE_FAKE_REDIS", "REDIS_URL", "KAVENEGAR"):
        get_otp_service.cache_clear()
