# otp/services/challenge_store.py
"""
Challenge store: the only writer of ``OtpChallenge`` rows.

Every state transition is one storage operation:

- issue:          supersede current + insert, inside one transaction
- record_failure: conditional UPDATE (attempts + 1, maybe lock)
- consume:        conditional UPDATE (consumed_at = now)

The conditional UPDATEs re-check consumption, supersession, attempt cap,
lockout and expiry in their WHERE clause, so two concurrent verifications
cannot both succeed and no attempt is lost.
"""

import logging
import time
from functools import wraps
from typing import Optional

from django.db import DatabaseError, IntegrityError, models, transaction
from django.db.models import Case, F, Q, Value, When

from otp.exceptions import StorageUnavailable
from otp.models import OtpChallenge

logger = logging.getLogger(__name__)


def with_storage_retry(method):
    """
    Retry a store operation once after a backoff, then surface
    StorageUnavailable. Safe because every operation either applies fully
    or not at all.
    """

    @wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            return method(self, *args, **kwargs)
        except IntegrityError:
            raise
        except DatabaseError as first:
            logger.warning(
                "Challenge store %s failed, retrying once: %s",
                method.__name__,
                first.__class__.__name__,
            )
            self.sleep(self.retry_backoff)
            try:
                return method(self, *args, **kwargs)
            except IntegrityError:
                raise
            except DatabaseError as second:
                logger.error(
                    "Challenge store %s unavailable: %s",
                    method.__name__,
                    second.__class__.__name__,
                )
                raise StorageUnavailable() from second

    return wrapper


def _open_for_verification(now) -> Q:
    return (
        Q(consumed_at__isnull=True)
        & Q(superseded_at__isnull=True)
        & Q(attempts__lt=F("max_attempts"))
        & Q(expires_at__gte=now)
        & (Q(locked_until__isnull=True) | Q(locked_until__lte=now))
    )


class ChallengeStore:
    """Persistence for OTP challenges (Django ORM)."""

    def __init__(self, retry_backoff: float = 0.2, sleep=time.sleep):
        self.retry_backoff = retry_backoff
        self.sleep = sleep

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @with_storage_retry
    def current(self, purpose: str, entity_id: str, mobile: str) -> Optional[OtpChallenge]:
        """The newest non-superseded challenge for the key, if any."""
        return (
            OtpChallenge.objects
            .filter(
                purpose=purpose,
                entity_id=entity_id,
                mobile=mobile,
                superseded_at__isnull=True,
            )
            .order_by("-created_at")
            .first()
        )

    @with_storage_retry
    def get(self, challenge_id) -> Optional[OtpChallenge]:
        return OtpChallenge.objects.filter(pk=challenge_id).first()

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def issue(
        self,
        *,
        challenge_id,
        purpose: str,
        entity_id: str,
        mobile: str,
        code_hash: str,
        now,
        ttl,
        max_attempts: int,
        ip_address: Optional[str] = None,
    ) -> OtpChallenge:
        """
        Supersede the current challenge for the key and insert a new one.

        A concurrent issuance for the same key trips the partial unique
        constraint; the loser retries once, superseding the winner.
        """
        fields = dict(
            id=challenge_id,
            purpose=purpose,
            entity_id=entity_id,
            mobile=mobile,
            code_hash=code_hash,
            created_at=now,
            updated_at=now,
            expires_at=now + ttl,
            attempts=0,
            max_attempts=max_attempts,
            ip_address=ip_address,
        )
        try:
            return self._supersede_and_insert(fields, now)
        except IntegrityError:
            logger.info("Concurrent issuance for %s:%s, retrying", purpose, entity_id)
            try:
                return self._supersede_and_insert(fields, now)
            except IntegrityError as exc:
                raise StorageUnavailable() from exc

    @with_storage_retry
    def _supersede_and_insert(self, fields: dict, now) -> OtpChallenge:
        with transaction.atomic():
            superseded = (
                OtpChallenge.objects
                .filter(
                    purpose=fields["purpose"],
                    entity_id=fields["entity_id"],
                    mobile=fields["mobile"],
                    superseded_at__isnull=True,
                )
                .update(superseded_at=now, updated_at=now)
            )
            if superseded:
                logger.debug("Superseded %s challenge(s) for %s", superseded, fields["entity_id"])
            return OtpChallenge.objects.create(**fields)

    @with_storage_retry
    def record_failure(self, challenge: OtpChallenge, now, lockout) -> Optional[OtpChallenge]:
        """
        Count one failed attempt; the attempt that reaches max_attempts also
        sets locked_until = now + lockout.

        Returns:
            The updated row, or None when the challenge was no longer open
            (consumed, superseded, locked, expired or exhausted meanwhile).
        """
        # The row lock taken by the UPDATE is held until commit, so the
        # read-back sees this attempt's count and not a concurrent one.
        with transaction.atomic():
            updated = (
                OtpChallenge.objects
                .filter(_open_for_verification(now), pk=challenge.pk)
                .update(
                    attempts=F("attempts") + 1,
                    locked_until=Case(
                        When(
                            attempts__gte=F("max_attempts") - 1,
                            then=Value(now + lockout),
                        ),
                        default=F("locked_until"),
                        output_field=models.DateTimeField(),
                    ),
                    updated_at=now,
                )
            )
            if not updated:
                return None
            return OtpChallenge.objects.get(pk=challenge.pk)

    @with_storage_retry
    def consume(self, challenge: OtpChallenge, now) -> bool:
        """Mark consumed; True only for the single caller that won."""
        updated = (
            OtpChallenge.objects
            .filter(_open_for_verification(now), pk=challenge.pk)
            .update(consumed_at=now, updated_at=now)
        )
        return updated == 1

    @with_storage_retry
    def purge_expired(self, before) -> int:
        """Delete challenges that expired before ``before``."""
        deleted, _ = OtpChallenge.objects.filter(expires_at__lt=before).delete()
        return deleted
