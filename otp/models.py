# otp/models.py

import uuid

from django.db import models
from django.db.models import Q


class Purpose(models.TextChoices):
    """Business context an OTP gates; also the scope of the resulting token."""
    ORDER_TRACKING = "ORDER_TRACKING", "Order tracking"
    RETURN_REQUEST = "RETURN_REQUEST", "Return request"


# ============================================================
# OTP CHALLENGE
# ============================================================

class OtpChallenge(models.Model):
    """
    One OTP lifecycle bound to (purpose, entity_id, mobile).

    Rows are only mutated through ``otp.services.challenge_store``, which
    applies every state transition as a single conditional UPDATE.
    Superseded rows are kept for audit until the retention purge.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    purpose = models.CharField(max_length=32, choices=Purpose.choices)
    entity_id = models.CharField(max_length=128)
    mobile = models.CharField(max_length=20, help_text="Canonical +<cc><number>")
    code_hash = models.CharField(max_length=64)

    created_at = models.DateTimeField()
    expires_at = models.DateTimeField(db_index=True)
    updated_at = models.DateTimeField()

    attempts = models.PositiveIntegerField(default=0)
    max_attempts = models.PositiveIntegerField()
    locked_until = models.DateTimeField(null=True, blank=True)
    consumed_at = models.DateTimeField(null=True, blank=True)
    superseded_at = models.DateTimeField(null=True, blank=True)

    ip_address = models.GenericIPAddressField(null=True, blank=True)

    class Meta:
        db_table = "otp_challenge"
        verbose_name = "OTP Challenge"
        verbose_name_plural = "OTP Challenges"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["purpose", "entity_id", "mobile"],
                name="otp_challenge_key_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["purpose", "entity_id", "mobile"],
                condition=Q(superseded_at__isnull=True),
                name="unique_current_otp_challenge",
            ),
            models.CheckConstraint(
                condition=Q(attempts__lte=models.F("max_attempts")),
                name="otp_attempts_within_max",
            ),
        ]

    @property
    def attempts_remaining(self) -> int:
        return max(self.max_attempts - self.attempts, 0)

    def __str__(self):
        return f"{self.purpose}:{self.entity_id} ({self.id})"
