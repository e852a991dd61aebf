# otp/services/audit.py
"""
Audit events for security-relevant OTP transitions.

The sink is an external collaborator; the default one writes structured
records to the ``otp.audit`` logger, where log shipping picks them up.
Emission is best-effort: a failing sink is logged and never fails the
operation being audited.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Optional

from django.utils import timezone

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("otp.audit")


@dataclass(frozen=True)
class AuditEvent:
    action: str             # "otp_issued" | "otp_verify"
    outcome: str            # "issued", "success", or an error code
    purpose: str
    entity_id: str
    mobile_masked: str
    ip_address: Optional[str] = None
    details: dict = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=timezone.now)

    def as_dict(self) -> dict:
        data = asdict(self)
        data["occurred_at"] = self.occurred_at.isoformat()
        return data


class LoggingAuditSink:
    """Writes each event as one structured log record."""

    def emit(self, event: AuditEvent) -> None:
        audit_logger.info(
            "%s %s %s:%s %s",
            event.action,
            event.outcome,
            event.purpose,
            event.entity_id,
            event.mobile_masked,
            extra={"audit": event.as_dict()},
        )


class InMemoryAuditSink:
    """Collects events; used by tests and local debugging."""

    def __init__(self):
        self.events = []

    def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    def outcomes(self):
        return [event.outcome for event in self.events]


def emit_safely(sink, event: AuditEvent) -> None:
    try:
        sink.emit(event)
    except Exception:
        logger.exception(
            "Audit sink %s failed for %s/%s",
            sink.__class__.__name__,
            event.action,
            event.outcome,
        )
