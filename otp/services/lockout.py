# otp/services/lockout.py
"""
Lockout guard evaluated before every code comparison.

Pure functions over a challenge snapshot. The store repeats the same
conditions inside its conditional UPDATEs, so a snapshot that passes here but
went stale is caught there and re-classified with ``ensure_verifiable``.
"""

from otp.exceptions import AlreadyUsed, Expired, Locked


def ensure_verifiable(challenge, now) -> None:
    """
    Raises the first applicable failure, in this order:

    - Locked: lockout still running (no attempt consumed)
    - Expired: past expires_at (no attempt consumed)
    - AlreadyUsed: consumed earlier
    - Expired: attempts exhausted and lockout over; the challenge is terminal
    """
    if challenge.locked_until is not None and now < challenge.locked_until:
        raise Locked(locked_until=challenge.locked_until)

    if now > challenge.expires_at:
        raise Expired()

    if challenge.consumed_at is not None:
        raise AlreadyUsed()

    if challenge.attempts >= challenge.max_attempts:
        raise Expired()


def is_verifiable(challenge, now) -> bool:
    try:
        ensure_verifiable(challenge, now)
    except (Locked, Expired, AlreadyUsed):
        return False
    return True
