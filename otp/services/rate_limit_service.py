# otp/services/rate_limit_service.py
"""
OTP rate limiting using Redis sorted-set sliding windows.

- IssuanceRateLimiter: resend cooldown plus caps per (purpose, mobile) and
  per client IP, guarding against SMS-bombing.
- VerificationRateLimiter: cap on verification attempts per
  (purpose, mobile) across challenges, so re-issuing does not buy fresh
  guesses.

A slot is reserved before the guarded work starts: one MULTI pipeline trims
each window, adds this request, and reads the window back. A request that
lands over any limit removes its own entry and is refused, so concurrent
requests cannot both pass a check that only one of them fits.

Time is always passed in by the caller, so windows follow the service clock
rather than Redis' own; Redis TTLs only bound memory.
"""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from redis.exceptions import RedisError

from otp.exceptions import IssuanceRateLimited, VerificationRateLimited
from otp.services.redis_service import redis_service

logger = logging.getLogger(__name__)

# Commands queued per window in _reserve
_COMMANDS_PER_WINDOW = 4


@dataclass(frozen=True)
class WindowLimit:
    """At most ``limit`` events per sliding ``window`` seconds."""
    limit: int
    window: int


@dataclass(frozen=True)
class Reservation:
    """A slot taken in one or more windows; released if the work fails."""
    member: str
    keys: Tuple[str, ...]


class SlidingWindowLimiter:
    """Atomic reserve/release over a set of sorted-set windows."""

    KEY_PREFIX = "ratelimit"

    def __init__(self, client=None):
        self._client = client

    @property
    def client(self):
        return self._client if self._client is not None else redis_service.client

    def _reserve(
        self,
        rules: Sequence[Tuple[str, WindowLimit]],
        now: datetime,
        error_class,
    ) -> Optional[Reservation]:
        """
        Take one slot in every window or none of them.

        Returns:
            The reservation, or None when Redis is unavailable (fail open)

        Raises:
            error_class: with the largest applicable retry-after
        """
        if not rules:
            return None

        ts = now.timestamp()
        member = f"{ts}:{uuid.uuid4().hex}"
        keys = tuple(key for key, _ in rules)

        try:
            pipe = self.client.pipeline(transaction=True)
            for key, rule in rules:
                window_start = ts - rule.window
                pipe.zremrangebyscore(key, "-inf", window_start)
                pipe.zadd(key, {member: ts})
                pipe.zrangebyscore(key, f"({window_start}", "+inf", withscores=True)
                pipe.expire(key, max(rule.window, 1))
            replies = pipe.execute()
        except RedisError:
            # Fail open: the per-challenge attempt cap still protects codes
            logger.warning("%s skipped: redis unavailable", self.__class__.__name__, exc_info=True)
            return None

        waits: List[float] = []
        for index, (key, rule) in enumerate(rules):
            entries = replies[index * _COMMANDS_PER_WINDOW + 2]
            if len(entries) <= rule.limit:
                continue
            others = [score for name, score in entries if name != member]
            # The entry that must leave the window before this request fits
            waits.append(others[len(others) - rule.limit] + rule.window - ts)

        reservation = Reservation(member=member, keys=keys)
        if waits:
            self.release(reservation)
            raise error_class(retry_after=math.ceil(max(max(waits), 1)))
        return reservation

    def release(self, reservation: Optional[Reservation]) -> None:
        """Give a slot back, e.g. when the guarded work failed."""
        if reservation is None:
            return
        try:
            pipe = self.client.pipeline(transaction=True)
            for key in reservation.keys:
                pipe.zrem(key, reservation.member)
            pipe.execute()
        except RedisError:
            logger.warning("Rate limit slot not released: redis unavailable", exc_info=True)


class IssuanceRateLimiter(SlidingWindowLimiter):
    """
    Rate limits OTP issuance independently of verification.

    The resend cooldown is a one-slot window, so it goes through the same
    atomic reservation as the caps.
    """

    KEY_PREFIX = "ratelimit:otp_issue"

    def __init__(
        self,
        *,
        cooldown_seconds: int,
        per_mobile: WindowLimit,
        per_ip: WindowLimit,
        client=None,
    ):
        super().__init__(client=client)
        self.cooldown_seconds = cooldown_seconds
        self.per_mobile = per_mobile
        self.per_ip = per_ip

    @classmethod
    def from_settings(cls, config, client=None) -> "IssuanceRateLimiter":
        return cls(
            cooldown_seconds=config.issue_cooldown_seconds,
            per_mobile=WindowLimit(config.issue_limit_per_mobile, config.issue_window_seconds),
            per_ip=WindowLimit(config.issue_limit_per_ip, config.issue_ip_window_seconds),
            client=client,
        )

    # ------------------------------------------------------------------
    # Keys
    # ------------------------------------------------------------------

    def _cooldown_key(self, purpose: str, mobile: str) -> str:
        return f"{self.KEY_PREFIX}:cooldown:{purpose}:{mobile}"

    def _mobile_key(self, purpose: str, mobile: str) -> str:
        return f"{self.KEY_PREFIX}:mobile:{purpose}:{mobile}"

    def _ip_key(self, ip: str) -> str:
        return f"{self.KEY_PREFIX}:ip:{ip}"

    def _rules(self, purpose: str, mobile: str, ip: Optional[str]):
        rules = []
        if self.cooldown_seconds > 0:
            rules.append(
                (self._cooldown_key(purpose, mobile), WindowLimit(1, self.cooldown_seconds))
            )
        rules.append((self._mobile_key(purpose, mobile), self.per_mobile))
        if ip:
            rules.append((self._ip_key(ip), self.per_ip))
        return rules

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def reserve_issuance(
        self,
        purpose: str,
        mobile: str,
        ip: Optional[str],
        now: datetime,
    ) -> Optional[Reservation]:
        """
        Called before a challenge is created; release() the result if
        creating it fails.

        Raises:
            IssuanceRateLimited: cooldown or a window cap hit
        """
        return self._reserve(self._rules(purpose, mobile, ip), now, IssuanceRateLimited)

    def reset(self, purpose: str, mobile: str, ip: Optional[str] = None) -> None:
        """Clear limits for a number (support override, see reset_otp_limits)."""
        keys = [self._cooldown_key(purpose, mobile), self._mobile_key(purpose, mobile)]
        if ip:
            keys.append(self._ip_key(ip))
        self.client.delete(*keys)


class VerificationRateLimiter(SlidingWindowLimiter):
    """Caps verification attempts per (purpose, mobile), whatever the challenge."""

    KEY_PREFIX = "ratelimit:otp_verify"

    def __init__(self, *, per_mobile: WindowLimit, client=None):
        super().__init__(client=client)
        self.per_mobile = per_mobile

    @classmethod
    def from_settings(cls, config, client=None) -> "VerificationRateLimiter":
        return cls(
            per_mobile=WindowLimit(config.verify_limit_per_mobile, config.verify_window_seconds),
            client=client,
        )

    def _mobile_key(self, purpose: str, mobile: str) -> str:
        return f"{self.KEY_PREFIX}:mobile:{purpose}:{mobile}"

    def reserve_verification(self, purpose: str, mobile: str, now: datetime) -> Optional[Reservation]:
        """
        Every verification call spends a slot, whatever its outcome.

        Raises:
            VerificationRateLimited: window cap hit
        """
        return self._reserve(
            [(self._mobile_key(purpose, mobile), self.per_mobile)],
            now,
            VerificationRateLimited,
        )

    def reset(self, purpose: str, mobile: str) -> None:
        self.client.delete(self._mobile_key(purpose, mobile))
