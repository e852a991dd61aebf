# tests/test_rate_limit.py

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from otp.exceptions import IssuanceRateLimited, VerificationRateLimited
from otp.services.rate_limit_service import (
    IssuanceRateLimiter,
    VerificationRateLimiter,
    WindowLimit,
)

MOBILE = "+919876543210"
PURPOSE = "ORDER_TRACKING"


class BrokenRedis:
    def __getattr__(self, name):
        def fail(*args, **kwargs):
            raise RedisConnectionError("redis down")
        return fail


def issue(limiter, clock, mobile=MOBILE, ip="203.0.113.7", purpose=PURPOSE):
    return limiter.reserve_issuance(purpose, mobile, ip, clock.now)


# --------------------------------------------------
# RESEND COOLDOWN
# --------------------------------------------------

def test_second_issue_within_cooldown_is_limited(limiter, clock):
    issue(limiter, clock)

    with pytest.raises(IssuanceRateLimited) as exc:
        issue(limiter, clock)
    assert exc.value.retry_after == 60

    clock.advance(30)
    with pytest.raises(IssuanceRateLimited) as exc:
        issue(limiter, clock)
    assert exc.value.retry_after == 30


def test_issue_allowed_after_cooldown(limiter, clock):
    issue(limiter, clock)
    clock.advance(61)
    assert issue(limiter, clock) is not None


def test_purposes_are_limited_independently(limiter, clock):
    issue(limiter, clock, purpose="ORDER_TRACKING")
    issue(limiter, clock, purpose="RETURN_REQUEST")


# --------------------------------------------------
# SLIDING WINDOWS
# --------------------------------------------------

def test_per_mobile_window_cap(limiter, clock):
    for _ in range(3):
        issue(limiter, clock)
        clock.advance(61)

    with pytest.raises(IssuanceRateLimited) as exc:
        limiter.reserve_issuance(PURPOSE, MOBILE, None, clock.now)
    # the first issuance leaves the 600s window 600 - 183 seconds from now
    assert exc.value.retry_after == 417

    clock.advance(417)
    issue(limiter, clock)


def test_per_ip_window_cap(fake_redis, clock):
    limiter = IssuanceRateLimiter(
        cooldown_seconds=0,
        per_mobile=WindowLimit(10, 600),
        per_ip=WindowLimit(2, 3600),
        client=fake_redis,
    )
    issue(limiter, clock, mobile="+919000000001")
    issue(limiter, clock, mobile="+919000000002")

    with pytest.raises(IssuanceRateLimited) as exc:
        issue(limiter, clock, mobile="+919000000003")
    assert exc.value.retry_after == 3600

    # other clients are unaffected
    issue(limiter, clock, mobile="+919000000003", ip="198.51.100.1")


def test_refused_request_does_not_fill_the_window(fake_redis, clock):
    limiter = IssuanceRateLimiter(
        cooldown_seconds=0,
        per_mobile=WindowLimit(2, 600),
        per_ip=WindowLimit(100, 3600),
        client=fake_redis,
    )
    issue(limiter, clock)
    issue(limiter, clock)
    for _ in range(5):
        with pytest.raises(IssuanceRateLimited):
            issue(limiter, clock)

    assert fake_redis.zcard(limiter._mobile_key(PURPOSE, MOBILE)) == 2
    assert fake_redis.zcard(limiter._ip_key("203.0.113.7")) == 2


# --------------------------------------------------
# RESERVATION
# --------------------------------------------------

def test_back_to_back_reservations_only_one_wins(limiter, clock):
    first = issue(limiter, clock)

    with pytest.raises(IssuanceRateLimited):
        issue(limiter, clock)

    assert first is not None


def test_released_slot_can_be_taken_again(limiter, clock):
    reservation = issue(limiter, clock)
    limiter.release(reservation)

    assert issue(limiter, clock) is not None


def test_release_of_nothing_is_a_no_op(limiter):
    limiter.release(None)


def test_reset_clears_limits(limiter, clock):
    issue(limiter, clock)
    limiter.reset(PURPOSE, MOBILE, "203.0.113.7")
    issue(limiter, clock)


# --------------------------------------------------
# VERIFICATION ATTEMPTS
# --------------------------------------------------

def test_verification_attempts_capped_per_mobile(fake_redis, clock):
    limiter = VerificationRateLimiter(per_mobile=WindowLimit(3, 3600), client=fake_redis)
    for _ in range(3):
        limiter.reserve_verification(PURPOSE, MOBILE, clock.now)
        clock.advance(10)

    with pytest.raises(VerificationRateLimited) as exc:
        limiter.reserve_verification(PURPOSE, MOBILE, clock.now)
    assert exc.value.retry_after == 3600 - 30
    assert exc.value.status_code == 429

    # other purposes and numbers keep their own budget
    limiter.reserve_verification("RETURN_REQUEST", MOBILE, clock.now)
    limiter.reserve_verification(PURPOSE, "+919000000001", clock.now)

    clock.advance(3600 - 30)
    limiter.reserve_verification(PURPOSE, MOBILE, clock.now)


def test_verification_limit_reset(fake_redis, clock):
    limiter = VerificationRateLimiter(per_mobile=WindowLimit(1, 3600), client=fake_redis)
    limiter.reserve_verification(PURPOSE, MOBILE, clock.now)

    limiter.reset(PURPOSE, MOBILE)

    limiter.reserve_verification(PURPOSE, MOBILE, clock.now)


# --------------------------------------------------
# REDIS OUTAGE
# --------------------------------------------------

def test_redis_outage_fails_open(otp_config, clock):
    limiter = IssuanceRateLimiter.from_settings(otp_config, client=BrokenRedis())

    reservation = limiter.reserve_issuance(PURPOSE, MOBILE, "203.0.113.7", clock.now)

    assert reservation is None
    limiter.release(reservation)


def test_verification_limit_fails_open(otp_config, clock):
    limiter = VerificationRateLimiter.from_settings(otp_config, client=BrokenRedis())

    assert limiter.reserve_verification(PURPOSE, MOBILE, clock.now) is None


def test_retry_after_is_at_least_one_second():
    assert IssuanceRateLimited(retry_after=0).retry_after == 1
