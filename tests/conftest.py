# tests/conftest.py

import fakeredis
import pytest

from otp.conf import OtpSettings
from otp.services.audit import InMemoryAuditSink
from otp.services.challenge_store import ChallengeStore
from otp.services.otp_service import OtpService, get_otp_service
from otp.services.rate_limit_service import IssuanceRateLimiter, VerificationRateLimiter
from otp.services.redis_service import redis_service

from .helpers import FakeClock, RecordingDispatcher


@pytest.fixture(autouse=True)
def isolated_redis():
    """Fresh FakeRedis and service instance for every test."""
    redis_service.reset()
    redis_service.client.flushall()
    get_otp_service.cache_clear()
    RecordingDispatcher.clear()
    yield
    redis_service.client.flushall()
    get_otp_service.cache_clear()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_redis():
    client = fakeredis.FakeRedis(decode_responses=True)
    client.flushall()
    return client


@pytest.fixture
def otp_config():
    return OtpSettings.from_django().with_overrides(storage_retry_backoff_seconds=0)


@pytest.fixture
def limiter(otp_config, fake_redis):
    return IssuanceRateLimiter.from_settings(otp_config, client=fake_redis)


@pytest.fixture
def audit_sink():
    return InMemoryAuditSink()


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def store():
    return ChallengeStore(retry_backoff=0, sleep=lambda seconds: None)


@pytest.fixture
def make_service(otp_config, store, limiter, dispatcher, audit_sink, clock):
    """Build an OtpService around the test doubles; overrides go to OtpSettings."""

    def build(**overrides):
        config = otp_config.with_overrides(**overrides) if overrides else otp_config
        return OtpService(
            config,
            store=store,
            limiter=IssuanceRateLimiter.from_settings(config, client=limiter.client),
            verify_limiter=VerificationRateLimiter.from_settings(config, client=limiter.client),
            dispatcher=dispatcher,
            audit_sink=audit_sink,
            clock=clock,
        )

    return build


@pytest.fixture
def service(make_service):
    return make_service()
