# tests/test_concurrency.py
"""
Concurrent verification against one challenge.

Needs real row-level concurrency, so it only runs against PostgreSQL
(TEST_DATABASE=postgres); SQLite serializes writers and would prove nothing.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest
from django.db import connection

from otp.exceptions import AlreadyUsed, CodeMismatch, Locked, NotFound, OtpError
from otp.models import OtpChallenge

from .helpers import RecordingDispatcher, wrong_code

MOBILE = "+919876543210"
WORKERS = 8


@pytest.fixture
def postgres_only():
    if connection.vendor != "postgresql":
        pytest.skip("concurrency tests need PostgreSQL")


def run_concurrently(service, codes):
    barrier = threading.Barrier(len(codes))

    def attempt(code):
        barrier.wait()
        try:
            service.verify("ORDER_TRACKING", "ord_1", MOBILE, code)
            return "success"
        except OtpError as exc:
            return exc
        finally:
            connection.close()

    with ThreadPoolExecutor(max_workers=len(codes)) as pool:
        return list(pool.map(attempt, codes))


@pytest.mark.django_db(transaction=True)
def test_concurrent_correct_codes_succeed_exactly_once(postgres_only, service):
    service.issue_challenge("ORDER_TRACKING", "ord_1", MOBILE)
    code = RecordingDispatcher.last_code(MOBILE)

    results = run_concurrently(service, [code] * WORKERS)

    assert results.count("success") == 1
    failures = [result for result in results if result != "success"]
    assert all(isinstance(result, (AlreadyUsed, CodeMismatch)) for result in failures)

    challenge = OtpChallenge.objects.get()
    assert challenge.consumed_at is not None
    assert challenge.attempts == 0


@pytest.mark.django_db(transaction=True)
def test_concurrent_wrong_codes_never_lose_an_attempt(postgres_only, service):
    service.issue_challenge("ORDER_TRACKING", "ord_1", MOBILE)
    code = RecordingDispatcher.last_code(MOBILE)

    results = run_concurrently(service, [wrong_code(code)] * WORKERS)

    mismatches = [result for result in results if isinstance(result, CodeMismatch)]
    assert len(mismatches) == 5
    assert sorted(result.attempts_remaining for result in mismatches) == [0, 1, 2, 3, 4]
    assert all(
        isinstance(result, (CodeMismatch, Locked, NotFound)) for result in results
    )
    assert OtpChallenge.objects.get().attempts == 5
