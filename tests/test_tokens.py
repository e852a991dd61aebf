# tests/test_tokens.py

from datetime import timedelta

import pytest

from otp.exceptions import SigningFailure
from otp.services.tokens import TokenIssuer

from .helpers import FakeClock

SECRET = b"s" * 32


@pytest.fixture
def issuer(clock):
    return TokenIssuer(SECRET, timedelta(minutes=30), clock=clock)


def test_token_is_scoped_to_purpose_and_entity(issuer):
    signed = issuer.issue_token("ORDER_TRACKING", "ord_1", "+919876543210")

    assert issuer.validate_token(signed.token, "ORDER_TRACKING", "ord_1")
    assert not issuer.validate_token(signed.token, "RETURN_REQUEST", "ord_1")
    assert not issuer.validate_token(signed.token, "ORDER_TRACKING", "ord_2")


def test_claims_round_trip(issuer, clock):
    signed = issuer.issue_token("RETURN_REQUEST", "ret_9", "+919876543210")
    claims = issuer.read_claims(signed.token)

    assert claims.purpose == "RETURN_REQUEST"
    assert claims.entity_id == "ret_9"
    assert claims.mobile == "+919876543210"
    assert claims.expires_at == signed.expires_at
    assert signed.expires_at == clock.now + timedelta(minutes=30)


def test_token_expires(issuer, clock):
    signed = issuer.issue_token("ORDER_TRACKING", "ord_1", "+919876543210")

    clock.advance(29 * 60)
    assert issuer.validate_token(signed.token, "ORDER_TRACKING", "ord_1")

    clock.advance(60)
    assert not issuer.validate_token(signed.token, "ORDER_TRACKING", "ord_1")


def test_tampered_token_is_rejected(issuer):
    signed = issuer.issue_token("ORDER_TRACKING", "ord_1", "+919876543210")
    other = issuer.issue_token("ORDER_TRACKING", "ord_2", "+919876543210")

    claims, signature = signed.token.split(".")
    other_claims, _ = other.token.split(".")

    assert not issuer.validate_token(f"{other_claims}.{signature}", "ORDER_TRACKING", "ord_2")
    flipped = ("B" if signature[0] == "A" else "A") + signature[1:]
    assert not issuer.validate_token(f"{claims}.{flipped}", "ORDER_TRACKING", "ord_1")


@pytest.mark.parametrize("token", ["", "abc", "a.b.c", ".", "é.é", None, 123])
def test_garbage_is_rejected(issuer, token):
    assert not issuer.validate_token(token, "ORDER_TRACKING", "ord_1")


def test_other_secret_cannot_validate(issuer):
    signed = issuer.issue_token("ORDER_TRACKING", "ord_1", "+919876543210")
    stranger = TokenIssuer(b"t" * 32, timedelta(minutes=30), clock=FakeClock())
    assert not stranger.validate_token(signed.token, "ORDER_TRACKING", "ord_1")


def test_tokens_are_unique(issuer):
    first = issuer.issue_token("ORDER_TRACKING", "ord_1", "+919876543210")
    second = issuer.issue_token("ORDER_TRACKING", "ord_1", "+919876543210")
    assert first.token != second.token


def test_missing_secret_fails_closed():
    with pytest.raises(SigningFailure):
        TokenIssuer(b"", timedelta(minutes=30))
