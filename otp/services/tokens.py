# otp/services/tokens.py
"""
Scoped access tokens.

A token is ``<claims>.<signature>``, both base64url without padding:

    claims    = JSON {purpose, entity_id, mobile, iat, exp, nonce}
    signature = HMAC-SHA256(secret, "otp-token:" + claims)

Nothing is stored: validity is re-derived from the signature and expiry
every time a token is presented, so validation only needs the secret and
can run in any process.
"""

import base64
import binascii
import hashlib
import hmac
import json
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone
from typing import Callable, Optional

from django.utils import timezone

from otp.exceptions import SigningFailure

_SIGNING_CONTEXT = b"otp-token:"


@dataclass(frozen=True)
class TokenClaims:
    purpose: str
    entity_id: str
    mobile: str
    issued_at: datetime
    expires_at: datetime
    nonce: str


@dataclass(frozen=True)
class SignedToken:
    token: str
    expires_at: datetime


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padding = "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(text + padding)


class TokenIssuer:
    """Mints and validates scoped tokens with a process-wide secret."""

    def __init__(
        self,
        secret: bytes,
        ttl: timedelta,
        clock: Callable[[], datetime] = timezone.now,
    ):
        if not secret:
            raise SigningFailure("Token signing secret is not configured")
        self._secret = secret
        self.ttl = ttl
        self.clock = clock

    def _sign(self, encoded_claims: str) -> str:
        digest = hmac.new(
            self._secret,
            _SIGNING_CONTEXT + encoded_claims.encode("ascii"),
            hashlib.sha256,
        ).digest()
        return _b64encode(digest)

    def issue_token(self, purpose: str, entity_id: str, mobile: str) -> SignedToken:
        issued_at = self.clock()
        expires_at = issued_at + self.ttl
        claims = {
            "purpose": purpose,
            "entity_id": entity_id,
            "mobile": mobile,
            "iat": int(issued_at.timestamp()),
            "exp": int(expires_at.timestamp()),
            "nonce": secrets.token_urlsafe(16),
        }
        encoded = _b64encode(
            json.dumps(claims, separators=(",", ":"), sort_keys=True).encode()
        )
        return SignedToken(
            token=f"{encoded}.{self._sign(encoded)}",
            expires_at=datetime.fromtimestamp(claims["exp"], tz=dt_timezone.utc),
        )

    def read_claims(self, token: str) -> Optional[TokenClaims]:
        """
        Verified, unexpired claims of a token, or None for anything that
        is malformed, tampered with or expired.
        """
        if not isinstance(token, str) or token.count(".") != 1:
            return None

        encoded, signature = token.split(".")
        if not (encoded and signature and encoded.isascii() and signature.isascii()):
            return None

        if not hmac.compare_digest(self._sign(encoded), signature):
            return None

        try:
            raw = json.loads(_b64decode(encoded))
            claims = TokenClaims(
                purpose=str(raw["purpose"]),
                entity_id=str(raw["entity_id"]),
                mobile=str(raw["mobile"]),
                issued_at=datetime.fromtimestamp(int(raw["iat"]), tz=dt_timezone.utc),
                expires_at=datetime.fromtimestamp(int(raw["exp"]), tz=dt_timezone.utc),
                nonce=str(raw["nonce"]),
            )
        except (binascii.Error, ValueError, KeyError, TypeError):
            return None

        if self.clock() >= claims.expires_at:
            return None
        return claims

    def validate_token(self, token: str, expected_purpose: str, expected_entity_id: str) -> bool:
        claims = self.read_claims(token)
        if claims is None:
            return False
        return claims.purpose == str(expected_purpose) and claims.entity_id == str(expected_entity_id)
