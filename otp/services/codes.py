# otp/services/codes.py
"""
Cryptographic utilities for OTP codes.
"""

import hashlib
import hmac
import secrets


def generate_code(length: int = 6) -> str:
    """Uniform numeric code, leading zeros allowed."""
    return str(secrets.randbelow(10 ** length)).zfill(length)


def hash_code(code: str, challenge_id, secret: bytes) -> str:
    """
    HMAC-SHA256 of the code, bound to the challenge it was issued for.

    Binding to the challenge id means a stored hash is useless for any
    other challenge, even one that happened to draw the same code.
    """
    message = f"otp-code:{challenge_id}:{code}".encode()
    return hmac.new(secret, message, hashlib.sha256).hexdigest()


def code_matches(code: str, challenge_id, stored_hash: str, secret: bytes) -> bool:
    """Verify a submitted code using constant-time comparison."""
    computed = hash_code(code, challenge_id, secret)
    return hmac.compare_digest(computed, stored_hash)
