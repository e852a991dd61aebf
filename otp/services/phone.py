# otp/services/phone.py
"""
Mobile number canonicalization.

Every challenge key and token carries the canonical form
``+<country code><national number>`` so that "98765 43210", "098765-43210"
and "+91 98765 43210" all address the same challenge.
"""

import re

from otp.exceptions import InvalidPhoneFormat

_NON_DIGITS = re.compile(r"\D")


def normalize(raw: str, country_code: str = "91", national_length: int = 10) -> str:
    """
    Canonicalize a raw mobile number.

    Args:
        raw: user-entered number, any punctuation
        country_code: digits prefixed when the number arrives without one
        national_length: exact length of the national significant number

    Returns:
        "+<country_code><national number>"

    Raises:
        InvalidPhoneFormat: when no fixed-length numeric form can be derived
    """
    if not isinstance(raw, str):
        raise InvalidPhoneFormat()

    digits = _NON_DIGITS.sub("", raw)
    full_length = len(country_code) + national_length

    if len(digits) == national_length:
        national = digits
    elif len(digits) == national_length + 1 and digits.startswith("0"):
        # trunk prefix, e.g. 09876543210
        national = digits[1:]
    elif len(digits) == full_length and digits.startswith(country_code):
        national = digits[len(country_code):]
    elif len(digits) == full_length + 2 and digits.startswith("00" + country_code):
        # international dialing prefix, e.g. 00919876543210
        national = digits[2 + len(country_code):]
    else:
        raise InvalidPhoneFormat()

    if national.startswith("0"):
        raise InvalidPhoneFormat()

    return f"+{country_code}{national}"


def mask(mobile: str) -> str:
    """Mask a canonical number for logs and audit events: +91987****210"""
    if not mobile or len(mobile) < 8:
        return "***"
    head = mobile[:-7]
    return f"{head}****{mobile[-3:]}"
