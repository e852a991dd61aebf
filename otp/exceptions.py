# otp/exceptions.py

"""
OTP EXCEPTIONS

Domain failures are expected outcomes: they are raised by the service,
audited, and rendered verbatim by ``core.exceptions.custom_exception_handler``
with the UI fields returned from ``get_extra_data()``.
"""

from rest_framework import status
from rest_framework.exceptions import APIException

from core.exceptions import ServiceUnavailableException


class OtpError(APIException):
    """Base class for OTP errors"""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Unable to process request."
    default_code = "otp_error"

    def get_extra_data(self) -> dict:
        return {}


class InvalidPhoneFormat(OtpError):
    default_detail = "Invalid mobile number format."
    default_code = "invalid_phone_format"


class InvalidInput(OtpError):
    default_detail = "Invalid request."
    default_code = "invalid_input"


class RateLimited(OtpError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    default_detail = "Too many requests. Please try again later."
    default_code = "rate_limited"

    def __init__(self, retry_after: int, detail=None):
        super().__init__(detail)
        self.retry_after = max(int(retry_after), 1)
        # picked up by DRF for the Retry-After header
        self.wait = self.retry_after

    def get_extra_data(self) -> dict:
        return {"retry_after": self.retry_after}


class IssuanceRateLimited(RateLimited):
    default_code = "issuance_rate_limited"


class VerificationRateLimited(RateLimited):
    default_detail = "Too many verification attempts. Please try again later."
    default_code = "verification_rate_limited"


class Locked(OtpError):
    default_detail = "Too many attempts. Please try again later."
    default_code = "locked"

    def __init__(self, locked_until, detail=None):
        super().__init__(detail)
        self.locked_until = locked_until

    def get_extra_data(self) -> dict:
        return {"locked_until": self.locked_until.isoformat()}


class Expired(OtpError):
    default_detail = "This code has expired. Please request a new one."
    default_code = "expired"


class AlreadyUsed(OtpError):
    default_detail = "This code has already been used."
    default_code = "already_used"


class CodeMismatch(OtpError):
    default_detail = "Invalid OTP."
    default_code = "code_mismatch"

    def __init__(self, attempts_remaining: int, locked_until=None, detail=None):
        super().__init__(detail)
        self.attempts_remaining = attempts_remaining
        self.locked_until = locked_until

    def get_extra_data(self) -> dict:
        data = {"attempts_remaining": self.attempts_remaining}
        if self.locked_until is not None:
            data["locked_until"] = self.locked_until.isoformat()
        return data


class NotFound(OtpError):
    # Same wording as a mismatch: do not reveal whether a challenge exists
    default_detail = "Invalid or expired OTP."
    default_code = "not_found"


class StorageUnavailable(OtpError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_detail = "Unable to process request right now. Please try again."
    default_code = "storage_unavailable"


class SigningFailure(OtpError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = "Unable to process request."
    default_code = "signing_failure"


class ServiceDisabled(ServiceUnavailableException):
    default_detail = "Guest access is temporarily unavailable."
