# otp/services/dispatch.py
"""
SMS dispatch for OTP codes.

Delivery is outside the service's guarantees: ``send`` reports success as a
bool, and the caller logs failures without rolling back the challenge.
"""

import logging

from django.conf import settings
from kavenegar import APIException, HTTPException, KavenegarAPI

from otp.services.phone import mask

logger = logging.getLogger(__name__)


class ConsoleDispatcher:
    """Development dispatcher: logs the code instead of sending it."""

    def send(self, *, mobile: str, code: str, purpose: str) -> bool:
        logger.warning(f"[DEBUG OTP] {purpose} {mobile}: {code}")
        return True


class KavenegarDispatcher:
    """Service for sending OTP codes via Kavenegar verify-lookup templates."""

    def __init__(self, api_key: str = None, template: str = None, timeout: int = None):
        config = getattr(settings, "KAVENEGAR", {})
        self.api_key = api_key or config.get("API_KEY", "")
        self.template = template or config.get("OTP_TEMPLATE", "")
        self.timeout = timeout or config.get("TIMEOUT", 10)
        self._api = None

    @property
    def api(self):
        """Lazy initialization of API client."""
        if self._api is None and self.api_key:
            self._api = KavenegarAPI(self.api_key, timeout=self.timeout)
        return self._api

    def send(self, *, mobile: str, code: str, purpose: str) -> bool:
        if not self.api:
            logger.error("Kavenegar API not configured")
            return False

        try:
            logger.info(f"Sending {purpose} OTP to {mask(mobile)}")
            self.api.verify_lookup({
                "receptor": mobile.lstrip("+"),
                "template": self.template,
                "token": code,
                "type": "sms",
            })
            return True

        except APIException as e:
            logger.error(f"Kavenegar API error for {mask(mobile)}: {e}")
            return False
        except HTTPException as e:
            logger.error(f"Kavenegar HTTP error for {mask(mobile)}: {e}")
            return False
