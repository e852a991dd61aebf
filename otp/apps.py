# otp/apps.py

from django.apps import AppConfig


class OtpConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "otp"
    verbose_name = "Guest Access OTP"

    def ready(self):
        # Refuse to start rather than ever hand out unsigned tokens
        from otp.conf import OtpSettings

        config = OtpSettings.from_django()
        if config.enabled:
            config.require_signing_secret()
