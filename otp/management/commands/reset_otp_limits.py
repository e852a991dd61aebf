from django.core.management.base import BaseCommand, CommandError

from otp.exceptions import InvalidPhoneFormat
from otp.models import Purpose
from otp.services.otp_service import get_otp_service


class Command(BaseCommand):
    help = "Clear OTP issuance and verification limits for a mobile number (support override)."

    def add_arguments(self, parser):
        parser.add_argument("mobile", help="Mobile number, any accepted format")
        parser.add_argument(
            "--purpose",
            choices=Purpose.values,
            help="Only this purpose (default: all)",
        )
        parser.add_argument("--ip", help="Also clear the per-IP issuance window")

    def handle(self, *args, **options):
        service = get_otp_service()
        try:
            mobile = service.normalize_mobile(options["mobile"])
        except InvalidPhoneFormat as exc:
            raise CommandError(f"Invalid mobile number: {options['mobile']}") from exc

        purposes = [options["purpose"]] if options["purpose"] else Purpose.values
        for purpose in purposes:
            service.reset_limits(purpose, mobile, options["ip"])

        self.stdout.write(
            self.style.SUCCESS(f"Reset OTP limits for {len(purposes)} purpose(s)")
        )
