from django.core.management.base import BaseCommand

from otp.services.otp_service import get_otp_service


class Command(BaseCommand):
    help = "Delete OTP challenges that expired longer ago than the retention window."

    def handle(self, *args, **options):
        deleted = get_otp_service().purge_stale_challenges()
        self.stdout.write(self.style.SUCCESS(f"Purged {deleted} OTP challenge(s)"))
