from django.contrib import admin

from .models import OtpChallenge


@admin.register(OtpChallenge)
class OtpChallengeAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "purpose",
        "entity_id",
        "mobile",
        "attempts",
        "created_at",
        "expires_at",
        "locked_until",
        "consumed_at",
        "superseded_at",
    )
    search_fields = ("entity_id", "mobile")
    list_filter = ("purpose",)
    ordering = ("-created_at",)
    exclude = ("code_hash",)

    # Challenges change state only through the OTP service
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
