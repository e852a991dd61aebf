import uuid

from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="OtpChallenge",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("purpose", models.CharField(choices=[("ORDER_TRACKING", "Order tracking"), ("RETURN_REQUEST", "Return request")], max_length=32)),
                ("entity_id", models.CharField(max_length=128)),
                ("mobile", models.CharField(help_text="Canonical +<cc><number>", max_length=20)),
                ("code_hash", models.CharField(max_length=64)),
                ("created_at", models.DateTimeField()),
                ("expires_at", models.DateTimeField(db_index=True)),
                ("updated_at", models.DateTimeField()),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("max_attempts", models.PositiveIntegerField()),
                ("locked_until", models.DateTimeField(blank=True, null=True)),
                ("consumed_at", models.DateTimeField(blank=True, null=True)),
                ("superseded_at", models.DateTimeField(blank=True, null=True)),
                ("ip_address", models.GenericIPAddressField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "OTP Challenge",
                "verbose_name_plural": "OTP Challenges",
                "db_table": "otp_challenge",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["purpose", "entity_id", "mobile"], name="otp_challenge_key_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("superseded_at__isnull", True)),
                        fields=("purpose", "entity_id", "mobile"),
                        name="unique_current_otp_challenge",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("attempts__lte", models.F("max_attempts"))),
                        name="otp_attempts_within_max",
                    ),
                ],
            },
        ),
    ]
