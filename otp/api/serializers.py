# otp/api/serializers.py
"""
Request shapes for the guest access endpoints.

Only the shape is checked here (non-empty strings, 6-digit code, known
purpose); mobile canonicalization and everything stateful happen in the
service, after this validation has passed.
"""

from rest_framework import serializers

from otp.models import Purpose

OTP_PATTERN = r"^\d{6}$"


class ChallengeKeySerializer(serializers.Serializer):
    purpose = serializers.ChoiceField(choices=Purpose.choices)
    entity_id = serializers.CharField(max_length=128)
    mobile = serializers.CharField(max_length=32)


class VerifyChallengeSerializer(ChallengeKeySerializer):
    otp = serializers.RegexField(
        OTP_PATTERN,
        error_messages={"invalid": "OTP must be exactly 6 digits."},
    )


class TokenValidateSerializer(serializers.Serializer):
    token = serializers.CharField(max_length=1024, trim_whitespace=True)
    purpose = serializers.ChoiceField(choices=Purpose.choices)
    entity_id = serializers.CharField(max_length=128)
