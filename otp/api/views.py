# otp/api/views.py

import ipaddress

from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.settings import api_settings
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from otp.conf import OtpSettings
from otp.exceptions import InvalidInput, ServiceDisabled
from otp.models import Purpose
from otp.services import phone
from otp.services.otp_service import get_otp_service

from .permissions import HasScopedAccessToken
from .serializers import (
    ChallengeKeySerializer,
    TokenValidateSerializer,
    VerifyChallengeSerializer,
)


def _parse_ip(value):
    try:
        return str(ipaddress.ip_address(value.strip()))
    except ValueError:
        return None


def get_client_ip(request):
    """
    Extract client IP from request.

    X-Forwarded-For is only read when REST_FRAMEWORK["NUM_PROXIES"] says
    our own proxies append to it, and then only the hop the outermost
    trusted proxy saw (same rule as DRF throttles). Anything else, or a
    value that is not an IP address, falls back to REMOTE_ADDR.
    """
    remote_addr = _parse_ip(request.META.get("REMOTE_ADDR", ""))
    x_forwarded_for = request.META.get("HTTP_X_FORWARDED_FOR")
    num_proxies = api_settings.NUM_PROXIES

    if x_forwarded_for and num_proxies:
        addrs = x_forwarded_for.split(",")
        client_addr = addrs[-min(num_proxies, len(addrs))]
        return _parse_ip(client_addr) or remote_addr

    return remote_addr


# ============================================================
# BASE
# ============================================================

class GuestAccessAPIView(APIView):
    """
    Unauthenticated endpoint behind the OTP feature flag.

    Subclasses either take ``purpose``/``entity_id`` from the body, or fix
    ``purpose`` and read the entity id from ``entity_field``
    (e.g. ``order_id`` on the order tracking routes).
    """

    authentication_classes = []
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]

    purpose = None
    entity_field = None
    serializer_class = None

    def initial(self, request, *args, **kwargs):
        if not OtpSettings.from_django().enabled:
            raise ServiceDisabled()
        super().initial(request, *args, **kwargs)

    def get_serializer(self, request):
        data = request.data
        if not isinstance(data, dict):
            raise InvalidInput("Request body must be a JSON object.")

        if self.purpose is not None:
            data = {key: value for key, value in data.items() if key != "purpose"}
            data["purpose"] = self.purpose
            if self.entity_field:
                data["entity_id"] = request.data.get(self.entity_field)

        return self.serializer_class(data=data)


# ============================================================
# CHALLENGE VIEWS
# ============================================================

class IssueChallengeView(GuestAccessAPIView):
    throttle_scope = "otp_issue"
    serializer_class = ChallengeKeySerializer

    def post(self, request):
        serializer = self.get_serializer(request)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        get_otp_service().issue_challenge(
            purpose=data["purpose"],
            entity_id=data["entity_id"],
            mobile=data["mobile"],
            ip=get_client_ip(request),
        )
        return Response({"success": True}, status=200)


class VerifyChallengeView(GuestAccessAPIView):
    throttle_scope = "otp_verify"
    serializer_class = VerifyChallengeSerializer

    def post(self, request):
        serializer = self.get_serializer(request)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = get_otp_service().verify(
            purpose=data["purpose"],
            entity_id=data["entity_id"],
            mobile=data["mobile"],
            code=data["otp"],
            ip=get_client_ip(request),
        )
        return Response(
            {
                "success": True,
                "token": result.token,
                "expires_at": result.expires_at.isoformat(),
            },
            status=200,
        )


class TokenValidateView(GuestAccessAPIView):
    throttle_scope = "otp_token"
    serializer_class = TokenValidateSerializer

    def post(self, request):
        serializer = self.get_serializer(request)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        valid = get_otp_service().validate_token(
            data["token"], data["purpose"], data["entity_id"]
        )
        return Response({"success": True, "valid": valid}, status=200)


class GuestSessionView(GuestAccessAPIView):
    """
    Claims behind a scoped access token (Authorization: Bearer).

    The storefront calls this before rendering a guest order or return page;
    a token for another purpose or entity is refused with 403.
    """

    permission_classes = [HasScopedAccessToken]
    throttle_scope = "otp_token"

    otp_purpose = None
    otp_entity_kwarg = None

    def get(self, request, **kwargs):
        claims = request.otp_claims
        return Response(
            {
                "success": True,
                "purpose": claims.purpose,
                "entity_id": claims.entity_id,
                "mobile": phone.mask(claims.mobile),
                "expires_at": claims.expires_at.isoformat(),
            },
            status=200,
        )


# ============================================================
# PURPOSE-BOUND ROUTES (storefront)
# ============================================================

class OrderTrackingIssueView(IssueChallengeView):
    purpose = Purpose.ORDER_TRACKING
    entity_field = "order_id"


class OrderTrackingVerifyView(VerifyChallengeView):
    purpose = Purpose.ORDER_TRACKING
    entity_field = "order_id"


class ReturnRequestIssueView(IssueChallengeView):
    purpose = Purpose.RETURN_REQUEST
    entity_field = "return_id"


class ReturnRequestVerifyView(VerifyChallengeView):
    purpose = Purpose.RETURN_REQUEST
    entity_field = "return_id"


class OrderTrackingSessionView(GuestSessionView):
    otp_purpose = Purpose.ORDER_TRACKING
    otp_entity_kwarg = "order_id"


class ReturnRequestSessionView(GuestSessionView):
    otp_purpose = Purpose.RETURN_REQUEST
    otp_entity_kwarg = "return_id"
