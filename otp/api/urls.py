# otp/api/urls.py

from django.urls import path

from .views import (
    IssueChallengeView,
    VerifyChallengeView,
    TokenValidateView,
    OrderTrackingIssueView,
    OrderTrackingVerifyView,
    ReturnRequestIssueView,
    ReturnRequestVerifyView,
    OrderTrackingSessionView,
    ReturnRequestSessionView,
)

app_name = "otp"

urlpatterns = [
    # Generic challenge endpoints
    path("otp/issue/", IssueChallengeView.as_view(), name="otp-issue"),
    path("otp/verify/", VerifyChallengeView.as_view(), name="otp-verify"),
    path("otp/token/validate/", TokenValidateView.as_view(), name="otp-token-validate"),

    # Order tracking
    path("orders/track/request-otp/", OrderTrackingIssueView.as_view(), name="order-track-request-otp"),
    path("orders/track/verify-otp/", OrderTrackingVerifyView.as_view(), name="order-track-verify-otp"),
    path("orders/track/<str:order_id>/session/", OrderTrackingSessionView.as_view(), name="order-track-session"),

    # Returns
    path("returns/request-otp/", ReturnRequestIssueView.as_view(), name="return-request-otp"),
    path("returns/verify-otp/", ReturnRequestVerifyView.as_view(), name="return-verify-otp"),
    path("returns/<str:return_id>/session/", ReturnRequestSessionView.as_view(), name="return-session"),
]
