# otp/api/permissions.py

"""
Scoped access token permission.

For views serving guest data (order tracking, return status). The view
declares the purpose it serves and the URL kwarg holding the entity id,
as the session views in otp/api/views.py do:

    class OrderTrackingSessionView(GuestSessionView):
        permission_classes = [HasScopedAccessToken]
        otp_purpose = Purpose.ORDER_TRACKING
        otp_entity_kwarg = "order_id"

On success the verified claims are available as ``request.otp_claims``.
"""

from rest_framework.permissions import BasePermission

from otp.services.otp_service import get_otp_service


def get_bearer_token(request):
    header = request.META.get("HTTP_AUTHORIZATION", "")
    scheme, _, value = header.partition(" ")
    if scheme.lower() != "bearer" or not value.strip():
        return None
    return value.strip()


class HasScopedAccessToken(BasePermission):
    """
    Allows access only with a token minted for this view's
    (purpose, entity id).
    """

    message = "A valid access token is required."

    def has_permission(self, request, view):
        token = get_bearer_token(request)
        purpose = getattr(view, "otp_purpose", None)
        kwarg = getattr(view, "otp_entity_kwarg", "entity_id")
        entity_id = view.kwargs.get(kwarg) if hasattr(view, "kwargs") else None
        if not token or not purpose or not entity_id:
            return False

        claims = get_otp_service().tokens.read_claims(token)
        if claims is None:
            return False
        if claims.purpose != str(purpose) or claims.entity_id != str(entity_id):
            return False

        request.otp_claims = claims
        return True
