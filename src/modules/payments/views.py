"""Payment API views.

``PaymentCallbackView`` is called by the gateway, not by our users: it
carries no JWT, and authenticity is established by the callback signature
alone.
"""

from __future__ import annotations

from typing import Dict
from urllib.parse import urlencode

from django.conf import settings
from django.http import HttpResponseRedirect
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.orders.factories import build_payment_service
from modules.payments.serializers import InitiatePaymentSerializer, PaymentLinkSerializer


def _merged_params(request: Request) -> Dict[str, str]:
    """Query string and form body as one flat dict; body values win."""
    params = request.query_params.dict()
    body = request.data
    params.update(body.dict() if hasattr(body, "dict") else dict(body))
    return {key: str(value) for key, value in params.items()}


def landing_url(success: bool, order_id: str, message: str = "") -> str:
    base = settings.FRONTEND_URL.rstrip("/")
    if success:
        return f"{base}/order-success?{urlencode({'orderId': order_id})}"
    return f"{base}/order-failed?{urlencode({'orderId': order_id, 'message': message})}"


class InitiatePaymentView(APIView):
    """POST /api/v1/payment/initiate/ with ``{order_id}``.

    Retries payment for the user's pending online order. On gateway failure
    the order is left pending.
    """

    throttle_scope = "payment_initiation"

    def post(self, request: Request) -> Response:
        serializer = InitiatePaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        order_id = serializer.validated_data["order_id"]

        result = build_payment_service().initiate_payment(order_id, request.user)
        return Response(
            PaymentLinkSerializer(
                {"order_id": order_id, "payment_url": result.payment_url}
            ).data
        )


class PaymentCallbackView(APIView):
    """POST /api/v1/payment/callback/ (gateway → us → browser redirect)."""

    authentication_classes: list = []
    permission_classes = [AllowAny]
    throttle_classes: list = []

    def post(self, request: Request) -> HttpResponseRedirect:
        result = build_payment_service().apply_callback(_merged_params(request))
        order_id = str(result.order.id) if result.order is not None else ""
        return HttpResponseRedirect(landing_url(result.success, order_id, result.message))
