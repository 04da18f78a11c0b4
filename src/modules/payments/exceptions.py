"""Payment gateway errors.

``PaymentGatewayRejected`` means the gateway answered and refused;
``PaymentGatewayUnavailable`` means it could not be reached in time.
"""

from __future__ import annotations

from rest_framework import status

from modules.core.exceptions import DomainError


class PaymentGatewayError(DomainError):
    code = "payment_gateway_error"
    attr = "payment"


class PaymentGatewayRejected(PaymentGatewayError):
    code = "payment_rejected"


class PaymentGatewayUnavailable(PaymentGatewayError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "payment_gateway_unavailable"



class PaymentSignatureMismatch(DomainError):
    """A callback whose digest does not match its fields. Never trusted."""

    code = "invalid_signature"
    attr = "hash"
