"""Easebuzz hosted-payment-link client.

Request signing::

    sha512(key|txnid|amount|productinfo|firstname|email|udf1|...|udf10|salt)

Callback verification (reverse field order, salt first)::

    sha512(salt|status|udf10|...|udf1|email|firstname|productinfo|amount|txnid|key)

Digests are lowercase hex. ``txnid`` is the order number.
"""

from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

import httpx
import structlog
from django.conf import settings

from modules.payments.dtos import PaymentInitiationResult

if TYPE_CHECKING:
    from modules.orders.models import Order

logger = structlog.get_logger(__name__)

UDF_FIELDS = tuple(f"udf{i}" for i in range(1, 11))
DEFAULT_PHONE = "0000000000"
DEFAULT_FIRSTNAME = "Customer"


def format_amount(amount: Decimal) -> str:
    return f"{Decimal(amount):.2f}"


def sign(values) -> str:
    return hashlib.sha512("|".join(values).encode("utf-8")).hexdigest().lower()


def request_hash(params: Mapping[str, str], salt: str) -> str:
    return sign(
        [
            params["key"],
            params["txnid"],
            params["amount"],
            params["productinfo"],
            params["firstname"],
            params["email"],
            *(params.get(udf, "") for udf in UDF_FIELDS),
            salt,
        ]
    )


def callback_hash(params: Mapping[str, str], salt: str) -> str:
    return sign(
        [
            salt,
            params.get("status", ""),
            *(params.get(udf, "") for udf in reversed(UDF_FIELDS)),
            params.get("email", ""),
            params.get("firstname", ""),
            params.get("productinfo", ""),
            params.get("amount", ""),
            params.get("txnid", ""),
            params.get("key", ""),
        ]
    )


def _gateway_error_text(body: Any, fallback: str) -> str:
    if isinstance(body, dict):
        return str(body.get("error_desc") or body.get("message") or fallback)
    return fallback


class PaymentGatewayClient:
    """Builds signed payment requests, calls the gateway and verifies callbacks.

    Credentials default to the ``EASEBUZZ_*`` settings. ``transport`` lets
    tests plug in an ``httpx.MockTransport``.
    """

    def __init__(
        self,
        key: Optional[str] = None,
        salt: Optional[str] = None,
        base_url: Optional[str] = None,
        callback_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._key = key if key is not None else settings.EASEBUZZ_KEY
        self._salt = salt if salt is not None else settings.EASEBUZZ_SALT
        self._base_url = (base_url or settings.EASEBUZZ_BASE_URL).rstrip("/")
        self._callback_url = callback_url or settings.PAYMENT_CALLBACK_URL
        self._timeout = timeout if timeout is not None else settings.PAYMENT_GATEWAY_TIMEOUT
        self._transport = transport

    @property
    def initiate_url(self) -> str:
        return f"{self._base_url}/payment/initiateLink"

    def build_payment_request(self, order: Order, user: Any) -> Dict[str, str]:
        address = order.shipping_address or {}
        params = {
            "key": self._key,
            "txnid": order.order_number,
            "amount": format_amount(order.total_amount),
            "productinfo": f"Order {order.order_number}",
            "firstname": getattr(user, "first_name", "") or DEFAULT_FIRSTNAME,
            "email": user.email,
            "phone": address.get("phone") or DEFAULT_PHONE,
            "surl": self._callback_url,
            "furl": self._callback_url,
        }
        params["hash"] = request_hash(params, self._salt)
        return params

    def initiate(self, order: Order, user: Any) -> PaymentInitiationResult:
        """Ask the gateway for a hosted payment link.

        Never raises for gateway-side problems: every failure comes back as
        ``success=False`` carrying the gateway's own message where it sent one.
        """
        log = logger.bind(order_id=str(order.id), txnid=order.order_number)

        if not getattr(user, "email", ""):
            return PaymentInitiationResult(
                success=False, error="An email address is required for online payment."
            )

        params = self.build_payment_request(order, user)
        log.info("payment.gateway_request", amount=params["amount"])

        try:
            with httpx.Client(transport=self._transport, timeout=self._timeout) as client:
                response = client.post(self.initiate_url, data=params)
                response.raise_for_status()
        except httpx.TimeoutException:
            log.error("payment.gateway_timeout", timeout=self._timeout)
            return PaymentInitiationResult(
                success=False,
                error="Payment gateway timed out.",
                gateway_unreachable=True,
            )
        except httpx.HTTPStatusError as exc:
            try:
                body = exc.response.json()
            except ValueError:
                body = None
            message = _gateway_error_text(body, exc.response.reason_phrase)
            log.warning(
                "payment.gateway_http_error",
                status_code=exc.response.status_code,
                message=message,
            )
            return PaymentInitiationResult(
                success=False, error=f"Payment gateway error: {message}"
            )
        except httpx.RequestError as exc:
            log.error("payment.gateway_unreachable", error=str(exc))
            return PaymentInitiationResult(
                success=False,
                error="Payment gateway is not responding.",
                gateway_unreachable=True,
            )

        try:
            body = response.json()
        except ValueError:
            body = None
        if not isinstance(body, dict):
            log.warning("payment.gateway_invalid_response")
            return PaymentInitiationResult(
                success=False, error="Invalid response from payment gateway."
            )

        data = body.get("data")
        if body.get("status") != 1 or not data:
            message = _gateway_error_text(body, "Payment initiation failed.")
            log.warning("payment.gateway_rejected", message=message)
            return PaymentInitiationResult(success=False, error=message)

        payment_url = data.get("link") if isinstance(data, dict) else None
        if not payment_url:
            log.warning("payment.gateway_missing_link")
            return PaymentInitiationResult(
                success=False, error="Payment gateway did not return a payment link."
            )

        log.info("payment.link_created")
        return PaymentInitiationResult(success=True, payment_url=payment_url)

    def verify_callback(self, params: Mapping[str, str]) -> bool:
        supplied = (params.get("hash") or "").lower()
        if not supplied:
            return False
        expected = callback_hash(params, self._salt)
        return hmac.compare_digest(expected, supplied)
