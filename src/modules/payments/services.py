"""Payment use cases: initiation and gateway callback application.

The gateway call is never made inside an open transaction. Its outcome is
applied afterwards in a short transaction holding the order row lock, and
is idempotent: only an order still awaiting payment is changed.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING, Any, Mapping
from uuid import UUID

import structlog
from django.db import transaction

from modules.orders.constants import (
    AWAITING_PAYMENT,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound, PaymentInFlight
from modules.payments.dtos import CallbackResult, PaymentInitiationResult
from modules.payments.exceptions import (
    PaymentGatewayRejected,
    PaymentGatewayUnavailable,
    PaymentSignatureMismatch,
)

if TYPE_CHECKING:
    from modules.carts.repositories.interfaces import ICartRepository
    from modules.orders.lifecycle import OrderLifecycle
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.gateway import PaymentGatewayClient

logger = structlog.get_logger(__name__)

TAMPERED_MESSAGE = "Invalid hash - potential tampering"
AMOUNT_MISMATCH_MESSAGE = "Amount mismatch - potential tampering"


class PaymentService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        cart_repository: ICartRepository,
        lifecycle: OrderLifecycle,
        gateway: PaymentGatewayClient,
    ) -> None:
        self._order_repo = order_repository
        self._cart_repo = cart_repository
        self._lifecycle = lifecycle
        self._gateway = gateway

    # ------------------------------------------------------------------
    # Initiation
    # ------------------------------------------------------------------

    def initiate_payment(
        self,
        order_id: UUID | str,
        user: Any,
        compensate: bool = False,
    ) -> PaymentInitiationResult:
        """Request a payment link for the user's pending online order.

        With ``compensate`` (checkout), a gateway failure also settles the
        order as failed: payment FAILED, order CANCELLED, stock restored.
        Without it (a retry from the client), the order stays pending and
        the expiry task cleans it up if it is never paid.

        Raises:
            OrderNotFound: no such order for this user.
            InvalidOrderStatus: the order is not an unpaid online order.
            PaymentInFlight: a payment was already initiated.
            PaymentGatewayRejected: the gateway refused (400).
            PaymentGatewayUnavailable: timeout or network failure (500).
        """
        order = self._order_repo.get_by_id(str(order_id))
        if order is None or order.user_id != user.pk:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=str(order.id), user_id=str(user.pk))
        self._check_payable(order)

        result = self._gateway.initiate(order, user)
        if not result.success:
            log.warning(
                "payment.initiation_failed",
                error=result.error,
                unreachable=result.gateway_unreachable,
                compensate=compensate,
            )
            if compensate:
                self._settle_failed_initiation(order.id, result.error or "")
            if result.gateway_unreachable:
                raise PaymentGatewayUnavailable(result.error)
            raise PaymentGatewayRejected(result.error)

        self._record_initiation(order.id)
        return result

    def _check_payable(self, order: Order) -> None:
        if order.payment_method != PaymentMethod.ONLINE:
            raise InvalidOrderStatus("Order is not payable online.")
        if order.payment_status == PaymentStatus.INITIATED:
            raise PaymentInFlight("Payment for this order was already initiated.")
        if not order.awaits_payment or order.payment_status != PaymentStatus.PENDING:
            raise InvalidOrderStatus(
                f"Order in status {order.order_status}/{order.payment_status} "
                "cannot be paid."
            )

    @transaction.atomic
    def _record_initiation(self, order_id: UUID) -> Order:
        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")
        return self._lifecycle.mark_payment_initiated(order)

    @transaction.atomic
    def _settle_failed_initiation(self, order_id: UUID, message: str) -> None:
        order = self._order_repo.get_for_update(str(order_id))
        if order is None or not order.awaits_payment:
            return
        if order.payment_status in AWAITING_PAYMENT:
            self._lifecycle.fail_payment(order, message or "Payment initiation failed.")

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    def apply_callback(self, params: Mapping[str, str]) -> CallbackResult:
        """Verify and apply a gateway callback.

        The signature is checked before anything is read or written. Never
        raises: failures come back as ``CallbackResult(success=False)`` and
        any unexpected error rolls the whole application back.
        """
        log = logger.bind(
            txnid=params.get("txnid", ""),
            gateway_status=params.get("status", ""),
        )

        try:
            self._require_signature(params)
        except PaymentSignatureMismatch as exc:
            log.error("payment.callback_tampered")
            return CallbackResult(success=False, message=str(exc))

        try:
            return self._apply_verified(params, log)
        except Exception:
            log.exception("payment.callback_failed")
            return CallbackResult(
                success=False, message="Error processing payment callback"
            )

    def _require_signature(self, params: Mapping[str, str]) -> None:
        if not self._gateway.verify_callback(params):
            raise PaymentSignatureMismatch(TAMPERED_MESSAGE)

    def _record_late_payment(self, order: Order, params: Mapping[str, str]) -> None:
        """Leave a note on a settled order that the gateway charged anyway.

        Staff reconcile these by refunding; the order itself stays as it is.
        """
        reference = params.get("easepayid") or params.get("txnid", "")
        note = (
            f"Payment {reference} for {params.get('amount', '')} received after the order "
            f"was settled as {order.payment_status}; refund required."
        )
        if order.status_history.filter(notes=note).exists():
            return
        self._order_repo.add_history(
            order, order.order_status, old_status=order.order_status, notes=note
        )

    @transaction.atomic
    def _apply_verified(self, params: Mapping[str, str], log: Any) -> CallbackResult:
        order = self._order_repo.get_by_number_for_update(params.get("txnid", ""))
        if order is None:
            log.warning("payment.callback_unknown_order")
            return CallbackResult(success=False, message="Order not found")

        log = log.bind(order_id=str(order.id))
        succeeded = params.get("status") == "success"

        if (
            order.order_status != OrderStatus.PENDING_PAYMENT
            or order.payment_status not in AWAITING_PAYMENT
        ):
            if succeeded and order.payment_status != PaymentStatus.PAID:
                log.error(
                    "payment.callback_after_settlement",
                    payment_status=order.payment_status,
                )
                self._record_late_payment(order, params)
            else:
                log.info("payment.callback_replayed")
            return CallbackResult(
                success=order.payment_status == PaymentStatus.PAID,
                order=order,
                message="Payment already processed",
                replayed=True,
            )

        if not _amount_matches(params.get("amount"), order.total_amount):
            log.error(
                "payment.callback_amount_mismatch",
                expected=str(order.total_amount),
                received=params.get("amount"),
            )
            return CallbackResult(success=False, order=order, message=AMOUNT_MISMATCH_MESSAGE)

        if succeeded:
            self._lifecycle.mark_paid(order)
            self._cart_repo.clear(order.user_id)
            log.info("payment.callback_applied", outcome="paid")
            return CallbackResult(success=True, order=order, message="Payment successful")

        message = params.get("error_Message") or params.get("error") or "Payment failed"
        self._lifecycle.fail_payment(order, message)
        log.info("payment.callback_applied", outcome="failed")
        return CallbackResult(success=False, order=order, message=message)


def _amount_matches(raw: Any, expected: Decimal) -> bool:
    try:
        return Decimal(str(raw)).quantize(Decimal("0.01")) == expected
    except (InvalidOperation, TypeError, ValueError):
        return False
