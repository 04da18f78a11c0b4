"""Order state machine.

Owns every order-status and payment-status transition together with the
compensating actions tied to them (stock restoration, refund marking).

Callers pass an order they already hold the row lock for and run inside
``transaction.atomic``; each method validates first, then mutates, records
history and queues domain events, so a rejected transition changes nothing.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

import structlog
from django.utils import timezone

from modules.orders.constants import DELIVERY_LEAD_TIME, OrderStatus, PaymentStatus
from modules.orders.events import (
    OrderCancelled,
    OrderPaid,
    OrderStatusChanged,
    PaymentFailed,
    PaymentInitiated,
)
from modules.orders.exceptions import (
    InvalidOrderStatus,
    OrderValidationError,
    PaymentInFlight,
)

if TYPE_CHECKING:
    from modules.inventory.services import InventoryReservation
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)


class OrderLifecycle:
    def __init__(
        self,
        order_repository: IOrderRepository,
        inventory: InventoryReservation,
    ) -> None:
        self._order_repo = order_repository
        self._inventory = inventory

    # ------------------------------------------------------------------
    # Order track
    # ------------------------------------------------------------------

    def cancel(
        self,
        order: Order,
        reason: str,
        notes: str = "",
        user: Any = None,
    ) -> Order:
        """Cancel *order*, give its stock back and refund-mark a paid payment.

        Raises:
            OrderValidationError: blank reason.
            InvalidOrderStatus: the order already left the cancellable states.
            PaymentInFlight: a gateway payment was initiated and its callback
                has not been applied yet.
        """
        log = logger.bind(order_id=str(order.id), current_status=order.order_status)

        reason = (reason or "").strip()
        if not reason:
            raise OrderValidationError("A cancellation reason is required.", attr="reason")
        if not order.is_cancellable:
            log.warning("order.cancel_not_allowed")
            raise InvalidOrderStatus(
                f"Cannot cancel order in status {order.order_status}."
            )
        if order.payment_status == PaymentStatus.INITIATED:
            log.warning("order.cancel_payment_in_flight")
            raise PaymentInFlight(
                "Payment for this order is being processed; try again once it settles."
            )

        stock_restored = self._inventory.restore(order)

        old_status = order.order_status
        order.order_status = OrderStatus.CANCELLED
        order.cancel_reason = reason
        order.cancel_notes = notes or ""
        order.cancelled_at = timezone.now()

        refunded = order.payment_status == PaymentStatus.PAID
        if refunded:
            order.payment_status = PaymentStatus.REFUNDED

        order.add_domain_event(
            OrderCancelled(
                aggregate_id=order.id,
                order_number=order.order_number,
                reason=reason,
                stock_restored=stock_restored,
                refunded=refunded,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order,
            OrderStatus.CANCELLED,
            old_status=old_status,
            notes=notes or reason,
            user=user,
        )

        log.info("order.cancelled", refunded=refunded, stock_restored=stock_restored)
        return order

    def update_status(
        self,
        order: Order,
        new_status: str,
        delivery_date: Optional[datetime] = None,
        notes: str = "",
        user: Any = None,
    ) -> Order:
        """Move *order* along the fulfilment track.

        Shipping without a delivery date schedules one ``DELIVERY_LEAD_TIME``
        ahead.

        Raises:
            InvalidOrderStatus: unknown status, a cancellation (which must go
                through ``cancel``), an unpaid online order, or a transition
                the state machine does not allow.
        """
        log = logger.bind(
            order_id=str(order.id),
            current_status=order.order_status,
            new_status=new_status,
        )

        if new_status not in OrderStatus.values:
            raise InvalidOrderStatus(f"Unknown order status {new_status!r}.")
        if new_status == OrderStatus.CANCELLED:
            raise InvalidOrderStatus("Use the cancel operation for cancellations.")
        if order.awaits_payment:
            raise InvalidOrderStatus("Order is still awaiting online payment.")
        if not order.can_transition_to(new_status):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Cannot transition from {order.order_status} to {new_status}."
            )

        old_status = order.order_status
        order.order_status = new_status
        if new_status == OrderStatus.SHIPPED and delivery_date is None:
            delivery_date = timezone.now() + DELIVERY_LEAD_TIME
        if delivery_date is not None:
            order.delivery_date = delivery_date

        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                order_number=order.order_number,
                old_status=old_status,
                new_status=new_status,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order, new_status, old_status=old_status, notes=notes, user=user
        )

        log.info("order.status_updated")
        return order

    # ------------------------------------------------------------------
    # Payment track
    # ------------------------------------------------------------------

    def _require_payment_transition(self, order: Order, target: str) -> None:
        if order.order_status != OrderStatus.PENDING_PAYMENT:
            raise InvalidOrderStatus(
                f"Order in status {order.order_status} is not awaiting payment."
            )
        if not order.can_transition_payment_to(target):
            raise InvalidOrderStatus(
                f"Cannot move payment from {order.payment_status} to {target}."
            )

    def mark_payment_initiated(self, order: Order) -> Order:
        self._require_payment_transition(order, PaymentStatus.INITIATED)

        order.payment_status = PaymentStatus.INITIATED
        order.payment_initiated_at = timezone.now()
        order.add_domain_event(
            PaymentInitiated(aggregate_id=order.id, order_number=order.order_number)
        )
        self._order_repo.save(order)

        logger.info("payment.initiated", order_id=str(order.id))
        return order

    def mark_paid(self, order: Order) -> Order:
        """Settle a successful payment: PAID and PROCESSING."""
        self._require_payment_transition(order, PaymentStatus.PAID)

        old_status = order.order_status
        order.payment_status = PaymentStatus.PAID
        order.paid_at = timezone.now()
        order.order_status = OrderStatus.PROCESSING
        order.add_domain_event(
            OrderPaid(
                aggregate_id=order.id,
                order_number=order.order_number,
                amount=str(order.total_amount),
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order, OrderStatus.PROCESSING, old_status=old_status, notes="Payment received"
        )

        logger.info("payment.paid", order_id=str(order.id))
        return order

    def fail_payment(self, order: Order, message: str) -> Order:
        """Settle a failed, abandoned or unreachable payment.

        The order is cancelled and its stock restored (at most once).
        """
        self._require_payment_transition(order, PaymentStatus.FAILED)

        stock_restored = self._inventory.restore(order)

        old_status = order.order_status
        order.payment_status = PaymentStatus.FAILED
        order.order_status = OrderStatus.CANCELLED
        order.cancel_reason = "Payment failed"
        order.cancel_notes = message
        order.cancelled_at = timezone.now()
        order.add_domain_event(
            PaymentFailed(
                aggregate_id=order.id,
                order_number=order.order_number,
                message=message,
                stock_restored=stock_restored,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order, OrderStatus.CANCELLED, old_status=old_status, notes=message
        )

        logger.warning(
            "payment.failed",
            order_id=str(order.id),
            message=message,
            stock_restored=stock_restored,
        )
        return order
