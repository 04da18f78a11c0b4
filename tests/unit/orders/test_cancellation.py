"""Unit tests for order cancellation.

Covers:
- Stock given back and cancellation fields recorded.
- Paid orders are marked refunded.
- Delivered / already cancelled orders are rejected without side effects.
- An order whose gateway payment is in flight cannot be cancelled.
- Only the owner (or staff) can cancel.
"""

from __future__ import annotations

import pytest

from modules.core.models import OutboxEvent
from modules.inventory.models import MovementKind, StockMovement
from modules.inventory.services import InventoryReservation
from modules.orders.constants import OrderStatus, PaymentMethod, PaymentStatus
from modules.orders.dtos import CancelOrderDTO, UpdateStatusDTO
from modules.orders.exceptions import (
    InvalidOrderStatus,
    OrderNotFound,
    OrderValidationError,
    PaymentInFlight,
)
from modules.orders.lifecycle import OrderLifecycle
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = pytest.mark.unit


def _cancel(order_service, order, user, reason="Changed my mind", notes=""):
    return order_service.cancel_order(
        order.id, CancelOrderDTO(reason=reason, notes=notes), user
    )


class TestCancelCashOnDelivery:
    def test_cancel_restores_stock(self, order_service, place_order, user):
        order = place_order(user)
        product = order.items.first().product

        cancelled = _cancel(order_service, order, user, notes="Ordered twice")

        product.refresh_from_db()
        assert product.stock == 10
        assert cancelled.order_status == OrderStatus.CANCELLED
        assert cancelled.cancel_reason == "Changed my mind"
        assert cancelled.cancel_notes == "Ordered twice"
        assert cancelled.cancelled_at is not None
        assert cancelled.payment_status == PaymentStatus.PENDING

    def test_cancel_records_history_and_event(self, order_service, place_order, user):
        order = place_order(user)

        _cancel(order_service, order, user)

        history = OrderStatusHistory.objects.filter(order=order).first()
        assert history.old_status == OrderStatus.PROCESSING
        assert history.new_status == OrderStatus.CANCELLED
        row = OutboxEvent.objects.get(event_type="OrderCancelled", aggregate_id=str(order.id))
        assert row.payload["refunded"] is False
        assert row.payload["stock_restored"] is True

    def test_cancel_shipped_order(self, order_service, place_order, user):
        order = place_order(user)
        order_service.update_status(order.id, UpdateStatusDTO(status=OrderStatus.SHIPPED))

        cancelled = _cancel(order_service, order, user)

        assert cancelled.order_status == OrderStatus.CANCELLED

    def test_delivered_order_cannot_be_cancelled(self, order_service, place_order, user):
        order = place_order(user)
        product = order.items.first().product
        order_service.update_status(order.id, UpdateStatusDTO(status=OrderStatus.SHIPPED))
        order_service.update_status(order.id, UpdateStatusDTO(status=OrderStatus.DELIVERED))

        with pytest.raises(InvalidOrderStatus):
            _cancel(order_service, order, user)

        product.refresh_from_db()
        assert product.stock == 7

    def test_second_cancel_is_rejected_and_stock_moves_once(
        self, order_service, place_order, user
    ):
        order = place_order(user)
        product = order.items.first().product
        _cancel(order_service, order, user)

        with pytest.raises(InvalidOrderStatus):
            _cancel(order_service, order, user)

        product.refresh_from_db()
        assert product.stock == 10
        assert (
            StockMovement.objects.filter(order=order, kind=MovementKind.RELEASE).count()
            == 1
        )

    def test_blank_reason_is_rejected(self, place_order, user):
        order = place_order(user)
        lifecycle = OrderLifecycle(
            OrderDjangoRepository(), InventoryReservation(ProductDjangoRepository())
        )

        with pytest.raises(OrderValidationError) as exc_info:
            lifecycle.cancel(order, reason="   ")

        assert exc_info.value.attr == "reason"
        order.refresh_from_db()
        assert order.order_status == OrderStatus.PROCESSING


class TestCancelOnlinePayment:
    def test_paid_order_is_refunded(
        self, order_service, payment_service, place_order, signed_callback, user
    ):
        order = place_order(user, PaymentMethod.ONLINE)
        payment_service.apply_callback(signed_callback(order))

        cancelled = _cancel(order_service, order, user)

        assert cancelled.order_status == OrderStatus.CANCELLED
        assert cancelled.payment_status == PaymentStatus.REFUNDED
        assert cancelled.items.first().product.stock == 10

    def test_payment_in_flight_blocks_cancel(self, order_service, place_order, user):
        order = place_order(user, PaymentMethod.ONLINE)
        assert order.payment_status == PaymentStatus.INITIATED

        with pytest.raises(PaymentInFlight):
            _cancel(order_service, order, user)

        order.refresh_from_db()
        assert order.order_status == OrderStatus.PENDING_PAYMENT

    def test_pending_online_order_can_be_cancelled(self, order_service, place_order, user):
        order = place_order(user, PaymentMethod.ONLINE)
        Order.objects.filter(pk=order.pk).update(payment_status=PaymentStatus.PENDING)

        cancelled = _cancel(order_service, order, user)

        assert cancelled.order_status == OrderStatus.CANCELLED
        assert cancelled.payment_status == PaymentStatus.PENDING


class TestCancelVisibility:
    def test_other_user_cannot_cancel(self, order_service, place_order, user, other_user):
        order = place_order(user)
        with pytest.raises(OrderNotFound):
            _cancel(order_service, order, other_user)

    def test_staff_can_cancel_any_order(self, order_service, place_order, user, staff_user):
        order = place_order(user)
        cancelled = _cancel(order_service, order, staff_user, reason="Fraud check")
        assert cancelled.order_status == OrderStatus.CANCELLED
