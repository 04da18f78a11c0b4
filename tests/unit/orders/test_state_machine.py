"""Unit tests for the order and payment state machines.

Covers:
- Transition tables (terminal states, no skipping ahead).
- Fulfilment updates through ``OrderService.update_status``.
- Guards: unknown status, cancellation, unpaid online orders.
- Default delivery date when shipping.
- Payment track: initiated, paid, failed.
- History and outbox rows on every transition.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from django.utils import timezone

from modules.core.models import OutboxEvent
from modules.inventory.services import InventoryReservation
from modules.orders.constants import (
    PAYMENT_TRANSITIONS,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.dtos import UpdateStatusDTO
from modules.orders.exceptions import InvalidOrderStatus, OrderNotFound
from modules.orders.lifecycle import OrderLifecycle
from modules.orders.models import Order, OrderStatusHistory
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = pytest.mark.unit


@pytest.fixture()
def lifecycle():
    return OrderLifecycle(
        OrderDjangoRepository(), InventoryReservation(ProductDjangoRepository())
    )


@pytest.fixture()
def cod_order(place_order, user):
    return place_order(user)


def _advance(order_service, order, status, user=None, **extra):
    return order_service.update_status(
        order.id, UpdateStatusDTO(status=status, **extra), user
    )


# ---------------------------------------------------------------------------
# Transition tables
# ---------------------------------------------------------------------------


class TestTransitionTables:
    def test_terminal_states_have_no_exits(self):
        for state in TERMINAL_STATES:
            assert VALID_TRANSITIONS[state] == set()

    def test_every_status_has_an_entry(self):
        assert set(VALID_TRANSITIONS) == set(OrderStatus.values)
        assert set(PAYMENT_TRANSITIONS) == set(PaymentStatus.values)

    def test_refund_only_after_paid(self):
        sources = {s for s, targets in PAYMENT_TRANSITIONS.items() if PaymentStatus.REFUNDED in targets}
        assert sources == {PaymentStatus.PAID}

    def test_model_helpers(self):
        order = Order(order_status=OrderStatus.PROCESSING)
        assert order.can_transition_to(OrderStatus.SHIPPED)
        assert not order.can_transition_to(OrderStatus.DELIVERED)
        assert order.is_cancellable
        assert not order.is_terminal

        order.order_status = OrderStatus.DELIVERED
        assert order.is_terminal
        assert not order.is_cancellable


# ---------------------------------------------------------------------------
# Fulfilment track
# ---------------------------------------------------------------------------


class TestUpdateStatus:
    def test_ship_sets_default_delivery_date(self, order_service, cod_order, staff_user):
        before = timezone.now()

        order = _advance(order_service, cod_order, OrderStatus.SHIPPED, staff_user)

        assert order.order_status == OrderStatus.SHIPPED
        assert before + timedelta(days=3) <= order.delivery_date
        assert order.delivery_date <= timezone.now() + timedelta(days=3)

    def test_ship_keeps_explicit_delivery_date(self, order_service, cod_order):
        when = timezone.now() + timedelta(days=7)
        order = _advance(order_service, cod_order, OrderStatus.SHIPPED, delivery_date=when)
        assert order.delivery_date == when

    def test_full_fulfilment_path(self, order_service, cod_order, staff_user):
        _advance(order_service, cod_order, OrderStatus.SHIPPED, staff_user)
        order = _advance(
            order_service, cod_order, OrderStatus.DELIVERED, staff_user, notes="Left at door"
        )

        assert order.order_status == OrderStatus.DELIVERED
        latest = OrderStatusHistory.objects.filter(order=order).first()
        assert latest.old_status == OrderStatus.SHIPPED
        assert latest.new_status == OrderStatus.DELIVERED
        assert latest.notes == "Left at door"
        assert latest.user == staff_user

    def test_cannot_skip_shipping(self, order_service, cod_order):
        with pytest.raises(InvalidOrderStatus):
            _advance(order_service, cod_order, OrderStatus.DELIVERED)

    def test_delivered_is_final(self, order_service, cod_order):
        _advance(order_service, cod_order, OrderStatus.SHIPPED)
        _advance(order_service, cod_order, OrderStatus.DELIVERED)
        with pytest.raises(InvalidOrderStatus):
            _advance(order_service, cod_order, OrderStatus.RETURNED)

    def test_cancellation_is_not_a_status_update(self, order_service, cod_order):
        with pytest.raises(InvalidOrderStatus):
            _advance(order_service, cod_order, OrderStatus.CANCELLED)
        cod_order.refresh_from_db()
        assert cod_order.order_status == OrderStatus.PROCESSING

    def test_unknown_status(self, lifecycle, cod_order):
        with pytest.raises(InvalidOrderStatus):
            lifecycle.update_status(cod_order, "LOST")

    def test_unpaid_online_order_cannot_advance(self, order_service, place_order, user):
        order = place_order(user, PaymentMethod.ONLINE)
        with pytest.raises(InvalidOrderStatus):
            _advance(order_service, order, OrderStatus.PROCESSING)

    def test_return_keeps_stock_out(self, order_service, cod_order):
        product = cod_order.items.first().product
        _advance(order_service, cod_order, OrderStatus.SHIPPED)
        order = _advance(order_service, cod_order, OrderStatus.RETURNED)

        product.refresh_from_db()
        assert order.order_status == OrderStatus.RETURNED
        assert product.stock == 7

    def test_unknown_order(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.update_status(
                "00000000-0000-0000-0000-000000000000",
                UpdateStatusDTO(status=OrderStatus.SHIPPED),
            )

    def test_status_change_writes_outbox_row(self, order_service, cod_order):
        _advance(order_service, cod_order, OrderStatus.SHIPPED)
        row = OutboxEvent.objects.get(
            event_type="OrderStatusChanged", aggregate_id=str(cod_order.id)
        )
        assert row.topic == "orders"
        assert row.payload["old_status"] == OrderStatus.PROCESSING
        assert row.payload["new_status"] == OrderStatus.SHIPPED


# ---------------------------------------------------------------------------
# Payment track
# ---------------------------------------------------------------------------


class TestPaymentTrack:
    def test_online_checkout_is_initiated(self, place_order, user):
        order = place_order(user, PaymentMethod.ONLINE)
        assert order.order_status == OrderStatus.PENDING_PAYMENT
        assert order.payment_status == PaymentStatus.INITIATED
        assert order.payment_initiated_at is not None

    def test_mark_paid(self, lifecycle, place_order, user):
        order = place_order(user, PaymentMethod.ONLINE)

        lifecycle.mark_paid(order)

        order.refresh_from_db()
        assert order.payment_status == PaymentStatus.PAID
        assert order.order_status == OrderStatus.PROCESSING
        assert order.paid_at is not None
        assert OutboxEvent.objects.filter(
            event_type="OrderPaid", aggregate_id=str(order.id), topic="payments"
        ).exists()

    def test_fail_payment_cancels_and_restores(self, lifecycle, place_order, user):
        order = place_order(user, PaymentMethod.ONLINE)
        product = order.items.first().product

        lifecycle.fail_payment(order, "Card declined")

        order.refresh_from_db()
        product.refresh_from_db()
        assert order.payment_status == PaymentStatus.FAILED
        assert order.order_status == OrderStatus.CANCELLED
        assert order.cancel_reason == "Payment failed"
        assert order.cancel_notes == "Card declined"
        assert product.stock == 10

    def test_settled_payment_cannot_move_again(self, lifecycle, place_order, user):
        order = place_order(user, PaymentMethod.ONLINE)
        lifecycle.mark_paid(order)

        with pytest.raises(InvalidOrderStatus):
            lifecycle.fail_payment(order, "late failure")
        with pytest.raises(InvalidOrderStatus):
            lifecycle.mark_paid(order)

    def test_cod_order_has_no_payment_track(self, lifecycle, cod_order):
        with pytest.raises(InvalidOrderStatus):
            lifecycle.mark_payment_initiated(cod_order)
