"""Integration tests for OrderStatusHistory across a whole order life."""

from __future__ import annotations

import pytest

from modules.orders.constants import OrderStatus, PaymentMethod
from modules.orders.dtos import CancelOrderDTO, UpdateStatusDTO
from modules.orders.exceptions import InvalidOrderStatus
from modules.orders.models import OrderStatusHistory

pytestmark = pytest.mark.integration


def _trail(order):
    return list(
        OrderStatusHistory.objects.filter(order=order)
        .order_by("created_at", "id")
        .values_list("old_status", "new_status")
    )


def test_cash_on_delivery_life(order_service, place_order, user, staff_user):
    order = place_order(user)
    order_service.update_status(order.id, UpdateStatusDTO(status=OrderStatus.SHIPPED), staff_user)
    order_service.update_status(order.id, UpdateStatusDTO(status=OrderStatus.DELIVERED), staff_user)

    assert _trail(order) == [
        (None, OrderStatus.PROCESSING),
        (OrderStatus.PROCESSING, OrderStatus.SHIPPED),
        (OrderStatus.SHIPPED, OrderStatus.DELIVERED),
    ]


def test_online_paid_then_cancelled(
    order_service, payment_service, place_order, signed_callback, user
):
    order = place_order(user, PaymentMethod.ONLINE)
    payment_service.apply_callback(signed_callback(order))
    order_service.cancel_order(order.id, CancelOrderDTO(reason="Duplicate"), user)

    assert _trail(order) == [
        (None, OrderStatus.PENDING_PAYMENT),
        (OrderStatus.PENDING_PAYMENT, OrderStatus.PROCESSING),
        (OrderStatus.PROCESSING, OrderStatus.CANCELLED),
    ]


def test_system_changes_have_no_user(payment_service, place_order, signed_callback, user):
    order = place_order(user, PaymentMethod.ONLINE)
    payment_service.apply_callback(signed_callback(order, status="failure"))

    latest = OrderStatusHistory.objects.filter(order=order).first()
    assert latest.new_status == OrderStatus.CANCELLED
    assert latest.user is None


def test_rejected_transition_adds_no_history(order_service, place_order, user):
    order = place_order(user)

    with pytest.raises(InvalidOrderStatus):
        order_service.update_status(order.id, UpdateStatusDTO(status=OrderStatus.DELIVERED))

    assert len(_trail(order)) == 1
