"""Order domain constants.

Status choices, the two state machines (order track and payment track)
and the checkout pricing policy.
"""

import string
from datetime import timedelta
from decimal import Decimal

from django.db import models


class OrderStatus(models.TextChoices):
    PENDING_PAYMENT = "PENDING_PAYMENT", "Pending payment"
    PROCESSING = "PROCESSING", "Processing"
    SHIPPED = "SHIPPED", "Shipped"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"
    RETURNED = "RETURNED", "Returned"


class PaymentStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    INITIATED = "INITIATED", "Initiated"
    PAID = "PAID", "Paid"
    FAILED = "FAILED", "Failed"
    REFUNDED = "REFUNDED", "Refunded"


class PaymentMethod(models.TextChoices):
    COD = "COD", "Cash on delivery"
    ONLINE = "ONLINE", "Online"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.PENDING_PAYMENT: {OrderStatus.PROCESSING, OrderStatus.CANCELLED},
    OrderStatus.PROCESSING: {OrderStatus.SHIPPED, OrderStatus.CANCELLED},
    OrderStatus.SHIPPED: {
        OrderStatus.DELIVERED,
        OrderStatus.RETURNED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.DELIVERED: set(),
    OrderStatus.CANCELLED: set(),
    OrderStatus.RETURNED: set(),
}

TERMINAL_STATES: set[str] = {
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
}

CANCELLABLE_STATES: set[str] = {
    OrderStatus.PENDING_PAYMENT,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
}

# REFUNDED is only reachable through cancellation of a paid order.
PAYMENT_TRANSITIONS: dict[str, set[str]] = {
    PaymentStatus.PENDING: {
        PaymentStatus.INITIATED,
        PaymentStatus.PAID,
        PaymentStatus.FAILED,
    },
    PaymentStatus.INITIATED: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.FAILED: set(),
    PaymentStatus.REFUNDED: set(),
}

# Payment states in which a gateway callback is still expected.
AWAITING_PAYMENT: set[str] = {PaymentStatus.PENDING, PaymentStatus.INITIATED}

TAX_RATE = Decimal("0.10")
SHIPPING_FEE = Decimal("5.00")
FREE_SHIPPING_THRESHOLD = Decimal("100.00")
MONEY_QUANTUM = Decimal("0.01")

DELIVERY_LEAD_TIME = timedelta(days=3)

TRACKING_NUMBER_LENGTH = 12
TRACKING_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
TRACKING_NUMBER_MAX_RETRIES = 10
ORDER_NUMBER_MAX_RETRIES = 5
