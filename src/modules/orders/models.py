"""Order, OrderItem, and OrderStatusHistory models.

Business rules implemented:
- Order status and payment status follow the state machines in ``constants``
  (enforced by ``OrderLifecycle``).
- Each order status change generates a history record.
- Idempotency via a unique ``(user, idempotency_key)`` constraint.
- ``order_number`` and ``tracking_number`` are unique, generated by
  ``modules.orders.identifiers`` before the first save.
- Amounts are computed once at checkout and never recomputed.
- OrderItem keeps the price and a product snapshot taken at purchase time.
- Orders are never hard-deleted (``SoftDeleteModel``).
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel, SoftDeleteModel
from modules.orders.constants import (
    CANCELLABLE_STATES,
    PAYMENT_TRANSITIONS,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from shared.domain.events import DomainEventMixin


def _money_field(**kwargs) -> models.DecimalField:
    return models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        **kwargs,
    )


class Order(DomainEventMixin, SoftDeleteModel):
    """Order aggregate root.

    ``order_number`` is the human-readable identifier (``ORD-<millis>-NNNN``)
    and doubles as the gateway transaction id. ``tracking_number`` is what a
    customer uses to look the order up. The UUIDv7 ``id`` is used for all
    internal references and API lookups.

    ``idempotency_key`` is nullable: only checkouts sent with an
    ``Idempotency-Key`` header carry one.
    """

    order_number = models.CharField(max_length=32, unique=True, editable=False)
    tracking_number = models.CharField(max_length=12, unique=True, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    shipping_address = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    payment_method = models.CharField(max_length=10, choices=PaymentMethod.choices)
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    order_status = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.PROCESSING,
    )

    subtotal_amount = _money_field()
    tax_amount = _money_field()
    shipping_fee = _money_field()
    total_amount = _money_field()

    coupon_code = models.CharField(max_length=50, blank=True, default="")
    notes = models.TextField(blank=True, default="")
    cancel_reason = models.CharField(max_length=255, blank=True, default="")
    cancel_notes = models.TextField(blank=True, default="")
    cancelled_at = models.DateTimeField(null=True, blank=True)
    payment_initiated_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    delivery_date = models.DateTimeField(null=True, blank=True)
    idempotency_key = models.CharField(max_length=255, null=True, blank=True)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["order_status"], name="orders_status_idx"),
            models.Index(
                fields=["payment_status", "payment_initiated_at"],
                name="orders_payment_idx",
            ),
            models.Index(fields=["user", "-created_at"], name="orders_user_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["user", "idempotency_key"],
                name="orders_user_idempotency_key_unique",
            ),
        ]

    # ------------------------------------------------------------------
    # State machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.order_status in TERMINAL_STATES

    @property
    def is_cancellable(self) -> bool:
        return self.order_status in CANCELLABLE_STATES

    @property
    def awaits_payment(self) -> bool:
        return (
            self.payment_method == PaymentMethod.ONLINE
            and self.order_status == OrderStatus.PENDING_PAYMENT
        )

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.order_status, set())

    def can_transition_payment_to(self, new_status: str) -> bool:
        return new_status in PAYMENT_TRANSITIONS.get(self.payment_status, set())

    def __str__(self) -> str:
        return f"{self.order_number} ({self.order_status}/{self.payment_status})"


class OrderItem(BaseModel):
    """Line item linking an Order to a Product.

    ``price_at_purchase`` and ``product_snapshot`` are frozen copies of the
    product taken at checkout; later catalog edits do not affect them.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price_at_purchase = models.DecimalField(max_digits=10, decimal_places=2)
    product_snapshot = models.JSONField(default=dict, encoder=DjangoJSONEncoder)
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at", "id"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.product_snapshot.get('name', self.product_id)} x{self.quantity}"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    Inherits ``BaseModel`` (not ``SoftDeleteModel``): audit records are never
    edited or deleted. ``user`` is ``None`` when the system made the change
    (payment callback, expiry task).
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status = models.CharField(max_length=20, choices=OrderStatus.choices)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
