"""Domain events for the Orders bounded context."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderEvent(DomainEvent):
    topic: ClassVar[str] = "orders"

    order_number: str = ""


@dataclass(frozen=True)
class OrderCreated(OrderEvent):
    payment_method: str = ""
    total_amount: str = ""
    item_count: int = 0


@dataclass(frozen=True)
class OrderCancelled(OrderEvent):
    reason: str = ""
    stock_restored: bool = False
    refunded: bool = False


@dataclass(frozen=True)
class OrderStatusChanged(OrderEvent):
    old_status: str = ""
    new_status: str = ""


@dataclass(frozen=True)
class PaymentInitiated(OrderEvent):
    topic: ClassVar[str] = "payments"


@dataclass(frozen=True)
class OrderPaid(OrderEvent):
    topic: ClassVar[str] = "payments"

    amount: str = ""


@dataclass(frozen=True)
class PaymentFailed(OrderEvent):
    topic: ClassVar[str] = "payments"

    message: str = ""
    stock_restored: bool = False
