"""Order domain exceptions.

Raised by the service layer when business rules are violated; the DRF
exception handler turns them into the standard error envelope.
"""

from __future__ import annotations

from typing import Any, Dict

from modules.core.exceptions import ConflictError, DomainError, NotFoundError


class OrderValidationError(DomainError):
    """The request is well-formed but cannot become an order (e.g. empty cart)."""

    code = "invalid"

    def __init__(self, message: str, attr: str | None = None) -> None:
        self.attr = attr
        super().__init__(message)


class OrderNotFound(NotFoundError):
    """The order does not exist or is not visible to the requesting user."""

    code = "order_not_found"


class InvalidOrderStatus(DomainError):
    """A transition not allowed by the order or payment state machine."""

    code = "invalid_status_transition"
    attr = "status"


class DuplicateOrder(ConflictError):
    """An order was already placed with the same idempotency key."""

    code = "duplicate_order"

    def __init__(self, order_id: object, order_number: str) -> None:
        self.order_id = order_id
        self.order_number = order_number
        super().__init__(f"Order {order_number} was already placed with this key.")

    def extra(self) -> Dict[str, Any]:
        return {"order_id": str(self.order_id), "order_number": self.order_number}


class IdentifierExhausted(ConflictError):
    """No unused order or tracking number was found within the retry bound."""

    code = "identifier_collision"


class PaymentInFlight(ConflictError):
    """The order has an initiated gateway payment whose callback is pending."""

    code = "payment_in_flight"


class OrderNumberCollision(ConflictError):
    """Another order committed with the same number or tracking code first."""

    code = "order_number_collision"
