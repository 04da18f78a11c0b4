"""Order repository interface.

Extends ``IRepository[Order]`` with what the checkout, lifecycle and payment
flows need: aggregate creation with items, row locking, identifier and
idempotency look-ups, and the status history trail.
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The aggregate includes OrderItem children and OrderStatusHistory
    records. ``save`` also persists the domain events collected on the
    order to the outbox.
    """

    @abstractmethod
    def create(self, data: Dict[str, Any]) -> Order:
        """Create an order with its items atomically.

        ``data`` holds the Order field values plus ``items``: a list of dicts
        with ``product``, ``quantity``, ``price_at_purchase``,
        ``product_snapshot`` and ``subtotal``.
        """

    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Order]:
        """Retrieve an order holding its row lock until the transaction ends."""

    @abstractmethod
    def get_by_number_for_update(self, order_number: str) -> Optional[Order]:
        """Locking look-up by ``order_number`` (the gateway transaction id)."""

    @abstractmethod
    def get_by_tracking_number(self, tracking_number: str) -> Optional[Order]: ...

    @abstractmethod
    def get_by_idempotency_key(self, key: str, user_id: Any) -> Optional[Order]: ...

    @abstractmethod
    def exists_order_number(self, order_number: str) -> bool: ...

    @abstractmethod
    def exists_tracking_number(self, tracking_number: str) -> bool: ...

    @abstractmethod
    def list_for_user(self, user_id: Any) -> List[Order]:
        """The user's orders, newest first."""

    @abstractmethod
    def list_awaiting_payment(self, started_before: datetime) -> List[UUID]:
        """IDs of online orders still unpaid that were placed before the cutoff."""

    @abstractmethod
    def add_history(
        self,
        order: Order,
        new_status: str,
        old_status: Optional[str] = None,
        notes: str = "",
        user: Any = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
