"""Order service layer (use cases).

Orchestrates checkout, cancellation, fulfilment updates and the order
queries. The service defines the unit-of-work boundary.

Checkout runs in two phases:

1. One transaction reads the cart, prices and snapshots the lines, mints
   the order and tracking numbers, persists the order, reserves stock and
   (cash on delivery) empties the cart. Any failure rolls all of it back.
2. Online payment only: after that commit, the gateway is asked for a
   payment link outside any transaction. A gateway failure is compensated
   in its own transaction (payment FAILED, order CANCELLED, stock restored
   exactly once) before the error reaches the caller.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from random import Random
from typing import TYPE_CHECKING, Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from modules.inventory.services import StockLine
from modules.orders.assembler import OrderAssembler
from modules.orders.constants import (
    AWAITING_PAYMENT,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
)
from modules.orders.dtos import PlacedOrder
from modules.orders.events import OrderCreated
from modules.orders.exceptions import (
    DuplicateOrder,
    OrderNotFound,
    OrderNumberCollision,
    OrderValidationError,
)
from modules.orders.identifiers import (
    generate_tracking_number,
    generate_unique_order_number,
)

if TYPE_CHECKING:
    from modules.carts.repositories.interfaces import ICartRepository
    from modules.inventory.services import InventoryReservation
    from modules.orders.dtos import CancelOrderDTO, CreateOrderDTO, UpdateStatusDTO
    from modules.orders.lifecycle import OrderLifecycle
    from modules.orders.models import Order
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.payments.services import PaymentService
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


def _can_see(order: Order, user: Any) -> bool:
    return bool(getattr(user, "is_staff", False)) or order.user_id == user.pk


class OrderService:
    """Application service for Order use cases.

    Receives repositories and collaborators via constructor injection.
    ``rng`` is the entropy source for order and tracking numbers.
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        cart_repository: ICartRepository,
        product_repository: IProductRepository,
        inventory: InventoryReservation,
        lifecycle: OrderLifecycle,
        payments: PaymentService,
        rng: Optional[Random] = None,
    ) -> None:
        self._order_repo = order_repository
        self._cart_repo = cart_repository
        self._product_repo = product_repository
        self._inventory = inventory
        self._lifecycle = lifecycle
        self._payments = payments
        self._rng = rng

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create_order(self, user: Any, dto: CreateOrderDTO) -> PlacedOrder:
        """Turn the user's cart into an order.

        Raises:
            DuplicateOrder: the idempotency key was already used.
            OrderValidationError: the cart is empty.
            ProductNotFound: a cart line references a missing product.
            OutOfStockError: one or more lines exceed available stock.
            IdentifierExhausted / OrderNumberCollision: no unique identifier.
            IntegrityError: any other constraint failure, re-raised as is.
            PaymentGatewayRejected / PaymentGatewayUnavailable: online
                payment could not be initiated; the order was cancelled.
        """
        log = logger.bind(user_id=str(user.pk), payment_method=dto.payment_method)
        log.info("order.creation_started")

        order_number = generate_unique_order_number(
            self._order_repo.exists_order_number, rng=self._rng
        )
        tracking_number = generate_tracking_number(
            self._order_repo.exists_tracking_number, rng=self._rng
        )

        try:
            order = self._place_order(user, dto, order_number, tracking_number, log)
        except IntegrityError:
            if dto.idempotency_key:
                existing = self._order_repo.get_by_idempotency_key(
                    dto.idempotency_key, user.pk
                )
                if existing is not None:
                    raise DuplicateOrder(existing.id, existing.order_number)
            collided = self._order_repo.exists_order_number(order_number) or (
                self._order_repo.exists_tracking_number(tracking_number)
            )
            if collided:
                log.warning("order.identifier_race_lost", order_number=order_number)
                raise OrderNumberCollision(
                    "Another order took the same identifier; please retry."
                )
            raise

        if dto.payment_method == PaymentMethod.COD:
            return PlacedOrder(order=self._order_repo.get_by_id(str(order.id)) or order)

        result = self._payments.initiate_payment(order.id, user, compensate=True)
        return PlacedOrder(
            order=self._order_repo.get_by_id(str(order.id)) or order,
            payment_url=result.payment_url,
        )

    @transaction.atomic
    def _place_order(
        self,
        user: Any,
        dto: CreateOrderDTO,
        order_number: str,
        tracking_number: str,
        log: Any,
    ) -> Order:
        if dto.idempotency_key:
            existing = self._order_repo.get_by_idempotency_key(dto.idempotency_key, user.pk)
            if existing is not None:
                log.info("order.idempotency_hit", order_id=str(existing.id))
                raise DuplicateOrder(existing.id, existing.order_number)

        cart = self._cart_repo.get_by_user(user.pk)
        cart_items = list(cart.items.all()) if cart is not None else []
        if not cart_items:
            raise OrderValidationError("Cart is empty.", attr="cart")

        assembled = OrderAssembler(self._product_repo.get_by_id).assemble(cart_items)

        is_cod = dto.payment_method == PaymentMethod.COD
        initial_status = OrderStatus.PROCESSING if is_cod else OrderStatus.PENDING_PAYMENT

        order = self._order_repo.create(
            {
                "user": user,
                "order_number": order_number,
                "tracking_number": tracking_number,
                "shipping_address": dto.shipping_address.model_dump(),
                "payment_method": dto.payment_method,
                "payment_status": PaymentStatus.PENDING,
                "order_status": initial_status,
                "subtotal_amount": assembled.subtotal,
                "tax_amount": assembled.tax_amount,
                "shipping_fee": assembled.shipping_fee,
                "total_amount": assembled.total_amount,
                "coupon_code": dto.coupon_code,
                "notes": dto.notes,
                "idempotency_key": dto.idempotency_key,
                "items": [
                    {
                        "product": line.product,
                        "quantity": line.quantity,
                        "price_at_purchase": line.price_at_purchase,
                        "product_snapshot": line.product_snapshot,
                        "subtotal": line.subtotal,
                    }
                    for line in assembled.lines
                ],
            }
        )

        self._inventory.reserve(
            order,
            [StockLine(product_id=str(line.product.id), quantity=line.quantity)
             for line in assembled.lines],
        )

        order.add_domain_event(
            OrderCreated(
                aggregate_id=order.id,
                order_number=order.order_number,
                payment_method=order.payment_method,
                total_amount=str(order.total_amount),
                item_count=len(assembled.lines),
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(order, initial_status, notes="Order created", user=user)

        if is_cod:
            self._cart_repo.clear(user.pk)

        log.info(
            "order.created",
            order_id=str(order.id),
            order_number=order.order_number,
            total_amount=str(order.total_amount),
        )
        return order

    # ------------------------------------------------------------------
    # Lifecycle commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def cancel_order(self, order_id: UUID | str, dto: CancelOrderDTO, user: Any) -> Order:
        """Cancel one of the user's orders (staff may cancel any).

        Raises:
            OrderNotFound: no such order visible to the user.
            InvalidOrderStatus / PaymentInFlight / OrderValidationError:
                see ``OrderLifecycle.cancel``.
        """
        order = self._order_repo.get_for_update(str(order_id))
        if order is None or not _can_see(order, user):
            raise OrderNotFound(f"Order {order_id} not found.")

        self._lifecycle.cancel(order, reason=dto.reason, notes=dto.notes, user=user)
        return self._order_repo.get_by_id(str(order.id)) or order

    @transaction.atomic
    def update_status(
        self,
        order_id: UUID | str,
        dto: UpdateStatusDTO,
        user: Any = None,
    ) -> Order:
        """Staff-only fulfilment update (PROCESSING → SHIPPED → DELIVERED ...)."""
        order = self._order_repo.get_for_update(str(order_id))
        if order is None:
            raise OrderNotFound(f"Order {order_id} not found.")

        self._lifecycle.update_status(
            order,
            dto.status,
            delivery_date=dto.delivery_date,
            notes=dto.notes,
            user=user,
        )
        return self._order_repo.get_by_id(str(order.id)) or order

    def expire_stale_payments(self, older_than: Optional[timedelta] = None) -> int:
        """Settle online orders whose payment never completed as failed.

        Each order is handled in its own transaction so one bad row does not
        hold back the rest. Returns how many orders were expired.
        """
        if older_than is None:
            older_than = timedelta(minutes=settings.PAYMENT_EXPIRY_MINUTES)
        cutoff = timezone.now() - older_than

        expired = 0
        for order_id in self._order_repo.list_awaiting_payment(cutoff):
            if self._expire_one(order_id, cutoff):
                expired += 1

        logger.info("order.stale_payments_expired", count=expired, cutoff=cutoff.isoformat())
        return expired

    @transaction.atomic
    def _expire_one(self, order_id: UUID, cutoff: datetime) -> bool:
        order = self._order_repo.get_for_update(str(order_id))
        if order is None or not order.awaits_payment or order.created_at >= cutoff:
            return False
        if order.payment_status not in AWAITING_PAYMENT:
            return False
        self._lifecycle.fail_payment(order, "Payment not completed in time.")
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, user: Any) -> Order:
        """Raises ``OrderNotFound`` for missing orders and other users' orders."""
        order = self._order_repo.get_by_id(order_id)
        if order is None or not _can_see(order, user):
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def get_by_tracking_number(self, tracking_number: str, user: Any) -> Order:
        order = self._order_repo.get_by_tracking_number(tracking_number.strip().upper())
        if order is None or not _can_see(order, user):
            raise OrderNotFound(f"No order with tracking number {tracking_number}.")
        return order

    def list_user_orders(self, user: Any) -> List[Order]:
        return self._order_repo.list_for_user(user.pk)

    def list_orders(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        return self._order_repo.list(filters)
