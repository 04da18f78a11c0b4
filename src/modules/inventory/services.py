"""Inventory reservation (stock decrement / restore for orders).

Business rules enforced:
- A reservation is all-or-nothing: every line is checked against the locked
  product rows before the first decrement, and the call runs in a savepoint.
- Product rows are locked in primary-key order (deadlock avoidance).
- A release happens at most once per order and restores exactly what was
  reserved, as recorded in the ``StockMovement`` ledger.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, List

import structlog
from django.db import transaction

from modules.inventory.exceptions import OutOfStockError, StockShortage
from modules.inventory.models import MovementKind, StockMovement
from modules.products.exceptions import ProductNotFound

if TYPE_CHECKING:
    from modules.orders.models import Order
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class StockLine:
    product_id: str
    quantity: int


def _merge_lines(lines: Iterable[StockLine]) -> Dict[str, int]:
    merged: Dict[str, int] = OrderedDict()
    for line in lines:
        key = str(line.product_id)
        merged[key] = merged.get(key, 0) + line.quantity
    return merged


class InventoryReservation:
    """Reserve and restore stock on behalf of an order.

    Both operations must run inside the caller's transaction so the stock
    change commits or rolls back together with the order change.
    """

    def __init__(self, product_repository: IProductRepository) -> None:
        self._product_repo = product_repository

    @transaction.atomic
    def reserve(self, order: Order, lines: Iterable[StockLine]) -> List[StockMovement]:
        """Decrement stock for every line or for none of them.

        Raises:
            ProductNotFound: a line references an unknown product.
            OutOfStockError: one or more lines exceed available stock; the
                error lists all of them.
        """
        requested = _merge_lines(lines)
        log = logger.bind(order_id=str(order.id))

        products = {
            str(p.id): p for p in self._product_repo.lock_many(requested.keys())
        }
        for product_id in requested:
            if product_id not in products:
                raise ProductNotFound(product_id)

        shortages = [
            StockShortage(
                product_id=product_id,
                product_name=products[product_id].name,
                requested=quantity,
                available=products[product_id].stock,
            )
            for product_id, quantity in requested.items()
            if products[product_id].stock < quantity
        ]
        if shortages:
            log.warning(
                "inventory.out_of_stock",
                products=[s.product_id for s in shortages],
            )
            raise OutOfStockError(shortages)

        movements = []
        for product_id in sorted(requested):
            product = products[product_id]
            quantity = requested[product_id]
            product.stock -= quantity
            product.save(update_fields=["stock", "updated_at"])
            movements.append(
                StockMovement.objects.create(
                    order=order,
                    product=product,
                    kind=MovementKind.RESERVE,
                    quantity=quantity,
                )
            )
            log.info(
                "inventory.stock_reserved",
                product_id=product_id,
                quantity=quantity,
                remaining=product.stock,
            )
        return movements

    @transaction.atomic
    def restore(self, order: Order) -> bool:
        """Give back everything reserved for *order*.

        Returns ``False`` (and changes nothing) when the order's stock was
        already released or never reserved.
        """
        log = logger.bind(order_id=str(order.id))

        if StockMovement.objects.filter(order=order, kind=MovementKind.RELEASE).exists():
            log.warning("inventory.release_already_applied")
            return False

        reserved = list(
            StockMovement.objects.filter(order=order, kind=MovementKind.RESERVE)
            .order_by("product_id")
        )
        if not reserved:
            log.warning("inventory.nothing_reserved")
            return False

        products = {
            p.id: p
            for p in self._product_repo.lock_many(m.product_id for m in reserved)
        }
        for movement in reserved:
            product = products[movement.product_id]
            product.stock += movement.quantity
            product.save(update_fields=["stock", "updated_at"])
            StockMovement.objects.create(
                order=order,
                product=product,
                kind=MovementKind.RELEASE,
                quantity=movement.quantity,
            )
            log.info(
                "inventory.stock_released",
                product_id=str(product.id),
                quantity=movement.quantity,
                restored_stock=product.stock,
            )
        return True
