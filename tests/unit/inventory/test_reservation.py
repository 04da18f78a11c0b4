"""Unit tests for stock reservation and release.

Covers:
- Reserve decrements every line and records the movement.
- All-or-nothing: one short line leaves every product untouched.
- The error lists every insufficient line.
- Repeated product lines are merged before the check.
- Release restores exactly what was reserved, at most once.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.inventory.exceptions import OutOfStockError
from modules.inventory.models import MovementKind, StockMovement
from modules.inventory.services import InventoryReservation, StockLine
from modules.orders.constants import PaymentMethod
from modules.orders.models import Order
from modules.products.exceptions import ProductNotFound
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = pytest.mark.unit


@pytest.fixture()
def inventory():
    return InventoryReservation(ProductDjangoRepository())


@pytest.fixture()
def order(user):
    return Order.objects.create(
        user=user,
        order_number="ORD-1700000000000-0001",
        tracking_number="TRACK0000001",
        payment_method=PaymentMethod.COD,
    )


def _line(product, quantity):
    return StockLine(product_id=str(product.id), quantity=quantity)


class TestReserve:
    def test_decrements_stock_and_records_movements(self, inventory, order, make_product):
        food = make_product(name="Kibble", stock=10)
        toy = make_product(name="Ball", stock=4)

        movements = inventory.reserve(order, [_line(food, 3), _line(toy, 4)])

        food.refresh_from_db()
        toy.refresh_from_db()
        assert food.stock == 7
        assert toy.stock == 0
        assert len(movements) == 2
        assert all(m.kind == MovementKind.RESERVE for m in movements)

    def test_short_line_changes_nothing(self, inventory, order, make_product):
        plenty = make_product(name="Plenty", stock=10)
        scarce = make_product(name="Scarce", stock=2)

        with pytest.raises(OutOfStockError) as exc_info:
            inventory.reserve(order, [_line(plenty, 1), _line(scarce, 3)])

        plenty.refresh_from_db()
        scarce.refresh_from_db()
        assert plenty.stock == 10
        assert scarce.stock == 2
        assert not StockMovement.objects.filter(order=order).exists()

        [shortage] = exc_info.value.shortages
        assert shortage.product_id == str(scarce.id)
        assert shortage.requested == 3
        assert shortage.available == 2
        assert shortage.shortfall == 1

    def test_error_lists_every_short_line(self, inventory, order, make_product):
        a = make_product(name="A", stock=0)
        b = make_product(name="B", stock=1)

        with pytest.raises(OutOfStockError) as exc_info:
            inventory.reserve(order, [_line(a, 1), _line(b, 2)])

        error = exc_info.value
        assert {s.product_name for s in error.shortages} == {"A", "B"}
        assert error.status_code == 400
        assert error.code == "out_of_stock"
        extra = error.extra()
        assert {item["product_name"] for item in extra["items"]} == {"A", "B"}

    def test_repeated_lines_are_merged(self, inventory, order, make_product):
        product = make_product(stock=3)

        with pytest.raises(OutOfStockError) as exc_info:
            inventory.reserve(order, [_line(product, 2), _line(product, 2)])

        assert exc_info.value.shortages[0].requested == 4

    def test_exact_stock_is_allowed(self, inventory, order, make_product):
        product = make_product(stock=2)
        inventory.reserve(order, [_line(product, 2)])
        product.refresh_from_db()
        assert product.stock == 0

    def test_unknown_product(self, inventory, order):
        with pytest.raises(ProductNotFound):
            inventory.reserve(order, [StockLine(product_id=str(uuid4()), quantity=1)])


class TestRestore:
    def test_restores_reserved_quantities(self, inventory, order, make_product):
        product = make_product(stock=5)
        inventory.reserve(order, [_line(product, 3)])

        assert inventory.restore(order) is True

        product.refresh_from_db()
        assert product.stock == 5
        release = StockMovement.objects.get(order=order, kind=MovementKind.RELEASE)
        assert release.quantity == 3

    def test_second_restore_is_a_no_op(self, inventory, order, make_product):
        product = make_product(stock=5)
        inventory.reserve(order, [_line(product, 3)])

        inventory.restore(order)
        assert inventory.restore(order) is False

        product.refresh_from_db()
        assert product.stock == 5

    def test_nothing_reserved(self, inventory, order):
        assert inventory.restore(order) is False

    def test_restores_soft_deleted_product(self, inventory, order, make_product):
        product = make_product(stock=5)
        inventory.reserve(order, [_line(product, 2)])
        product.delete()

        inventory.restore(order)

        product.refresh_from_db()
        assert product.stock == 5
