"""Stock concurrency integration test.

Ten shoppers each check out one unit of a product with five in stock,
at the same time. Row locks on the product must serialize the
reservations: exactly five orders are placed, the others are refused as
out of stock, and stock ends at zero.

Needs a database with ``SELECT ... FOR UPDATE`` (PostgreSQL); skipped on
SQLite.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.db import connection, connections
from django.test import TransactionTestCase

from modules.carts.models import Cart, CartItem
from modules.inventory.exceptions import OutOfStockError
from modules.inventory.models import StockMovement
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import CreateOrderDTO, ShippingAddressDTO
from modules.orders.factories import build_order_service
from modules.orders.models import Order
from modules.products.models import Product, ProductType

pytestmark = pytest.mark.integration

User = get_user_model()

INITIAL_STOCK = 5
NUM_WORKERS = 10


@pytest.mark.skipif(
    not connection.features.has_select_for_update,
    reason="database has no row-level locking",
)
class TestStockConcurrency(TransactionTestCase):
    def setUp(self):
        self.product = Product.objects.create(
            name="Orthopedic Dog Bed",
            price=Decimal("49.00"),
            stock=INITIAL_STOCK,
            product_type=ProductType.ACCESSORY,
        )
        self.shoppers = []
        for i in range(NUM_WORKERS):
            shopper = User.objects.create_user(
                username=f"shopper{i}", email=f"shopper{i}@petmart.test", password="x"
            )
            cart = Cart.objects.create(user=shopper)
            CartItem.objects.create(cart=cart, product=self.product, quantity=1)
            self.shoppers.append(shopper)

    def _checkout(self, shopper) -> str:
        try:
            dto = CreateOrderDTO(
                user_id=shopper.pk,
                shipping_address=ShippingAddressDTO(
                    full_name=shopper.username,
                    phone="9876543210",
                    address_line1="1 Residency Road",
                    city="Bengaluru",
                    state="Karnataka",
                    postal_code="560025",
                ),
                payment_method=PaymentMethod.COD,
            )
            build_order_service().create_order(shopper, dto)
            return "placed"
        except OutOfStockError:
            return "out_of_stock"
        finally:
            connections.close_all()

    def test_concurrent_checkouts_exhaust_stock(self):
        with ThreadPoolExecutor(max_workers=NUM_WORKERS) as pool:
            results = list(pool.map(self._checkout, self.shoppers))

        self.assertEqual(results.count("placed"), INITIAL_STOCK)
        self.assertEqual(results.count("out_of_stock"), NUM_WORKERS - INITIAL_STOCK)

        self.product.refresh_from_db()
        self.assertEqual(self.product.stock, 0)
        self.assertEqual(Order.objects.count(), INITIAL_STOCK)
        self.assertEqual(
            StockMovement.objects.filter(product=self.product).count(), INITIAL_STOCK
        )
