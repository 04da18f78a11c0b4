"""Default wiring of the order and payment services to the Django ORM."""

from __future__ import annotations

from typing import Optional

from modules.carts.repositories.django_repository import CartDjangoRepository
from modules.inventory.services import InventoryReservation
from modules.orders.lifecycle import OrderLifecycle
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.payments.gateway import PaymentGatewayClient
from modules.payments.services import PaymentService
from modules.products.repositories.django_repository import ProductDjangoRepository


def build_payment_service(gateway: Optional[PaymentGatewayClient] = None) -> PaymentService:
    order_repo = OrderDjangoRepository()
    return PaymentService(
        order_repository=order_repo,
        cart_repository=CartDjangoRepository(),
        lifecycle=OrderLifecycle(
            order_repo, InventoryReservation(ProductDjangoRepository())
        ),
        gateway=gateway or PaymentGatewayClient(),
    )


def build_order_service(gateway: Optional[PaymentGatewayClient] = None) -> OrderService:
    order_repo = OrderDjangoRepository()
    product_repo = ProductDjangoRepository()
    cart_repo = CartDjangoRepository()
    inventory = InventoryReservation(product_repo)
    lifecycle = OrderLifecycle(order_repo, inventory)
    return OrderService(
        order_repository=order_repo,
        cart_repository=cart_repo,
        product_repository=product_repo,
        inventory=inventory,
        lifecycle=lifecycle,
        payments=PaymentService(
            order_repository=order_repo,
            cart_repository=cart_repo,
            lifecycle=lifecycle,
            gateway=gateway or PaymentGatewayClient(),
        ),
    )
