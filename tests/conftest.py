from decimal import Decimal

import httpx
import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.carts.models import Cart, CartItem
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import CreateOrderDTO, ShippingAddressDTO
from modules.orders.factories import build_order_service, build_payment_service
from modules.payments.gateway import PaymentGatewayClient, callback_hash, format_amount
from modules.products.models import Product, ProductType

User = get_user_model()

PAYMENT_LINK = "https://gateway.test/pay/abc123"


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------


@pytest.fixture()
def user():
    return User.objects.create_user(
        username="asha",
        email="asha@petmart.test",
        first_name="Asha",
        password="testpass123",
    )


@pytest.fixture()
def other_user():
    return User.objects.create_user(
        username="ravi", email="ravi@petmart.test", password="testpass123"
    )


@pytest.fixture()
def staff_user():
    return User.objects.create_user(
        username="staff",
        email="staff@petmart.test",
        password="testpass123",
        is_staff=True,
    )


@pytest.fixture()
def auth_client(user):
    """APIClient force-authenticated as the regular shopper."""
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture()
def staff_client(staff_user):
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# ---------------------------------------------------------------------------
# Catalog and carts
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product():
    def _make(name="Salmon Kibble", price="20.00", stock=10, **extra):
        return Product.objects.create(
            name=name,
            price=Decimal(price),
            stock=stock,
            product_type=extra.pop("product_type", ProductType.FOOD),
            **extra,
        )

    return _make


@pytest.fixture()
def fill_cart():
    def _fill(user, *lines):
        cart, _ = Cart.objects.get_or_create(user=user)
        for product, quantity in lines:
            CartItem.objects.create(cart=cart, product=product, quantity=quantity)
        return cart

    return _fill


@pytest.fixture()
def shipping_address():
    return {
        "full_name": "Asha Verma",
        "phone": "9876543210",
        "address_line1": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "postal_code": "560001",
    }


# ---------------------------------------------------------------------------
# Payment gateway
# ---------------------------------------------------------------------------


def link_response(request):
    return httpx.Response(200, json={"status": 1, "data": {"link": PAYMENT_LINK}})


@pytest.fixture()
def make_gateway():
    """Build a gateway client whose HTTP calls are answered by *handler*."""

    def _make(handler=link_response):
        return PaymentGatewayClient(transport=httpx.MockTransport(handler))

    return _make


@pytest.fixture()
def gateway_handler(monkeypatch):
    """Route every gateway client built by the default wiring through a
    mock transport. Assign ``.handler`` to change the gateway's answer."""

    class _Router:
        handler = staticmethod(link_response)
        requests: list = []

        def __call__(self, request):
            self.requests.append(request)
            return self.handler(request)

    router = _Router()
    router.requests = []
    monkeypatch.setattr(
        "modules.orders.factories.PaymentGatewayClient",
        lambda: PaymentGatewayClient(transport=httpx.MockTransport(router)),
    )
    return router


@pytest.fixture()
def order_service(make_gateway):
    return build_order_service(gateway=make_gateway())


@pytest.fixture()
def payment_service(make_gateway):
    return build_payment_service(gateway=make_gateway())


@pytest.fixture()
def signed_callback():
    """Gateway callback parameters for *order*, signed with the test salt."""

    def _sign(order, status="success", amount=None, **extra):
        params = {
            "key": "TESTKEY",
            "txnid": order.order_number,
            "amount": amount if amount is not None else format_amount(order.total_amount),
            "productinfo": f"Order {order.order_number}",
            "firstname": "Asha",
            "email": "asha@petmart.test",
            "status": status,
            **extra,
        }
        params["hash"] = callback_hash(params, "TESTSALT")
        return params

    return _sign


# ---------------------------------------------------------------------------
# Checkout helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def checkout_dto(shipping_address):
    def _dto(user, method=PaymentMethod.COD, **extra):
        return CreateOrderDTO(
            user_id=user.pk,
            shipping_address=ShippingAddressDTO(**shipping_address),
            payment_method=method,
            **extra,
        )

    return _dto


@pytest.fixture()
def place_order(order_service, fill_cart, make_product, checkout_dto):
    """Fill *user*'s cart and check it out; returns the persisted order.

    Without explicit lines the cart holds 3 units of a fresh product priced
    20.00 with 10 in stock.
    """

    def _place(user, method=PaymentMethod.COD, lines=None):
        if lines is None:
            lines = [(make_product(stock=10), 3)]
        fill_cart(user, *lines)
        return order_service.create_order(user, checkout_dto(user, method)).order

    return _place
