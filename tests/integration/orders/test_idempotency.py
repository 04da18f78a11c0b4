"""Integration tests for checkout idempotency through the API."""

from __future__ import annotations

import pytest
from rest_framework.test import APIClient

from modules.orders.models import Order

pytestmark = pytest.mark.integration

URL = "/api/v1/orders/"


@pytest.fixture()
def payload(shipping_address):
    return {"shipping_address": shipping_address, "payment_method": "COD"}


def test_reused_key_is_a_conflict(auth_client, fill_cart, make_product, payload, user):
    product = make_product(stock=10)
    fill_cart(user, (product, 1))

    first = auth_client.post(URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="checkout-1")
    fill_cart(user, (product, 1))
    second = auth_client.post(URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="checkout-1")

    assert first.status_code == 201
    assert second.status_code == 409
    data = second.json()
    assert data["errors"][0]["code"] == "duplicate_order"
    assert data["order_id"] == first.json()["id"]
    assert data["order_number"] == first.json()["order_number"]
    assert Order.objects.count() == 1
    product.refresh_from_db()
    assert product.stock == 9


def test_different_keys_create_distinct_orders(
    auth_client, fill_cart, make_product, payload, user
):
    product = make_product(stock=10)

    fill_cart(user, (product, 1))
    first = auth_client.post(URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="k-a")
    fill_cart(user, (product, 1))
    second = auth_client.post(URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="k-b")

    assert first.status_code == second.status_code == 201
    assert first.json()["id"] != second.json()["id"]


def test_requests_without_key_are_independent(
    auth_client, fill_cart, make_product, payload, user
):
    product = make_product(stock=10)

    fill_cart(user, (product, 1))
    auth_client.post(URL, payload, format="json")
    fill_cart(user, (product, 1))
    auth_client.post(URL, payload, format="json")

    assert Order.objects.filter(idempotency_key__isnull=True).count() == 2


def test_keys_are_scoped_to_the_shopper(
    auth_client, fill_cart, make_product, payload, user, other_user
):
    product = make_product(stock=10)
    other_client = APIClient()
    other_client.force_authenticate(user=other_user)

    fill_cart(user, (product, 1))
    mine = auth_client.post(URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="cart-1")
    fill_cart(other_user, (product, 2))
    theirs = other_client.post(URL, payload, format="json", HTTP_IDEMPOTENCY_KEY="cart-1")

    assert mine.status_code == theirs.status_code == 201
    body = theirs.json()
    assert body["id"] != mine.json()["id"]
    assert body["order_number"] != mine.json()["order_number"]
    assert body["user_id"] == other_user.id
    product.refresh_from_db()
    assert product.stock == 7
