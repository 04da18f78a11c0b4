"""Unit tests for BaseModel and SoftDeleteModel, exercised through the
catalog and cart models that build on them."""

from __future__ import annotations

import uuid

import pytest
from freezegun import freeze_time

from modules.carts.models import Cart
from modules.products.models import Product

pytestmark = pytest.mark.unit


class TestBaseModel:
    def test_id_is_uuid7(self, user):
        cart = Cart.objects.create(user=user)
        assert isinstance(cart.id, uuid.UUID)
        assert cart.id.version == 7

    def test_ids_are_time_ordered(self, make_product):
        first = make_product(name="first")
        second = make_product(name="second")
        assert str(first.id) < str(second.id)

    def test_save_with_update_fields_refreshes_updated_at(self, make_product):
        with freeze_time("2025-01-01 10:00:00"):
            product = make_product(stock=3)
        with freeze_time("2025-01-01 11:00:00"):
            product.stock = 4
            product.save(update_fields=["stock"])

        product.refresh_from_db()
        assert product.stock == 4
        assert product.updated_at > product.created_at

    def test_id_is_not_editable(self):
        assert Product._meta.get_field("id").editable is False


class TestSoftDeleteModel:
    def test_delete_sets_deleted_at(self, make_product):
        product = make_product()

        result = product.delete()

        product.refresh_from_db()
        assert product.is_deleted is True
        assert result == (1, {"products.Product": 1})

    def test_delete_twice_is_a_no_op(self, make_product):
        product = make_product()
        product.delete()
        assert product.delete() == (0, {})

    def test_alive_and_dead_managers(self, make_product):
        alive = make_product(name="alive")
        dead = make_product(name="dead")
        dead.delete()

        assert list(Product.objects.alive()) == [alive]
        assert list(Product.objects.dead()) == [dead]
        assert Product.objects.filter(pk=dead.pk).exists()

    def test_queryset_delete_is_soft(self, make_product):
        make_product(name="a")
        make_product(name="b")

        count, _ = Product.objects.all().delete()

        assert count == 2
        assert Product.objects.count() == 2
        assert not Product.objects.alive().exists()
