"""Django ORM implementation of the Cart repository."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.carts.models import Cart, CartItem
from modules.carts.repositories.interfaces import ICartRepository

logger = structlog.get_logger(__name__)


class CartDjangoRepository(ICartRepository):
    def get_by_id(self, id: str) -> Optional[Cart]:
        try:
            return Cart.objects.prefetch_related("items__product").filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Cart]:
        queryset = Cart.objects.all()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Cart) -> Cart:
        entity.save()
        return entity

    def get_by_user(self, user_id: object) -> Optional[Cart]:
        return (
            Cart.objects.prefetch_related("items__product")
            .filter(user_id=user_id)
            .first()
        )

    @transaction.atomic
    def clear(self, user_id: object) -> int:
        count, _ = CartItem.objects.filter(cart__user_id=user_id).delete()
        logger.info("cart.cleared", user_id=str(user_id), item_count=count)
        return count
