"""Django ORM implementation of the Product repository.

Missing or malformed IDs yield ``None`` rather than raising; the caller
decides whether that is an error.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.products.models import Product
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        try:
            return Product.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Product]:
        queryset = Product.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        entity.save()
        logger.info("product.saved", product_id=str(entity.id))
        return entity

    def get_for_update(self, id: str) -> Optional[Product]:
        """Lock one product row.

        Soft-deleted products are still returned: stock of a product that
        left the catalog must remain restorable for its past orders.
        """
        try:
            return Product.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def lock_many(self, ids: Iterable[str]) -> List[Product]:
        """Lock the given products in PK order to keep lock acquisition
        deadlock-free across concurrent checkouts."""
        return list(
            Product.objects.select_for_update()
            .filter(id__in=list(ids))
            .order_by("id")
        )
