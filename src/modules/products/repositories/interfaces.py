"""Product repository interface.

Extends ``IRepository[Product]`` with the row-locking reads the order
workflow needs for stock reservation and release.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Iterable, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    @abstractmethod
    def get_for_update(self, id: str) -> Optional[Product]:
        """Retrieve a product with a row-level lock (SELECT FOR UPDATE)."""

    @abstractmethod
    def lock_many(self, ids: Iterable[str]) -> List[Product]:
        """Lock several products, always in primary-key order."""
