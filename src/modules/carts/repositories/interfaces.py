"""Cart repository interface (the order workflow's view of carts)."""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.carts.models import Cart


class ICartRepository(IRepository["Cart"]):
    @abstractmethod
    def get_by_user(self, user_id: object) -> Optional[Cart]:
        """Retrieve the user's cart with its items and products prefetched."""

    @abstractmethod
    def clear(self, user_id: object) -> int:
        """Remove every line item from the user's cart; returns the count."""
