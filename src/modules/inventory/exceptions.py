"""Inventory errors."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Sequence

from modules.core.exceptions import DomainError


@dataclass(frozen=True)
class StockShortage:
    product_id: str
    product_name: str
    requested: int
    available: int

    @property
    def shortfall(self) -> int:
        return self.requested - self.available


class OutOfStockError(DomainError):
    """One or more lines ask for more units than are in stock.

    Carries every insufficient line so the client can adjust quantities
    without resubmitting blindly.
    """

    code = "out_of_stock"
    attr = "items"

    def __init__(self, shortages: Sequence[StockShortage]) -> None:
        self.shortages: List[StockShortage] = list(shortages)
        details = ", ".join(
            f"{s.product_name} (requested {s.requested}, available {s.available})"
            for s in self.shortages
        )
        super().__init__(
            f"Insufficient stock for {len(self.shortages)} item(s): {details}."
        )

    def extra(self) -> Dict[str, Any]:
        return {
            "items": [
                {**asdict(s), "shortfall": s.shortfall} for s in self.shortages
            ]
        }
