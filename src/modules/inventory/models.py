"""Stock movement ledger.

One row per (order, product, kind).  The unique constraint makes every
reservation and every release happen at most once per order, so a retried
cancellation or a replayed gateway callback cannot move stock twice.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


class MovementKind(models.TextChoices):
    RESERVE = "RESERVE", "Reserve"
    RELEASE = "RELEASE", "Release"


class StockMovement(BaseModel):
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="stock_movements",
    )
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="stock_movements",
    )
    kind = models.CharField(max_length=10, choices=MovementKind.choices)
    quantity = models.PositiveIntegerField()

    class Meta:
        db_table = "stock_movements"
        ordering = ["created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "product", "kind"],
                name="stock_movements_once_per_kind",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.kind} {self.product_id} x{self.quantity}"
