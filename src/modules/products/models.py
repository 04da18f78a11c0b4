"""Product model.

Catalog edits happen elsewhere; this core only reads products and owns
``stock`` mutation during checkout, cancellation and payment failure.
Stock changes always go through ``modules.inventory``.
"""

from __future__ import annotations

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import SoftDeleteModel


class ProductType(models.TextChoices):
    PET = "pet", "Pet"
    FOOD = "food", "Food"
    TOY = "toy", "Toy"
    CARE = "care", "Care"
    ACCESSORY = "accessory", "Accessory"


class Product(SoftDeleteModel):
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    product_type = models.CharField(
        max_length=20,
        choices=ProductType.choices,
        default=ProductType.ACCESSORY,
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    discount_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        null=True,
        blank=True,
        default=None,
    )
    stock = models.PositiveIntegerField(default=0)
    size = models.CharField(max_length=50, blank=True, default="")
    images = models.JSONField(default=list, blank=True)
    tags = models.JSONField(default=list, blank=True)

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["product_type"], name="products_type_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price__gt=0),
                name="products_price_positive",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})
        if (
            self.discount_price is not None
            and self.price is not None
            and self.discount_price > self.price
        ):
            raise ValidationError(
                {"discount_price": "Discount price cannot exceed price."}
            )

    def __str__(self) -> str:
        return f"{self.name} ({self.stock} in stock)"
