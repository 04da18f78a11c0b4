"""Product lookup errors raised to the order workflow."""

from __future__ import annotations

from modules.core.exceptions import NotFoundError


class ProductNotFound(NotFoundError):
    """A product referenced by a cart or order line does not exist."""

    code = "product_not_found"
    attr = "items"

    def __init__(self, product_id: object) -> None:
        self.product_id = product_id
        super().__init__(f"Product {product_id} not found.")
