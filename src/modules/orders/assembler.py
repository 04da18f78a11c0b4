"""Turn cart lines into priced, snapshotted order lines.

Pricing policy (see ``constants``): 10% tax accumulated per line, flat
shipping fee when the order subtotal is below the free-shipping threshold.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from django.core.serializers.json import DjangoJSONEncoder
from django.forms.models import model_to_dict

from modules.orders.constants import (
    FREE_SHIPPING_THRESHOLD,
    MONEY_QUANTUM,
    SHIPPING_FEE,
    TAX_RATE,
)
from modules.products.exceptions import ProductNotFound
from modules.products.models import Product

SNAPSHOT_EXCLUDED_FIELDS = ("id", "created_at", "updated_at", "deleted_at")


class CartLine(Protocol):
    product_id: Any
    quantity: int


ProductLookup = Callable[[str], Optional[Product]]


@dataclass(frozen=True)
class AssembledLine:
    product: Product
    quantity: int
    price_at_purchase: Decimal
    product_snapshot: Dict[str, Any]
    subtotal: Decimal


@dataclass(frozen=True)
class AssembledOrder:
    lines: List[AssembledLine] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    tax_amount: Decimal = Decimal("0.00")
    shipping_fee: Decimal = Decimal("0.00")

    @property
    def total_amount(self) -> Decimal:
        return self.subtotal + self.tax_amount + self.shipping_fee


def _money(value: Decimal) -> Decimal:
    return value.quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def snapshot_product(product: Product) -> Dict[str, Any]:
    """JSON-safe copy of the product as sold, without bookkeeping fields."""
    data = model_to_dict(product, exclude=SNAPSHOT_EXCLUDED_FIELDS)
    return json.loads(json.dumps(data, cls=DjangoJSONEncoder))


def shipping_fee_for(subtotal: Decimal) -> Decimal:
    return SHIPPING_FEE if subtotal < FREE_SHIPPING_THRESHOLD else Decimal("0.00")


class OrderAssembler:
    def __init__(self, product_lookup: ProductLookup) -> None:
        self._lookup = product_lookup

    def assemble(self, cart_items: Iterable[CartLine]) -> AssembledOrder:
        """Price every cart line against the current catalog.

        Raises:
            ProductNotFound: any line references a missing product; nothing
                is assembled in that case.
        """
        lines: List[AssembledLine] = []
        subtotal = Decimal("0.00")
        tax_amount = Decimal("0.00")

        for item in cart_items:
            product = self._lookup(str(item.product_id))
            if product is None:
                raise ProductNotFound(item.product_id)

            line_subtotal = _money(product.price * item.quantity)
            subtotal += line_subtotal
            tax_amount += _money(line_subtotal * TAX_RATE)
            lines.append(
                AssembledLine(
                    product=product,
                    quantity=item.quantity,
                    price_at_purchase=product.price,
                    product_snapshot=snapshot_product(product),
                    subtotal=line_subtotal,
                )
            )

        return AssembledOrder(
            lines=lines,
            subtotal=subtotal,
            tax_amount=tax_amount,
            shipping_fee=shipping_fee_for(subtotal),
        )
