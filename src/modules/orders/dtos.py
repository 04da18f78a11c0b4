"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2, the contract
between the API layer (DRF serializers) and ``OrderService``. DTOs are
immutable (``frozen=True``).

- ``ShippingAddressDTO``: where the order ships.
- ``CreateOrderDTO``: checkout input; the items come from the user's cart.
- ``CancelOrderDTO`` / ``UpdateStatusDTO``: lifecycle commands.
- ``PlacedOrder``: checkout result (the order plus, for online payment,
  the hosted payment link).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from modules.orders.constants import OrderStatus, PaymentMethod

if TYPE_CHECKING:
    from modules.orders.models import Order


class ShippingAddressDTO(BaseModel):
    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    full_name: str
    phone: str
    address_line1: str
    address_line2: str = ""
    city: str
    state: str
    postal_code: str
    country: str = "India"

    @field_validator("full_name", "phone", "address_line1", "city", "state", "postal_code")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v:
            raise ValueError("This field may not be blank.")
        return v


class CreateOrderDTO(BaseModel):
    """Immutable DTO for checkout requests.

    The order lines are not part of the request: they are read from the
    user's cart at checkout time.
    """

    model_config = ConfigDict(frozen=True)

    user_id: Any
    shipping_address: ShippingAddressDTO
    payment_method: PaymentMethod
    coupon_code: str = ""
    notes: str = ""
    idempotency_key: Optional[str] = None

    @field_validator("idempotency_key")
    @classmethod
    def blank_key_means_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v


class CancelOrderDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    reason: str
    notes: str = ""

    @field_validator("reason")
    @classmethod
    def reason_must_not_be_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("A cancellation reason is required.")
        return v.strip()


class UpdateStatusDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: OrderStatus
    delivery_date: Optional[datetime] = None
    notes: str = ""


@dataclass(frozen=True)
class PlacedOrder:
    order: Order
    payment_url: Optional[str] = None

    @property
    def requires_payment(self) -> bool:
        return self.payment_url is not None
