"""Payment results passed between the gateway client, the payment service
and the API layer."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from pydantic import BaseModel, ConfigDict

if TYPE_CHECKING:
    from modules.orders.models import Order


class PaymentInitiationResult(BaseModel):
    """Outcome of asking the gateway for a hosted payment link.

    ``gateway_unreachable`` separates a timeout or network failure from an
    explicit refusal by the gateway.
    """

    model_config = ConfigDict(frozen=True)

    success: bool
    payment_url: Optional[str] = None
    error: Optional[str] = None
    gateway_unreachable: bool = False


class CallbackResult:
    """Outcome of applying a gateway callback to its order."""

    __slots__ = ("success", "order", "message", "replayed")

    def __init__(
        self,
        success: bool,
        order: Optional[Order] = None,
        message: str = "",
        replayed: bool = False,
    ) -> None:
        self.success = success
        self.order = order
        self.message = message
        self.replayed = replayed

    def __repr__(self) -> str:
        order_id = getattr(self.order, "id", None)
        return (
            f"CallbackResult(success={self.success}, order={order_id}, "
            f"message={self.message!r}, replayed={self.replayed})"
        )
