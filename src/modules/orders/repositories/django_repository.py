"""Django ORM implementation of the Order repository.

All write operations are wrapped in ``transaction.atomic()`` so the Order
aggregate (Order + OrderItems + outbox rows) is persisted as a unit.
Concurrency control uses ``select_for_update()``; there is no version column.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.core.exceptions import ValidationError
from django.db import transaction

from modules.core.models import OutboxEvent
from modules.orders.constants import AWAITING_PAYMENT, OrderStatus, PaymentMethod
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository
from shared.domain.events import DomainEvent
from shared.infrastructure.bus import event_bus

logger = structlog.get_logger(__name__)

_RELATIONS = ("items__product", "status_history")


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    def _queryset(self):
        return (
            Order.objects.alive()
            .select_related("user")
            .prefetch_related(*_RELATIONS)
        )

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    @transaction.atomic
    def create(self, data: Dict[str, Any]) -> Order:
        fields = dict(data)
        items = fields.pop("items", [])

        order = Order(**fields)
        order.save()

        OrderItem.objects.bulk_create(
            [
                OrderItem(
                    order=order,
                    product=item["product"],
                    quantity=item["quantity"],
                    price_at_purchase=item["price_at_purchase"],
                    product_snapshot=item["product_snapshot"],
                    subtotal=item["subtotal"],
                )
                for item in items
            ]
        )

        logger.info(
            "order.persisted",
            order_id=str(order.id),
            order_number=order.order_number,
            item_count=len(items),
        )
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def get_by_id(self, id: str) -> Optional[Order]:
        """Returns ``None`` for non-existent or malformed IDs."""
        try:
            return self._queryset().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> List[Order]:
        queryset = self._queryset()
        if filters:
            queryset = queryset.filter(**filters)
        return list(queryset)

    def list_for_user(self, user_id: Any) -> List[Order]:
        return list(self._queryset().filter(user_id=user_id))

    def get_by_tracking_number(self, tracking_number: str) -> Optional[Order]:
        return self._queryset().filter(tracking_number=tracking_number).first()

    def get_by_idempotency_key(self, key: str, user_id: Any) -> Optional[Order]:
        return self._queryset().filter(user_id=user_id, idempotency_key=key).first()

    def exists_order_number(self, order_number: str) -> bool:
        return Order.objects.filter(order_number=order_number).exists()

    def exists_tracking_number(self, tracking_number: str) -> bool:
        return Order.objects.filter(tracking_number=tracking_number).exists()

    def list_awaiting_payment(self, started_before: datetime) -> List[UUID]:
        return list(
            Order.objects.alive()
            .filter(
                payment_method=PaymentMethod.ONLINE,
                order_status=OrderStatus.PENDING_PAYMENT,
                payment_status__in=AWAITING_PAYMENT,
                created_at__lt=started_before,
            )
            .order_by("created_at")
            .values_list("id", flat=True)
        )

    # ------------------------------------------------------------------
    # Locking reads
    # ------------------------------------------------------------------

    def get_for_update(self, id: str) -> Optional[Order]:
        """Lock the order row; items are prefetched for the caller."""
        try:
            return (
                Order.objects.alive()
                .select_for_update(of=("self",))
                .select_related("user")
                .prefetch_related(*_RELATIONS)
                .filter(id=id)
                .first()
            )
        except (ValueError, ValidationError):
            return None

    def get_by_number_for_update(self, order_number: str) -> Optional[Order]:
        return (
            Order.objects.alive()
            .select_for_update(of=("self",))
            .select_related("user")
            .prefetch_related(*_RELATIONS)
            .filter(order_number=order_number)
            .first()
        )

    # ------------------------------------------------------------------
    # Save (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist the order and move its pending domain events to the outbox.

        Events are handed to the in-process bus only once the surrounding
        transaction commits.
        """
        entity.save()

        events = entity.domain_events
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=_serialize_event_payload(event),
                topic=event.topic,
            )
            transaction.on_commit(_publisher(event))
        entity.clear_domain_events()

        logger.info("order.saved", order_id=str(entity.id), event_count=len(events))
        return entity

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def add_history(
        self,
        order: Order,
        new_status: str,
        old_status: Optional[str] = None,
        notes: str = "",
        user: Any = None,
    ) -> OrderStatusHistory:
        history = OrderStatusHistory.objects.create(
            order=order,
            old_status=old_status,
            new_status=new_status,
            notes=notes,
            user=user if getattr(user, "is_authenticated", False) else None,
        )
        logger.info(
            "order.history_added",
            order_id=str(order.id),
            old_status=old_status,
            new_status=new_status,
        )
        return history


def _publisher(event: DomainEvent):
    return lambda: event_bus.publish(event)


def _serialize_event_payload(event: DomainEvent) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
