"""Order API views.

Exposes ``OrderService`` via HTTP using a DRF ``GenericViewSet``. Domain
exceptions propagate to ``modules.core.exceptions.exception_handler``,
which renders them in the standard error envelope.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.orders.constants import PaymentMethod
from modules.orders.dtos import (
    CancelOrderDTO,
    CreateOrderDTO,
    ShippingAddressDTO,
    UpdateStatusDTO,
)
from modules.orders.factories import build_order_service
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    UpdateStatusSerializer,
)

STAFF_ACTIONS = {"list", "set_status"}


class OrderViewSet(GenericViewSet):
    """Checkout, order reads and lifecycle commands.

    Does **not** extend ``ModelViewSet``: all writes go through the
    service/repository layer.
    """

    serializer_class = OrderSerializer
    pagination_class = StandardResultsSetPagination
    filterset_class = OrderFilter
    search_fields = ["order_number", "tracking_number", "user__email"]
    ordering_fields = ["created_at", "total_amount", "order_status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_order_service()

    def get_queryset(self):
        return (
            Order.objects.alive()
            .select_related("user")
            .prefetch_related("items__product", "status_history")
        )

    def get_permissions(self):
        if self.action in STAFF_ACTIONS:
            return [IsAdminUser()]
        return [IsAuthenticated()]

    def get_throttles(self) -> list[BaseThrottle]:
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve", "me", "tracking"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Cash on delivery answers ``201`` with the order; online payment
        answers ``200`` with ``{order, payment_url}``. An ``Idempotency-Key``
        header makes a resubmission fail with ``409`` instead of ordering twice.
        """
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        dto = CreateOrderDTO(
            user_id=request.user.pk,
            shipping_address=ShippingAddressDTO(**data["shipping_address"]),
            payment_method=data["payment_method"],
            coupon_code=data["coupon_code"],
            notes=data["notes"],
            idempotency_key=request.headers.get("Idempotency-Key"),
        )
        placed = self._service.create_order(request.user, dto)

        body = OrderSerializer(placed.order).data
        if dto.payment_method == PaymentMethod.ONLINE:
            return Response(
                {"order": body, "payment_url": placed.payment_url},
                status=status.HTTP_200_OK,
            )
        return Response(body, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/ (staff): filterable, ordered, paginated."""
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        order = self._service.get_order(str(pk), request.user)
        return Response(OrderSerializer(order).data)

    @action(detail=False, methods=["get"])
    def me(self, request: Request) -> Response:
        """GET /api/v1/orders/me/"""
        orders = self._service.list_user_orders(request.user)
        page = self.paginate_queryset(orders)
        serializer = OrderSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    @action(
        detail=False,
        methods=["get"],
        url_path=r"tracking/(?P<tracking_number>[A-Za-z0-9]+)",
    )
    def tracking(self, request: Request, tracking_number: str) -> Response:
        """GET /api/v1/orders/tracking/{tracking_number}/"""
        order = self._service.get_by_tracking_number(tracking_number, request.user)
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @action(detail=True, methods=["patch"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/cancel/

        Cancels an order and gives its stock back; a paid order is marked
        refunded.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.cancel_order(
            str(pk), CancelOrderDTO(**serializer.validated_data), request.user
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["patch"], url_path="status")
    def set_status(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/orders/{pk}/status/ (staff)

        Cancellations are **not** allowed here; use ``cancel``.
        """
        serializer = UpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.update_status(
            str(pk), UpdateStatusDTO(**serializer.validated_data), request.user
        )
        return Response(OrderSerializer(order).data)
