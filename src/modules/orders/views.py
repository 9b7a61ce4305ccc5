"""Order API views.

Exposes ``OrderService`` via a DRF ``GenericViewSet``.  Domain
exceptions are not caught here: ``api_exception_handler`` maps them to
HTTP responses, so every endpoint shares one error format.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import AllowAny, BasePermission
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.actors import Actor
from modules.core.pagination import StandardResultsSetPagination
from modules.core.permissions import IsAdminOrApprovedStaff
from modules.orders.dtos import CreateOrderDTO
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.serializers import (
    CancelOrderSerializer,
    CreateOrderSerializer,
    CustomerCancelSerializer,
    ItemConfirmationSerializer,
    OrderItemSerializer,
    OrderListSerializer,
    OrderSerializer,
    PaymentStatusSerializer,
    PublicOrderSerializer,
    UpdateStatusSerializer,
    cart_payload,
)
from modules.orders.services import OrderService, build_order_service
from modules.payments.gateway import get_payment_gateway
from modules.payments.services import build_checkout_service

PUBLIC_ACTIONS = {"create", "payment_status", "customer_cancel"}


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.  Checkout and customer endpoints are
    public; everything else needs approved staff or an administrator.
    """

    queryset = Order.objects.none()
    lookup_value_regex = r"[0-9a-fA-F-]{36}"
    filterset_class = OrderFilter
    search_fields = ["order_number", "customer_name", "customer_email"]
    ordering_fields = ["created_at", "total_amount", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    pagination_class = StandardResultsSetPagination

    @property
    def service(self) -> OrderService:
        if not hasattr(self, "_service"):
            self._service = build_order_service(get_payment_gateway())
        return self._service

    def get_permissions(self) -> list[BasePermission]:
        if self.action in PUBLIC_ACTIONS:
            return [AllowAny()]
        return [IsAdminOrApprovedStaff()]

    def get_throttles(self) -> list[BaseThrottle]:
        """Throttle scopes per action."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_creation"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    def _actor(self, request: Request) -> Actor:
        return Actor.from_user(request.user)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Supports idempotency via the ``Idempotency-Key`` header.
        Returns 200 if the key was already used, 201 for new orders.
        """
        serializer = CreateOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        data = serializer.validated_data
        dto = CreateOrderDTO(
            **cart_payload(data),
            payment_method=data["payment_method"],
            external_reference=request.headers.get("Idempotency-Key") or None,
        )
        order, created = self.service.create_order(dto)

        return Response(
            PublicOrderSerializer(order).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def get_queryset(self):
        return self.service.list_orders(self._actor(self.request))

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Staff see orders containing their products; administrators see
        every order.  Filtering, ordering and pagination are handled by
        the filter backends.
        """
        queryset = self.filter_queryset(self.get_queryset())
        page = self.paginate_queryset(queryset)
        serializer = OrderListSerializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/"""
        order = self.service.get_order(pk, self._actor(request))
        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @action(detail=True, methods=["put"], url_path="status")
    def update_status(self, request: Request, pk: str | None = None) -> Response:
        """PUT /api/v1/orders/{pk}/status/"""
        serializer = UpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self.service.transition(
            pk,
            serializer.validated_data["status"],
            self._actor(request),
            serializer.validated_data["notes"],
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/cancel/

        Staff cancellation; a paid order is refunded first.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self.service.cancel_order(
            pk, self._actor(request), serializer.validated_data["reason"]
        )
        return Response(OrderSerializer(order).data)

    @action(detail=True, methods=["post"], url_path="customer-cancel")
    def customer_cancel(self, request: Request, pk: str | None = None) -> Response:
        """POST /api/v1/orders/{pk}/customer-cancel/"""
        serializer = CustomerCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self.service.cancel_order(
            pk,
            Actor.customer(serializer.validated_data["customer_email"]),
            serializer.validated_data["reason"],
        )
        return Response(PublicOrderSerializer(order).data)

    @action(detail=True, methods=["get"], url_path="payment-status")
    def payment_status(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/orders/{pk}/payment-status/

        Polled by the checkout page; moves an ``awaiting_payment`` order
        along when the charge was paid, rejected or timed out.
        """
        payload = build_checkout_service(get_payment_gateway()).refresh_payment_status(pk)
        return Response(PaymentStatusSerializer(payload).data)

    @action(
        detail=True,
        methods=["patch"],
        url_path=r"items/(?P<item_id>[0-9a-fA-F-]{36})/confirmation",
    )
    def item_confirmation(
        self, request: Request, pk: str | None = None, item_id: str | None = None
    ) -> Response:
        """PATCH /api/v1/orders/{pk}/items/{item_id}/confirmation/"""
        serializer = ItemConfirmationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        item = self.service.update_item_confirmation(
            pk,
            item_id,
            serializer.validated_data["confirmation_status"],
            self._actor(request),
        )
        return Response(OrderItemSerializer(item).data)
