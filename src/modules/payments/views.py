"""Checkout, refund and gateway webhook endpoints.

Domain errors propagate to ``api_exception_handler``; the views only
translate HTTP bodies into DTOs and pick the response status.
"""

from __future__ import annotations

from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.actors import Actor
from modules.core.permissions import IsAdminOrApprovedStaff
from modules.orders.serializers import OrderSerializer, PublicOrderSerializer, cart_payload
from modules.orders.services import build_order_service
from modules.payments.dtos import CreateDraftDTO
from modules.payments.gateway import get_payment_gateway
from modules.payments.serializers import (
    ConfirmDraftSerializer,
    DraftCreateSerializer,
    DraftSerializer,
    RefundSerializer,
)
from modules.payments.services import build_checkout_service


class DraftCreateView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_scope = "draft_creation"

    def post(self, request: Request) -> Response:
        """POST /api/v1/orders/draft/"""
        serializer = DraftCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = CreateDraftDTO(**cart_payload(serializer.validated_data))

        draft, charge = build_checkout_service(get_payment_gateway()).create_draft(dto)
        out = DraftSerializer(
            {
                "draft_id": draft.draft_id,
                "total_amount": draft.total_amount,
                "expires_at": draft.expires_at,
                "charge": charge,
            }
        )
        return Response(out.data, status=status.HTTP_201_CREATED)


class DraftConfirmView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request: Request) -> Response:
        """POST /api/v1/orders/draft/confirm/

        201 when the order was created by this call, 200 when it already
        existed.
        """
        serializer = ConfirmDraftSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        fallback = data.get("customer_data_fallback")

        order, created = build_checkout_service(get_payment_gateway()).confirm_draft(
            data["draft_id"],
            data["charge_id"],
            cart_payload(fallback) if fallback else None,
        )
        return Response(
            PublicOrderSerializer(order).data,
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK,
        )


class RefundView(APIView):
    permission_classes = [IsAdminOrApprovedStaff]

    def post(self, request: Request) -> Response:
        """POST /api/v1/payments/refund/"""
        serializer = RefundSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = build_order_service(get_payment_gateway()).refund_order(
            serializer.validated_data["order_id"],
            Actor.from_user(request.user),
            serializer.validated_data["reason"],
        )
        return Response(OrderSerializer(order).data)


class WebhookView(APIView):
    """Gateway notifications; authenticated by signature, not JWT."""

    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request: Request) -> Response:
        """POST /api/v1/payments/webhook/"""
        result = build_checkout_service(get_payment_gateway()).handle_webhook(
            request.data, request.headers, request.query_params
        )
        return Response(result)
