"""Settlement read API and payout bookkeeping."""

from __future__ import annotations

from rest_framework.decorators import action
from rest_framework.permissions import BasePermission
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.core.actors import Actor
from modules.core.pagination import StandardResultsSetPagination
from modules.core.permissions import IsAdminOrApprovedStaff, IsPlatformAdmin
from modules.settlements.dtos import SettlementFilterDTO, UpdateSupermarketPaymentDTO
from modules.settlements.serializers import (
    SettlementQuerySerializer,
    SettlementRowSerializer,
    SettlementSummarySerializer,
    SupermarketPaymentSerializer,
    UpdateSupermarketPaymentSerializer,
)
from modules.settlements.services import build_settlement_service


class SettlementViewSet(GenericViewSet):
    lookup_url_kwarg = "order_id"
    lookup_value_regex = r"[0-9a-fA-F-]{36}"
    serializer_class = SettlementRowSerializer
    pagination_class = StandardResultsSetPagination

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = build_settlement_service()

    def get_permissions(self) -> list[BasePermission]:
        if self.action == "payment_status":
            return [IsPlatformAdmin()]
        return [IsAdminOrApprovedStaff()]

    def _rows(self, request: Request):
        query = SettlementQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        return self._service.list_settlements(
            Actor.from_user(request.user), SettlementFilterDTO(**query.validated_data)
        )

    def list(self, request: Request) -> Response:
        """GET /api/v1/settlements/"""
        rows = self._rows(request)
        page = self.paginate_queryset(rows)
        return self.get_paginated_response(SettlementRowSerializer(page, many=True).data)

    @action(detail=False, methods=["get"])
    def summary(self, request: Request) -> Response:
        """GET /api/v1/settlements/summary/"""
        summary = self._service.summarize(self._rows(request))
        return Response(SettlementSummarySerializer(summary).data)

    @action(detail=True, methods=["patch"], url_path="payment-status")
    def payment_status(self, request: Request, order_id: str | None = None) -> Response:
        """PATCH /api/v1/settlements/{order_id}/payment-status/"""
        serializer = UpdateSupermarketPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        order = self._service.update_supermarket_payment(
            order_id,
            UpdateSupermarketPaymentDTO(**serializer.validated_data),
            Actor.from_user(request.user),
        )
        return Response(SupermarketPaymentSerializer(order).data)
