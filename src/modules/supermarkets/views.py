"""Supermarket administration API and staff login."""

from __future__ import annotations

from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet
from rest_framework_simplejwt.views import TokenObtainPairView

from modules.core.actors import Actor
from modules.core.pagination import StandardResultsSetPagination
from modules.core.permissions import IsPlatformAdmin
from modules.supermarkets.dtos import UpdateSupermarketDTO
from modules.supermarkets.models import Supermarket
from modules.supermarkets.repositories.django_repository import SupermarketDjangoRepository
from modules.supermarkets.serializers import (
    ApprovedStaffTokenObtainPairSerializer,
    SupermarketSerializer,
    UpdateSupermarketSerializer,
)
from modules.supermarkets.services import SupermarketService


class ApprovedStaffTokenObtainPairView(TokenObtainPairView):
    serializer_class = ApprovedStaffTokenObtainPairSerializer


class SupermarketAdminViewSet(GenericViewSet):
    """Back-office management of supermarket approval and terms."""

    queryset = Supermarket.objects.all()
    permission_classes = [IsPlatformAdmin]
    serializer_class = SupermarketSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = SupermarketService(SupermarketDjangoRepository())

    def list(self, request: Request) -> Response:
        """GET /api/v1/supermarkets/?approval_status=pending"""
        supermarkets = self._service.list_supermarkets(
            request.query_params.get("approval_status")
        )
        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(supermarkets, request, view=self)
        return paginator.get_paginated_response(SupermarketSerializer(page, many=True).data)

    def partial_update(self, request: Request, pk: str | None = None) -> Response:
        """PATCH /api/v1/supermarkets/{pk}/"""
        serializer = UpdateSupermarketSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        dto = UpdateSupermarketDTO(**serializer.validated_data)

        supermarket = self._service.update_profile(
            pk, dto, Actor.from_user(request.user)
        )
        return Response(SupermarketSerializer(supermarket).data)
