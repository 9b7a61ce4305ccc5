"""Public eco points balance lookup."""

from __future__ import annotations

from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.customers.repositories.django_repository import CustomerDjangoRepository
from modules.customers.serializers import EcoPointsQuerySerializer, EcoPointsSerializer
from modules.customers.services import CustomerService


class EcoPointsView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = CustomerService(CustomerDjangoRepository())

    def get(self, request: Request) -> Response:
        """GET /api/v1/customers/eco-points/?email=..."""
        query = EcoPointsQuerySerializer(data=request.query_params)
        query.is_valid(raise_exception=True)
        balance = self._service.get_eco_points(query.validated_data["email"])
        return Response(EcoPointsSerializer(balance).data)
