"""Push subscription endpoints used by the storefront service worker."""

from __future__ import annotations

from django.conf import settings
from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.notifications.serializers import (
    PushSubscriptionSerializer,
    RegisterSubscriptionSerializer,
    UnregisterSubscriptionSerializer,
)
from modules.notifications.services import SubscriptionService


class PushSubscriptionView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_scope = "push_subscription"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = SubscriptionService()

    def post(self, request: Request) -> Response:
        """POST /api/v1/notifications/subscriptions/"""
        serializer = RegisterSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        subscription = self._service.register(data["customer_email"], data["endpoint"], data["keys"])
        return Response(PushSubscriptionSerializer(subscription).data, status=status.HTTP_201_CREATED)

    def delete(self, request: Request) -> Response:
        """DELETE /api/v1/notifications/subscriptions/"""
        serializer = UnregisterSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        self._service.unregister(serializer.validated_data["endpoint"])
        return Response(status=status.HTTP_204_NO_CONTENT)


class VapidPublicKeyView(APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request: Request) -> Response:
        """GET /api/v1/notifications/vapid-public-key/"""
        return Response({"public_key": settings.VAPID_PUBLIC_KEY})
