"""Checkout and payment serializers."""

from __future__ import annotations

from rest_framework import serializers

from modules.core.serializers import StrictSerializer
from modules.orders.serializers import CustomerOrderInputSerializer


class DraftCreateSerializer(CustomerOrderInputSerializer):
    """PIX checkout cart; same shape as a direct order without ``payment_method``."""


class ConfirmDraftSerializer(StrictSerializer):
    draft_id = serializers.RegexField(r"^draft_[0-9a-f]{32}$", max_length=64)
    charge_id = serializers.CharField(max_length=64)
    customer_data_fallback = CustomerOrderInputSerializer(required=False)


class RefundSerializer(StrictSerializer):
    order_id = serializers.UUIDField()
    reason = serializers.CharField(required=False, default="", allow_blank=True, max_length=500)


class ChargeSerializer(serializers.Serializer):
    charge_id = serializers.CharField()
    payment_code = serializers.CharField()
    qr_code_base64 = serializers.CharField(allow_blank=True)


class DraftSerializer(serializers.Serializer):
    draft_id = serializers.CharField()
    total_amount = serializers.DecimalField(max_digits=10, decimal_places=2)
    expires_at = serializers.DateTimeField(allow_null=True)
    charge = ChargeSerializer()
