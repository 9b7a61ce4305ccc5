"""Order DRF serializers for API input/output.

Input serializers reject unknown keys; business validation lives in the
pydantic DTOs (``dtos.py``) and the service layer.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.core.serializers import StrictSerializer
from modules.orders.constants import (
    PAYMENT_CONFIRMED_ALIAS,
    FulfillmentMethod,
    ItemConfirmationStatus,
    OrderStatus,
    PaymentMethod,
)
from modules.orders.models import Order, OrderItem, OrderStatusHistory

# ---------------------------------------------------------------------------
# Input Serializers
# ---------------------------------------------------------------------------


class OrderItemInputSerializer(StrictSerializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)
    price = serializers.DecimalField(
        max_digits=10, decimal_places=2, min_value=0.01, required=False
    )


class CustomerOrderInputSerializer(StrictSerializer):
    """Customer, fulfillment and cart fields shared by every checkout body."""

    customer_name = serializers.CharField(max_length=255)
    customer_email = serializers.EmailField()
    customer_phone = serializers.CharField(max_length=20, required=False, default="", allow_blank=True)
    fulfillment_method = serializers.ChoiceField(
        choices=FulfillmentMethod.choices, required=False, default=FulfillmentMethod.PICKUP
    )
    delivery_address = serializers.CharField(required=False, default="", allow_blank=True)
    total_amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0)
    notes = serializers.CharField(required=False, default="", allow_blank=True)
    items = OrderItemInputSerializer(many=True, allow_empty=False)


class CreateOrderSerializer(CustomerOrderInputSerializer):
    payment_method = serializers.ChoiceField(
        choices=PaymentMethod.choices, required=False, default=PaymentMethod.CASH
    )


class UpdateStatusSerializer(StrictSerializer):
    status = serializers.ChoiceField(choices=[*OrderStatus.values, PAYMENT_CONFIRMED_ALIAS])
    notes = serializers.CharField(required=False, default="", allow_blank=True)


class CancelOrderSerializer(StrictSerializer):
    reason = serializers.CharField(required=False, default="", allow_blank=True, max_length=500)


class CustomerCancelSerializer(CancelOrderSerializer):
    customer_email = serializers.EmailField()


class ItemConfirmationSerializer(StrictSerializer):
    confirmation_status = serializers.ChoiceField(choices=ItemConfirmationStatus.choices)


# ---------------------------------------------------------------------------
# Output Serializers (Read)
# ---------------------------------------------------------------------------


class OrderItemSerializer(serializers.ModelSerializer):
    """Order line with its price snapshot."""

    product_name = serializers.CharField(source="product.name", read_only=True)
    supermarket_id = serializers.UUIDField(source="product.supermarket_id", read_only=True)
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2, read_only=True)

    class Meta:
        model = OrderItem
        fields = [
            "id",
            "product_id",
            "product_name",
            "supermarket_id",
            "quantity",
            "price_at_time",
            "subtotal",
            "confirmation_status",
            "backordered",
        ]
        read_only_fields = fields


class StatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = [
            "id",
            "old_status",
            "new_status",
            "actor",
            "source",
            "notes",
            "created_at",
        ]
        read_only_fields = fields


PUBLIC_ORDER_FIELDS = [
    "id",
    "order_number",
    "customer_name",
    "customer_email",
    "customer_phone",
    "fulfillment_method",
    "delivery_address",
    "payment_method",
    "status",
    "total_amount",
    "eco_points_reward",
    "notes",
    "external_reference",
    "payment_reference",
    "payment_code",
    "payment_qr_code",
    "payment_expires_at",
    "payment_verified_at",
    "refund_status",
    "refund_amount",
    "refund_date",
    "created_at",
    "updated_at",
    "items",
]


class PublicOrderSerializer(serializers.ModelSerializer):
    """What the customer who placed the order may see."""

    items = OrderItemSerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = PUBLIC_ORDER_FIELDS
        read_only_fields = fields


class OrderSerializer(serializers.ModelSerializer):
    """Staff view: everything, including refund, payout and audit fields."""

    items = OrderItemSerializer(many=True, read_only=True)
    status_history = StatusHistorySerializer(many=True, read_only=True)

    class Meta:
        model = Order
        fields = [
            *PUBLIC_ORDER_FIELDS,
            "refund_reference",
            "refund_reason",
            "supermarket_payment_status",
            "supermarket_payment_amount",
            "supermarket_payment_date",
            "supermarket_payment_notes",
            "last_manual_status",
            "last_manual_update",
            "last_manual_actor",
            "status_history",
        ]
        read_only_fields = fields


class OrderListSerializer(serializers.ModelSerializer):
    """Lightweight serializer for order list (no nested relations)."""

    class Meta:
        model = Order
        fields = [
            "id",
            "order_number",
            "customer_name",
            "customer_email",
            "fulfillment_method",
            "payment_method",
            "status",
            "total_amount",
            "refund_status",
            "created_at",
        ]
        read_only_fields = fields


class PaymentStatusSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    status = serializers.CharField()
    gateway_status = serializers.CharField(allow_null=True)
    expires_at = serializers.DateTimeField(allow_null=True)
    payment_code = serializers.CharField(allow_blank=True)


def cart_payload(data: dict) -> dict:
    """Reshape a validated ``CustomerOrderInputSerializer`` body for the DTOs."""
    return {
        "customer": {
            "name": data["customer_name"],
            "email": data["customer_email"],
            "phone": data.get("customer_phone", ""),
        },
        "fulfillment_method": data.get("fulfillment_method", FulfillmentMethod.PICKUP),
        "delivery_address": data.get("delivery_address", ""),
        "total_amount": data["total_amount"],
        "notes": data.get("notes", ""),
        "items": [dict(item) for item in data["items"]],
    }
