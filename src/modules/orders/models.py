"""Order, OrderItem and OrderStatusHistory models.

Rules enforced at the persistence layer:
- ``external_reference`` is unique: at most one order per payment attempt.
- ``delivery_address`` is required iff the order is delivered.
- ``total_amount`` is the sum of the item snapshots (computed by the
  repository at creation, never recalculated from live prices).
- ``OrderItem.price_at_time`` is immutable once written.
- ``status`` is only written by ``OrderService.transition`` via a
  compare-and-swap update; orders are never deleted.
"""

from __future__ import annotations

import secrets
from decimal import Decimal
from typing import Any

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import BaseModel
from modules.orders.constants import (
    CANCELLED_FAMILY,
    ORDER_NUMBER_MAX_RETRIES,
    TERMINAL_STATES,
    VALID_TRANSITIONS,
    FulfillmentMethod,
    HistorySource,
    ItemConfirmationStatus,
    OrderStatus,
    PaymentMethod,
    RefundStatus,
    SupermarketPaymentStatus,
)
from shared.domain.events import DomainEventMixin

logger = structlog.get_logger(__name__)

STATUS_MAX_LENGTH = 20


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``order_number`` is the human-readable identifier shown to customers
    and staff (``SU-YYYYMMDD-XXXXXX``).  ``external_reference`` ties the
    order to the draft / payment attempt that produced it.
    """

    order_number = models.CharField(max_length=20, unique=True, editable=False)

    # Customer identity (lookup keys, not a tenant id)
    customer_name = models.CharField(max_length=255)
    customer_email = models.EmailField(max_length=254, db_index=True)
    customer_phone = models.CharField(max_length=20, blank=True, default="")

    fulfillment_method = models.CharField(
        max_length=10,
        choices=FulfillmentMethod.choices,
        default=FulfillmentMethod.PICKUP,
    )
    delivery_address = models.TextField(blank=True, default="")
    payment_method = models.CharField(
        max_length=10,
        choices=PaymentMethod.choices,
        default=PaymentMethod.PIX,
    )
    total_amount = models.DecimalField(
        max_digits=10, decimal_places=2, default=Decimal("0.00")
    )
    status = models.CharField(
        max_length=STATUS_MAX_LENGTH,
        choices=OrderStatus.choices,
        default=OrderStatus.PENDING,
    )
    eco_points_reward = models.PositiveIntegerField(default=0)
    notes = models.TextField(blank=True, default="")

    # Idempotency key of the payment attempt
    external_reference = models.CharField(
        max_length=64, unique=True, null=True, blank=True
    )

    # Instant payment (PIX) charge
    payment_reference = models.CharField(max_length=64, blank=True, default="", db_index=True)
    payment_code = models.TextField(blank=True, default="")
    payment_qr_code = models.TextField(blank=True, default="")
    payment_expires_at = models.DateTimeField(null=True, blank=True)
    payment_verified_at = models.DateTimeField(null=True, blank=True)

    # Refund bookkeeping
    refund_reference = models.CharField(max_length=64, blank=True, default="")
    refund_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    refund_status = models.CharField(
        max_length=10, choices=RefundStatus.choices, blank=True, default=RefundStatus.NONE
    )
    refund_reason = models.TextField(blank=True, default="")
    refund_date = models.DateTimeField(null=True, blank=True)

    # Supermarket payout bookkeeping (the only fields mutable once terminal)
    supermarket_payment_status = models.CharField(
        max_length=25,
        choices=SupermarketPaymentStatus.choices,
        default=SupermarketPaymentStatus.AWAITING,
    )
    supermarket_payment_amount = models.DecimalField(
        max_digits=10, decimal_places=2, null=True, blank=True
    )
    supermarket_payment_date = models.DateTimeField(null=True, blank=True)
    supermarket_payment_notes = models.TextField(blank=True, default="")

    # Manual status audit
    last_manual_status = models.CharField(
        max_length=STATUS_MAX_LENGTH, choices=OrderStatus.choices, blank=True, default=""
    )
    last_manual_update = models.DateTimeField(null=True, blank=True)
    last_manual_actor = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
            models.Index(
                fields=["status", "payment_expires_at"],
                name="orders_status_expiry_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(fulfillment_method=FulfillmentMethod.PICKUP)
                | ~models.Q(delivery_address=""),
                name="orders_delivery_requires_address",
            ),
            models.CheckConstraint(
                condition=models.Q(total_amount__gte=0),
                name="orders_total_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # State machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATES

    @property
    def is_cancelled(self) -> bool:
        return self.status in CANCELLED_FAMILY

    def can_transition_to(self, new_status: str) -> bool:
        return new_status in VALID_TRANSITIONS.get(self.status, frozenset())

    @property
    def has_approved_charge(self) -> bool:
        """A PIX charge was verified as paid for this order."""
        return bool(self.payment_reference and self.payment_verified_at)

    @property
    def is_refunded(self) -> bool:
        """A refund was accepted by the gateway (settled or still in flight)."""
        return self.refund_status in (RefundStatus.APPROVED, RefundStatus.PENDING)

    # ------------------------------------------------------------------
    # Order number generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_order_number() -> str:
        now = timezone.now()
        suffix = secrets.token_hex(3).upper()
        return f"SU-{now:%Y%m%d}-{suffix}"

    def save(self, *args: Any, **kwargs: Any) -> None:
        if not self.order_number:
            for _ in range(ORDER_NUMBER_MAX_RETRIES):
                candidate = self.generate_order_number()
                if not Order.objects.filter(order_number=candidate).exists():
                    self.order_number = candidate
                    break
            else:
                raise RuntimeError(
                    f"Failed to generate unique order_number after "
                    f"{ORDER_NUMBER_MAX_RETRIES} attempts"
                )
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.order_number} ({self.status})"


class OrderItem(BaseModel):
    """One product line; ``price_at_time`` is the price the customer paid."""

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.PROTECT,
        related_name="items",
    )
    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    price_at_time = models.DecimalField(max_digits=10, decimal_places=2)
    confirmation_status = models.CharField(
        max_length=10,
        choices=ItemConfirmationStatus.choices,
        default=ItemConfirmationStatus.PENDING,
    )
    # Paid for while the shelf was empty: no stock was reserved.
    backordered = models.BooleanField(default=False)

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(price_at_time__gte=0),
                name="order_items_price_non_negative",
            ),
        ]

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_price = instance.__dict__.get("price_at_time")
        return instance

    @property
    def subtotal(self) -> Decimal:
        return self.quantity * self.price_at_time

    def save(self, *args: Any, **kwargs: Any) -> None:
        loaded = getattr(self, "_loaded_price", None)
        if not self._state.adding and loaded is not None and loaded != self.price_at_time:
            logger.error(
                "order_item.price_mutation_blocked",
                item_id=str(self.id),
                stored=str(loaded),
                attempted=str(self.price_at_time),
            )
            raise ValidationError({"price_at_time": "Price snapshot is immutable."})
        super().save(*args, **kwargs)
        self._loaded_price = self.price_at_time

    def __str__(self) -> str:
        return f"{self.product_id} x{self.quantity} @ {self.price_at_time}"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``user`` is set for manual (staff/admin) actions; ``actor`` keeps a
    readable label for every row, including system and customer actions.
    """

    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status = models.CharField(  # noqa: DJ01
        max_length=STATUS_MAX_LENGTH,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status = models.CharField(max_length=STATUS_MAX_LENGTH, choices=OrderStatus.choices)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    actor = models.CharField(max_length=255, blank=True, default="")
    source = models.CharField(
        max_length=10, choices=HistorySource.choices, default=HistorySource.SYSTEM
    )
    notes = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["created_at", "id"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order_id} : {self.old_status} -> {self.new_status}"
