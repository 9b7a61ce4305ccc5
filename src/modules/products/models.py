"""Discounted near-expiry product listings.

Business rules implemented:
- Discount price must be positive and strictly below the original price.
- Quantity on hand can never go negative (DB check constraint; stock is
  only decremented through a conditional UPDATE in the repository).
- Inactive, expired or soft-deleted listings cannot be ordered
  (enforced at service layer).
- Each listing belongs to exactly one supermarket.
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone

from modules.core.models import SoftDeleteModel

logger = structlog.get_logger(__name__)


class Product(SoftDeleteModel):
    supermarket = models.ForeignKey(
        "supermarkets.Supermarket",
        on_delete=models.PROTECT,
        related_name="products",
    )
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    category = models.CharField(max_length=100, blank=True, default="")
    original_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    discount_price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    quantity = models.PositiveIntegerField(default=0)
    expiration_date = models.DateField()
    image_url = models.URLField(blank=True, default="")
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = "products"
        ordering = ["expiration_date", "name"]
        indexes = [
            models.Index(fields=["supermarket", "is_active"], name="products_market_active_idx"),
            models.Index(fields=["expiration_date"], name="products_expiration_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(discount_price__gt=0),
                name="products_discount_price_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(discount_price__lt=models.F("original_price")),
                name="products_discount_below_original",
            ),
            models.CheckConstraint(
                condition=models.Q(quantity__gte=0),
                name="products_quantity_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if (
            self.discount_price is not None
            and self.original_price is not None
            and self.discount_price >= self.original_price
        ):
            raise ValidationError(
                {"discount_price": "Discount price must be lower than the original price."}
            )

    # ------------------------------------------------------------------
    # Availability
    # ------------------------------------------------------------------

    def is_expired(self, today=None) -> bool:
        today = today or timezone.localdate()
        return self.expiration_date < today

    @property
    def is_orderable(self) -> bool:
        return self.is_active and not self.is_deleted and not self.is_expired()

    def __str__(self) -> str:
        return f"{self.name} ({self.quantity} un.)"
