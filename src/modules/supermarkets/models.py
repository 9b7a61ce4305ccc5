"""Supermarket (staff tenant) model.

A supermarket is the tenant that lists products and fulfils orders.
Its credentials are a regular Django user; the profile carries the
commercial terms used by the settlement engine:

- ``commercial_rate``: platform commission in percent (0-100).
- ``payment_terms``: days between order creation and payout.

Only ``approved`` supermarkets may log in and receive orders.
"""

from __future__ import annotations

import re
from decimal import Decimal

import structlog
from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from validate_docbr import CNPJ

from modules.core.models import BaseModel

logger = structlog.get_logger(__name__)


class ApprovalStatus(models.TextChoices):
    PENDING = "pending", "Pendente"
    APPROVED = "approved", "Aprovado"
    REJECTED = "rejected", "Rejeitado"


DEFAULT_PAYMENT_TERMS_DAYS = 30


class Supermarket(BaseModel):
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="supermarket",
    )
    company_name = models.CharField(max_length=255)
    cnpj = models.CharField(max_length=14, unique=True)
    phone = models.CharField(max_length=20, blank=True, default="")
    address = models.TextField(blank=True, default="")
    latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    approval_status = models.CharField(
        max_length=10,
        choices=ApprovalStatus.choices,
        default=ApprovalStatus.PENDING,
    )
    commercial_rate = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        default=Decimal("0.00"),
        validators=[MinValueValidator(Decimal("0")), MaxValueValidator(Decimal("100"))],
    )
    payment_terms = models.PositiveIntegerField(default=DEFAULT_PAYMENT_TERMS_DAYS)
    is_sponsored = models.BooleanField(default=False)

    class Meta:
        db_table = "supermarkets"
        ordering = ["company_name"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(commercial_rate__gte=0) & models.Q(commercial_rate__lte=100),
                name="supermarkets_commercial_rate_range",
            ),
        ]
        indexes = [
            models.Index(fields=["approval_status"], name="supermarkets_approval_idx"),
        ]

    @property
    def is_approved(self) -> bool:
        return self.approval_status == ApprovalStatus.APPROVED

    @staticmethod
    def _sanitize_cnpj(value: str) -> str:
        return re.sub(r"\D", "", value)

    def clean(self) -> None:
        super().clean()
        self.cnpj = self._sanitize_cnpj(self.cnpj or "")
        if not CNPJ().validate(self.cnpj):
            logger.warning("supermarket.invalid_cnpj", cnpj_suffix=self.cnpj[-4:])
            raise ValidationError({"cnpj": "Invalid CNPJ number."})

    def save(self, *args, **kwargs) -> None:
        if self.cnpj:
            self.cnpj = self._sanitize_cnpj(self.cnpj)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.company_name} (CNPJ: ***{self.cnpj[-4:]})"
