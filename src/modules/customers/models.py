"""Customer eco-points ledger.

Customers buy without an account: orders carry the customer's name,
email and phone.  The email is the lookup key for the running eco
points balance and for push subscriptions.

- ``Customer.eco_points`` is only ever changed through an ``F()``
  increment (see ``CustomerDjangoRepository.award_eco_points``).
- ``EcoAction`` is the append-only ledger; one award per order.
"""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


def normalize_email(value: str) -> str:
    return (value or "").strip().lower()


class Customer(BaseModel):
    name = models.CharField(max_length=255)
    email = models.EmailField(max_length=254, unique=True)
    phone = models.CharField(max_length=20, blank=True, default="")
    eco_points = models.PositiveIntegerField(default=0)
    total_eco_actions = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "customers"
        ordering = ["-eco_points", "name"]

    def save(self, *args, **kwargs) -> None:
        self.email = normalize_email(self.email)
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} <{self.email}> ({self.eco_points} pts)"


class EcoActionType(models.TextChoices):
    ORDER_COMPLETED = "order_completed", "Pedido concluído"


class EcoAction(BaseModel):
    customer = models.ForeignKey(
        "customers.Customer",
        on_delete=models.CASCADE,
        related_name="eco_actions",
    )
    order = models.ForeignKey(
        "orders.Order",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="eco_actions",
    )
    action_type = models.CharField(
        max_length=30,
        choices=EcoActionType.choices,
        default=EcoActionType.ORDER_COMPLETED,
    )
    points = models.PositiveIntegerField()
    description = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        db_table = "eco_actions"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["order", "action_type"],
                condition=models.Q(order__isnull=False),
                name="eco_actions_one_award_per_order",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.customer_id} +{self.points} ({self.action_type})"
