"""Web Push subscriptions registered by customers' browsers."""

from __future__ import annotations

from django.db import models

from modules.core.models import BaseModel


class PushSubscription(BaseModel):
    customer_email = models.EmailField(max_length=254, db_index=True)
    endpoint = models.URLField(max_length=500, unique=True)
    p256dh_key = models.CharField(max_length=255)
    auth_key = models.CharField(max_length=255)

    class Meta:
        db_table = "push_subscriptions"
        ordering = ["-created_at"]

    def as_subscription_info(self) -> dict:
        """Shape expected by ``pywebpush.webpush``."""
        return {
            "endpoint": self.endpoint,
            "keys": {"p256dh": self.p256dh_key, "auth": self.auth_key},
        }

    def __str__(self) -> str:
        return f"{self.customer_email} -> {self.endpoint[:40]}"
