"""Push subscription registration."""

from __future__ import annotations

from typing import Dict

import structlog
from django.db import transaction

from modules.customers.models import normalize_email
from modules.notifications.models import PushSubscription

logger = structlog.get_logger(__name__)


class SubscriptionService:
    @transaction.atomic
    def register(self, customer_email: str, endpoint: str, keys: Dict[str, str]) -> PushSubscription:
        """Create or refresh the subscription for ``endpoint``."""
        subscription, created = PushSubscription.objects.update_or_create(
            endpoint=endpoint,
            defaults={
                "customer_email": normalize_email(customer_email),
                "p256dh_key": keys["p256dh"],
                "auth_key": keys["auth"],
            },
        )
        logger.info(
            "notification.subscription_registered",
            subscription_id=str(subscription.id),
            created=created,
        )
        return subscription

    def unregister(self, endpoint: str) -> bool:
        deleted, _ = PushSubscription.objects.filter(endpoint=endpoint).delete()
        return bool(deleted)
