"""Web Push delivery.

Runs on a Celery worker so a slow or failing push service never holds
up the request that changed the order.
"""

from __future__ import annotations

import json
from typing import Any, Dict

import structlog
from celery import shared_task
from django.conf import settings
from pywebpush import WebPushException, webpush

from modules.customers.models import normalize_email
from modules.notifications.models import PushSubscription

logger = structlog.get_logger(__name__)

GONE_STATUS_CODES = {404, 410}


@shared_task(name="notifications.send_push_notification")
def send_push_notification(email: str, payload: Dict[str, Any]) -> int:
    """Push ``payload`` to every browser subscribed with ``email``.

    Subscriptions the push service reports as gone are deleted.
    Returns the number of successful deliveries.
    """
    log = logger.bind(tag=payload.get("tag"))
    if not settings.VAPID_PRIVATE_KEY or not settings.VAPID_CLAIM_EMAIL:
        log.warning("notification.vapid_not_configured")
        return 0

    delivered = 0
    data = json.dumps(payload)
    for subscription in PushSubscription.objects.filter(customer_email=normalize_email(email)):
        try:
            webpush(
                subscription_info=subscription.as_subscription_info(),
                data=data,
                vapid_private_key=settings.VAPID_PRIVATE_KEY,
                vapid_claims={"sub": f"mailto:{settings.VAPID_CLAIM_EMAIL}"},
                ttl=settings.PUSH_NOTIFICATION_TTL,
            )
        except WebPushException as exc:
            status_code = getattr(exc.response, "status_code", None)
            if status_code in GONE_STATUS_CODES:
                subscription.delete()
                log.info("notification.subscription_removed", subscription_id=str(subscription.id))
            else:
                log.warning(
                    "notification.delivery_failed",
                    subscription_id=str(subscription.id),
                    status_code=status_code,
                    error=str(exc),
                )
            continue
        delivered += 1

    log.info("notification.sent", delivered=delivered)
    return delivered
