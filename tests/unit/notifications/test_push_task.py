"""Unit tests for Web Push delivery and subscription registration.

``pywebpush.webpush`` is patched where the task looks it up.

Covers:
- Delivery to every subscription of the customer.
- Gone subscriptions (404/410) are removed, other failures are kept.
- Missing VAPID configuration disables delivery.
- Registering the same endpoint twice refreshes it.
"""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import pytest
from pywebpush import WebPushException

from modules.notifications.models import PushSubscription
from modules.notifications.services import SubscriptionService
from modules.notifications.tasks import send_push_notification

pytestmark = pytest.mark.unit

PAYLOAD = {"title": "Pedido pronto", "body": "O pedido SU-1 está pronto.", "tag": "order-1"}


def _subscribe(email="ana@example.com", endpoint="https://push.example.com/sub/1"):
    return SubscriptionService().register(email, endpoint, {"p256dh": "BNcRd", "auth": "tBHI"})


def _push_error(status_code):
    response = MagicMock(status_code=status_code)
    return WebPushException("push failed", response=response)


class TestSendPushNotification:
    def test_delivers_to_each_subscription(self):
        _subscribe(endpoint="https://push.example.com/sub/1")
        _subscribe(endpoint="https://push.example.com/sub/2")
        _subscribe(email="outra@example.com", endpoint="https://push.example.com/sub/3")

        with patch("modules.notifications.tasks.webpush") as webpush:
            delivered = send_push_notification("Ana@Example.com", PAYLOAD)

        assert delivered == 2
        assert webpush.call_count == 2
        kwargs = webpush.call_args.kwargs
        assert json.loads(kwargs["data"]) == PAYLOAD
        assert kwargs["vapid_claims"] == {"sub": "mailto:ops@saveup.test"}
        assert kwargs["subscription_info"]["keys"] == {"p256dh": "BNcRd", "auth": "tBHI"}

    @pytest.mark.parametrize("status_code", [404, 410])
    def test_gone_subscription_is_removed(self, status_code):
        _subscribe()

        with patch("modules.notifications.tasks.webpush", side_effect=_push_error(status_code)):
            delivered = send_push_notification("ana@example.com", PAYLOAD)

        assert delivered == 0
        assert not PushSubscription.objects.exists()

    def test_other_failures_keep_subscription(self):
        _subscribe()

        with patch("modules.notifications.tasks.webpush", side_effect=_push_error(500)):
            delivered = send_push_notification("ana@example.com", PAYLOAD)

        assert delivered == 0
        assert PushSubscription.objects.count() == 1

    def test_one_failure_does_not_stop_the_rest(self):
        _subscribe(endpoint="https://push.example.com/sub/1")
        _subscribe(endpoint="https://push.example.com/sub/2")

        with patch("modules.notifications.tasks.webpush", side_effect=[_push_error(410), None]):
            delivered = send_push_notification("ana@example.com", PAYLOAD)

        assert delivered == 1
        assert PushSubscription.objects.count() == 1

    def test_without_vapid_nothing_is_sent(self, settings):
        settings.VAPID_PRIVATE_KEY = ""
        _subscribe()

        with patch("modules.notifications.tasks.webpush") as webpush:
            delivered = send_push_notification("ana@example.com", PAYLOAD)

        assert delivered == 0
        webpush.assert_not_called()

    def test_runs_through_celery(self):
        _subscribe()

        with patch("modules.notifications.tasks.webpush"):
            result = send_push_notification.delay("ana@example.com", PAYLOAD)

        assert result.get() == 1


class TestSubscriptionService:
    def test_register_normalizes_email(self):
        subscription = _subscribe(email="  Ana@Example.COM ")

        assert subscription.customer_email == "ana@example.com"

    def test_same_endpoint_is_refreshed(self):
        _subscribe()
        SubscriptionService().register(
            "ana@example.com", "https://push.example.com/sub/1", {"p256dh": "new", "auth": "new"}
        )

        subscription = PushSubscription.objects.get()
        assert subscription.p256dh_key == "new"

    def test_unregister(self):
        _subscribe()

        assert SubscriptionService().unregister("https://push.example.com/sub/1") is True
        assert SubscriptionService().unregister("https://push.example.com/sub/1") is False
