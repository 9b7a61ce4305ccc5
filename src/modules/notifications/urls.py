from django.urls import path

from modules.notifications.views import PushSubscriptionView, VapidPublicKeyView

urlpatterns = [
    path(
        "notifications/subscriptions/",
        PushSubscriptionView.as_view(),
        name="notification-subscriptions",
    ),
    path(
        "notifications/vapid-public-key/",
        VapidPublicKeyView.as_view(),
        name="notification-vapid-public-key",
    ),
]
