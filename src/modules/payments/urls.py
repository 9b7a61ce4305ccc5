from django.urls import path

from modules.payments.views import DraftConfirmView, DraftCreateView, RefundView, WebhookView

urlpatterns = [
    path("orders/draft/", DraftCreateView.as_view(), name="order-draft"),
    path("orders/draft/confirm/", DraftConfirmView.as_view(), name="order-draft-confirm"),
    path("payments/refund/", RefundView.as_view(), name="payment-refund"),
    path("payments/webhook/", WebhookView.as_view(), name="payment-webhook"),
]
