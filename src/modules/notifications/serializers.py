from rest_framework import serializers

from modules.core.serializers import StrictSerializer
from modules.notifications.models import PushSubscription


class SubscriptionKeysSerializer(StrictSerializer):
    p256dh = serializers.CharField(max_length=255)
    auth = serializers.CharField(max_length=255)


class RegisterSubscriptionSerializer(StrictSerializer):
    customer_email = serializers.EmailField()
    endpoint = serializers.URLField(max_length=500)
    keys = SubscriptionKeysSerializer()


class UnregisterSubscriptionSerializer(StrictSerializer):
    endpoint = serializers.URLField(max_length=500)


class PushSubscriptionSerializer(serializers.ModelSerializer):
    class Meta:
        model = PushSubscription
        fields = ["id", "customer_email", "endpoint", "created_at"]
        read_only_fields = fields
