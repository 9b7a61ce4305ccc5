from __future__ import annotations

from rest_framework import serializers

from modules.customers.models import EcoAction


class EcoActionSerializer(serializers.ModelSerializer):
    class Meta:
        model = EcoAction
        fields = ["id", "order_id", "action_type", "points", "description", "created_at"]
        read_only_fields = fields


class EcoPointsSerializer(serializers.Serializer):
    email = serializers.EmailField()
    name = serializers.CharField()
    eco_points = serializers.IntegerField()
    total_eco_actions = serializers.IntegerField()
    recent_actions = EcoActionSerializer(many=True)


class EcoPointsQuerySerializer(serializers.Serializer):
    email = serializers.EmailField()
