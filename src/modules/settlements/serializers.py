from rest_framework import serializers

from modules.core.serializers import StrictSerializer
from modules.orders.constants import SupermarketPaymentStatus


class SettlementQuerySerializer(serializers.Serializer):
    supermarket_id = serializers.UUIDField(required=False)
    payment_status = serializers.ChoiceField(choices=SupermarketPaymentStatus.choices, required=False)
    start_date = serializers.DateField(required=False)
    end_date = serializers.DateField(required=False)


class SettlementRowSerializer(serializers.Serializer):
    order_id = serializers.UUIDField()
    order_number = serializers.CharField()
    supermarket_id = serializers.UUIDField()
    supermarket_name = serializers.CharField()
    group_total = serializers.DecimalField(max_digits=12, decimal_places=2)
    commission_rate = serializers.DecimalField(max_digits=5, decimal_places=2)
    commission = serializers.DecimalField(max_digits=12, decimal_places=2)
    net_payable = serializers.DecimalField(max_digits=12, decimal_places=2)
    expected_payment_date = serializers.DateField()
    payment_status = serializers.CharField()


class _TotalsSerializer(serializers.Serializer):
    count = serializers.IntegerField()
    net_payable = serializers.DecimalField(max_digits=14, decimal_places=2)


class _SupermarketTotalsSerializer(_TotalsSerializer):
    supermarket_id = serializers.UUIDField()
    supermarket_name = serializers.CharField()
    group_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    commission = serializers.DecimalField(max_digits=14, decimal_places=2)


class SettlementSummarySerializer(serializers.Serializer):
    count = serializers.IntegerField()
    group_total = serializers.DecimalField(max_digits=14, decimal_places=2)
    commission = serializers.DecimalField(max_digits=14, decimal_places=2)
    net_payable = serializers.DecimalField(max_digits=14, decimal_places=2)
    by_payment_status = serializers.DictField(child=_TotalsSerializer())
    by_supermarket = _SupermarketTotalsSerializer(many=True)


class UpdateSupermarketPaymentSerializer(StrictSerializer):
    status = serializers.ChoiceField(choices=SupermarketPaymentStatus.choices)
    amount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    payment_date = serializers.DateTimeField(required=False)
    notes = serializers.CharField(required=False, allow_blank=True)


class SupermarketPaymentSerializer(serializers.Serializer):
    order_id = serializers.UUIDField(source="id")
    order_number = serializers.CharField()
    supermarket_payment_status = serializers.CharField()
    supermarket_payment_amount = serializers.DecimalField(max_digits=10, decimal_places=2, allow_null=True)
    supermarket_payment_date = serializers.DateTimeField(allow_null=True)
    supermarket_payment_notes = serializers.CharField(allow_blank=True)
