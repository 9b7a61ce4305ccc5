import django_filters

from modules.orders.constants import FulfillmentMethod, OrderStatus, PaymentMethod
from modules.orders.models import Order


class OrderFilter(django_filters.FilterSet):
    status = django_filters.MultipleChoiceFilter(choices=OrderStatus.choices)
    customer_email = django_filters.CharFilter(field_name="customer_email", lookup_expr="iexact")
    fulfillment_method = django_filters.ChoiceFilter(choices=FulfillmentMethod.choices)
    payment_method = django_filters.ChoiceFilter(choices=PaymentMethod.choices)
    start_date = django_filters.DateFilter(field_name="created_at", lookup_expr="date__gte")
    end_date = django_filters.DateFilter(field_name="created_at", lookup_expr="date__lte")
    min_total = django_filters.NumberFilter(
        field_name="total_amount", lookup_expr="gte"
    )
    max_total = django_filters.NumberFilter(
        field_name="total_amount", lookup_expr="lte"
    )

    class Meta:
        model = Order
        fields = [
            "status",
            "customer_email",
            "fulfillment_method",
            "payment_method",
            "start_date",
            "end_date",
            "min_total",
            "max_total",
        ]
