from django.urls import path

from modules.customers.views import EcoPointsView

urlpatterns = [
    path("customers/eco-points/", EcoPointsView.as_view(), name="customer-eco-points"),
]
