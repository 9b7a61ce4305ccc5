from drf_spectacular.views import (
    SpectacularAPIView,
    SpectacularRedocView,
    SpectacularSwaggerView,
)

from django.contrib import admin
from django.urls import include, path
from rest_framework_simplejwt.views import TokenRefreshView, TokenVerifyView

from modules.supermarkets.views import ApprovedStaffTokenObtainPairView

urlpatterns = [
    path("admin/", admin.site.urls),
    path("", include("modules.core.urls")),
    # Domain modules: versioned API. Checkout routes come before the
    # orders router so ``orders/draft/`` is not read as an order id.
    path("api/v1/", include("modules.payments.urls")),
    path("api/v1/", include("modules.orders.urls")),
    path("api/v1/", include("modules.settlements.urls")),
    path("api/v1/", include("modules.supermarkets.urls")),
    path("api/v1/", include("modules.customers.urls")),
    path("api/v1/", include("modules.notifications.urls")),
    # Auth (SimpleJWT): only approved supermarket staff and administrators
    path(
        "api/v1/auth/token/",
        ApprovedStaffTokenObtainPairView.as_view(),
        name="token_obtain",
    ),
    path(
        "api/v1/auth/token/refresh/",
        TokenRefreshView.as_view(),
        name="token_refresh",
    ),
    path(
        "api/v1/auth/token/verify/",
        TokenVerifyView.as_view(),
        name="token_verify",
    ),
    # OpenAPI schema & docs (public)
    path("api/schema/", SpectacularAPIView.as_view(), name="schema"),
    path(
        "api/docs/",
        SpectacularSwaggerView.as_view(url_name="schema"),
        name="swagger-ui",
    ),
    path("api/redoc/", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
]
