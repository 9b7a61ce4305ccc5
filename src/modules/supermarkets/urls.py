from rest_framework.routers import DefaultRouter

from modules.supermarkets.views import SupermarketAdminViewSet

router = DefaultRouter(trailing_slash=True)
router.register("supermarkets", SupermarketAdminViewSet, basename="supermarket")

urlpatterns = router.urls
