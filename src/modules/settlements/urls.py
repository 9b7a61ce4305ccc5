from rest_framework.routers import DefaultRouter

from modules.settlements.views import SettlementViewSet

router = DefaultRouter(trailing_slash=True)
router.register("settlements", SettlementViewSet, basename="settlement")

urlpatterns = router.urls
