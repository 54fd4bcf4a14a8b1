"""Order URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.orders.views import FulfillmentUnitViewSet, OrderViewSet

router = DefaultRouter(trailing_slash=True)
router.register("orders", OrderViewSet, basename="order")
router.register("units", FulfillmentUnitViewSet, basename="unit")

urlpatterns = router.urls
