"""Return and refund URL configuration."""

from __future__ import annotations

from rest_framework.routers import DefaultRouter

from modules.returns.views import RefundViewSet, ReturnViewSet

router = DefaultRouter(trailing_slash=True)
router.register("returns", ReturnViewSet, basename="return")
router.register("refunds", RefundViewSet, basename="refund")

urlpatterns = router.urls
