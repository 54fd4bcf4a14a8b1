"""Invoice URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.invoices.views import OrderInvoicesView, UnitInvoiceRenderView, UnitInvoiceView

urlpatterns = [
    path("invoices/units/<uuid:unit_id>/", UnitInvoiceView.as_view(), name="unit-invoice"),
    path(
        "invoices/units/<uuid:unit_id>/render/",
        UnitInvoiceRenderView.as_view(),
        name="unit-invoice-render",
    ),
    path(
        "invoices/orders/<uuid:order_id>/generate/",
        OrderInvoicesView.as_view(),
        name="order-invoices",
    ),
]
