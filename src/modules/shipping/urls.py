"""Carrier webhook URL configuration."""

from __future__ import annotations

from django.urls import path

from modules.shipping.views import TrackingWebhookView

urlpatterns = [
    path("shipping/", TrackingWebhookView.as_view(), name="tracking-webhook"),
]
