"""Carrier tracking webhook payload."""

from __future__ import annotations

from rest_framework import serializers


class TrackingWebhookSerializer(serializers.Serializer):
    awb_number = serializers.CharField(max_length=64)
    status = serializers.CharField(max_length=50)
    location = serializers.CharField(required=False, default="", allow_blank=True)
    timestamp = serializers.DateTimeField(required=False, allow_null=True, default=None)
    remarks = serializers.CharField(required=False, default="", allow_blank=True)
