"""Invoice read serializer.

Field names are camelCase: this payload is consumed by the storefront's
invoice widget as-is.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.invoices.models import Invoice


class InvoiceSerializer(serializers.ModelSerializer):
    invoiceNumber = serializers.CharField(source="invoice_number", read_only=True)
    totalTax = serializers.DecimalField(
        source="total_tax", max_digits=12, decimal_places=2, read_only=True
    )
    totalAmount = serializers.DecimalField(
        source="total_amount", max_digits=12, decimal_places=2, read_only=True
    )
    generatedAt = serializers.DateTimeField(source="generated_at", read_only=True)

    class Meta:
        model = Invoice
        fields = [
            "invoiceNumber",
            "subtotal",
            "cgst",
            "sgst",
            "igst",
            "totalTax",
            "totalAmount",
            "generatedAt",
        ]
        read_only_fields = fields
