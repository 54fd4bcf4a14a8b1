"""Invoice API views."""

from __future__ import annotations

from django.http import HttpResponse
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView

from modules.core.context import context_from_request
from modules.invoices.exceptions import InvoiceNotFound
from modules.invoices.serializers import InvoiceSerializer
from modules.invoices.tasks import build_invoice_service
from modules.orders.views import build_fulfillment_service


class UnitInvoiceView(APIView):
    """GET /api/v1/invoices/units/{unit_id}/"""

    def get(self, request: Request, unit_id) -> Response:
        invoice = build_invoice_service().get_for_unit(context_from_request(request), unit_id)
        return Response(InvoiceSerializer(invoice).data)


class UnitInvoiceRenderView(APIView):
    """GET /api/v1/invoices/units/{unit_id}/render/

    Issues the invoice on first access when the unit is eligible.
    """

    def get(self, request: Request, unit_id) -> HttpResponse:
        ctx = context_from_request(request)
        service = build_invoice_service()
        try:
            invoice = service.get_for_unit(ctx, unit_id)
        except InvoiceNotFound:
            invoice = service.generate_for_unit(unit_id)
        return HttpResponse(service.render(invoice), content_type="text/html; charset=utf-8")


class OrderInvoicesView(APIView):
    """POST /api/v1/invoices/orders/{order_id}/generate/"""

    def post(self, request: Request, order_id) -> Response:
        order = build_fulfillment_service().get_order(context_from_request(request), order_id)
        invoices = build_invoice_service().generate_for_order(order.id)
        return Response(
            {
                "orderId": str(order.id),
                "invoices": [
                    {"unitId": str(invoice.unit_id), **InvoiceSerializer(invoice).data}
                    for invoice in invoices
                ],
            }
        )
