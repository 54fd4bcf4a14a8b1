"""Asynchronous shipment booking."""

from __future__ import annotations

import structlog
from celery import shared_task

from modules.core.exceptions import ExternalDependencyError

logger = structlog.get_logger(__name__)


def build_shipment_service():
    from modules.orders.repositories.django_repository import OrderDjangoRepository
    from modules.orders.views import build_fulfillment_service
    from modules.shipping.services import ShipmentService

    return ShipmentService(
        order_repository=OrderDjangoRepository(),
        fulfillment_service=build_fulfillment_service(),
    )


@shared_task(
    name="shipping.create_unit_shipment",
    autoretry_for=(ExternalDependencyError,),
    retry_backoff=True,
    retry_backoff_max=600,
    max_retries=3,
)
def create_unit_shipment(unit_id: str) -> dict:
    """Book the carrier shipment of a freshly confirmed unit."""
    shipment = build_shipment_service().create_for_unit(unit_id)
    logger.info(
        "shipment.task_completed", unit_id=unit_id, awb_number=shipment.awb_number
    )
    return {"unit_id": unit_id, "awb_number": shipment.awb_number}
