"""Shipment creation and carrier tracking.

Business rules enforced:
- One shipment per unit; creating it again returns the existing one.
- Shipments are only booked for confirmed units that are not cancelled.
- Cash-on-delivery shipments collect the unit's subtotal + tax + shipping.
- Carrier updates append to the shipment's tracking log and move the unit
  forward; they never move it backwards. A unit move that fails leaves the
  tracking log entry in place.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog
from django.db import transaction
from django.utils import timezone

from modules.core.context import RequestContext
from modules.core.exceptions import DomainError, ValidationFailed
from modules.core.money import ZERO
from modules.orders.constants import FulfillmentStatus, PaymentMethod
from modules.orders.dtos import TrackingUpdateDTO
from modules.orders.exceptions import UnitNotFound
from modules.sellers.services import SellerDirectory
from modules.shipping.carriers import (
    ICarrierClient,
    ShipmentLine,
    ShipmentRequest,
    get_carrier_client,
)
from modules.shipping.constants import PaymentMode, ShipmentStatus, map_carrier_status
from modules.shipping.models import Shipment

if TYPE_CHECKING:
    from modules.orders.models import FulfillmentUnit
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.orders.services import FulfillmentService

logger = structlog.get_logger(__name__)

_SHIPPABLE_STATES = {
    FulfillmentStatus.CONFIRMED,
    FulfillmentStatus.PROCESSING,
    FulfillmentStatus.PACKED,
}


class ShipmentService:
    def __init__(
        self,
        order_repository: IOrderRepository,
        fulfillment_service: FulfillmentService,
        carrier: Optional[ICarrierClient] = None,
        sellers: Optional[SellerDirectory] = None,
    ) -> None:
        self._order_repo = order_repository
        self._fulfillment = fulfillment_service
        self._carrier = carrier
        self._sellers = sellers or SellerDirectory()

    @property
    def carrier(self) -> ICarrierClient:
        if self._carrier is None:
            self._carrier = get_carrier_client()
        return self._carrier

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    @transaction.atomic
    def create_for_unit(self, unit_id: Any) -> Shipment:
        """Book a shipment for a confirmed unit.

        Raises:
            UnitNotFound: unit does not exist.
            ValidationFailed: unit is not in a shippable state.
            SellerNotFound: seller has no pickup address on file.
            ExternalDependencyError: the carrier call failed.
        """
        unit = self._order_repo.get_unit(unit_id)
        if not unit:
            raise UnitNotFound(f"Fulfillment unit {unit_id} not found.")
        log = logger.bind(unit_id=str(unit.id), unit_number=unit.unit_number)

        existing = Shipment.objects.filter(unit=unit).first()
        if existing is not None:
            log.info("shipment.already_exists", awb_number=existing.awb_number)
            return existing
        if unit.status not in _SHIPPABLE_STATES:
            raise ValidationFailed(
                f"Unit {unit.unit_number} is {unit.status} and cannot be shipped.",
                code="unit_not_shippable",
            )

        request = self._build_request(unit)
        label = self.carrier.create_shipment(request)

        shipment = Shipment.objects.create(
            unit=unit,
            awb_number=label.awb_number,
            courier_name=label.courier_name,
            tracking_url=label.tracking_url,
            label_url=label.label_url,
            payment_mode=request.payment_mode,
            cod_amount=request.cod_amount,
        )
        self._order_repo.update_unit_fields(
            unit,
            tracking_number=label.awb_number,
            courier_name=label.courier_name,
            tracking_url=label.tracking_url,
        )
        log.info(
            "shipment.created",
            awb_number=label.awb_number,
            courier_name=label.courier_name,
            payment_mode=request.payment_mode,
        )
        return shipment

    @transaction.atomic
    def apply_tracking_event(
        self,
        awb_number: str,
        status: str,
        location: str = "",
        timestamp: Optional[datetime] = None,
        remarks: str = "",
    ) -> Optional[FulfillmentUnit]:
        """Record a carrier update and move the matching unit forward.

        Returns the unit, or ``None`` when the waybill matches nothing.
        """
        log = logger.bind(awb_number=awb_number, carrier_status=status)
        occurred_at = timestamp or timezone.now()
        shipment_status, unit_status = map_carrier_status(status)

        shipment = (
            Shipment.objects.select_for_update().filter(awb_number=awb_number).first()
        )
        if shipment is not None:
            self._record_event(shipment, status, shipment_status, location, occurred_at, remarks)
            unit = self._order_repo.get_unit(shipment.unit_id)
        else:
            unit = self._order_repo.get_unit_by_tracking_number(awb_number)

        if unit is None:
            log.warning("shipment.unknown_awb")
            return None
        if unit_status is None:
            log.info("shipment.status_not_mapped", unit_id=str(unit.id))
            return unit

        dto = TrackingUpdateDTO(
            unit_id=unit.id,
            status=unit_status,
            location=location,
            occurred_at=occurred_at,
            remarks=remarks,
        )
        # The tracking log outlives a failed unit move.
        try:
            with transaction.atomic():
                return self._fulfillment.apply_tracking_update(RequestContext.system(), dto)
        except DomainError as exc:
            log.warning(
                "shipping.tracking_update_failed",
                unit_id=str(unit.id),
                target_status=unit_status,
                error_code=exc.code,
            )
            return unit

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _build_request(self, unit: FulfillmentUnit) -> ShipmentRequest:
        order = unit.order
        is_cod = order.payment_method == PaymentMethod.CASH_ON_DELIVERY
        return ShipmentRequest(
            reference=unit.unit_number,
            pickup_address=self._sellers.pickup_address(unit.seller_id),
            delivery_address=dict(order.shipping_address or {}),
            items=[
                ShipmentLine(
                    name=item.product_name,
                    sku=item.sku,
                    quantity=item.quantity,
                    price=item.unit_price,
                )
                for item in unit.items.all()
            ],
            payment_mode=PaymentMode.COD if is_cod else PaymentMode.PREPAID,
            cod_amount=unit.gross_amount if is_cod else ZERO,
        )

    @staticmethod
    def _record_event(
        shipment: Shipment,
        raw_status: str,
        shipment_status: str,
        location: str,
        occurred_at: datetime,
        remarks: str,
    ) -> None:
        event: Dict[str, Any] = {
            "status": raw_status,
            "location": location,
            "timestamp": occurred_at.isoformat(),
            "remarks": remarks,
        }
        shipment.tracking_events = [*(shipment.tracking_events or []), event]
        shipment.status = shipment_status
        if location:
            shipment.current_location = location
        if shipment_status == ShipmentStatus.PICKED_UP and shipment.picked_up_at is None:
            shipment.picked_up_at = occurred_at
        if shipment_status == ShipmentStatus.DELIVERED:
            shipment.delivered_at = occurred_at
        shipment.save()
        logger.info(
            "shipment.tracking_recorded",
            awb_number=shipment.awb_number,
            shipment_status=shipment_status,
        )
