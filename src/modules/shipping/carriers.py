"""Carrier client contract and the built-in implementations.

The concrete client is chosen by the ``CARRIER_CLIENT`` setting (a dotted
path).  Production deployments point it at their provider integration.
"""

from __future__ import annotations

import secrets
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Any, Dict, List

import structlog
from django.conf import settings
from django.utils.module_loading import import_string
from pydantic import BaseModel, ConfigDict, Field

from modules.core.exceptions import ExternalDependencyError

logger = structlog.get_logger(__name__)


class ShipmentLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    sku: str
    quantity: int = Field(ge=1)
    price: Decimal


class ShipmentRequest(BaseModel):
    """What the carrier needs to book a pickup."""

    model_config = ConfigDict(frozen=True)

    reference: str
    pickup_address: Dict[str, Any]
    delivery_address: Dict[str, Any]
    items: List[ShipmentLine]
    payment_mode: str
    cod_amount: Decimal = Decimal("0.00")


class ShipmentLabel(BaseModel):
    model_config = ConfigDict(frozen=True)

    awb_number: str
    courier_name: str
    tracking_url: str = ""
    label_url: str = ""


class ICarrierClient(ABC):
    @abstractmethod
    def create_shipment(self, request: ShipmentRequest) -> ShipmentLabel:
        """Book the shipment.

        Raises:
            ExternalDependencyError: the carrier rejected or could not be reached.
        """


class UnconfiguredCarrier(ICarrierClient):
    """Default client: refuses to book until a real carrier is configured."""

    def create_shipment(self, request: ShipmentRequest) -> ShipmentLabel:
        logger.error("carrier.not_configured", reference=request.reference)
        raise ExternalDependencyError(
            "No carrier client is configured.", code="carrier_not_configured"
        )


class SandboxCarrier(ICarrierClient):
    """Books nothing; issues locally generated waybills for staging and tests."""

    courier_name = "Sandbox Express"

    def create_shipment(self, request: ShipmentRequest) -> ShipmentLabel:
        awb = "SBX" + "".join(secrets.choice("0123456789") for _ in range(11))
        logger.info("carrier.sandbox_booked", reference=request.reference, awb_number=awb)
        return ShipmentLabel(
            awb_number=awb,
            courier_name=self.courier_name,
            tracking_url=f"https://sandbox-carrier.example.com/track/{awb}",
            label_url=f"https://sandbox-carrier.example.com/labels/{awb}.pdf",
        )


def get_carrier_client() -> ICarrierClient:
    return import_string(settings.CARRIER_CLIENT)()
